"""
==============================================================================
Keyboard Wedge WebSocket Module
==============================================================================

Hardware scanner (keyboard wedge) input forwarded from the POS screen.

Protocol:
---------
1. Client connects
2. Client forwards keystrokes as
   ``{"type": "key", "key": "5", "timestamp": 1700000000123, ...}``
3. Client forwards manual entries as ``{"type": "manual", "barcode": "..."}``
4. Server replies ``{"type": "scan", "barcode", "timestamp", "source"}``
   for each completed barcode
5. A buffer without a trailing Enter is flushed after the idle timeout

==============================================================================
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from posscan.config import Settings, get_settings
from posscan.core import exceptions
from posscan.scanner import KeyEvent, KeyboardWedgeBuffer, ScanResult


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter()


class WedgeWebSocketHandler:
    """
    Handler for keyboard wedge WebSocket connections.

    Keeps one KeyboardWedgeBuffer per connection and an idle timer that
    completes scans sent without a terminating Enter.
    """

    def __init__(self, websocket: WebSocket, settings: Settings):
        self._websocket = websocket
        self._buffer = KeyboardWedgeBuffer(
            min_length=settings.wedge_min_length,
            max_delay_ms=settings.wedge_max_delay_ms,
            prefixes=settings.wedge_prefixes_list,
            suffixes=settings.wedge_suffixes_list,
        )
        self._idle_timeout = settings.wedge_idle_timeout_ms / 1000
        self._flush_task: Optional[asyncio.Task] = None

    async def send_error(self, message: str, code: str = "ERROR") -> None:
        """Send error message to client."""
        await self._websocket.send_json({
            "type": "error",
            "code": code,
            "message": message
        })

    async def send_scan(self, result: ScanResult) -> None:
        """Send a completed barcode."""
        payload = result.model_dump(mode="json")
        payload["type"] = "scan"
        await self._websocket.send_json(payload)
        logger.info(f"🔍 Wedge scan: {result.barcode} ({result.source})")

    async def handle_key(self, data: dict) -> None:
        """Feed one keystroke to the buffer."""
        try:
            event = KeyEvent.model_validate(data)
        except ValidationError as e:
            await self.send_error(str(e), "VALIDATION_ERROR")
            return

        self._cancel_flush()

        result = self._buffer.feed(event)
        if result:
            await self.send_scan(result)
        elif self._buffer.is_scanning:
            self._flush_task = asyncio.create_task(self._flush_after_idle())

    async def handle_manual(self, data: dict) -> None:
        """Accept a manually typed barcode."""
        barcode = str(data.get("barcode") or "").strip()
        if not barcode:
            await self.send_error("Barcode is required", "VALIDATION_ERROR")
            return

        await self.send_scan(ScanResult.manual(barcode))

    async def _flush_after_idle(self) -> None:
        await asyncio.sleep(self._idle_timeout)
        result = self._buffer.flush()
        if result:
            await self.send_scan(result)

    def _cancel_flush(self) -> None:
        if self._flush_task and not self._flush_task.done():
            self._flush_task.cancel()
        self._flush_task = None

    async def run(self) -> None:
        """Main handler loop."""
        await self._websocket.accept()
        logger.info("⌨️ Wedge WebSocket connected")

        try:
            while True:
                data = await self._websocket.receive_json()
                message_type = data.get("type") if isinstance(data, dict) else None

                if message_type == "key":
                    await self.handle_key(data)
                elif message_type == "manual":
                    await self.handle_manual(data)
                elif message_type == "stop":
                    await self._websocket.close()
                    break
                else:
                    error = exceptions.invalid_message(message_type)
                    await self.send_error(error.message, error.code)

        except WebSocketDisconnect:
            logger.info("⌨️ Client disconnected")
        except Exception as e:
            logger.error(f"Wedge WebSocket error: {e}")
        finally:
            self._cancel_flush()
            logger.info("✅ Wedge WebSocket closed")


@router.websocket("/ws/wedge")
async def websocket_wedge(
    websocket: WebSocket,
    settings: Settings = Depends(get_settings),
):
    """Keyboard wedge scanner input via WebSocket."""
    handler = WedgeWebSocketHandler(websocket, settings)
    await handler.run()
