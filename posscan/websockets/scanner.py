"""
==============================================================================
Scanner WebSocket Module
==============================================================================

Camera scanning dialog driven over a WebSocket connection.

Protocol:
---------
1. Client connects; server opens a ScanSession and sends its ``state``
2. Client sends ``{"type": "init"}`` to enumerate cameras and start scanning
3. Client sends ``{"type": "switch"}`` to move to the next camera
4. Client sends ``{"type": "retry"}`` after an error state
5. Server sends ``{"type": "result", "barcode": ...}`` once a code is read,
   followed by the (idle) ``state``; the client then closes the dialog
6. Client sends ``{"type": "stop"}`` or disconnects to close

A session closed over HTTP answers the next command with a
``SESSION_NOT_FOUND`` error and the server closes the socket. A camera that
fails while streaming produces an ``error`` message and the ``error`` state.

The session is always closed, and its camera released, before the handler
returns.

==============================================================================
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from posscan.core import exceptions
from posscan.core.dependencies import get_camera_backend, get_sessions
from posscan.core.exceptions import AppException
from posscan.scanner import CameraBackend, ScanResult, ScanSession, ScanSource
from posscan.services.session_manager import ScanSessionManager


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter()


class ScannerWebSocketHandler:
    """
    Handler for camera scanning WebSocket connections.

    Manages the lifecycle of a scanning dialog including:
    - Session creation and registration
    - Lifecycle commands (init, retry, switch, stop)
    - Result delivery
    - Guaranteed camera release on close
    """

    def __init__(
        self,
        websocket: WebSocket,
        backend: CameraBackend,
        sessions: ScanSessionManager,
    ):
        self._websocket = websocket
        self._backend = backend
        self._sessions = sessions
        self._session: Optional[ScanSession] = None
        self._closed = False
        self._send_lock = asyncio.Lock()

    async def send_json(self, payload: dict) -> None:
        """Send a message; results and replies may be sent from different tasks."""
        async with self._send_lock:
            await self._websocket.send_json(payload)

    async def send_error(self, message: str, code: str = "ERROR") -> None:
        """Send error message to client."""
        await self.send_json({
            "type": "error",
            "code": code,
            "message": message
        })

    async def send_state(self) -> None:
        """Send the current session snapshot."""
        await self.send_json(self._session.snapshot().to_message())

    async def handle_result(self, barcode: str) -> None:
        """Deliver a decoded barcode (session result callback)."""
        result = ScanResult(barcode=barcode, source=ScanSource.CAMERA)
        payload = result.model_dump(mode="json")
        payload["type"] = "result"

        await self.send_json(payload)
        await self.send_state()

    async def handle_capture_error(self, message: str) -> None:
        """Report a camera that failed while streaming (session error callback)."""
        await self.send_error(message, self._session.error_code or "ERROR")
        await self.send_state()

    async def handle_message(self, data: dict) -> None:
        """Handle a lifecycle command from the client."""
        message_type = data.get("type")

        if message_type in ("init", "retry"):
            await self._session.initialize()
        elif message_type == "switch":
            await self._session.switch_device()
        else:
            error = exceptions.invalid_message(message_type)
            await self.send_error(error.message, error.code)
            return

        await self.send_state()

    async def close_session(self) -> None:
        """Close the session and wait for the camera to be released."""
        if self._session is None or self._closed:
            return
        self._closed = True

        try:
            await self._sessions.close(self._session.session_id)
        except AppException:
            # Already removed from the registry (closed over HTTP)
            await self._session.close()

    async def run(self) -> None:
        """Main handler loop."""
        await self._websocket.accept()
        logger.info("📱 Scanner WebSocket connected")

        self._session = self._sessions.create(
            self._backend,
            on_result=self.handle_result,
            on_error=self.handle_capture_error,
        )

        try:
            await self.send_state()

            while True:
                data = await self._websocket.receive_json()

                if not isinstance(data, dict):
                    error = exceptions.invalid_message(type(data).__name__)
                    await self.send_error(error.message, error.code)
                    continue

                if data.get("type") == "stop":
                    logger.info("🛑 Client requested stop")
                    await self.close_session()
                    await self._websocket.close()
                    break

                if self._session.is_closed:
                    logger.info(f"🛑 Session {self._session.session_id} was closed remotely")
                    error = exceptions.session_not_found(self._session.session_id)
                    await self.send_error(error.message, error.code)
                    await self._websocket.close()
                    break

                await self.handle_message(data)

        except WebSocketDisconnect:
            logger.info("📱 Client disconnected")
        except Exception as e:
            logger.error(f"WebSocket error: {e}")
            try:
                await self.send_error(str(e))
            except Exception as report_error:
                logger.debug(f"Could not report error to client: {report_error}")
        finally:
            await self.close_session()
            logger.info("✅ Scanner WebSocket closed")


@router.websocket("/ws/scan")
async def websocket_scan(
    websocket: WebSocket,
    backend: CameraBackend = Depends(get_camera_backend),
    sessions: ScanSessionManager = Depends(get_sessions),
):
    """Camera barcode scanning via WebSocket."""
    handler = ScannerWebSocketHandler(websocket, backend, sessions)
    await handler.run()
