"""
==============================================================================
Scan Session Manager Module
==============================================================================

Process-wide registry of open scanning sessions.

Every WebSocket scanning dialog owns one ScanSession. The manager keeps track
of them so they can be listed over HTTP, closed remotely, and all released
on application shutdown before the process lets go of the cameras.

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from posscan.config import get_settings
from posscan.core import exceptions
from posscan.scanner import CameraBackend, ScanSession, SessionSnapshot
from posscan.scanner.session import ResultCallback


# Module logger
logger = logging.getLogger(__name__)


class ScanSessionManager:
    """
    Registry for open ScanSession instances.

    Example:
        >>> manager = ScanSessionManager()
        >>> session = manager.create(backend, on_result=handle_barcode)
        >>> await session.initialize()
        >>> await manager.close(session.session_id)
    """

    _instance: Optional[ScanSessionManager] = None

    def __new__(cls) -> ScanSessionManager:
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        """Initialize the registry."""
        if getattr(self, "_initialized", False):
            return

        self._settings = get_settings()
        self._sessions: Dict[str, ScanSession] = {}
        self._initialized = True

    def create(
        self,
        backend: CameraBackend,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ResultCallback] = None,
    ) -> ScanSession:
        """
        Create and register an idle session.

        Args:
            backend: Capture backend the session acquires cameras from
            on_result: Decode result callback
            on_error: Streaming failure callback

        Returns:
            The new ScanSession
        """
        session = ScanSession(
            backend,
            self._settings.scan_config,
            on_result=on_result,
            on_error=on_error,
        )
        self._sessions[session.session_id] = session
        logger.info(f"🆕 Scan session opened: {session.session_id}")
        return session

    def get(self, session_id: str) -> ScanSession:
        """
        Look up an open session.

        Raises:
            AppException: SESSION_NOT_FOUND for unknown ids
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise exceptions.session_not_found(session_id)
        return session

    async def close(self, session_id: str) -> None:
        """
        Close a session and wait for its camera to be released.

        Raises:
            AppException: SESSION_NOT_FOUND for unknown ids
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise exceptions.session_not_found(session_id)

        await session.close()
        logger.info(f"✅ Scan session closed: {session_id}")

    async def close_all(self) -> int:
        """
        Close every open session (application shutdown).

        Returns:
            Number of sessions closed
        """
        sessions = list(self._sessions.values())
        self._sessions.clear()

        if sessions:
            await asyncio.gather(*(session.close() for session in sessions))
            logger.info(f"🛑 Closed {len(sessions)} scan session(s)")

        return len(sessions)

    def snapshots(self) -> List[SessionSnapshot]:
        """Get snapshots of all open sessions."""
        return [session.snapshot() for session in self._sessions.values()]

    @property
    def active_count(self) -> int:
        """Number of open sessions."""
        return len(self._sessions)


def get_session_manager() -> ScanSessionManager:
    """Get the global session manager."""
    return ScanSessionManager()
