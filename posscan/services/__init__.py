"""
==============================================================================
Services Package
==============================================================================

Application services shared by the HTTP and WebSocket layers.

Services:
---------
- ScanSessionManager: Registry of open camera scanning sessions

==============================================================================
"""

from .session_manager import ScanSessionManager, get_session_manager

__all__ = [
    "ScanSessionManager",
    "get_session_manager",
]
