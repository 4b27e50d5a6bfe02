"""
==============================================================================
Scan Session Endpoints
==============================================================================

Inspection and remote close of open camera scanning sessions.

Endpoints:
----------
- GET    /sessions: Snapshots of all open sessions
- GET    /sessions/{session_id}: Snapshot of one session
- DELETE /sessions/{session_id}: Close a session and release its camera

==============================================================================
"""

from fastapi import APIRouter, Depends

from posscan.core.dependencies import get_sessions
from posscan.scanner import SessionSnapshot
from posscan.schemas import MessageResponse, SessionListResponse
from posscan.services.session_manager import ScanSessionManager


router = APIRouter(prefix="/sessions", tags=["Sessions"])


@router.get("", response_model=SessionListResponse)
async def list_sessions(sessions: ScanSessionManager = Depends(get_sessions)):
    """List open scanning sessions."""
    return SessionListResponse.create(sessions.snapshots())


@router.get("/{session_id}", response_model=SessionSnapshot)
async def get_session(session_id: str, sessions: ScanSessionManager = Depends(get_sessions)):
    """Get a single session snapshot."""
    return sessions.get(session_id).snapshot()


@router.delete("/{session_id}", response_model=MessageResponse)
async def close_session(session_id: str, sessions: ScanSessionManager = Depends(get_sessions)):
    """
    Close a scanning session.

    Returns once the camera has been released.
    """
    await sessions.close(session_id)
    return MessageResponse(message=f"Session {session_id} closed")
