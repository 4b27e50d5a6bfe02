"""
==============================================================================
Health Check Endpoints
==============================================================================

System health status endpoints for monitoring and orchestration.

==============================================================================
"""

from fastapi import APIRouter, Depends

from posscan.core.dependencies import get_camera_backend, get_sessions
from posscan.scanner import CameraBackend
from posscan.services.session_manager import ScanSessionManager


router = APIRouter(prefix="/health", tags=["Health"])


class HealthController:
    """Controller for health check operations."""

    def __init__(self, backend: CameraBackend, sessions: ScanSessionManager):
        self._backend = backend
        self._sessions = sessions

    async def check_cameras(self) -> dict:
        """Check that the capture subsystem can be enumerated."""
        try:
            devices = await self._backend.list_devices()
        except Exception:
            return {"status": "unavailable", "devices": 0}
        if not devices:
            return {"status": "no_devices", "devices": 0}
        return {"status": "healthy", "devices": len(devices)}

    async def get_health(self) -> dict:
        """Get full health status."""
        camera_info = await self.check_cameras()

        overall = "healthy" if camera_info["status"] == "healthy" else "degraded"

        return {
            "status": overall,
            "components": {
                "api": "healthy",
                "cameras": camera_info["status"]
            },
            "details": {
                "camera_backend": self._backend.name,
                "devices_found": camera_info["devices"],
                "active_sessions": self._sessions.active_count
            }
        }


@router.get("")
async def health_check(
    backend: CameraBackend = Depends(get_camera_backend),
    sessions: ScanSessionManager = Depends(get_sessions),
):
    """
    Health check endpoint.

    Returns system status including API and camera availability.
    """
    controller = HealthController(backend, sessions)
    return await controller.get_health()


@router.get("/ready")
async def readiness_check():
    """Readiness check for container orchestration."""
    return {"ready": True}


@router.get("/live")
async def liveness_check():
    """Liveness check for container orchestration."""
    return {"alive": True}
