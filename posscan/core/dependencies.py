"""
==============================================================================
FastAPI Dependencies Module
==============================================================================

Dependency injection for the camera backend and the session registry.

Dependency Hierarchy:
--------------------
            ┌──────────────────┐
            │  get_settings()  │
            └────────┬─────────┘
                     │
        ┌────────────▼─────────────┐
        │  get_camera_backend()    │   overridden with a fake in tests
        └────────────┬─────────────┘
                     │
        ┌────────────▼─────────────┐
        │  REST + WebSocket routes │ ◄── get_session_manager()
        └──────────────────────────┘

Usage Examples:
--------------
    @router.get("/cameras")
    async def list_cameras(backend: CameraBackend = Depends(get_camera_backend)):
        return await backend.list_devices()

==============================================================================
"""

from __future__ import annotations

import logging
from functools import lru_cache

from posscan.config import get_settings
from posscan.core import exceptions
from posscan.scanner import CameraBackend
from posscan.services.session_manager import ScanSessionManager, get_session_manager


# Module logger
logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_camera_backend() -> CameraBackend:
    """
    Get the process-wide camera backend selected by settings.

    The OpenCV backend is imported here rather than at module level so that
    importing the application does not require the native camera and zbar
    libraries until a camera is actually used.

    Returns:
        CameraBackend instance

    Raises:
        AppException: INTERNAL_ERROR for a backend name with no implementation
    """
    settings = get_settings()

    if settings.camera_backend == "opencv":
        from posscan.scanner.opencv_backend import OpenCVCameraBackend

        backend = OpenCVCameraBackend(
            index_count=settings.camera_index_count,
            max_devices=settings.camera_max_devices,
            stop_timeout=settings.camera_stop_timeout_seconds,
        )
    else:
        raise exceptions.internal_error(
            f"Unsupported camera backend: {settings.camera_backend}"
        )

    logger.info(f"Camera backend ready: {backend.name}")
    return backend


def get_sessions() -> ScanSessionManager:
    """FastAPI dependency for the scan session registry."""
    return get_session_manager()
