"""
==============================================================================
Camera Endpoints
==============================================================================

Capture device enumeration.

Endpoints:
----------
- GET /cameras: List capture devices the scanner can use

==============================================================================
"""

import logging

from fastapi import APIRouter, Depends

from posscan.core import exceptions
from posscan.core.dependencies import get_camera_backend
from posscan.core.exceptions import AppException
from posscan.scanner import CameraBackend
from posscan.schemas import DeviceListResponse


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cameras", tags=["Cameras"])


@router.get("", response_model=DeviceListResponse)
async def list_cameras(backend: CameraBackend = Depends(get_camera_backend)):
    """
    List available capture devices.

    An empty list is a valid answer; permission or hardware failures are
    reported as CAMERA_UNAVAILABLE.
    """
    try:
        devices = await backend.list_devices()
    except AppException:
        raise
    except Exception as e:
        logger.warning(f"Camera enumeration failed: {e}")
        raise exceptions.camera_unavailable(str(e))

    return DeviceListResponse.create(devices)
