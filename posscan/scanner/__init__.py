"""
==============================================================================
Scanner Package - Barcode Capture
==============================================================================

Camera scanning sessions and keyboard-wedge input for the point of sale.

Classes:
--------
- ScanSession: Camera scanning lifecycle state machine
- CameraBackend / CaptureHandle: Capture capability interfaces
- KeyboardWedgeBuffer: Keystroke burst recognition for hardware scanners

The OpenCV backend and frame decoder live in ``opencv_backend`` and
``decoder`` and are imported on demand, since they load native libraries.

==============================================================================
"""

from .backend import CameraBackend, CaptureHandle
from .models import (
    DecodeRegion,
    Device,
    ScanConfig,
    ScanResult,
    ScanSource,
    SessionSnapshot,
    SessionState,
)
from .session import ScanSession
from .wedge import KeyEvent, KeyboardWedgeBuffer

__all__ = [
    "CameraBackend",
    "CaptureHandle",
    "DecodeRegion",
    "Device",
    "KeyEvent",
    "KeyboardWedgeBuffer",
    "ScanConfig",
    "ScanResult",
    "ScanSession",
    "ScanSource",
    "SessionSnapshot",
    "SessionState",
]
