"""
==============================================================================
WebSocket Package
==============================================================================

Real-time WebSocket handlers for barcode capture.

Handlers:
---------
- scanner: Camera scanning dialog (ScanSession lifecycle)
- wedge: Keyboard wedge hardware scanner input

==============================================================================
"""

from .scanner import router as scanner_router
from .wedge import router as wedge_router

__all__ = ["scanner_router", "wedge_router"]
