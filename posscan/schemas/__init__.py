"""
==============================================================================
Schemas Package - Pydantic Models
==============================================================================

Request and response schemas using Pydantic for validation.

This package provides:
- Common: Shared response schemas
- Camera: Device and scan session listings

==============================================================================
"""

from .common import MessageResponse
from .camera import DeviceListResponse, SessionListResponse

__all__ = [
    # Common
    "MessageResponse",
    # Camera
    "DeviceListResponse",
    "SessionListResponse",
]
