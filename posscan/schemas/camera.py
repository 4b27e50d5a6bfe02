"""
==============================================================================
Camera Schemas Module
==============================================================================

Response schemas for camera enumeration and scan session endpoints.

==============================================================================
"""

from typing import List

from pydantic import BaseModel, Field

from posscan.scanner.models import Device, SessionSnapshot


class DeviceListResponse(BaseModel):
    """Enumerated capture devices."""
    success: bool = Field(default=True)
    devices: List[Device]
    total: int = Field(ge=0)

    @classmethod
    def create(cls, devices: List[Device]) -> "DeviceListResponse":
        """Factory method to build the response from a device list."""
        return cls(devices=devices, total=len(devices))


class SessionListResponse(BaseModel):
    """Snapshots of open scanning sessions."""
    success: bool = Field(default=True)
    sessions: List[SessionSnapshot]
    total: int = Field(ge=0)

    @classmethod
    def create(cls, sessions: List[SessionSnapshot]) -> "SessionListResponse":
        """Factory method to build the response from session snapshots."""
        return cls(sessions=sessions, total=len(sessions))
