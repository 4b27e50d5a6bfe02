"""
==============================================================================
Scanner Models Module
==============================================================================

Pydantic models and enumerations shared by the scanning components.

Models:
-------
- Device: Enumerated capture device
- SessionState: Lifecycle state of a ScanSession
- DecodeRegion / ScanConfig: Capture configuration for a handle
- ScanSource / ScanResult: Barcode event consumed by the POS screen
- SessionSnapshot: Read-only view of a session for presentation

==============================================================================
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class SessionState(str, enum.Enum):
    """
    Scan session state enumeration.

    Defines the state machine for a camera scanning session:

    - IDLE: No capture handle; initial and post-teardown state
    - INITIALIZING: Enumerating devices / acquiring a camera
    - SCANNING: Exactly one capture handle is streaming frames
    - ERROR: Last attempt failed; recoverable by initializing again

    Valid Transitions:
    - IDLE -> INITIALIZING
    - INITIALIZING -> SCANNING, ERROR
    - SCANNING -> IDLE (decode, stop, device switch)
    - ERROR -> INITIALIZING (retry)

    The enum inherits from str to enable JSON serialization.
    """

    IDLE = "idle"
    INITIALIZING = "initializing"
    SCANNING = "scanning"
    ERROR = "error"

    def __str__(self) -> str:
        """Return the enum value as string."""
        return self.value


class ScanSource(str, enum.Enum):
    """Input path a barcode arrived from."""

    KEYBOARD = "keyboard"
    CAMERA = "camera"
    SERIAL = "serial"

    def __str__(self) -> str:
        """Return the enum value as string."""
        return self.value


class Device(BaseModel):
    """
    Capture device returned by enumeration.

    Identity is the ``id``; instances are immutable.

    Attributes:
        id: Backend-specific device identifier
        label: Human-readable device name
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Device identifier")
    label: str = Field(default="", description="Device display name")


class DecodeRegion(BaseModel):
    """Centred region of the viewfinder handed to the decoder."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(default=250, ge=1)
    height: int = Field(default=150, ge=1)


class ScanConfig(BaseModel):
    """
    Capture configuration passed to ``CameraBackend.open_handle``.

    Attributes:
        fps: Frames per second fed to the decoder
        decode_region: Size of the centred decode box
        aspect_ratio: Viewfinder aspect ratio (width / height)
    """

    model_config = ConfigDict(frozen=True)

    fps: int = Field(default=10, ge=1)
    decode_region: DecodeRegion = Field(default_factory=DecodeRegion)
    aspect_ratio: float = Field(default=1.5, gt=0)

    @property
    def frame_interval(self) -> float:
        """Seconds between decoded frames."""
        return 1.0 / self.fps


class ScanResult(BaseModel):
    """
    Barcode event delivered to the point-of-sale screen.

    Attributes:
        barcode: Decoded payload
        timestamp: When the barcode was completed (UTC)
        source: Input path that produced it
    """

    barcode: str = Field(..., min_length=1)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: ScanSource = Field(default=ScanSource.CAMERA)

    @classmethod
    def manual(cls, barcode: str) -> "ScanResult":
        """Create a result for a manually entered barcode."""
        return cls(barcode=barcode.strip(), source=ScanSource.CAMERA)


class SessionSnapshot(BaseModel):
    """Read-only view of a ScanSession for the presentation layer."""

    session_id: str
    state: SessionState
    devices: List[Device] = Field(default_factory=list)
    current_device_index: int = 0
    active_device_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @computed_field
    @property
    def can_switch(self) -> bool:
        """Whether a switch-camera affordance should be offered."""
        return len(self.devices) > 1

    def to_message(self) -> dict:
        """Serialize as a WebSocket ``state`` message."""
        payload = self.model_dump(mode="json")
        payload["type"] = "state"
        return payload
