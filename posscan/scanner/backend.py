"""
==============================================================================
Camera Backend Interfaces
==============================================================================

Capability interfaces the scanning session depends on.

A ScanSession never talks to camera hardware directly. It enumerates devices
and acquires capture handles through a CameraBackend, so the lifecycle logic
runs unchanged against OpenCV in production and against fakes in tests.

Interfaces:
-----------
- CameraBackend: list_devices(), open_handle(device_id, config)
- CaptureHandle: on_decode(), on_decode_failure(), on_error(), start(), stop()

Threading:
----------
Handles may invoke their decode callbacks from any thread. Callers are
responsible for marshalling those notifications onto their own event loop.

==============================================================================
"""

from __future__ import annotations

import abc
from typing import Callable, List

from .models import Device, ScanConfig


DecodeCallback = Callable[[str], None]
DecodeFailureCallback = Callable[[], None]
CaptureErrorCallback = Callable[[str], None]


class CaptureHandle(abc.ABC):
    """
    Exclusive handle on one capture device.

    Lifecycle: acquired by ``CameraBackend.open_handle``, streaming after
    ``start()``, released by ``stop()``. ``stop()`` must release the device
    even when it raises.
    """

    @property
    @abc.abstractmethod
    def device_id(self) -> str:
        """Identifier of the device this handle owns."""

    @abc.abstractmethod
    def on_decode(self, callback: DecodeCallback) -> None:
        """Register the callback fired with the decoded text."""

    @abc.abstractmethod
    def on_decode_failure(self, callback: DecodeFailureCallback) -> None:
        """Register the callback fired for frames without a readable code."""

    @abc.abstractmethod
    def on_error(self, callback: CaptureErrorCallback) -> None:
        """Register the callback fired once when capture stops on its own."""

    @abc.abstractmethod
    async def start(self) -> None:
        """Begin streaming frames to the decoder."""

    @abc.abstractmethod
    async def stop(self) -> None:
        """Stop streaming and release the device."""


class CameraBackend(abc.ABC):
    """Device enumeration and handle acquisition for one capture platform."""

    name: str = "abstract"

    @abc.abstractmethod
    async def list_devices(self) -> List[Device]:
        """
        Enumerate available capture devices.

        Raises:
            AppException: CAMERA_UNAVAILABLE when permission is not granted
                or the capture subsystem cannot be reached
        """

    @abc.abstractmethod
    async def open_handle(self, device_id: str, config: ScanConfig) -> CaptureHandle:
        """
        Acquire a capture handle on the given device.

        Raises:
            AppException: CAMERA_START_FAILED when the device cannot be opened
        """
