"""
==============================================================================
OpenCV Camera Backend
==============================================================================

CameraBackend implementation on top of OpenCV VideoCapture.

Discovery:
----------
- /dev/video* nodes are listed, USB-backed nodes first, labelled with the
  sysfs device name
- Nodes present but not readable mean the process lacks camera permission
- Where no device nodes exist (macOS, Windows) a small range of capture
  indices is tried instead

Capture:
--------
Each handle owns one VideoCapture and a daemon thread that reads frames,
throttles them to the configured frame rate and runs the BarcodeDecoder.
Decode callbacks fire on that thread. A read or decode exception, or a run of
failed reads, ends the thread and fires the error callback once. Blocking
open/release calls run through asyncio.to_thread so the event loop never
stalls on camera I/O.

==============================================================================
"""

from __future__ import annotations

import asyncio
import glob
import logging
import os
import threading
import time
from pathlib import Path
from typing import List, Optional

import cv2

from posscan.core import exceptions

from .backend import (
    CameraBackend,
    CaptureErrorCallback,
    CaptureHandle,
    DecodeCallback,
    DecodeFailureCallback,
)
from .decoder import BarcodeDecoder
from .models import Device, ScanConfig


# Module logger
logger = logging.getLogger(__name__)

# Consecutive failed reads before a camera is treated as lost
MAX_READ_FAILURES = 30


# =============================================================================
# DEVICE DISCOVERY HELPERS
# =============================================================================

def _video_node_indices() -> List[int]:
    """Gather numeric indices from /dev/video*."""
    indices: List[int] = []
    for path in sorted(glob.glob("/dev/video*")):
        try:
            indices.append(int(Path(path).name.replace("video", "")))
        except ValueError:
            continue
    return sorted(indices)


def _is_usb(index: int) -> bool:
    try:
        device_link = Path(f"/sys/class/video4linux/video{index}/device")
        return device_link.exists() and "usb" in str(device_link.resolve())
    except OSError:
        return False


def _read_sysfs_name(index: int) -> Optional[str]:
    sys_name = Path(f"/sys/class/video4linux/video{index}/name")
    try:
        if sys_name.exists():
            return sys_name.read_text(encoding="utf-8").strip() or None
    except OSError:
        return None
    return None


def _can_open(index: int) -> bool:
    cap = cv2.VideoCapture(index)
    try:
        return bool(cap.isOpened())
    finally:
        cap.release()


# =============================================================================
# CAPTURE HANDLE
# =============================================================================

class OpenCVCaptureHandle(CaptureHandle):
    """
    Capture handle owning one VideoCapture and its decode thread.

    Attributes:
        device_id: String form of the capture index
    """

    def __init__(
        self,
        index: int,
        config: ScanConfig,
        stop_timeout: float = 2.0,
        max_read_failures: int = MAX_READ_FAILURES,
    ) -> None:
        self._index = index
        self._config = config
        self._decoder = BarcodeDecoder(config)
        self._stop_timeout = stop_timeout
        self._max_read_failures = max_read_failures

        self._cap = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._decode_callback: Optional[DecodeCallback] = None
        self._failure_callback: Optional[DecodeFailureCallback] = None
        self._error_callback: Optional[CaptureErrorCallback] = None

    @property
    def device_id(self) -> str:
        return str(self._index)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def on_decode(self, callback: DecodeCallback) -> None:
        self._decode_callback = callback

    def on_decode_failure(self, callback: DecodeFailureCallback) -> None:
        self._failure_callback = callback

    def on_error(self, callback: CaptureErrorCallback) -> None:
        self._error_callback = callback

    def open(self) -> None:
        """
        Open the capture device (blocking).

        Raises:
            AppException: CAMERA_START_FAILED if the device cannot be opened
        """
        cap = cv2.VideoCapture(self._index)
        if not cap.isOpened():
            cap.release()
            raise exceptions.camera_start_failed(self.device_id, "device could not be opened")

        cap.set(cv2.CAP_PROP_FPS, float(self._config.fps))
        self._cap = cap

        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        logger.info(f"📷 Camera {self._index} opened ({width}x{height} @ {self._config.fps} fps)")

    async def start(self) -> None:
        if self._cap is None:
            raise exceptions.camera_start_failed(self.device_id, "device not opened")
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._capture_loop,
            name=f"capture-{self._index}",
            daemon=True,
        )
        self._thread.start()

    async def stop(self) -> None:
        self._stop_event.set()
        await asyncio.to_thread(self._join_and_release)

    def _join_and_release(self) -> None:
        thread, self._thread = self._thread, None
        stuck = False
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._stop_timeout)
            stuck = thread.is_alive()

        cap, self._cap = self._cap, None
        if cap is not None:
            cap.release()
            logger.debug(f"Camera {self._index} released")

        if stuck:
            raise exceptions.camera_stop_failed(self.device_id, "capture thread did not exit in time")

    def _capture_loop(self) -> None:
        """Read, throttle and decode frames until stopped or the camera fails."""
        interval = self._config.frame_interval
        cap = self._cap
        read_failures = 0

        while not self._stop_event.is_set() and cap is not None:
            started = time.monotonic()

            try:
                ret, frame = cap.read()
                text = self._decoder.decode(frame) if ret else None
            except Exception as e:
                logger.warning(f"Capture on camera {self._index} failed: {e}")
                self._report_error(str(e))
                return

            if not ret:
                read_failures += 1
                if read_failures >= self._max_read_failures:
                    logger.warning(f"Camera {self._index} stopped delivering frames")
                    self._report_error("camera stopped delivering frames")
                    return
            else:
                read_failures = 0
                if text:
                    if self._decode_callback is not None:
                        self._decode_callback(text)
                elif self._failure_callback is not None:
                    self._failure_callback()

            elapsed = time.monotonic() - started
            self._stop_event.wait(max(0.0, interval - elapsed))

    def _report_error(self, reason: str) -> None:
        if self._error_callback is not None and not self._stop_event.is_set():
            self._error_callback(reason)


# =============================================================================
# BACKEND
# =============================================================================

class OpenCVCameraBackend(CameraBackend):
    """
    Camera backend for local V4L2/UVC devices through OpenCV.

    Example:
        >>> backend = OpenCVCameraBackend()
        >>> devices = await backend.list_devices()
        >>> handle = await backend.open_handle(devices[0].id, ScanConfig())
    """

    name = "opencv"

    def __init__(
        self,
        index_count: int = 2,
        max_devices: int = 16,
        stop_timeout: float = 2.0,
    ) -> None:
        self._index_count = index_count
        self._max_devices = max_devices
        self._stop_timeout = stop_timeout

    async def list_devices(self) -> List[Device]:
        return await asyncio.to_thread(self._discover)

    async def open_handle(self, device_id: str, config: ScanConfig) -> CaptureHandle:
        try:
            index = int(device_id)
        except ValueError:
            raise exceptions.camera_start_failed(device_id, "invalid device id")

        handle = OpenCVCaptureHandle(index, config, stop_timeout=self._stop_timeout)
        await asyncio.to_thread(handle.open)
        return handle

    def _discover(self) -> List[Device]:
        """Enumerate capture devices (blocking)."""
        indices = _video_node_indices()

        if not indices:
            return self._scan_indices()

        accessible = [
            index for index in indices
            if os.access(f"/dev/video{index}", os.R_OK | os.W_OK)
        ]
        if not accessible:
            raise exceptions.camera_unavailable("video devices are not accessible")

        usb = [index for index in accessible if _is_usb(index)]
        ordered = usb + [index for index in accessible if index not in usb]

        devices = [
            Device(id=str(index), label=_read_sysfs_name(index) or f"Camera {index}")
            for index in ordered[:self._max_devices]
        ]
        logger.debug(f"Discovered {len(devices)} capture devices: {[d.id for d in devices]}")
        return devices

    def _scan_indices(self) -> List[Device]:
        devices = [
            Device(id=str(index), label=f"Camera {index}")
            for index in range(self._index_count)
            if _can_open(index)
        ]
        logger.debug(f"Tried {self._index_count} capture indices, {len(devices)} usable")
        return devices
