"""
==============================================================================
Pytest Configuration and Fixtures
==============================================================================

Provides an in-memory camera backend, scan session and test client fixtures.

==============================================================================
"""

import asyncio
import threading
from typing import Callable, Generator, Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient

from posscan.core.dependencies import get_camera_backend
from posscan.main import app
from posscan.scanner import CameraBackend, CaptureHandle, Device, ScanConfig, ScanSession


# ============================================================================
# FAKE CAMERA BACKEND
# ============================================================================

class FakeCaptureHandle(CaptureHandle):
    """Capture handle driven by the test instead of camera hardware."""

    def __init__(self, backend: "FakeCameraBackend", device_id: str, config: ScanConfig):
        self._backend = backend
        self._device_id = device_id
        self.config = config
        self.started = False
        self.stopped = False
        self._decode_callback = None
        self._failure_callback = None
        self._error_callback = None

    @property
    def device_id(self) -> str:
        return self._device_id

    def on_decode(self, callback) -> None:
        self._decode_callback = callback

    def on_decode_failure(self, callback) -> None:
        self._failure_callback = callback

    def on_error(self, callback) -> None:
        self._error_callback = callback

    async def start(self) -> None:
        await asyncio.sleep(self._backend.delay)
        if self._device_id in self._backend.fail_start:
            raise RuntimeError(f"device {self._device_id} is busy")
        self.started = True

        if self._backend.auto_decode is not None:
            threading.Thread(
                target=self.emit_decode,
                args=(self._backend.auto_decode,),
                daemon=True,
            ).start()

    async def stop(self) -> None:
        await asyncio.sleep(self._backend.delay)
        if not self.stopped:
            self.stopped = True
            self._backend.release(self)
        if self._backend.fail_stop:
            raise RuntimeError("camera refused to stop")

    def emit_decode(self, text: str) -> None:
        """Simulate a frame with a readable code."""
        if self._decode_callback is not None:
            self._decode_callback(text)

    def emit_failure(self) -> None:
        """Simulate a frame without a readable code."""
        if self._failure_callback is not None:
            self._failure_callback()

    def emit_error(self, reason: str) -> None:
        """Simulate the camera dying while streaming."""
        if self._error_callback is not None:
            self._error_callback(reason)


class FakeCameraBackend(CameraBackend):
    """
    In-memory CameraBackend recording every handle it hands out.

    Attributes:
        handles: Every handle ever opened, in order
        open_handles: Handles not yet stopped
        max_open: Highest number of simultaneously open handles observed
    """

    name = "fake"

    def __init__(
        self,
        devices: Optional[Iterable[Device]] = None,
        *,
        list_error: Optional[Exception] = None,
        fail_open: Iterable[str] = (),
        fail_start: Iterable[str] = (),
        fail_stop: bool = False,
        auto_decode: Optional[str] = None,
        delay: float = 0,
    ):
        self.devices: List[Device] = list(devices or [])
        self.list_error = list_error
        self.fail_open = set(fail_open)
        self.fail_start = set(fail_start)
        self.fail_stop = fail_stop
        self.auto_decode = auto_decode
        self.delay = delay
        self.on_open: Optional[Callable[[str], None]] = None

        self.list_calls = 0
        self.handles: List[FakeCaptureHandle] = []
        self.open_handles: List[FakeCaptureHandle] = []
        self.max_open = 0

    async def list_devices(self) -> List[Device]:
        self.list_calls += 1
        await asyncio.sleep(self.delay)
        if self.list_error is not None:
            raise self.list_error
        return list(self.devices)

    async def open_handle(self, device_id: str, config: ScanConfig) -> CaptureHandle:
        if self.on_open is not None:
            self.on_open(device_id)
        await asyncio.sleep(self.delay)
        if device_id in self.fail_open:
            raise RuntimeError(f"cannot open {device_id}")

        handle = FakeCaptureHandle(self, device_id, config)
        self.handles.append(handle)
        self.open_handles.append(handle)
        self.max_open = max(self.max_open, len(self.open_handles))
        return handle

    def release(self, handle: FakeCaptureHandle) -> None:
        if handle in self.open_handles:
            self.open_handles.remove(handle)

    @property
    def active(self) -> Optional[FakeCaptureHandle]:
        """Most recently opened handle that is still open."""
        return self.open_handles[-1] if self.open_handles else None

    @property
    def opened_device_ids(self) -> List[str]:
        return [handle.device_id for handle in self.handles]


# ============================================================================
# DEVICE FIXTURES
# ============================================================================

@pytest.fixture
def two_cameras() -> List[Device]:
    """Front and back cameras."""
    return [
        Device(id="cam1", label="Back Camera"),
        Device(id="cam2", label="Front Camera"),
    ]


@pytest.fixture
def fake_backend(two_cameras: List[Device]) -> FakeCameraBackend:
    """Backend with two working cameras."""
    return FakeCameraBackend(two_cameras)


# ============================================================================
# SESSION FIXTURES
# ============================================================================

@pytest.fixture
def results() -> List[str]:
    """Collects barcodes delivered to the result callback."""
    return []


@pytest.fixture
def session(fake_backend: FakeCameraBackend, results: List[str]) -> ScanSession:
    """Idle session on the two-camera backend."""
    return ScanSession(fake_backend, ScanConfig(), on_result=results.append)


# ============================================================================
# CLIENT FIXTURES
# ============================================================================

@pytest.fixture(scope="function")
def client(fake_backend: FakeCameraBackend) -> Generator[TestClient, None, None]:
    """Create test client with the camera backend replaced by the fake."""
    app.dependency_overrides[get_camera_backend] = lambda: fake_backend

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
