"""
==============================================================================
Camera Capture Tests
==============================================================================

BarcodeDecoder cropping and the OpenCV backend with VideoCapture replaced.
Skipped where the native OpenCV or zbar libraries are unavailable.

==============================================================================
"""

import asyncio
import threading
import time

import pytest

np = pytest.importorskip("numpy")
pytest.importorskip("cv2", exc_type=ImportError)
pytest.importorskip("pyzbar.pyzbar", exc_type=ImportError)

from posscan.core.exceptions import AppException  # noqa: E402
from posscan.scanner import DecodeRegion, ScanConfig, ScanSession, SessionState  # noqa: E402
from posscan.scanner import opencv_backend  # noqa: E402
from posscan.scanner.decoder import BarcodeDecoder  # noqa: E402
from posscan.scanner.opencv_backend import OpenCVCameraBackend, OpenCVCaptureHandle  # noqa: E402


class FakeVideoCapture:
    """Stand-in for cv2.VideoCapture returning blank frames (or none)."""

    def __init__(self, index, opened=True, frames=True, read_delay=0.0):
        self.index = index
        self._opened = opened
        self._frames = frames
        self._read_delay = read_delay
        self.released = False
        self.reads = 0

    def isOpened(self):
        return self._opened

    def set(self, prop, value):
        return True

    def get(self, prop):
        return 0

    def read(self):
        self.reads += 1
        if self._read_delay:
            time.sleep(self._read_delay)
        if not self._frames:
            return False, None
        return True, np.zeros((480, 640, 3), dtype=np.uint8)

    def release(self):
        self.released = True


@pytest.fixture
def captures(monkeypatch):
    """Replace VideoCapture and collect every instance created."""
    created = []

    def factory(index):
        capture = FakeVideoCapture(index)
        created.append(capture)
        return capture

    monkeypatch.setattr(opencv_backend.cv2, "VideoCapture", factory)
    return created


def decode_sequence(monkeypatch, *texts):
    """Make BarcodeDecoder.decode return ``texts`` in order, then None."""
    values = iter(texts)
    monkeypatch.setattr(BarcodeDecoder, "decode", lambda self, frame: next(values, None))


class TestBarcodeDecoder:
    """Tests for frame cropping and decoding."""

    def test_region_of_interest_default_box(self):
        decoder = BarcodeDecoder(ScanConfig())
        frame = np.zeros((480, 640, 3), dtype=np.uint8)

        roi = decoder.region_of_interest(frame)

        assert roi.shape == (150, 250, 3)

    def test_region_clamped_to_small_frame(self):
        decoder = BarcodeDecoder(ScanConfig())
        frame = np.zeros((100, 120), dtype=np.uint8)

        roi = decoder.region_of_interest(frame)

        # 120x100 frame -> 120x80 viewfinder at 1.5:1
        assert roi.shape == (80, 120)

    def test_region_on_wide_frame(self):
        decoder = BarcodeDecoder(ScanConfig())
        frame = np.zeros((100, 400), dtype=np.uint8)

        roi = decoder.region_of_interest(frame)

        assert roi.shape == (100, 150)

    def test_region_is_centred(self):
        config = ScanConfig(decode_region=DecodeRegion(width=2, height=2), aspect_ratio=1.0)
        decoder = BarcodeDecoder(config)
        frame = np.zeros((10, 10), dtype=np.uint8)
        frame[4:6, 4:6] = 255

        roi = decoder.region_of_interest(frame)

        assert roi.shape == (2, 2)
        assert (roi == 255).all()

    def test_empty_frames(self):
        decoder = BarcodeDecoder()

        assert decoder.decode(None) is None
        assert decoder.decode(np.zeros((0, 0, 3), dtype=np.uint8)) is None

    def test_blank_frame_has_no_code(self):
        decoder = BarcodeDecoder()

        assert decoder.decode(np.full((480, 640, 3), 255, dtype=np.uint8)) is None


class TestOpenCVDiscovery:
    """Tests for device enumeration."""

    @pytest.mark.asyncio
    async def test_index_fallback_when_no_device_nodes(self, monkeypatch):
        monkeypatch.setattr(opencv_backend, "_video_node_indices", lambda: [])
        monkeypatch.setattr(opencv_backend, "_can_open", lambda index: index == 0)

        devices = await OpenCVCameraBackend(index_count=3).list_devices()

        assert [d.id for d in devices] == ["0"]

    @pytest.mark.asyncio
    async def test_usb_devices_listed_first(self, monkeypatch):
        monkeypatch.setattr(opencv_backend, "_video_node_indices", lambda: [0, 2, 4])
        monkeypatch.setattr(opencv_backend.os, "access", lambda path, mode: True)
        monkeypatch.setattr(opencv_backend, "_is_usb", lambda index: index == 4)
        monkeypatch.setattr(
            opencv_backend, "_read_sysfs_name",
            lambda index: "USB Barcode Cam" if index == 4 else None,
        )

        devices = await OpenCVCameraBackend().list_devices()

        assert [d.id for d in devices] == ["4", "0", "2"]
        assert devices[0].label == "USB Barcode Cam"
        assert devices[1].label == "Camera 0"

    @pytest.mark.asyncio
    async def test_inaccessible_nodes_raise_unavailable(self, monkeypatch):
        monkeypatch.setattr(opencv_backend, "_video_node_indices", lambda: [0, 1])
        monkeypatch.setattr(opencv_backend.os, "access", lambda path, mode: False)

        with pytest.raises(AppException) as exc_info:
            await OpenCVCameraBackend().list_devices()

        assert exc_info.value.code == "CAMERA_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_max_devices(self, monkeypatch):
        monkeypatch.setattr(opencv_backend, "_video_node_indices", lambda: list(range(6)))
        monkeypatch.setattr(opencv_backend.os, "access", lambda path, mode: True)
        monkeypatch.setattr(opencv_backend, "_is_usb", lambda index: False)
        monkeypatch.setattr(opencv_backend, "_read_sysfs_name", lambda index: None)

        devices = await OpenCVCameraBackend(max_devices=2).list_devices()

        assert len(devices) == 2


class TestOpenCVCaptureHandle:
    """Tests for the capture thread."""

    @pytest.mark.asyncio
    async def test_invalid_device_id(self, captures):
        with pytest.raises(AppException) as exc_info:
            await OpenCVCameraBackend().open_handle("front", ScanConfig())

        assert exc_info.value.code == "CAMERA_START_FAILED"
        assert captures == []

    @pytest.mark.asyncio
    async def test_open_failure_releases_capture(self, monkeypatch):
        created = []

        def factory(index):
            capture = FakeVideoCapture(index, opened=False)
            created.append(capture)
            return capture

        monkeypatch.setattr(opencv_backend.cv2, "VideoCapture", factory)

        with pytest.raises(AppException) as exc_info:
            await OpenCVCameraBackend().open_handle("0", ScanConfig())

        assert exc_info.value.code == "CAMERA_START_FAILED"
        assert created[0].released

    @pytest.mark.asyncio
    async def test_decode_reported_from_capture_thread(self, monkeypatch, captures):
        decode_sequence(monkeypatch, None, None, "8901234567890")
        handle = await OpenCVCameraBackend().open_handle("0", ScanConfig(fps=60))

        decoded = threading.Event()
        texts = []
        misses = []

        def on_decode(text):
            texts.append((text, threading.current_thread().name))
            decoded.set()

        handle.on_decode(on_decode)
        handle.on_decode_failure(lambda: misses.append(1))
        await handle.start()

        assert await asyncio.to_thread(decoded.wait, 2.0)
        await handle.stop()

        assert texts[0] == ("8901234567890", "capture-0")
        assert len(misses) >= 2
        assert captures[0].released
        assert not handle.is_running

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, monkeypatch, captures):
        decode_sequence(monkeypatch)
        handle = await OpenCVCameraBackend().open_handle("0", ScanConfig(fps=60))
        await handle.start()

        await handle.stop()
        await handle.stop()

        assert captures[0].released
        assert not handle.is_running

    @pytest.mark.asyncio
    async def test_decoder_exception_ends_capture(self, monkeypatch, captures):
        def broken_decode(self, frame):
            raise ValueError("unsupported frame layout")

        monkeypatch.setattr(BarcodeDecoder, "decode", broken_decode)
        handle = await OpenCVCameraBackend().open_handle("0", ScanConfig(fps=60))

        failed = threading.Event()
        reasons = []

        def on_error(reason):
            reasons.append(reason)
            failed.set()

        handle.on_error(on_error)
        await handle.start()

        assert await asyncio.to_thread(failed.wait, 2.0)
        await asyncio.to_thread(handle._thread.join, 2.0)

        assert reasons == ["unsupported frame layout"]
        assert not handle.is_running
        await handle.stop()
        assert captures[0].released

    @pytest.mark.asyncio
    async def test_repeated_read_failures_end_capture(self, monkeypatch):
        monkeypatch.setattr(opencv_backend.cv2, "VideoCapture", lambda index: FakeVideoCapture(index, frames=False))
        handle = OpenCVCaptureHandle(0, ScanConfig(fps=60), max_read_failures=3)
        await asyncio.to_thread(handle.open)

        failed = threading.Event()
        reasons = []
        misses = []
        handle.on_error(lambda reason: (reasons.append(reason), failed.set()))
        handle.on_decode_failure(lambda: misses.append(1))
        await handle.start()

        assert await asyncio.to_thread(failed.wait, 2.0)
        await handle.stop()

        assert reasons == ["camera stopped delivering frames"]
        assert misses == []

    @pytest.mark.asyncio
    async def test_stuck_capture_thread_reports_stop_failure(self, monkeypatch):
        created = []

        def factory(index):
            capture = FakeVideoCapture(index, read_delay=0.5)
            created.append(capture)
            return capture

        monkeypatch.setattr(opencv_backend.cv2, "VideoCapture", factory)
        decode_sequence(monkeypatch)
        handle = OpenCVCaptureHandle(0, ScanConfig(fps=60), stop_timeout=0.05)
        await asyncio.to_thread(handle.open)
        await handle.start()
        await asyncio.sleep(0.05)

        with pytest.raises(AppException) as exc_info:
            await handle.stop()

        assert exc_info.value.code == "CAMERA_STOP_FAILED"
        assert created[0].released


class TestOpenCVSession:
    """ScanSession driven by the OpenCV backend."""

    @pytest.mark.asyncio
    async def test_decode_marshalled_to_session(self, monkeypatch, captures):
        monkeypatch.setattr(opencv_backend, "_video_node_indices", lambda: [])
        monkeypatch.setattr(opencv_backend, "_can_open", lambda index: True)
        decode_sequence(monkeypatch, None, "5901234123457")

        received = asyncio.Event()
        results = []

        async def on_result(barcode):
            results.append(barcode)
            received.set()

        session = ScanSession(OpenCVCameraBackend(index_count=2), ScanConfig(fps=60), on_result)
        assert await session.initialize() == SessionState.SCANNING
        assert len(session.devices) == 2

        await asyncio.wait_for(received.wait(), timeout=2.0)
        await session.close()

        assert results == ["5901234123457"]
        assert session.state == SessionState.IDLE
        assert captures[0].released

    @pytest.mark.asyncio
    async def test_dead_camera_moves_session_to_error(self, monkeypatch, captures):
        monkeypatch.setattr(opencv_backend, "_video_node_indices", lambda: [])
        monkeypatch.setattr(opencv_backend, "_can_open", lambda index: index == 0)

        def broken_decode(self, frame):
            raise ValueError("unsupported frame layout")

        monkeypatch.setattr(BarcodeDecoder, "decode", broken_decode)

        failed = asyncio.Event()
        session = ScanSession(
            OpenCVCameraBackend(index_count=1),
            ScanConfig(fps=60),
            on_error=lambda message: failed.set(),
        )
        await session.initialize()

        await asyncio.wait_for(failed.wait(), timeout=2.0)

        assert session.state == SessionState.ERROR
        assert session.error_code == "CAMERA_START_FAILED"
        assert not session.has_handle
        assert captures[0].released
