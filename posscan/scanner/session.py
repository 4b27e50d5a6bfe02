"""
==============================================================================
Scan Session Module
==============================================================================

Lifecycle of one camera-based barcode scanning session.

A ScanSession is created when the scanning dialog opens and closed when it
closes. In between it enumerates capture devices, streams from exactly one of
them, hands the first decoded barcode to the result callback and tears itself
down.

State Machine:
--------------
    IDLE -> INITIALIZING -> SCANNING | ERROR
    SCANNING -> IDLE      (decode, stop, first half of a device switch)
    ERROR -> INITIALIZING (user retry)

Invariants:
-----------
- A capture handle exists if and only if the state is SCANNING
- At most one capture handle is open at a time
- Lifecycle operations are serialized by an asyncio.Lock
- Decode notifications from capture threads are marshalled onto the
  session's event loop before any state is touched
- Permission, no-device and start failures become ERROR state; they are
  never raised to the caller
- A capture handle that dies while streaming is released and the session
  enters ERROR
- Once closed, a session ignores further lifecycle calls

Example:
--------
    >>> async def on_result(barcode: str) -> None:
    ...     print(barcode)
    >>> session = ScanSession(backend, settings.scan_config, on_result=on_result)
    >>> await session.initialize()
    >>> await session.switch_device()
    >>> await session.close()

==============================================================================
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import uuid
from typing import Any, Awaitable, Callable, List, Optional, Set, Union

from posscan.core import exceptions
from posscan.core.exceptions import AppException

from .backend import CameraBackend, CaptureHandle
from .models import Device, ScanConfig, SessionSnapshot, SessionState


# Module logger
logger = logging.getLogger(__name__)


ResultCallback = Callable[[str], Union[None, Awaitable[Any]]]


class ScanSession:
    """
    Camera scanning session state machine.

    Owns the capture handle exclusively; the handle is never exposed to
    callers. All public coroutines acquire the session lock, so a caller
    issuing ``switch_device()`` while ``initialize()`` is still running simply
    waits for it.

    Attributes:
        session_id: Unique identifier for registries and logs
        state: Current SessionState
        devices: Devices found by the last enumeration
        current_device_index: Index of the selected device
        error: User-facing message of the last failure
        error_code: AppException code of the last failure
    """

    def __init__(
        self,
        backend: CameraBackend,
        config: Optional[ScanConfig] = None,
        on_result: Optional[ResultCallback] = None,
        session_id: Optional[str] = None,
        on_error: Optional[ResultCallback] = None,
    ) -> None:
        """
        Initialize an idle session.

        Args:
            backend: Device enumeration and capture capability
            config: Capture configuration for every handle this session opens
            on_result: Called once with the decoded text (sync or async)
            session_id: Explicit identifier (random when omitted)
            on_error: Called with the error message when streaming fails
                after the camera started (sync or async)
        """
        self._session_id = session_id or uuid.uuid4().hex
        self._backend = backend
        self._config = config or ScanConfig()
        self._on_result = on_result
        self._on_error = on_error

        self._state = SessionState.IDLE
        self._handle: Optional[CaptureHandle] = None
        self._active_device: Optional[Device] = None
        self._devices: List[Device] = []
        self._device_index = 0
        self._error: Optional[str] = None
        self._error_code: Optional[str] = None
        self._closed = False

        self._lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        # Bumped whenever a handle is replaced or released; decode events
        # carrying an older value are discarded.
        self._generation = 0
        self._pending: Set[asyncio.Task] = set()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def devices(self) -> List[Device]:
        return list(self._devices)

    @property
    def current_device_index(self) -> int:
        return self._device_index

    @property
    def active_device(self) -> Optional[Device]:
        return self._active_device

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def error_code(self) -> Optional[str]:
        return self._error_code

    @property
    def has_handle(self) -> bool:
        return self._handle is not None

    @property
    def is_closed(self) -> bool:
        return self._closed

    # =========================================================================
    # LIFECYCLE OPERATIONS
    # =========================================================================

    async def initialize(self) -> SessionState:
        """
        Enumerate devices and start scanning on the first one.

        Also serves as the retry action after an ERROR.

        Returns:
            The resulting state (SCANNING or ERROR)
        """
        async with self._lock:
            if self._closed:
                return self._state

            self._bind_loop()
            await self._teardown()

            self._set_state(SessionState.INITIALIZING)

            try:
                devices = await self._backend.list_devices()
            except AppException as exc:
                self._fail(exc)
                return self._state
            except Exception as exc:
                logger.warning(f"Device enumeration failed: {exc}")
                self._fail(exceptions.camera_unavailable(str(exc)))
                return self._state

            self._devices = list(devices or [])
            self._device_index = 0

            if not self._devices:
                self._fail(exceptions.no_camera_found())
                return self._state

            logger.info(
                f"📷 Session {self._session_id}: {len(self._devices)} camera(s) found"
            )
            await self._start(self._devices[0])
            return self._state

    async def start(self, device: Device) -> SessionState:
        """
        Start decoding on a specific device.

        Any active handle is stopped and released first.

        Args:
            device: Device to acquire

        Returns:
            The resulting state (SCANNING or ERROR)
        """
        async with self._lock:
            if self._closed:
                return self._state

            self._bind_loop()

            for index, known in enumerate(self._devices):
                if known.id == device.id:
                    self._device_index = index
                    break

            await self._start(device)
            return self._state

    async def switch_device(self) -> SessionState:
        """
        Move to the next enumerated device, wrapping from last to first.

        No-op when fewer than two devices were enumerated or the session is
        closed.

        Returns:
            The resulting state
        """
        async with self._lock:
            if self._closed or len(self._devices) < 2:
                return self._state

            self._bind_loop()
            self._device_index = (self._device_index + 1) % len(self._devices)
            next_device = self._devices[self._device_index]

            logger.info(f"🔄 Session {self._session_id}: switching to {next_device.id}")
            await self._start(next_device)
            return self._state

    async def stop(self) -> None:
        """
        Release the capture handle, if any, and return to IDLE.

        Idempotent. Failures raised by the handle while stopping are ignored.
        """
        async with self._lock:
            await self._teardown()

    async def close(self) -> None:
        """
        Tear the session down for good when the hosting UI closes.

        Waits for the handle to be released and for decode events already
        delivered to be discarded before returning. Later calls to
        ``initialize``, ``start`` and ``switch_device`` are ignored.
        """
        self._closed = True
        await self.stop()
        await self.settle()
        logger.debug(f"Session {self._session_id} closed")

    async def settle(self) -> None:
        """Wait until decode events delivered so far have been processed."""
        await asyncio.sleep(0)

        current = asyncio.current_task()
        while True:
            pending = [task for task in self._pending if task is not current]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def snapshot(self) -> SessionSnapshot:
        """Get a read-only view of the session."""
        return SessionSnapshot(
            session_id=self._session_id,
            state=self._state,
            devices=list(self._devices),
            current_device_index=self._device_index,
            active_device_id=self._active_device.id if self._active_device else None,
            error=self._error,
            error_code=self._error_code,
        )

    async def __aenter__(self) -> "ScanSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # =========================================================================
    # INTERNAL TRANSITIONS (caller holds the lock)
    # =========================================================================

    async def _start(self, device: Device) -> None:
        """Acquire ``device`` and begin streaming."""
        if self._handle is not None:
            await self._teardown()

        self._error = None
        self._error_code = None
        self._set_state(SessionState.INITIALIZING)

        self._generation += 1
        generation = self._generation
        handle: Optional[CaptureHandle] = None

        try:
            handle = await self._backend.open_handle(device.id, self._config)
            handle.on_decode(functools.partial(self._on_decode, generation))
            handle.on_decode_failure(self._on_decode_failure)
            handle.on_error(functools.partial(self._on_capture_error, generation))
            await handle.start()
        except asyncio.CancelledError:
            if handle is not None:
                await self._release(handle)
            raise
        except Exception as exc:
            if handle is not None:
                await self._release(handle)
            reason = exc.message if isinstance(exc, AppException) else str(exc)
            logger.warning(f"Camera {device.id} failed to start: {reason}")
            self._fail(exceptions.camera_start_failed(device.id, reason))
            return

        self._handle = handle
        self._active_device = device
        self._error = None
        self._error_code = None
        self._set_state(SessionState.SCANNING)
        logger.info(f"✅ Session {self._session_id}: scanning on {device.id}")

    async def _teardown(self) -> None:
        """Release the handle (if any) and reset to IDLE."""
        handle, self._handle = self._handle, None
        self._generation += 1
        self._active_device = None

        if handle is not None:
            await self._release(handle)
            logger.info(f"🛑 Session {self._session_id}: released {handle.device_id}")

        self._error = None
        self._error_code = None
        self._set_state(SessionState.IDLE)

    async def _release(self, handle: CaptureHandle) -> None:
        """Stop a handle, ignoring failures; they are not actionable."""
        try:
            await handle.stop()
        except Exception as exc:
            logger.debug(f"Ignoring stop failure on {handle.device_id}: {exc}")

    def _fail(self, exc: AppException) -> None:
        """Enter ERROR with a user-facing message."""
        self._handle = None
        self._active_device = None
        self._error = exc.message
        self._error_code = exc.code
        self._set_state(SessionState.ERROR)
        logger.warning(f"⚠️ Session {self._session_id}: {exc.code} - {exc.message}")

    def _set_state(self, state: SessionState) -> None:
        if state is not self._state:
            logger.debug(f"Session {self._session_id}: {self._state} -> {state}")
        self._state = state

    def _bind_loop(self) -> None:
        self._loop = asyncio.get_running_loop()

    # =========================================================================
    # CAPTURE EVENTS (any thread)
    # =========================================================================

    def _on_decode(self, generation: int, text: str) -> None:
        """Marshal a decode event onto the session's event loop."""
        self._marshal(self._complete_decode, generation, text)

    def _on_decode_failure(self) -> None:
        """Frames without a readable code are expected and ignored."""
        return None

    def _on_capture_error(self, generation: int, reason: str) -> None:
        """Marshal a capture failure onto the session's event loop."""
        self._marshal(self._complete_capture_error, generation, reason)

    def _marshal(self, handler: Callable[..., Awaitable[None]], *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return

        try:
            loop.call_soon_threadsafe(self._schedule, handler, *args)
        except RuntimeError:
            # Loop shut down between the check and the call.
            logger.debug(f"Session {self._session_id}: dropped capture event after loop close")

    def _schedule(self, handler: Callable[..., Awaitable[None]], *args: Any) -> None:
        task = asyncio.ensure_future(handler(*args))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _complete_decode(self, generation: int, text: str) -> None:
        """Tear down on the first decode from the live handle, then report it."""
        async with self._lock:
            if generation != self._generation or self._handle is None:
                return
            await self._teardown()

        logger.info(f"🔍 Session {self._session_id}: decoded {text!r}")
        await self._notify(self._on_result, text, "Result")

    async def _complete_capture_error(self, generation: int, reason: str) -> None:
        """Release a handle that stopped streaming on its own and enter ERROR."""
        async with self._lock:
            if generation != self._generation or self._handle is None:
                return

            handle, self._handle = self._handle, None
            self._generation += 1
            await self._release(handle)
            self._fail(exceptions.camera_start_failed(handle.device_id, reason))
            message = self._error

        await self._notify(self._on_error, message, "Error")

    async def _notify(self, callback: Optional[ResultCallback], value: str, kind: str) -> None:
        if callback is None:
            return

        try:
            outcome = callback(value)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            logger.error(f"{kind} callback failed for session {self._session_id}: {exc}")
