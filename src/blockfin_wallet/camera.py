"""Camera lifecycle for QR scanning.

:class:`CameraSession` owns at most one capture handle at a time and makes
sure it is released on every exit path: an explicit ``stop()``, a decoded
frame, a device error, leaving an ``async with`` block, or cancellation of the
task that is waiting for the camera to open.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Protocol

from .config import AppConfig, CameraConfig
from .errors import DeviceFailed, DeviceUnavailable, PermissionDenied, ScanError
from .events import NotificationSink, ScanDeviceUnavailable, ScanFailed, ScanPermissionDenied, log_event
from .state import ScanState

logger = logging.getLogger(__name__)


class CaptureHandle(Protocol):
    def read(self) -> Any:
        """Return the next frame, or ``None`` if the feed stopped."""

    def release(self) -> None:
        ...


class CameraDevice(Protocol):
    async def acquire(self) -> CaptureHandle:
        """Open the camera; raise :class:`PermissionDenied` or :class:`DeviceUnavailable`."""


class OpenCVCapture:
    """Capture handle wrapping a ``cv2.VideoCapture``."""

    def __init__(self, capture, cv2_module, max_frame_size: int):
        self._capture = capture
        self._cv2 = cv2_module
        self._max_frame_size = max_frame_size

    def read(self):
        success, frame = self._capture.read()
        if not success or frame is None:
            return None
        return self._resize_frame(frame)

    def _resize_frame(self, frame):
        max_dim = max(frame.shape[:2])
        limit = self._max_frame_size
        if max_dim <= limit:
            return frame

        scale = limit / float(max_dim)
        new_size = (int(frame.shape[1] * scale), int(frame.shape[0] * scale))
        return self._cv2.resize(frame, new_size)

    def release(self) -> None:
        self._capture.release()


class OpenCVCamera:
    """Camera capability backed by OpenCV.

    Opening a device can block for a noticeable time, so it runs in a worker
    thread and the event loop stays responsive while the camera starts.
    """

    def __init__(self, config: AppConfig | None = None, camera_config: CameraConfig | None = None):
        self._config = config or AppConfig()
        self._camera_config = camera_config or CameraConfig()

    async def acquire(self) -> OpenCVCapture:
        return await asyncio.to_thread(self._open_capture)

    def _open_capture(self) -> OpenCVCapture:
        try:
            import cv2  # type: ignore
        except Exception as exc:
            raise DeviceUnavailable("Camera dependencies not installed") from exc

        config = self._camera_config
        default_backend = getattr(cv2, "CAP_ANY", 0)
        for backend in config.get_backends() or [default_backend]:
            for index in config.get_indices():
                try:
                    capture = cv2.VideoCapture(index, backend)
                except TypeError:
                    capture = cv2.VideoCapture(index)
                if not capture or not capture.isOpened():
                    if capture:
                        capture.release()
                    continue

                capture.set(cv2.CAP_PROP_FRAME_WIDTH, config.width)
                capture.set(cv2.CAP_PROP_FRAME_HEIGHT, config.height)
                logger.info("Opened camera index %s (backend %s)", index, backend)
                return OpenCVCapture(capture, cv2, self._config.max_frame_size)

        raise DeviceUnavailable("Unable to access camera")


class _Attempt:
    __slots__ = ("cancelled",)

    def __init__(self) -> None:
        self.cancelled = False


Decoder = Callable[[Any], Optional[str]]


class CameraSession:
    """One QR scanning session over an exclusively owned camera handle.

    ``IDLE --start()--> REQUESTING --granted--> ACTIVE --stop()|decode--> STOPPED``.
    A refused or missing camera ends in ``DENIED``; a failure while active ends
    in ``ERROR``.  Errors are reported through :attr:`error`, the return value
    of :meth:`start` and the notification sink; they are never raised and
    never retried.
    """

    def __init__(
        self,
        device: CameraDevice,
        on_decoded: Callable[[str], None],
        *,
        config: AppConfig | None = None,
        notify: NotificationSink | None = None,
    ) -> None:
        self._device = device
        self._on_decoded = on_decoded
        self._config = config or AppConfig()
        self._notify = notify or log_event

        self._state = ScanState.IDLE
        self._handle: CaptureHandle | None = None
        self._attempt = _Attempt()
        self._acquiring: asyncio.Future | None = None
        self._delivered = False
        self._reading = False
        self._deferred_release: CaptureHandle | None = None
        self.error: ScanError | None = None

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is ScanState.ACTIVE

    @property
    def handle(self) -> CaptureHandle | None:
        return self._handle

    async def start(self) -> ScanError | None:
        """Open the camera.

        Returns ``None`` once the session is active (or was already requesting
        or active), otherwise the error that ended the attempt.
        """

        while True:
            if self._state in (ScanState.REQUESTING, ScanState.ACTIVE):
                return None
            if self._acquiring is None:
                break
            # A stopped attempt is still opening the device; its handle must be
            # released before another one may be opened.
            await asyncio.wait({self._acquiring})

        attempt = _Attempt()
        self._attempt = attempt
        self._state = ScanState.REQUESTING
        self._delivered = False
        self.error = None
        logger.debug("Requesting camera")

        task = asyncio.ensure_future(self._acquire(attempt))
        self._acquiring = task
        task.add_done_callback(self._acquisition_settled)

        try:
            outcome = await asyncio.shield(task)
        except asyncio.CancelledError:
            self.stop()
            if task.done() and not task.cancelled():
                self._discard(task.result())
            raise

        if attempt.cancelled:
            self._discard(outcome)
            return None

        if isinstance(outcome, ScanError):
            return self._deny(outcome)

        self._handle = outcome
        self._state = ScanState.ACTIVE
        logger.info("Camera session active")
        return None

    async def _acquire(self, attempt: _Attempt):
        try:
            handle = await self._device.acquire()
        except ScanError as exc:
            return exc
        except Exception as exc:
            logger.warning("Camera acquisition failed unexpectedly: %s", exc)
            error = DeviceUnavailable(str(exc) or type(exc).__name__)
            error.__cause__ = exc
            return error

        if attempt.cancelled:
            logger.info("Camera opened after stop was requested; releasing it")
            self._release(handle)
            return None
        return handle

    def _acquisition_settled(self, task: asyncio.Future) -> None:
        if self._acquiring is task:
            self._acquiring = None

    def _discard(self, outcome) -> None:
        if outcome is not None and not isinstance(outcome, ScanError):
            self._release(outcome)

    def _deny(self, error: ScanError) -> ScanError:
        self.error = error
        self._state = ScanState.DENIED
        reason = str(error) or type(error).__name__
        logger.warning("Camera unavailable: %s", reason)
        if isinstance(error, PermissionDenied):
            self._notify(ScanPermissionDenied(reason))
        else:
            self._notify(ScanDeviceUnavailable(reason))
        return error

    def stop(self) -> None:
        """Release the camera and move to ``STOPPED``; a no-op when idle or already stopped.

        Stopping a denied or failed session keeps :attr:`error` for inspection.
        """

        state = self._state
        if state in (ScanState.IDLE, ScanState.STOPPED):
            return

        self._state = ScanState.STOPPED
        if state is ScanState.REQUESTING:
            self._attempt.cancelled = True
            logger.debug("Camera stop requested while acquiring")
            return

        self._drop_handle()
        logger.info("Camera session stopped")

    def fail(self, exc: BaseException) -> None:
        """Record a device failure while active and release the handle."""

        if self._state is not ScanState.ACTIVE:
            return

        reason = str(exc) or type(exc).__name__
        self.error = exc if isinstance(exc, DeviceFailed) else DeviceFailed(reason)
        self._state = ScanState.ERROR
        self._drop_handle()
        logger.warning("Camera failed: %s", reason)
        self._notify(ScanFailed(reason))

    def on_frame(self, decoded: str) -> None:
        """Deliver a decoded payload; only the first one per session counts."""

        if self._state is not ScanState.ACTIVE or self._delivered:
            return
        self._delivered = True
        self.stop()
        self._on_decoded(decoded)

    async def scan(self, decoder: Decoder) -> Optional[str]:
        """Read frames until ``decoder`` returns a payload or the session ends.

        Every ``camera_frame_skip``-th frame is decoded.  The first payload
        found is passed to :meth:`on_frame` and returned.
        """

        frame_skip = max(1, self._config.camera_frame_skip)
        frame_counter = 0

        while self._state is ScanState.ACTIVE:
            handle = self._handle
            assert handle is not None
            self._reading = True
            # The worker thread keeps reading even if this task is cancelled;
            # the flag is cleared only once that read has returned.
            read = asyncio.ensure_future(asyncio.to_thread(handle.read))
            read.add_done_callback(self._read_finished)
            try:
                frame = await asyncio.shield(read)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.fail(exc)
                break

            if self._state is not ScanState.ACTIVE:
                break
            if frame is None:
                self.fail(DeviceFailed("Camera feed unavailable"))
                break

            frame_counter += 1
            if frame_counter % frame_skip:
                continue

            decoded = decoder(frame)
            if decoded:
                self.on_frame(decoded)
                return decoded
        return None

    def _drop_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        if self._reading:
            # The scan loop releases it once the in-flight read returns.
            self._deferred_release = handle
        else:
            self._release(handle)

    def _read_finished(self, read: asyncio.Future) -> None:
        if not read.cancelled():
            # Marks the exception as retrieved when nobody awaits the read.
            read.exception()
        self._reading = False
        handle, self._deferred_release = self._deferred_release, None
        if handle is not None:
            self._release(handle)

    @staticmethod
    def _release(handle: CaptureHandle) -> None:
        try:
            handle.release()
        except Exception:
            logger.warning("Releasing the camera handle failed", exc_info=True)

    async def __aenter__(self) -> "CameraSession":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        self.stop()


__all__ = [
    "CameraDevice",
    "CameraSession",
    "CaptureHandle",
    "Decoder",
    "OpenCVCamera",
    "OpenCVCapture",
]
