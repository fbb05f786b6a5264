"""Clipboard writes with a short-lived "copied" confirmation."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Callable, Optional, Protocol

from .config import AppConfig
from .errors import ClipboardUnavailable
from .events import AddressCopied, NotificationSink, log_event
from .state import CopyFeedbackState

logger = logging.getLogger(__name__)


class Clipboard(Protocol):
    def write_text(self, text: str) -> None:
        ...


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Anything with asyncio's ``call_later`` signature."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class QtClipboard:
    """Write to the system clipboard owned by the running ``QApplication``."""

    def write_text(self, text: str) -> None:
        try:
            from PyQt5.QtWidgets import QApplication
        except Exception as exc:  # pragma: no cover - depends on environment
            raise ClipboardUnavailable("PyQt5 is required for clipboard access") from exc

        app = QApplication.instance()
        if app is None:
            raise ClipboardUnavailable("No QApplication is running")
        clipboard = app.clipboard()
        if clipboard is None:
            raise ClipboardUnavailable("The platform clipboard is not available")
        clipboard.setText(text)


class ClipboardFeedback:
    """Copy a value and keep a "copied" flag up for a fixed window.

    Each instance owns at most one pending reset timer.  Copying again while
    the window is open cancels that timer and starts a new one, so the flag
    always clears ``copy_feedback_ms`` after the most recent copy.  ``close``
    (or leaving the ``with`` block) cancels the timer; nothing touches the
    state afterwards.
    """

    def __init__(
        self,
        clipboard: Optional[Clipboard],
        *,
        config: AppConfig | None = None,
        scheduler: Scheduler | None = None,
        notify: NotificationSink | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clipboard = clipboard
        self._config = config or AppConfig()
        self._scheduler = scheduler
        self._notify = notify or log_event
        self._clock = clock
        self._state = CopyFeedbackState()
        self._timer: TimerHandle | None = None
        self._closed = False

    @property
    def state(self) -> CopyFeedbackState:
        return self._state

    @property
    def copied(self) -> bool:
        return self._state.copied

    @property
    def has_pending_reset(self) -> bool:
        return self._timer is not None

    def copy(self, value: str) -> None:
        if self._closed:
            raise RuntimeError("ClipboardFeedback has been closed")
        if self._clipboard is None:
            raise ClipboardUnavailable("No clipboard capability available")
        # Raises RuntimeError outside an event loop, before anything is written.
        scheduler = self._scheduler or asyncio.get_running_loop()

        self._clipboard.write_text(value)

        self._cancel_timer()
        self._state = CopyFeedbackState(value=value, copied_at=self._clock())
        self._timer = scheduler.call_later(self._config.copy_feedback_seconds, self._reset)
        logger.debug("Copied %d characters, feedback window open", len(value))

        self._notify(AddressCopied(value))

    def _reset(self) -> None:
        self._timer = None
        if self._closed:
            return
        self._state = replace(self._state, copied_at=None)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def close(self) -> None:
        self._cancel_timer()
        self._closed = True

    def __enter__(self) -> "ClipboardFeedback":
        return self

    def __exit__(self, *_exc_info: object) -> None:
        self.close()


__all__ = ["Clipboard", "ClipboardFeedback", "QtClipboard", "Scheduler", "TimerHandle"]
