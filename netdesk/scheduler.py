from __future__ import annotations
import logging
import threading
import time
from typing import Callable, Optional

from PySide6 import QtCore

log = logging.getLogger(__name__)

# QTimer takes a signed 32-bit millisecond interval (~24.8 days).
_MAX_TIMER_MS = 2**31 - 1
# Qt may wake a few ms early; anything closer than this counts as due.
_EARLY_WAKE_S = 0.005


class Completion:
    """One-shot completion handle handed to every firing."""
    def __init__(self, on_done: Callable[[], None]):
        self._lock = threading.Lock()
        self._done = False
        self._on_done = on_done

    @property
    def done(self) -> bool:
        return self._done

    def __call__(self) -> bool:
        with self._lock:
            if self._done:
                return False
            self._done = True
        self._on_done()
        return True


Task = Callable[[Completion], None]


class Scheduler(QtCore.QObject):
    """
    Recurring trigger with a single live timer.

    - configure(None) disables recurring activity entirely
    - every (re)configure/start/stop invalidates the current timer first;
      timeouts from an invalidated timer are ignored via a generation check
    - each firing completes exactly once, whether or not the task does it
    - intervals past the QTimer limit are chained against a monotonic deadline
    """
    fired     = QtCore.Signal()
    completed = QtCore.Signal()

    def __init__(self, name: str, parent: Optional[QtCore.QObject] = None):
        super().__init__(parent)
        self.name = name
        self._interval: Optional[float] = None
        self._task: Optional[Task] = None
        self._timer: Optional[QtCore.QTimer] = None
        self._generation = 0
        self._deadline = 0.0
        self.firings = 0
        self.completions = 0

    @property
    def interval(self) -> Optional[float]:
        return self._interval

    @property
    def is_active(self) -> bool:
        return self._timer is not None

    # ── public API ────────────────────────────
    def configure(self, interval_s: Optional[float]) -> None:
        if interval_s is not None and interval_s <= 0:
            raise ValueError(f"{self.name}: interval must be positive or None")
        self._invalidate()
        self._interval = interval_s
        log.info("Scheduler %s configured: %s", self.name,
                 "disabled" if interval_s is None else f"every {interval_s:g}s")
        self._install()

    def start(self, task: Task) -> None:
        self._invalidate()
        self._task = task
        self._install()

    def stop(self) -> None:
        self._invalidate()
        self._task = None

    # ── timer plumbing ────────────────────────
    def _invalidate(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.stop()
            self._timer.deleteLater()
            self._timer = None

    def _install(self) -> None:
        if self._interval is None or self._task is None:
            return
        gen = self._generation
        timer = QtCore.QTimer(self)
        timer.setSingleShot(True)
        timer.setTimerType(QtCore.Qt.TimerType.PreciseTimer)
        timer.timeout.connect(lambda: self._on_timeout(gen))
        self._timer = timer
        self._deadline = time.monotonic() + self._interval
        self._arm()

    def _arm(self) -> None:
        remaining_ms = max(0, int((self._deadline - time.monotonic()) * 1000))
        self._timer.start(min(remaining_ms, _MAX_TIMER_MS))

    def _on_timeout(self, gen: int) -> None:
        if gen != self._generation or self._timer is None:
            return
        now = time.monotonic()
        if self._deadline - now > _EARLY_WAKE_S:
            self._arm()
            return

        # missed periods collapse into this one firing
        self._deadline += self._interval
        if self._deadline <= now:
            self._deadline = now + self._interval

        self._fire()
        if gen == self._generation:
            self._arm()

    def _fire(self) -> None:
        completion = Completion(self._on_completed)
        self.firings += 1
        self.fired.emit()
        try:
            self._task(completion)
        except Exception:
            log.exception("Scheduler %s: task failed", self.name)
        finally:
            completion()

    def _on_completed(self) -> None:
        self.completions += 1
        self.completed.emit()
