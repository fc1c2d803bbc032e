from __future__ import annotations
import logging
import threading
from typing import Any, Optional

from PySide6 import QtCore

log = logging.getLogger(__name__)


class _SampleRunnable(QtCore.QRunnable):
    """Runs one reader sample on a pool thread."""
    def __init__(self, reader: "Reader"):
        super().__init__()
        self._reader = reader
        self.setAutoDelete(True)

    def run(self):
        self._reader._tick()


class Reader(QtCore.QObject):
    """
    Base for the periodic samplers.

    - a QTimer on the owner thread schedules one sample per interval on the pool
    - a tick is skipped while the previous sample is still running
    - `ready` is emitted only while started; once stop() returns no new
      emission can begin
    - pool results hop back to the owner thread and are re-checked there;
      a result sampled before the last stop() or invalidate_pending() is dropped
    - sampling state is private to the subclass and guarded by _sample_lock
    """
    ready = QtCore.Signal(object)
    _arrived = QtCore.Signal(object, int)

    def __init__(self, name: str, interval_s: float, pool: Optional[QtCore.QThreadPool] = None):
        super().__init__()
        self.name = name
        self._pool = pool or QtCore.QThreadPool.globalInstance()
        self._sample_lock = threading.Lock()
        self._emit_lock = threading.RLock()
        self._active = False
        self._busy = threading.Event()
        self._epoch = 0
        self._arrived.connect(self._on_arrived)

        self._timer = QtCore.QTimer(self)
        self._timer.timeout.connect(self._schedule)
        self.set_interval(interval_s)

    @property
    def active(self) -> bool:
        return self._active

    def set_interval(self, interval_s: float) -> None:
        self._timer.setInterval(max(1, int(interval_s * 1000)))

    def start(self, immediate: bool = True) -> None:
        with self._emit_lock:
            self._active = True
        self._timer.start()
        if immediate:
            self._schedule()

    def stop(self) -> None:
        self._timer.stop()
        with self._emit_lock:
            self._active = False
            self._epoch += 1

    def invalidate_pending(self) -> None:
        """Drop every result sampled before this call that has not arrived yet."""
        with self._emit_lock:
            self._epoch += 1

    def request_read(self) -> None:
        """Sample now on the pool, outside the regular cadence."""
        self._schedule()

    def read(self) -> Any:
        """One-shot sample; delivered to `ready` when started, always returned."""
        epoch = self._epoch
        with self._sample_lock:
            value = self.sample()
        self._deliver(value, epoch)
        return value

    def sample(self) -> Any:
        raise NotImplementedError

    # ── internals ─────────────────────────────
    def _deliver(self, value: Any, epoch: Optional[int] = None) -> None:
        with self._emit_lock:
            if self._active:
                self._arrived.emit(value, self._epoch if epoch is None else epoch)

    @QtCore.Slot(object, int)
    def _on_arrived(self, value: Any, epoch: int) -> None:
        # runs on the owner thread: queued from the pool, direct otherwise
        with self._emit_lock:
            if not self._active or epoch != self._epoch:
                log.debug("%s reader: stale result dropped", self.name)
                return
        self.ready.emit(value)

    def _schedule(self) -> None:
        if self._busy.is_set():
            log.debug("%s reader still busy, tick skipped", self.name)
            return
        self._busy.set()
        self._pool.start(_SampleRunnable(self))

    def _tick(self) -> None:
        try:
            self.read()
        except Exception:
            log.exception("%s reader: sample failed", self.name)
        finally:
            self._busy.clear()
