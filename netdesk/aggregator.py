from __future__ import annotations
import threading
from typing import List

from PySide6 import QtCore

from .config import ThresholdConfig
from .models import Bandwidth, ConnectivitySample, UsageSnapshot, ProcessSample


def widget_bandwidth(bandwidth: Bandwidth, threshold: ThresholdConfig) -> Bandwidth:
    """
    Value shown by widgets: zero in both directions once either direction
    reaches the activation threshold. Display only; snapshots are untouched.
    """
    if threshold.enabled:
        limit = threshold.limit_bytes()
        if bandwidth.upload >= limit or bandwidth.download >= limit:
            return Bandwidth()
    return bandwidth


class Gate(QtCore.QObject):
    """
    Single consumer of all reader output.

    Readers emit from pool threads; queued delivery lands every snapshot on
    this object's thread one at a time. Nothing is forwarded while disabled
    or after close().
    """
    usage_ready         = QtCore.Signal(object)   # UsageSnapshot, detail consumers
    widget_usage_ready  = QtCore.Signal(object)   # Bandwidth, widget consumers
    connectivity_ready  = QtCore.Signal(object)   # ConnectivitySample
    widget_state_ready  = QtCore.Signal(bool)     # connectivity status for state widgets
    processes_ready     = QtCore.Signal(list)     # List[ProcessSample]

    def __init__(self, threshold: ThresholdConfig = ThresholdConfig(), enabled: bool = True):
        super().__init__()
        self._lock = threading.Lock()
        self._threshold = threshold
        self._enabled = enabled
        self._closed = False

    @property
    def threshold(self) -> ThresholdConfig:
        with self._lock:
            return self._threshold

    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._enabled and not self._closed

    @QtCore.Slot(object)
    def set_threshold(self, threshold: ThresholdConfig) -> None:
        with self._lock:
            self._threshold = threshold

    def set_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._enabled = enabled

    def close(self) -> None:
        with self._lock:
            self._closed = True

    # ── reader slots ──────────────────────────
    @QtCore.Slot(object)
    def on_usage(self, snapshot: UsageSnapshot) -> None:
        if snapshot is None or not self.enabled:
            return
        self.usage_ready.emit(snapshot)
        self.widget_usage_ready.emit(widget_bandwidth(snapshot.bandwidth, self.threshold))

    @QtCore.Slot(object)
    def on_connectivity(self, sample: ConnectivitySample) -> None:
        if sample is None or not self.enabled:
            return
        self.connectivity_ready.emit(sample)
        self.widget_state_ready.emit(sample.status)

    @QtCore.Slot(object)
    def on_processes(self, samples: List[ProcessSample]) -> None:
        if samples is None or not self.enabled:
            return
        self.processes_ready.emit(samples)
