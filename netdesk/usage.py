from __future__ import annotations
import logging
import threading
import time
from typing import Callable, Optional

from PySide6 import QtCore

from .collectors import InterfaceCollector, InterfaceInfo, RawCounters
from .models import (
    Bandwidth, ConnectionType, RemoteAddress, UsageSnapshot, WifiDetails,
)
from .workers import Reader

log = logging.getLogger(__name__)


class UsageReader(Reader):
    """
    Interface byte counters → UsageSnapshot.

    bandwidth is the counter delta since the previous sample, clamped to 0
    when a counter goes backwards; total accumulates deltas until reset().
    The active interface (and Wi-Fi details) is re-resolved every
    details_interval_s, on the sample after get_details(), or as soon as it
    goes away. Public calls never wait for a sample in flight: total and the
    remote address sit behind a separate short lock.
    Switching interfaces re-baselines the counters.
    """

    def __init__(
        self,
        source: Optional[InterfaceCollector] = None,
        interval_s: float = 1,
        details_interval_s: float = 60,
        pool: Optional[QtCore.QThreadPool] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__("usage", interval_s, pool)
        self.source = source or InterfaceCollector()
        self.details_interval_s = details_interval_s
        self._clock = clock

        self._info: Optional[InterfaceInfo] = None
        self._wifi = WifiDetails()
        self._details_at: Optional[float] = None
        self._force_details = False

        self._baseline_iface: Optional[str] = None
        self._last: Optional[RawCounters] = None
        self._bandwidth = Bandwidth()
        self._state_lock = threading.Lock()
        self._total = Bandwidth()
        self._remote = RemoteAddress()

    # ── public API ────────────────────────────
    def get_details(self) -> None:
        """Re-resolve interface and Wi-Fi details on the next sample."""
        self._force_details = True

    def reset(self) -> None:
        with self._state_lock:
            self._total = Bandwidth()
        log.info("Total usage reset")

    def set_remote_address(self, v4: Optional[str] = None, v6: Optional[str] = None) -> None:
        with self._state_lock:
            self._remote = RemoteAddress(v4=v4, v6=v6)

    # ── sampling ──────────────────────────────
    def sample(self) -> UsageSnapshot:
        if self._needs_details():
            self._resolve_details()

        info = self._info
        if info is None:
            return self._snapshot(None)

        name = info.descriptor.system_name
        cur = self.source.counters(name)
        if cur is None:
            log.debug("counters for %s unavailable", name)
            self._info = None
            self._wifi = WifiDetails()
            return self._snapshot(None)

        if name != self._baseline_iface or self._last is None:
            self._baseline_iface = name
            self._bandwidth = Bandwidth()
        else:
            self._bandwidth = Bandwidth(
                upload=max(0, cur.bytes_sent - self._last.bytes_sent),
                download=max(0, cur.bytes_recv - self._last.bytes_recv),
            )
            with self._state_lock:
                self._total = self._total + self._bandwidth
        self._last = cur
        return self._snapshot(info)

    def _needs_details(self) -> bool:
        if self._force_details or self._info is None or self._details_at is None:
            return True
        if self._clock() - self._details_at >= self.details_interval_s:
            return True
        return not self.source.is_up(self._info.descriptor.system_name)

    def _resolve_details(self) -> None:
        previous = self._info
        info = self.source.active_interface()
        self._info = info
        self._details_at = self._clock()
        self._force_details = False

        if info is not None and info.connection_type is ConnectionType.WIFI:
            self._wifi = self.source.wifi_details(info.descriptor.system_name)
        else:
            self._wifi = WifiDetails()

        prev_name = previous.descriptor.system_name if previous else None
        new_name = info.descriptor.system_name if info else None
        if prev_name != new_name:
            log.info("Active interface: %s", new_name or "none")

    def _snapshot(self, info: Optional[InterfaceInfo]) -> UsageSnapshot:
        bw = self._bandwidth
        with self._state_lock:
            total, remote = self._total, self._remote
        return UsageSnapshot(
            bandwidth=bw,
            total=total,
            local_address=info.local_address if info else None,
            remote_address=remote,
            interface=info.descriptor if info else None,
            connection_type=info.connection_type if info else None,
            status=info is not None,
            wifi=self._wifi if info else WifiDetails(),
            widget_value=float(bw.upload + bw.download),
        )
