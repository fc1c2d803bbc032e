from __future__ import annotations
import logging
import signal
import sys
from typing import List, Optional

from PySide6 import QtCore

from .aggregator import Gate
from .collectors import InterfaceCollector, ProcessCollector
from .config import Settings, load_config
from .connectivity import ConnectivityReader, Probe, ping_once
from .controllers import IPRefreshController, ResetController
from .models import ConnectivitySample, UsageSnapshot
from .processes import ProcessReader, top_processes
from .usage import UsageReader
from .workers import Reader

log = logging.getLogger(__name__)


class NetworkModule(QtCore.QObject):
    """
    Owns the three readers, both scheduled controllers and the gate.

    - readers sample on the module's own thread pool
    - settings changes are applied through Settings signals
    - shutdown() stops everything; nothing is forwarded afterwards
    """
    public_ip_refresh_requested = QtCore.Signal()

    def __init__(
        self,
        settings: Settings,
        interfaces: Optional[InterfaceCollector] = None,
        processes: Optional[ProcessCollector] = None,
        probe: Probe = ping_once,
    ):
        super().__init__()
        self.settings = settings
        self.interfaces = interfaces or InterfaceCollector()
        cfg = settings.get()

        self._enabled = True
        self._closed = False
        self._pool = QtCore.QThreadPool(self)
        self.gate = Gate(cfg.threshold)

        self.usage_reader: Optional[UsageReader] = None
        self.process_reader: Optional[ProcessReader] = None
        self.connectivity_reader: Optional[ConnectivityReader] = None
        self.reset_controller: Optional[ResetController] = None
        self.ip_controller: Optional[IPRefreshController] = None

        self.available = self.interfaces.available()
        if not self.available:
            log.warning("No network interfaces found, network module unavailable")
            return

        self.usage_reader = UsageReader(
            self.interfaces, cfg.usage_interval_s, cfg.details_interval_s, pool=self._pool,
        )
        self.process_reader = ProcessReader(
            processes or ProcessCollector(), cfg.process_interval_s, pool=self._pool,
        )
        self.connectivity_reader = ConnectivityReader(
            cfg.icmp_host, cfg.icmp_timeout_s, cfg.connectivity_interval_s,
            disabled=cfg.icmp_disabled, probe=probe, pool=self._pool,
        )

        self.usage_reader.ready.connect(self.gate.on_usage)
        self.process_reader.ready.connect(self.gate.on_processes)
        self.connectivity_reader.ready.connect(self.gate.on_connectivity)

        settings.threshold_changed.connect(self.gate.set_threshold)
        settings.icmp_disabled_changed.connect(self._on_icmp_disabled)
        settings.icmp_host_changed.connect(self._on_icmp_host)
        settings.process_count_changed.connect(self._on_process_count)
        settings.usage_reset_changed.connect(self._on_usage_reset)
        settings.ip_refresh_changed.connect(self._on_ip_refresh)
        settings.intervals_changed.connect(self._on_intervals)

        self.ip_controller = IPRefreshController(
            cfg.public_ip_refresh, self.public_ip_refresh_requested.emit, self.is_ready, parent=self,
        )
        self.reset_controller = ResetController(
            cfg.usage_reset, self.usage_reader.reset, self.is_ready, parent=self,
        )
        log.info("Network module initialized (usage every %ss, reset %s, IP refresh %s)",
                 cfg.usage_interval_s, cfg.usage_reset.value, cfg.public_ip_refresh.value)

    @property
    def readers(self) -> List[Reader]:
        return [r for r in (self.usage_reader, self.process_reader, self.connectivity_reader) if r]

    @property
    def enabled(self) -> bool:
        return self._enabled

    def is_ready(self) -> bool:
        return self._enabled and not self._closed and self.interfaces.available()

    # ── lifecycle ─────────────────────────────
    def start(self) -> None:
        if self._closed or not self.available or not self._enabled:
            return
        for r in self.readers:
            r.start()

    def set_enabled(self, enabled: bool) -> None:
        if self._closed:
            return
        self._enabled = enabled
        self.gate.set_enabled(enabled)
        for r in self.readers:
            if enabled:
                r.start()
            else:
                r.stop()

    def refresh_details(self) -> None:
        """Re-resolve interface/Wi-Fi details and push a fresh usage sample."""
        if self.usage_reader and not self._closed:
            self.usage_reader.get_details()
            self.usage_reader.request_read()

    def shutdown(self, timeout_ms: int = 5000) -> None:
        if self._closed:
            return
        self._closed = True
        for ctl in (self.ip_controller, self.reset_controller):
            if ctl:
                ctl.invalidate()
        for r in self.readers:
            r.stop()
        self._pool.waitForDone(timeout_ms)
        self.gate.close()
        log.info("Network module stopped")

    # ── settings events ───────────────────────
    @QtCore.Slot(bool)
    def _on_icmp_disabled(self, disabled: bool) -> None:
        if not self._closed:
            self.connectivity_reader.set_disabled(disabled)

    @QtCore.Slot(str)
    def _on_icmp_host(self, host: str) -> None:
        if not self._closed:
            self.connectivity_reader.set_host(host)

    @QtCore.Slot(int)
    def _on_process_count(self, count: int) -> None:
        if not self._closed:
            self.process_reader.request_read()

    @QtCore.Slot(object)
    def _on_usage_reset(self, policy) -> None:
        if not self._closed:
            self.reset_controller.set_policy(policy)

    @QtCore.Slot(object)
    def _on_ip_refresh(self, policy) -> None:
        if not self._closed:
            self.ip_controller.set_policy(policy)

    @QtCore.Slot()
    def _on_intervals(self) -> None:
        if self._closed:
            return
        cfg = self.settings.get()
        self.usage_reader.set_interval(cfg.usage_interval_s)
        self.usage_reader.details_interval_s = cfg.details_interval_s
        self.process_reader.set_interval(cfg.process_interval_s)
        self.connectivity_reader.set_interval(cfg.connectivity_interval_s)


# ──────────────────────────────────────────────
# Headless console runner
# ──────────────────────────────────────────────
def format_bytes(n: float) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if abs(n) < 1024:
            return f"{n:.0f} {unit}" if unit == "B" else f"{n:.1f} {unit}"
        n /= 1024
    return f"{n:.1f} TB"


class ConsoleReporter(QtCore.QObject):
    def __init__(self, settings: Settings):
        super().__init__()
        self.settings = settings

    @QtCore.Slot(object)
    def on_usage(self, s: UsageSnapshot):
        iface = s.interface.display_name if s.interface else "offline"
        log.info("%s ↑%s/s ↓%s/s | total ↑%s ↓%s", iface,
                 format_bytes(s.bandwidth.upload), format_bytes(s.bandwidth.download),
                 format_bytes(s.total.upload), format_bytes(s.total.download))

    @QtCore.Slot(object)
    def on_processes(self, samples):
        top = top_processes(samples, self.settings.get().process_count)
        if top:
            log.info("top: %s", ", ".join(
                f"{p.name}({p.pid}) ↓{format_bytes(p.download)} ↑{format_bytes(p.upload)}" for p in top))

    @QtCore.Slot(object)
    def on_connectivity(self, c: ConnectivitySample):
        log.info("internet: %s", f"{c.latency_ms:.0f} ms" if c.status else "unreachable")


def main():
    logging.basicConfig(level=logging.INFO, format="[%(name)s] %(message)s")
    cfg = load_config()
    app = QtCore.QCoreApplication(sys.argv)

    settings = Settings(cfg)
    module = NetworkModule(settings)
    if not module.available:
        sys.exit(1)

    reporter = ConsoleReporter(settings)
    module.gate.usage_ready.connect(reporter.on_usage)
    module.gate.processes_ready.connect(reporter.on_processes)
    module.gate.connectivity_ready.connect(reporter.on_connectivity)
    module.public_ip_refresh_requested.connect(lambda: log.info("public IP refresh requested"))

    signal.signal(signal.SIGINT, lambda *_: app.quit())
    # Let the interpreter run its signal handlers while Qt owns the loop.
    wake = QtCore.QTimer()
    wake.timeout.connect(lambda: None)
    wake.start(250)

    module.start()
    code = app.exec()

    module.shutdown()
    sys.exit(code)
