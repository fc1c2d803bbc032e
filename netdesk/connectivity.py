from __future__ import annotations
import logging
import math
import re
import subprocess
import sys
from typing import Callable, Optional

from PySide6 import QtCore

from .models import ConnectivitySample
from .workers import Reader

log = logging.getLogger(__name__)

Probe = Callable[[str, float], Optional[float]]

_LATENCY_RE = re.compile(r"time[=<]\s*([\d.]+)\s*ms", re.IGNORECASE)


def ping_once(host: str, timeout_s: float = 1.0) -> Optional[float]:
    """
    One ICMP echo through the system ping binary.
    Returns round-trip latency in ms, or None when the host did not answer.
    """
    wait = max(1, math.ceil(timeout_s))
    if sys.platform.startswith("win"):
        cmd = ["ping", "-n", "1", "-w", str(int(timeout_s * 1000)), host]
    elif sys.platform == "darwin":
        cmd = ["ping", "-c", "1", "-t", str(wait), host]
    else:
        cmd = ["ping", "-c", "1", "-W", str(wait), host]

    creationflags = getattr(subprocess, "CREATE_NO_WINDOW", 0) if sys.platform.startswith("win") else 0
    try:
        proc = subprocess.run(
            cmd, capture_output=True, text=True,
            timeout=timeout_s + 1.0, creationflags=creationflags,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        log.debug("ping %s failed: %s", host, e)
        return None
    if proc.returncode != 0:
        return None
    return parse_latency(proc.stdout)


def parse_latency(output: str) -> Optional[float]:
    m = _LATENCY_RE.search(output or "")
    if not m:
        return None
    try:
        return float(m.group(1))
    except ValueError:
        return None


class ConnectivityReader(Reader):
    """
    Reachability of a target host. Unreachable is a normal state
    (status False, latency 0), never an error.
    """

    def __init__(
        self,
        host: str = "1.1.1.1",
        timeout_s: float = 1.0,
        interval_s: float = 1,
        disabled: bool = False,
        probe: Probe = ping_once,
        pool: Optional[QtCore.QThreadPool] = None,
    ):
        super().__init__("connectivity", interval_s, pool)
        self.host = host
        self.timeout_s = timeout_s
        self._disabled = disabled
        self._probe = probe

    @property
    def disabled(self) -> bool:
        return self._disabled

    def set_host(self, host: str) -> None:
        self.host = host

    def set_disabled(self, disabled: bool) -> None:
        """Disabling pushes the offline sample right away instead of on the next tick."""
        self._disabled = disabled
        # samples taken under the previous state are stale once they arrive
        self.invalidate_pending()
        if disabled:
            self._deliver(ConnectivitySample())

    def sample(self) -> ConnectivitySample:
        if self._disabled:
            return ConnectivitySample()
        try:
            latency = self._probe(self.host, self.timeout_s)
        except Exception as e:
            log.debug("probe of %s raised: %s", self.host, e)
            latency = None
        # disabled while the probe was running
        if latency is None or self._disabled:
            return ConnectivitySample()
        return ConnectivitySample(status=True, latency_ms=latency)
