from __future__ import annotations
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

import psutil
from PySide6 import QtCore

from .collectors import ProcCounters, ProcessCollector
from .models import ProcessSample
from .workers import Reader

log = logging.getLogger(__name__)


class ProcessReader(Reader):
    """
    Per-process traffic between two consecutive samples.
    A pid seen for the first time (or reused by another program) reports 0;
    pids missing from the newest snapshot are dropped.
    """

    def __init__(
        self,
        source: Optional[ProcessCollector] = None,
        interval_s: float = 1,
        pool: Optional[QtCore.QThreadPool] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        super().__init__("processes", interval_s, pool)
        self.source = source or ProcessCollector()
        self._now = now
        self._previous: Dict[int, ProcCounters] = {}

    def sample(self) -> List[ProcessSample]:
        try:
            current = self.source.counters()
        except (psutil.Error, OSError) as e:
            log.debug("process enumeration failed: %s", e)
            return []
        if current is None:
            return []

        ts = self._now()
        rows: List[ProcessSample] = []
        for pid, cur in current.items():
            prev = self._previous.get(pid)
            if prev is None or prev.name != cur.name:
                down = up = 0
            else:
                down = max(0, cur.bytes_recv - prev.bytes_recv)
                up   = max(0, cur.bytes_sent - prev.bytes_sent)
            rows.append(ProcessSample(pid=pid, name=cur.name, observed_at=ts, download=down, upload=up))

        self._previous = dict(current)
        return rows


def top_processes(samples: Iterable[ProcessSample], limit: int) -> List[ProcessSample]:
    """Busiest first; ties broken by pid so the order is stable."""
    ranked = sorted(samples, key=lambda s: (-(s.download + s.upload), s.pid))
    return ranked[:max(0, limit)]
