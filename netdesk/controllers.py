from __future__ import annotations
import logging
from typing import Callable, Dict, Optional

from PySide6 import QtCore

from .config import IPRefreshPolicy, ResetPolicy
from .scheduler import Completion, Scheduler

log = logging.getLogger(__name__)

DAY = 60 * 60 * 24

# ONCE_PER_MONTH is a flat 30 days, not a calendar month.
RESET_INTERVALS: Dict[ResetPolicy, Optional[int]] = {
    ResetPolicy.AT_START:       None,
    ResetPolicy.NEVER:          None,
    ResetPolicy.ONCE_PER_DAY:   DAY,
    ResetPolicy.ONCE_PER_WEEK:  DAY * 7,
    ResetPolicy.ONCE_PER_MONTH: DAY * 30,
}

IP_REFRESH_INTERVALS: Dict[IPRefreshPolicy, Optional[int]] = {
    IPRefreshPolicy.NEVER:          None,
    IPRefreshPolicy.HOURLY:         60 * 60,
    IPRefreshPolicy.EVERY_12_HOURS: 60 * 60 * 12,
    IPRefreshPolicy.EVERY_24_HOURS: DAY,
}


class _ScheduledController(QtCore.QObject):
    """
    Owns one Scheduler. Firings only act when `ready()` holds
    (module enabled and interfaces present); skipped firings still complete.
    """
    def __init__(self, name: str, ready: Callable[[], bool], parent: Optional[QtCore.QObject] = None):
        super().__init__(parent)
        self.scheduler = Scheduler(name, self)
        self._ready = ready
        self.scheduler.start(self._run)

    def invalidate(self) -> None:
        self.scheduler.stop()

    def _run(self, completion: Completion) -> None:
        if not self._ready():
            log.debug("%s: module not ready, firing skipped", self.scheduler.name)
            return
        self._trigger()
        completion()

    def _trigger(self) -> None:
        raise NotImplementedError


class ResetController(_ScheduledController):
    reset_requested = QtCore.Signal()

    def __init__(
        self,
        policy: ResetPolicy,
        on_reset: Callable[[], None],
        ready: Callable[[], bool],
        parent: Optional[QtCore.QObject] = None,
    ):
        super().__init__("usage-reset", ready, parent)
        self._on_reset = on_reset
        self.policy = policy
        self.set_policy(policy)
        if policy is ResetPolicy.AT_START:
            self._trigger()

    def set_policy(self, policy: ResetPolicy) -> None:
        self.policy = policy
        self.scheduler.configure(RESET_INTERVALS[policy])

    def _trigger(self) -> None:
        log.info("Resetting total network usage (%s)", self.policy.value)
        self._on_reset()
        self.reset_requested.emit()


class IPRefreshController(_ScheduledController):
    """Announces that the public IP should be looked up again; the lookup itself happens elsewhere."""
    refresh_requested = QtCore.Signal()

    def __init__(
        self,
        policy: IPRefreshPolicy,
        on_refresh: Callable[[], None],
        ready: Callable[[], bool],
        parent: Optional[QtCore.QObject] = None,
    ):
        super().__init__("public-ip", ready, parent)
        self._on_refresh = on_refresh
        self.policy = policy
        self.set_policy(policy)

    def set_policy(self, policy: IPRefreshPolicy) -> None:
        self.policy = policy
        self.scheduler.configure(IP_REFRESH_INTERVALS[policy])

    def _trigger(self) -> None:
        log.info("Requesting public IP refresh")
        self._on_refresh()
        self.refresh_requested.emit()
