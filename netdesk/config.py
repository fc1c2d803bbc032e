from __future__ import annotations
from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
import json
import logging
import threading

from PySide6 import QtCore

log = logging.getLogger(__name__)

APP_DIR = Path.home() / ".netdesk"
CFG_PATH = APP_DIR / "config.json"


class ConfigError(ValueError):
    """Raised when an option holds a value outside its enumeration or range."""


# ──────────────────────────────────────────────
# Enumerated options
# ──────────────────────────────────────────────
class SizeUnit(Enum):
    B  = 0
    KB = 1
    MB = 2
    GB = 3
    TB = 4

    def to_bytes(self, amount: int) -> int:
        return int(amount) * (1024 ** self.value)


class ResetPolicy(Enum):
    AT_START       = "atStart"
    NEVER          = "never"
    ONCE_PER_DAY   = "oncePerDay"
    ONCE_PER_WEEK  = "oncePerWeek"
    ONCE_PER_MONTH = "oncePerMonth"


class IPRefreshPolicy(Enum):
    NEVER          = "never"
    HOURLY         = "hour"
    EVERY_12_HOURS = "12"
    EVERY_24_HOURS = "24"


def _parse_enum(enum_cls, value: Any, option: str):
    if isinstance(value, enum_cls):
        return value
    if enum_cls is SizeUnit:
        try:
            return SizeUnit[str(value)]
        except KeyError:
            raise ConfigError(f"{option}: unknown size unit {value!r}") from None
    try:
        return enum_cls(value)
    except ValueError:
        raise ConfigError(f"{option}: unknown value {value!r}") from None


@dataclass(frozen=True)
class ThresholdConfig:
    enabled: bool = False
    amount: int = 0
    unit: SizeUnit = SizeUnit.MB

    def limit_bytes(self) -> int:
        return self.unit.to_bytes(self.amount)


# ──────────────────────────────────────────────
# Module configuration
# ──────────────────────────────────────────────
@dataclass(frozen=True)
class NetConfig:
    # Widget gate
    threshold_enabled: bool = False
    threshold_amount: int = 0
    threshold_unit: SizeUnit = SizeUnit.MB

    # Recurring activities
    public_ip_refresh: IPRefreshPolicy = IPRefreshPolicy.NEVER
    usage_reset: ResetPolicy = ResetPolicy.AT_START

    # Connectivity probe
    icmp_host: str = "1.1.1.1"
    icmp_disabled: bool = False
    icmp_timeout_s: float = 1.0

    # Readers
    process_count: int = 8
    usage_interval_s: int = 1
    process_interval_s: int = 1
    connectivity_interval_s: int = 1
    details_interval_s: int = 60

    @property
    def threshold(self) -> ThresholdConfig:
        return ThresholdConfig(self.threshold_enabled, self.threshold_amount, self.threshold_unit)

    def validate(self) -> "NetConfig":
        if self.threshold_amount < 0:
            raise ConfigError("widgetActivationThreshold must be >= 0")
        if self.process_count < 0:
            raise ConfigError("processes must be >= 0")
        for name in ("usage_interval_s", "process_interval_s",
                     "connectivity_interval_s", "details_interval_s"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be >= 1 second")
        if self.icmp_timeout_s <= 0:
            raise ConfigError("ICMPTimeout must be positive")
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NetConfig":
        """Build from option names (see OPTION_KEYS); unknown keys are ignored."""
        if not isinstance(data, dict):
            raise ConfigError(f"config must be a JSON object, got {type(data).__name__}")
        values: Dict[str, Any] = {}
        for option, attr in OPTION_KEYS.items():
            if option in data:
                values[attr] = _coerce(attr, data[option], option)
        return cls(**values).validate()

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for option, attr in OPTION_KEYS.items():
            v = getattr(self, attr)
            if isinstance(v, SizeUnit):
                v = v.name
            elif isinstance(v, Enum):
                v = v.value
            out[option] = v
        return out


OPTION_KEYS: Dict[str, str] = {
    "widgetActivationThresholdState": "threshold_enabled",
    "widgetActivationThreshold":      "threshold_amount",
    "widgetActivationThresholdSize":  "threshold_unit",
    "publicIPRefreshInterval":        "public_ip_refresh",
    "usageReset":                     "usage_reset",
    "ICMPHost":                       "icmp_host",
    "ICMPDisabled":                   "icmp_disabled",
    "ICMPTimeout":                    "icmp_timeout_s",
    "processes":                      "process_count",
    "updateInterval":                 "usage_interval_s",
    "processesUpdateInterval":        "process_interval_s",
    "connectivityUpdateInterval":     "connectivity_interval_s",
    "detailsUpdateInterval":          "details_interval_s",
}

_ENUM_FIELDS = {
    "threshold_unit":    SizeUnit,
    "public_ip_refresh": IPRefreshPolicy,
    "usage_reset":       ResetPolicy,
}


def _coerce(attr: str, value: Any, option: Optional[str] = None) -> Any:
    option = option or attr
    if attr in _ENUM_FIELDS:
        return _parse_enum(_ENUM_FIELDS[attr], value, option)
    default = NetConfig.__dataclass_fields__[attr].default
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ConfigError(f"{option}: expected a boolean, got {value!r}")
        return value
    try:
        return type(default)(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{option}: invalid value {value!r}") from None


def load_config(path: Path = CFG_PATH) -> NetConfig:
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        cfg = NetConfig()
        save_config(cfg, path)
        return cfg
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return NetConfig.from_dict(data)
    except (OSError, ValueError) as e:
        log.warning("Unreadable config %s (%s), restoring defaults", path, e)
        cfg = NetConfig()
        save_config(cfg, path)
        return cfg


def save_config(cfg: NetConfig, path: Path = CFG_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cfg.to_dict(), indent=2), encoding="utf-8")


# ──────────────────────────────────────────────
# Settings – injected configuration provider
# ──────────────────────────────────────────────
class Settings(QtCore.QObject):
    """
    Holds the current NetConfig and announces changes.
    Readers and controllers never read a global store; they get this object
    (or a plain callable over it) at construction.
    """
    threshold_changed      = QtCore.Signal(object)   # ThresholdConfig
    usage_reset_changed    = QtCore.Signal(object)   # ResetPolicy
    ip_refresh_changed     = QtCore.Signal(object)   # IPRefreshPolicy
    icmp_disabled_changed  = QtCore.Signal(bool)
    icmp_host_changed      = QtCore.Signal(str)
    process_count_changed  = QtCore.Signal(int)
    intervals_changed      = QtCore.Signal()

    _THRESHOLD = {"threshold_enabled", "threshold_amount", "threshold_unit"}
    _INTERVALS = {"usage_interval_s", "process_interval_s",
                  "connectivity_interval_s", "details_interval_s"}

    def __init__(self, cfg: Optional[NetConfig] = None):
        super().__init__()
        self._lock = threading.Lock()
        self._cfg = (cfg or NetConfig()).validate()

    def get(self) -> NetConfig:
        with self._lock:
            return self._cfg

    def threshold(self) -> ThresholdConfig:
        return self.get().threshold

    def update(self, **changes: Any) -> NetConfig:
        known = {f.name for f in fields(NetConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ConfigError(f"unknown option(s): {', '.join(sorted(unknown))}")
        coerced = {k: _coerce(k, v) for k, v in changes.items()}

        with self._lock:
            old = self._cfg
            new = replace(old, **coerced).validate()
            self._cfg = new

        changed = {k for k in coerced if getattr(old, k) != getattr(new, k)}
        if changed & self._THRESHOLD:
            self.threshold_changed.emit(new.threshold)
        if "usage_reset" in changed:
            self.usage_reset_changed.emit(new.usage_reset)
        if "public_ip_refresh" in changed:
            self.ip_refresh_changed.emit(new.public_ip_refresh)
        if "icmp_disabled" in changed:
            self.icmp_disabled_changed.emit(new.icmp_disabled)
        if "icmp_host" in changed:
            self.icmp_host_changed.emit(new.icmp_host)
        if "process_count" in changed:
            self.process_count_changed.emit(new.process_count)
        if changed & self._INTERVALS:
            self.intervals_changed.emit()
        return new
