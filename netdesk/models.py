from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class ConnectionType(str, Enum):
    WIFI      = "wifi"
    ETHERNET  = "ethernet"
    BLUETOOTH = "bluetooth"
    OTHER     = "other"


@dataclass(frozen=True)
class Bandwidth:
    upload: int = 0
    download: int = 0

    def __add__(self, other: "Bandwidth") -> "Bandwidth":
        return Bandwidth(self.upload + other.upload, self.download + other.download)


@dataclass(frozen=True)
class InterfaceDescriptor:
    display_name: str
    system_name: str
    address: str = ""       # hardware (MAC) address


@dataclass(frozen=True)
class RemoteAddress:
    v4: Optional[str] = None
    v6: Optional[str] = None


@dataclass(frozen=True)
class WifiDetails:
    """Every field is filled independently; WifiDetails() is the reset value."""
    country_code: Optional[str] = None
    ssid: Optional[str] = None
    bssid: Optional[str] = None
    rssi: Optional[int] = None
    noise: Optional[int] = None
    transmit_rate: Optional[float] = None

    standard: Optional[str] = None
    mode: Optional[str] = None
    security: Optional[str] = None
    channel: Optional[str] = None

    channel_band: Optional[str] = None
    channel_width: Optional[str] = None
    channel_number: Optional[str] = None


@dataclass(frozen=True)
class UsageSnapshot:
    bandwidth: Bandwidth = field(default_factory=Bandwidth)   # delta over last interval
    total: Bandwidth = field(default_factory=Bandwidth)       # since last reset
    local_address: Optional[str] = None
    remote_address: RemoteAddress = field(default_factory=RemoteAddress)
    interface: Optional[InterfaceDescriptor] = None
    connection_type: Optional[ConnectionType] = None
    status: bool = False
    wifi: WifiDetails = field(default_factory=WifiDetails)
    widget_value: float = 0.0


@dataclass(frozen=True)
class ProcessSample:
    pid: int
    name: str
    observed_at: datetime
    download: int = 0
    upload: int = 0


@dataclass(frozen=True)
class ConnectivitySample:
    status: bool = False
    latency_ms: float = 0.0
