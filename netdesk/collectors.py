from __future__ import annotations
import csv
import io
import logging
import re
import socket
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import psutil

from .models import ConnectionType, InterfaceDescriptor, WifiDetails

log = logging.getLogger(__name__)


def _is_macos() -> bool:
    return sys.platform == "darwin"


def _run(cmd, timeout: float = 2.0) -> Optional[str]:
    """Run a helper binary, returning stdout or None on any failure."""
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.TimeoutExpired) as e:
        log.debug("%s failed: %s", cmd[0], e)
        return None
    if proc.returncode != 0:
        return None
    return proc.stdout


@dataclass(frozen=True)
class RawCounters:
    bytes_sent: int
    bytes_recv: int


@dataclass(frozen=True)
class InterfaceInfo:
    descriptor: InterfaceDescriptor
    connection_type: ConnectionType
    local_address: Optional[str] = None


@dataclass(frozen=True)
class ProcCounters:
    name: str
    bytes_recv: int
    bytes_sent: int


# ──────────────────────────────────────────────
# Interfaces – counters / active interface / Wi-Fi
# ──────────────────────────────────────────────
_VIRTUAL_PREFIXES = (
    "lo", "docker", "veth", "br-", "virbr", "vmnet", "vboxnet",
    "awdl", "llw", "utun", "anpi", "bridge", "gif", "stf", "ap",
)

_DISPLAY_NAMES = {
    ConnectionType.WIFI:      "Wi-Fi",
    ConnectionType.ETHERNET:  "Ethernet",
    ConnectionType.BLUETOOTH: "Bluetooth PAN",
}


class InterfaceCollector:
    """psutil-backed view of the machine's network interfaces."""

    def __init__(self):
        self._hardware_ports: Optional[Dict[str, str]] = None

    def available(self) -> bool:
        try:
            stats = psutil.net_if_stats()
        except OSError:
            return False
        return any(not name.startswith("lo") for name in stats)

    def is_up(self, name: str) -> bool:
        try:
            st = psutil.net_if_stats().get(name)
        except OSError:
            return False
        return bool(st and st.isup)

    def counters(self, name: str) -> Optional[RawCounters]:
        try:
            c = psutil.net_io_counters(pernic=True).get(name)
        except OSError:
            return None
        if c is None:
            return None
        return RawCounters(bytes_sent=int(c.bytes_sent), bytes_recv=int(c.bytes_recv))

    def active_interface(self) -> Optional[InterfaceInfo]:
        """
        Busiest interface that is up, not virtual and holds an IPv4 address.
        """
        try:
            stats = psutil.net_if_stats()
            addrs = psutil.net_if_addrs()
            io_by_nic = psutil.net_io_counters(pernic=True)
        except OSError as e:
            log.debug("interface enumeration failed: %s", e)
            return None

        best = None
        best_traffic = -1
        for name, st in stats.items():
            if not st.isup or name.startswith(_VIRTUAL_PREFIXES):
                continue
            ipv4 = next((a.address for a in addrs.get(name, []) if a.family == socket.AF_INET), None)
            if not ipv4:
                continue
            c = io_by_nic.get(name)
            traffic = (c.bytes_sent + c.bytes_recv) if c else 0
            if traffic > best_traffic:
                best, best_traffic = (name, ipv4), traffic

        if best is None:
            return None
        name, ipv4 = best
        mac = next((a.address for a in addrs.get(name, []) if a.family == psutil.AF_LINK), "")
        kind = self.connection_type(name)
        display = self._hardware_port_names().get(name) or _DISPLAY_NAMES.get(kind, name)
        return InterfaceInfo(
            descriptor=InterfaceDescriptor(display_name=display, system_name=name, address=mac or ""),
            connection_type=kind,
            local_address=ipv4,
        )

    def connection_type(self, name: str) -> ConnectionType:
        port = self._hardware_port_names().get(name, "").lower()
        if port:
            if "wi-fi" in port or "airport" in port:
                return ConnectionType.WIFI
            if "bluetooth" in port:
                return ConnectionType.BLUETOOTH
            if "ethernet" in port or "lan" in port or "thunderbolt" in port:
                return ConnectionType.ETHERNET
        if Path(f"/sys/class/net/{name}/wireless").exists() or name.startswith("wl"):
            return ConnectionType.WIFI
        if name.startswith(("bnep", "bt", "pan")):
            return ConnectionType.BLUETOOTH
        if name.startswith(("eth", "en")):
            return ConnectionType.ETHERNET
        return ConnectionType.OTHER

    def wifi_details(self, name: str) -> WifiDetails:
        if _is_macos():
            out = _run(["networksetup", "-getairportnetwork", name])
            return parse_airport_network(out or "")
        out = _run(["iw", "dev", name, "link"])
        return parse_iw_link(out or "")

    def _hardware_port_names(self) -> Dict[str, str]:
        """macOS only: {"en0": "Wi-Fi", ...}, cached for the process lifetime."""
        if self._hardware_ports is None:
            self._hardware_ports = {}
            if _is_macos():
                out = _run(["networksetup", "-listallhardwareports"]) or ""
                port = None
                for line in out.splitlines():
                    if line.startswith("Hardware Port:"):
                        port = line.split(":", 1)[1].strip()
                    elif line.startswith("Device:") and port:
                        self._hardware_ports[line.split(":", 1)[1].strip()] = port
                        port = None
        return self._hardware_ports


def _freq_to_channel(mhz: int) -> Optional[int]:
    if mhz == 2484:
        return 14
    if 2412 <= mhz < 2484:
        return (mhz - 2407) // 5
    if 5955 <= mhz <= 7115:
        return (mhz - 5950) // 5
    if 5000 <= mhz < 5955:
        return (mhz - 5000) // 5
    return None


def _freq_to_band(mhz: int) -> Optional[str]:
    if 2400 <= mhz < 2500:
        return "2.4 GHz"
    if 5000 <= mhz < 5925:
        return "5 GHz"
    if 5925 <= mhz <= 7125:
        return "6 GHz"
    return None


_STANDARDS = (("EHT", "802.11be"), ("HE", "802.11ax"), ("VHT", "802.11ac"), ("HT", "802.11n"))


def parse_iw_link(text: str) -> WifiDetails:
    """Parse `iw dev <if> link`; fields missing from the output stay None."""
    if not text or text.startswith("Not connected"):
        return WifiDetails()

    values: Dict[str, object] = {}
    m = re.search(r"Connected to ([0-9a-fA-F:]{17})", text)
    if m:
        values["bssid"] = m.group(1).lower()
    m = re.search(r"^\s*SSID:\s*(.+)$", text, re.MULTILINE)
    if m:
        values["ssid"] = m.group(1).strip()
    m = re.search(r"^\s*signal:\s*(-?\d+)", text, re.MULTILINE)
    if m:
        values["rssi"] = int(m.group(1))
    m = re.search(r"^\s*freq:\s*(\d+)", text, re.MULTILINE)
    if m:
        mhz = int(float(m.group(1)))
        band = _freq_to_band(mhz)
        ch = _freq_to_channel(mhz)
        if band:
            values["channel_band"] = band
        if ch is not None:
            values["channel_number"] = str(ch)
    m = re.search(r"^\s*tx bitrate:\s*([\d.]+)\s*MBit/s(.*)$", text, re.MULTILINE)
    if m:
        values["transmit_rate"] = float(m.group(1))
        rest = m.group(2)
        w = re.search(r"(\d+)MHz", rest)
        if w:
            values["channel_width"] = f"{w.group(1)} MHz"
        for marker, standard in _STANDARDS:
            if re.search(rf"\b{marker}-", rest):
                values["standard"] = standard
                break
    if "channel_number" in values:
        extra = ", ".join(v for v in (values.get("channel_band"), values.get("channel_width")) if v)
        values["channel"] = f"{values['channel_number']} ({extra})" if extra else values["channel_number"]
    return WifiDetails(**values)


def parse_airport_network(text: str) -> WifiDetails:
    m = re.search(r"Current Wi-Fi Network:\s*(.+)$", text or "", re.MULTILINE)
    return WifiDetails(ssid=m.group(1).strip()) if m else WifiDetails()


# ──────────────────────────────────────────────
# Processes – cumulative per-pid socket traffic
# ──────────────────────────────────────────────
_NETTOP_CMD = [
    "nettop", "-P", "-L", "1", "-n", "-x",
    "-k", "time,interface,state,rx_dupe,rx_ooo,re-tx,rtt_avg,rcvsize,tx_win,tc_class,tc_mgt,cc_algo,P,C,R,W,arch",
]


def parse_nettop(text: str) -> Dict[int, ProcCounters]:
    """
    nettop CSV: header row, then `name.pid,bytes_in,bytes_out,`.
    Rows that do not parse are skipped.
    """
    out: Dict[int, ProcCounters] = {}
    for row in csv.reader(io.StringIO(text)):
        if len(row) < 3 or "." not in row[0]:
            continue
        name, _, pid_s = row[0].rpartition(".")
        try:
            pid = int(pid_s)
            recv = int(row[1] or 0)
            sent = int(row[2] or 0)
        except ValueError:
            continue
        out[pid] = ProcCounters(name=name, bytes_recv=recv, bytes_sent=sent)
    return out


class ProcessCollector:
    """
    Cumulative traffic per process.

    macOS: nettop socket byte counters.
    Elsewhere: processes owning inet sockets, attributed their read/write
    character counters (read_chars/write_chars where psutil has them).
    counters() returns None when the enumeration itself failed, so callers
    can tell "no traffic" from "could not look".
    """

    def counters(self) -> Optional[Dict[int, ProcCounters]]:
        if _is_macos():
            out = _run(_NETTOP_CMD, timeout=5.0)
            if out is None:
                return None
            return parse_nettop(out)
        return self._psutil_counters()

    def _psutil_counters(self) -> Optional[Dict[int, ProcCounters]]:
        try:
            conns = psutil.net_connections(kind="inet")
        except (psutil.AccessDenied, OSError) as e:
            log.debug("socket enumeration failed: %s", e)
            return None

        out: Dict[int, ProcCounters] = {}
        for pid in {c.pid for c in conns if c.pid}:
            try:
                p = psutil.Process(pid)
                name = p.name()
                ioc = p.io_counters()
            except (psutil.NoSuchProcess, psutil.AccessDenied, AttributeError):
                continue
            recv = getattr(ioc, "read_chars", ioc.read_bytes)
            sent = getattr(ioc, "write_chars", ioc.write_bytes)
            out[int(pid)] = ProcCounters(name=name, bytes_recv=int(recv), bytes_sent=int(sent))
        return out
