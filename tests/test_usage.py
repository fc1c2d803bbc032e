import random

import pytest

from netdesk.models import Bandwidth, ConnectionType, RemoteAddress, WifiDetails
from netdesk.usage import UsageReader


class Clock:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def reader(interfaces, clock):
    interfaces.set("en0", 1000, 5000)
    r = UsageReader(interfaces, details_interval_s=60, clock=clock)
    yield r
    r.stop()


def test_first_sample_is_baseline(reader):
    s = reader.read()
    assert s.status is True
    assert s.bandwidth == Bandwidth()
    assert s.total == Bandwidth()
    assert s.interface.system_name == "en0"
    assert s.connection_type is ConnectionType.ETHERNET
    assert s.local_address == "192.168.1.10"


def test_delta_and_total(reader, interfaces):
    reader.read()
    interfaces.set("en0", 1500, 7000)
    s = reader.read()
    assert s.bandwidth == Bandwidth(upload=500, download=2000)
    assert s.total == Bandwidth(upload=500, download=2000)
    assert s.widget_value == 2500.0

    interfaces.set("en0", 1600, 7100)
    s = reader.read()
    assert s.bandwidth == Bandwidth(upload=100, download=100)
    assert s.total == Bandwidth(upload=600, download=2100)


def test_counter_regression_clamps_to_zero(reader, interfaces):
    reader.read()
    interfaces.set("en0", 3000, 9000)
    reader.read()
    interfaces.set("en0", 10, 20)   # counters restarted
    s = reader.read()
    assert s.bandwidth == Bandwidth()
    assert s.total == Bandwidth(upload=2000, download=4000)

    interfaces.set("en0", 110, 220)
    s = reader.read()
    assert s.bandwidth == Bandwidth(upload=100, download=200)


def test_bandwidth_never_negative_and_total_never_drops(reader, interfaces):
    rng = random.Random(7)
    previous_total = Bandwidth()
    for _ in range(200):
        interfaces.set("en0", rng.randint(0, 10_000), rng.randint(0, 10_000))
        s = reader.read()
        assert s.bandwidth.upload >= 0 and s.bandwidth.download >= 0
        assert s.total.upload >= previous_total.upload
        assert s.total.download >= previous_total.download
        previous_total = s.total


def test_reset_zeroes_total_only(reader, interfaces):
    reader.read()
    interfaces.set("en0", 2000, 6000)
    reader.read()

    reader.reset()
    interfaces.set("en0", 2100, 6300)
    s = reader.read()
    assert s.bandwidth == Bandwidth(upload=100, download=300)
    assert s.total == Bandwidth(upload=100, download=300)

    interfaces.set("en0", 2150, 6400)
    s = reader.read()
    assert s.total == Bandwidth(upload=150, download=400)


def test_interface_change_rebaselines(reader, interfaces, info_factory):
    reader.read()
    interfaces.set("en0", 1500, 5500)
    reader.read()

    interfaces.info = info_factory("en1")
    interfaces.set("en1", 900_000, 900_000)
    reader.get_details()
    s = reader.read()
    assert s.interface.system_name == "en1"
    assert s.bandwidth == Bandwidth()
    assert s.total == Bandwidth(upload=500, download=500)

    interfaces.set("en1", 900_100, 900_200)
    s = reader.read()
    assert s.bandwidth == Bandwidth(upload=100, download=200)


def test_interface_going_down_forces_resolution(reader, interfaces, info_factory):
    reader.read()
    calls = interfaces.resolve_calls
    interfaces.up = False
    interfaces.info = info_factory("en1")
    interfaces.set("en1", 50, 50)
    s = reader.read()
    assert interfaces.resolve_calls == calls + 1
    assert s.interface.system_name == "en1"
    assert s.bandwidth == Bandwidth()


def test_no_interface_keeps_last_values(reader, interfaces):
    reader.read()
    interfaces.set("en0", 1200, 5400)
    reader.read()

    interfaces.info = None
    interfaces.up = False
    s = reader.read()
    assert s.status is False
    assert s.interface is None
    assert s.connection_type is None
    assert s.local_address is None
    assert s.bandwidth == Bandwidth(upload=200, download=400)
    assert s.total == Bandwidth(upload=200, download=400)


def test_details_resolved_on_coarser_cadence(reader, interfaces, clock):
    reader.read()
    reader.read()
    assert interfaces.resolve_calls == 1

    clock.t = 61
    reader.read()
    assert interfaces.resolve_calls == 2

    reader.get_details()
    assert interfaces.resolve_calls == 2
    reader.read()
    assert interfaces.resolve_calls == 3
    reader.read()
    assert interfaces.resolve_calls == 3


def test_wifi_details_only_on_wifi(reader, interfaces, info_factory):
    s = reader.read()
    assert s.wifi == WifiDetails()
    assert interfaces.wifi_calls == 0

    interfaces.info = info_factory("wlan0", ConnectionType.WIFI)
    interfaces.set("wlan0", 0, 0)
    reader.get_details()
    s = reader.read()
    assert s.connection_type is ConnectionType.WIFI
    assert s.wifi.ssid == "home"

    interfaces.info = info_factory("eth0", ConnectionType.ETHERNET)
    interfaces.set("eth0", 0, 0)
    reader.get_details()
    s = reader.read()
    assert s.wifi == WifiDetails()


def test_remote_address_is_carried(reader):
    reader.set_remote_address(v4="203.0.113.7")
    s = reader.read()
    assert s.remote_address == RemoteAddress(v4="203.0.113.7", v6=None)


def test_delivers_only_while_started(reader):
    got = []
    reader.ready.connect(lambda v: got.append(v))
    reader.read()
    assert got == []

    reader.start(immediate=False)
    reader.read()
    assert len(got) == 1

    reader.stop()
    reader.read()
    assert len(got) == 1


def test_public_calls_do_not_wait_for_a_sample_in_flight(reader, interfaces):
    reader.read()
    interfaces.set("en0", 2000, 6000)
    reader.read()

    calls = interfaces.resolve_calls
    with reader._sample_lock:
        reader.reset()
        reader.set_remote_address(v4="198.51.100.4")
        reader.get_details()
        assert interfaces.resolve_calls == calls

    interfaces.set("en0", 2100, 6100)
    s = reader.read()
    assert interfaces.resolve_calls == calls + 1
    assert s.total == Bandwidth(upload=100, download=100)
    assert s.remote_address == RemoteAddress(v4="198.51.100.4", v6=None)
