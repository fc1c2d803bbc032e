import pytest
from PySide6 import QtCore

from netdesk.collectors import InterfaceInfo, ProcCounters, RawCounters
from netdesk.models import ConnectionType, InterfaceDescriptor, WifiDetails


@pytest.fixture(scope="session")
def qapp():
    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])
    yield app


@pytest.fixture(autouse=True)
def _qt(qapp):
    yield
    # flush deferred deletes / queued signals left by the test
    QtCore.QCoreApplication.processEvents()


def make_info(name="en0", kind=ConnectionType.ETHERNET, ip="192.168.1.10"):
    return InterfaceInfo(
        descriptor=InterfaceDescriptor(display_name=name.upper(), system_name=name, address="aa:bb:cc:dd:ee:ff"),
        connection_type=kind,
        local_address=ip,
    )


class FakeInterfaces:
    def __init__(self, info=None):
        self.info = info
        self.present = True
        self.up = True
        self.wifi = WifiDetails(ssid="home", rssi=-50)
        self._counters = {}
        self.resolve_calls = 0
        self.wifi_calls = 0

    def set(self, name, sent, recv):
        self._counters[name] = RawCounters(bytes_sent=sent, bytes_recv=recv)

    def available(self):
        return self.present

    def is_up(self, name):
        return self.up

    def counters(self, name):
        return self._counters.get(name)

    def active_interface(self):
        self.resolve_calls += 1
        return self.info

    def wifi_details(self, name):
        self.wifi_calls += 1
        return self.wifi


class FakeProcesses:
    def __init__(self):
        self.current = {}
        self.error = None

    def set(self, pid, name, recv, sent):
        self.current[pid] = ProcCounters(name=name, bytes_recv=recv, bytes_sent=sent)

    def drop(self, pid):
        self.current.pop(pid, None)

    def counters(self):
        if self.error:
            raise self.error
        return dict(self.current)


@pytest.fixture
def interfaces():
    return FakeInterfaces(make_info())


@pytest.fixture
def processes():
    return FakeProcesses()


@pytest.fixture
def info_factory():
    return make_info
