from datetime import datetime
from types import SimpleNamespace

import psutil
import pytest

import netdesk.collectors as collectors
from netdesk.collectors import ProcessCollector, parse_nettop
from netdesk.models import ProcessSample
from netdesk.processes import ProcessReader, top_processes

T0 = datetime(2024, 5, 1, 12, 0, 0)


@pytest.fixture
def reader(processes):
    r = ProcessReader(processes, now=lambda: T0)
    yield r
    r.stop()


def by_pid(rows):
    return {r.pid: r for r in rows}


def test_first_observation_reports_zero(reader, processes):
    processes.set(10, "curl", recv=5_000_000, sent=1_000)
    rows = reader.read()
    assert rows == [ProcessSample(pid=10, name="curl", observed_at=T0, download=0, upload=0)]


def test_delta_between_samples(reader, processes):
    processes.set(10, "curl", recv=100, sent=50)
    processes.set(11, "ssh", recv=10, sent=10)
    reader.read()
    processes.set(10, "curl", recv=400, sent=80)
    processes.set(11, "ssh", recv=15, sent=10)
    rows = by_pid(reader.read())
    assert (rows[10].download, rows[10].upload) == (300, 30)
    assert (rows[11].download, rows[11].upload) == (5, 0)


def test_counter_regression_clamps(reader, processes):
    processes.set(10, "curl", recv=1000, sent=1000)
    reader.read()
    processes.set(10, "curl", recv=10, sent=2000)
    rows = by_pid(reader.read())
    assert rows[10].download == 0
    assert rows[10].upload == 1000


def test_vanished_process_is_dropped(reader, processes):
    processes.set(10, "curl", recv=1, sent=1)
    processes.set(11, "ssh", recv=1, sent=1)
    reader.read()
    processes.drop(11)
    rows = reader.read()
    assert [r.pid for r in rows] == [10]


def test_reused_pid_starts_from_zero(reader, processes):
    processes.set(10, "curl", recv=100, sent=100)
    reader.read()
    processes.set(10, "python", recv=900, sent=900)
    rows = by_pid(reader.read())
    assert rows[10].name == "python"
    assert (rows[10].download, rows[10].upload) == (0, 0)


def test_enumeration_failure_keeps_baseline(reader, processes):
    processes.set(10, "curl", recv=100, sent=100)
    reader.read()
    processes.error = psutil.AccessDenied()
    assert reader.read() == []
    processes.error = None
    processes.set(10, "curl", recv=150, sent=120)
    rows = by_pid(reader.read())
    assert (rows[10].download, rows[10].upload) == (50, 20)


class SocketOwners:
    """psutil stand-in: one curl process whose io counters the test moves."""

    def __init__(self):
        self.chars = 0
        self.error = None

    def net_connections(self, kind="inet"):
        if self.error:
            raise self.error
        return [SimpleNamespace(pid=10)]

    def process(self, pid):
        return SimpleNamespace(
            name=lambda: "curl",
            io_counters=lambda: SimpleNamespace(
                read_chars=self.chars, write_chars=self.chars,
                read_bytes=0, write_bytes=0,
            ),
        )


@pytest.mark.parametrize("error", [psutil.AccessDenied(), OSError("no /proc")])
def test_socket_enumeration_failure_keeps_baseline(monkeypatch, error):
    owners = SocketOwners()
    monkeypatch.setattr(collectors, "_is_macos", lambda: False)
    monkeypatch.setattr(collectors.psutil, "net_connections", owners.net_connections)
    monkeypatch.setattr(collectors.psutil, "Process", owners.process)
    reader = ProcessReader(ProcessCollector(), now=lambda: T0)

    owners.chars = 100
    assert by_pid(reader.read())[10].download == 0

    owners.error = error
    assert ProcessCollector().counters() is None
    assert reader.read() == []

    owners.error = None
    owners.chars = 500
    rows = by_pid(reader.read())
    assert (rows[10].download, rows[10].upload) == (400, 400)


def test_nettop_failure_keeps_baseline(monkeypatch):
    outputs = iter([
        ",bytes_in,bytes_out,\ncurl.10,100,40,\n",
        None,
        ",bytes_in,bytes_out,\ncurl.10,500,90,\n",
    ])
    monkeypatch.setattr(collectors, "_is_macos", lambda: True)
    monkeypatch.setattr(collectors, "_run", lambda cmd, timeout: next(outputs))
    reader = ProcessReader(ProcessCollector(), now=lambda: T0)

    reader.read()
    assert reader.read() == []
    rows = by_pid(reader.read())
    assert (rows[10].download, rows[10].upload) == (400, 50)


def test_top_processes_orders_and_limits():
    rows = [
        ProcessSample(1, "a", T0, download=10, upload=0),
        ProcessSample(2, "b", T0, download=500, upload=5),
        ProcessSample(3, "c", T0, download=0, upload=100),
    ]
    assert [r.pid for r in top_processes(rows, 2)] == [2, 3]
    assert top_processes(rows, 0) == []


def test_parse_nettop():
    text = (
        ",bytes_in,bytes_out,\n"
        "launchd.1,0,0,\n"
        "Google Chrome H.623,123456,7890,\n"
        "garbage line\n"
    )
    out = parse_nettop(text)
    assert set(out) == {1, 623}
    assert out[623].name == "Google Chrome H"
    assert (out[623].bytes_recv, out[623].bytes_sent) == (123456, 7890)
