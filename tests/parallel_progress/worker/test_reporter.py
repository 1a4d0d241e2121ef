# tests/parallel_progress/worker/test_reporter.py
from __future__ import annotations

import os
import threading
import time

import pytest

from parallel_progress.aggregator import AggregatorServer
from parallel_progress.protocol import (
    ConnectionDescriptor,
    LoopSpec,
    MessageKind,
    decode_message,
)
from parallel_progress.worker import reporter as reporter_mod
from parallel_progress.worker.reporter import (
    ReporterState,
    WorkerReporter,
    attach_reporter,
    close_reporters,
    detach_reporter,
)


# --- helpers -----------------------------------------------------------------


class FakeSocket:
    """Captures datagrams instead of sending them."""

    def __init__(self, fail_with: Exception | None = None):
        self.sent: list[tuple[bytes, tuple]] = []
        self.fail_with = fail_with
        self.close_calls = 0

    def sendto(self, payload, address):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((payload, address))
        return len(payload)

    def close(self):
        self.close_calls += 1

    @property
    def messages(self):
        return [decode_message(p) for p, _ in self.sent]

    @property
    def values(self):
        return [m.value for m in self.messages]


def _descriptor(step_size: int = 1, total: int = 1000, port: int = 9, session: str = "s1"):
    return ConnectionDescriptor(
        host="127.0.0.1",
        port=port,
        step_size=step_size,
        total_iterations=total,
        worker_count=1,
        session_id=session,
    )


def _wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture(autouse=True)
def _clean_registry():
    yield
    close_reporters()


# --- tests -------------------------------------------------------------------


def test_construction_sends_one_registration():
    sock = FakeSocket()
    r = WorkerReporter(_descriptor(), worker_id=7, sock=sock)

    assert r.state is ReporterState.REGISTERED
    assert len(sock.sent) == 1
    msg = sock.messages[0]
    assert msg.worker_id == 7
    assert msg.kind is MessageKind.REGISTRATION
    assert sock.sent[0][1] == ("127.0.0.1", 9)


def test_default_worker_id_is_process_id():
    r = WorkerReporter(_descriptor(), sock=FakeSocket())
    assert r.worker_id == os.getpid()


def test_reports_only_on_step_multiples():
    sock = FakeSocket()
    r = WorkerReporter(_descriptor(step_size=3), worker_id=1, sock=sock)
    for _ in range(10):
        r.increment()

    assert r.count == 10
    assert sock.values == [0, 3, 6, 9]
    assert r.state is ReporterState.REPORTING
    assert r.last_sent == 9


def test_step_one_reports_every_increment():
    sock = FakeSocket()
    r = WorkerReporter(_descriptor(step_size=1), worker_id=1, sock=sock)
    for _ in range(5):
        r.increment()
    assert sock.values == [0, 1, 2, 3, 4, 5]


def test_hundred_thousand_increments_send_exactly_hundred_updates():
    sock = FakeSocket()
    loop = LoopSpec(total_iterations=1_000_000, worker_count=10)
    d = _descriptor(step_size=loop.step_size, total=loop.total_iterations)
    r = WorkerReporter(d, worker_id=1, sock=sock)

    for _ in range(100_000):
        r.increment()
    r.close()

    updates = [m for m in sock.messages if m.kind is MessageKind.UPDATE]
    assert len(updates) == 100
    assert updates[-1].value == 100_000
    # 100,000 is a step multiple, so close() has nothing left to flush
    assert r.messages_sent == 101


def test_close_flushes_unsent_remainder():
    sock = FakeSocket()
    r = WorkerReporter(_descriptor(step_size=4), worker_id=1, sock=sock)
    for _ in range(10):
        r.increment()
    r.close()

    assert sock.values == [0, 4, 8, 10]
    assert r.closed
    assert sock.close_calls == 1


def test_flush_is_noop_when_nothing_new():
    sock = FakeSocket()
    r = WorkerReporter(_descriptor(step_size=2), worker_id=1, sock=sock)
    r.flush()  # nothing counted yet
    r.increment()
    r.increment()
    r.flush()  # 2 already sent
    assert sock.values == [0, 2]


def test_close_is_idempotent_and_stops_reporting():
    sock = FakeSocket()
    r = WorkerReporter(_descriptor(step_size=1), worker_id=1, sock=sock)
    r.close()
    r.close()
    r.increment()
    r.flush()

    assert sock.close_calls == 1
    assert sock.values == [0]
    assert r.count == 1  # still counted, just not sent


def test_send_failures_never_raise():
    sock = FakeSocket(fail_with=BlockingIOError("buffer full"))
    r = WorkerReporter(_descriptor(step_size=1), worker_id=1, sock=sock)
    for _ in range(3):
        r.increment()

    assert r.count == 3
    assert r.messages_sent == 0
    assert r.send_failures == 4  # registration + 3 updates
    assert r.last_sent == 0


def test_failed_update_is_resent_by_flush():
    sock = FakeSocket()
    r = WorkerReporter(_descriptor(step_size=2), worker_id=1, sock=sock)
    sock.fail_with = ConnectionRefusedError()
    r.increment()
    r.increment()  # lost
    sock.fail_with = None
    r.flush()
    assert sock.values == [0, 2]


def test_context_manager_closes():
    sock = FakeSocket()
    with WorkerReporter(_descriptor(step_size=5), worker_id=1, sock=sock) as r:
        r.increment()
    assert r.closed
    assert sock.values == [0, 1]


def test_unreachable_host_degrades_to_silent_reporter(monkeypatch):
    def _fail(*a, **k):
        raise OSError("no route")

    monkeypatch.setattr(reporter_mod.socket, "getaddrinfo", _fail)
    r = WorkerReporter(_descriptor(), worker_id=1)
    r.increment()
    r.close()
    assert r.messages_sent == 0
    assert r.send_failures >= 1


def test_reports_reach_a_real_aggregator():
    loop = LoopSpec(total_iterations=50, worker_count=1)
    with AggregatorServer(loop, receive_timeout=0.05) as srv:
        host, port = srv.address
        d = _descriptor(step_size=loop.step_size, total=50, port=port)
        with WorkerReporter(d, worker_id=42) as r:
            for _ in range(50):
                r.increment()
        assert _wait_until(lambda: srv.sample_aggregate().is_complete)

        rec = srv.table.get(42)
        assert rec.connected
        assert rec.progress == 50
        assert rec.updates_received == 50


def test_attach_reporter_reuses_one_reporter_per_session():
    with AggregatorServer(LoopSpec(total_iterations=10, worker_count=1)) as srv:
        port = srv.address[1]
        a = attach_reporter(_descriptor(port=port, session="one"))
        b = attach_reporter(_descriptor(port=port, session="one"))
        c = attach_reporter(_descriptor(port=port, session="two"))

        assert a is b
        assert a is not c
        assert a.worker_id == os.getpid()


def test_detach_reporter_closes_and_forgets():
    with AggregatorServer(LoopSpec(total_iterations=10, worker_count=1)) as srv:
        d = _descriptor(port=srv.address[1], session="gone")
        first = attach_reporter(d)
        detach_reporter("gone")
        assert first.closed

        second = attach_reporter(d)
        assert second is not first
        assert not second.closed

        detach_reporter("never-attached")  # no-op


# --- indexed reporting -------------------------------------------------------


def _indexed_descriptor(step_size: int, total: int):
    return ConnectionDescriptor(
        host="127.0.0.1",
        port=9,
        step_size=step_size,
        total_iterations=total,
        worker_count=3,
        session_id="indexed",
        indexed=True,
    )


def test_indexed_reports_on_index_multiples_with_local_count():
    sock = FakeSocket()
    r = WorkerReporter(_indexed_descriptor(step_size=3, total=10), worker_id=1, sock=sock)
    # This worker happens to get these indices of a 10-iteration loop
    for i in (2, 3, 5, 6, 7, 10):
        r.increment(i)

    # i=3 -> 2 done, i=6 -> 4 done, i=10 (last index) -> 6 done
    assert sock.values == [0, 2, 4, 6]
    assert r.count == 6
    assert r.last_sent == 6


def test_indexed_last_index_reports_even_off_step():
    sock = FakeSocket()
    r = WorkerReporter(_indexed_descriptor(step_size=4, total=7), worker_id=1, sock=sock)
    r.increment(7)
    assert sock.values == [0, 1]


def test_indexed_requires_an_index():
    r = WorkerReporter(_indexed_descriptor(step_size=1, total=5), worker_id=1, sock=FakeSocket())
    with pytest.raises(TypeError):
        r.increment()


def test_per_worker_mode_ignores_index():
    sock = FakeSocket()
    r = WorkerReporter(_descriptor(step_size=2), worker_id=1, sock=sock)
    for i in (3, 5, 7, 9):
        r.increment(i)
    assert sock.values == [0, 2, 4]


# --- thread workers ----------------------------------------------------------


def test_attach_reporter_gives_each_thread_its_own_reporter():
    found = {}

    def grab(name):
        found[name] = attach_reporter(_descriptor(session="threads"))

    threads = [threading.Thread(target=grab, args=(n,)) for n in ("a", "b")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    main = attach_reporter(_descriptor(session="threads"))

    assert found["a"] is not found["b"]
    assert main.worker_id == os.getpid()
    assert len({found["a"].worker_id, found["b"].worker_id, main.worker_id}) == 3

    detach_reporter("threads")
    assert found["a"].closed and found["b"].closed and main.closed
