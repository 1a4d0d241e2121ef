# tests/parallel_progress/aggregator/test_table.py
from __future__ import annotations

import threading

import pytest

from parallel_progress.aggregator.table import WorkerTable
from parallel_progress.protocol import LoopSpec


@pytest.fixture()
def table():
    return WorkerTable(LoopSpec(total_iterations=100, worker_count=4))


def test_registration_connects_without_progress(table):
    rec = table.register(1, ("10.0.0.5", 5001))
    assert rec.connected is True
    assert rec.progress == 0
    assert rec.address == ("10.0.0.5", 5001)

    state = table.sample()
    assert state.total_progress == 0.0
    assert state.reported_iterations == 0
    assert state.connected_workers == 1


def test_update_overwrites_with_cumulative_value(table):
    table.register(1)
    table.update(1, 10)
    table.update(1, 25)
    assert table.get(1).progress == 25
    assert table.sample().total_progress == pytest.approx(0.25)


def test_duplicate_update_is_idempotent(table):
    table.register(1)
    table.update(1, 40)
    before = table.sample()
    table.update(1, 40)
    after = table.sample()
    assert after.reported_iterations == before.reported_iterations == 40
    assert after.total_progress == before.total_progress


@pytest.mark.parametrize("order", [(10, 30), (30, 10)])
def test_out_of_order_updates_keep_the_maximum(table, order):
    table.register(2)
    for v in order:
        table.update(2, v)
    assert table.get(2).progress == 30


def test_late_registration_does_not_regress_progress(table):
    table.register(1, ("h", 1))
    table.update(1, 20)
    rec = table.register(1, ("h", 2))
    assert rec.progress == 20
    assert rec.address == ("h", 2)


def test_update_without_registration_creates_connected_record(table):
    rec = table.update(7, 5, ("h", 9))
    assert rec.connected is True
    assert rec.progress == 5
    assert rec.updates_received == 1
    assert len(table) == 1


def test_records_keep_first_contact_order(table):
    table.register(30)
    table.register(10)
    table.update(20, 1)
    assert [r.worker_id for r in table.records()] == [30, 10, 20]


def test_sample_fractions_and_clamping():
    table = WorkerTable(LoopSpec(total_iterations=100, worker_count=4))
    table.register(1)
    table.register(2)
    table.update(1, 50)  # exactly one even share (100 / 2 connected)
    table.update(2, 10)

    state = table.sample()
    assert state.connected_workers == 2
    assert state.worker_fractions == pytest.approx((1.0, 0.2))
    assert state.total_progress == pytest.approx(0.6)

    # Uneven split: a worker past its share shows as full, not >1
    table.update(1, 80)
    table.update(2, 90)
    state = table.sample()
    assert state.worker_fractions == (1.0, 1.0)
    assert state.total_progress == 1.0
    assert state.reported_iterations == 170


def test_empty_table_samples_zero(table):
    state = table.sample()
    assert state.total_progress == 0.0
    assert state.worker_fractions == ()
    assert state.connected_workers == 0


def test_concurrent_writers_and_reader():
    loop = LoopSpec(total_iterations=4 * 5000, worker_count=4)
    table = WorkerTable(loop)
    samples = []
    stop = threading.Event()

    def writer(worker_id):
        table.register(worker_id)
        for v in range(1, 5001):
            table.update(worker_id, v)

    def reader():
        while not stop.is_set():
            samples.append(table.sample().total_progress)

    r = threading.Thread(target=reader)
    r.start()
    writers = [threading.Thread(target=writer, args=(i,)) for i in range(4)]
    for t in writers:
        t.start()
    for t in writers:
        t.join()
    stop.set()
    r.join()

    assert table.sample().total_progress == 1.0
    assert all(0.0 <= s <= 1.0 for s in samples)
    assert all(r.updates_received == 5000 for r in table.records())
