# aggregator/table.py
"""Lock-guarded table of per-worker progress."""

from __future__ import annotations

import logging
import threading
import time
from typing import Dict, List, Optional

from ..protocol import Address, AggregateState, LoopSpec, WorkerRecord

__all__ = ["WorkerTable"]

logger = logging.getLogger(__name__)


class WorkerTable:
    """
    Last-known progress of every worker in one loop.

    The receiver thread writes and the render thread reads; both go through
    a single lock. Updates are cumulative counts, so applying the maximum
    seen makes duplicate and reordered datagrams harmless.
    """

    def __init__(self, loop: LoopSpec):
        self.loop = loop
        self._records: Dict[int, WorkerRecord] = {}  # insertion order = first contact
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def register(self, worker_id: int, address: Optional[Address] = None) -> WorkerRecord:
        """
        Mark a worker as connected.

        A first registration creates the record at progress 0. Registering a
        known worker again refreshes its address but keeps its progress.
        """
        with self._lock:
            record = self._records.get(worker_id)
            if record is None:
                record = WorkerRecord(worker_id=worker_id)
                self._records[worker_id] = record
                logger.debug("Registered worker id=%d from %s", worker_id, address)
            else:
                logger.debug(
                    "Worker id=%d registered again from %s (progress kept at %d)",
                    worker_id, address, record.progress,
                )
            record.address = address
            record.connected = True
            return record.copy()

    def update(self, worker_id: int, value: int, address: Optional[Address] = None) -> WorkerRecord:
        """
        Apply a cumulative progress count from a worker.

        Stale counts never lower recorded progress. An update from a worker
        whose registration was lost creates its record.
        """
        with self._lock:
            record = self._records.get(worker_id)
            if record is None:
                record = WorkerRecord(worker_id=worker_id)
                self._records[worker_id] = record
                logger.debug("Update from unregistered worker id=%d; adding it", worker_id)
            if value < record.progress:
                logger.debug(
                    "Stale update for worker id=%d: %d < %d",
                    worker_id, value, record.progress,
                )
            record.progress = max(record.progress, value)
            record.updates_received += 1
            record.connected = True
            if address is not None:
                record.address = address
            return record.copy()

    def get(self, worker_id: int) -> Optional[WorkerRecord]:
        with self._lock:
            record = self._records.get(worker_id)
            return record.copy() if record is not None else None

    def records(self) -> List[WorkerRecord]:
        """Copies of all records in first-contact order."""
        with self._lock:
            return [r.copy() for r in self._records.values()]

    def sample(self) -> AggregateState:
        """
        Compute aggregate progress from the current table.

        Returns:
            AggregateState with total and per-worker fractions clamped to [0, 1]
        """
        with self._lock:
            progress = [r.progress for r in self._records.values()]
            connected = sum(1 for r in self._records.values() if r.connected)

        total_iterations = self.loop.total_iterations
        reported = sum(progress)
        total = min(1.0, max(0.0, reported / total_iterations))

        if connected:
            share = total_iterations / connected
            fractions = tuple(min(1.0, p / share) for p in progress)
        else:
            fractions = tuple(0.0 for _ in progress)

        return AggregateState(
            total_progress=total,
            worker_fractions=fractions,
            connected_workers=connected,
            reported_iterations=reported,
            timestamp=time.perf_counter(),
        )
