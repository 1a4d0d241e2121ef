# protocol/types.py
"""Shared types for progress reporting."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional, Tuple

from ..sampling import compute_step_size

__all__ = [
    "Address",
    "LoopSpec",
    "ConnectionDescriptor",
    "WorkerRecord",
    "AggregateState",
]

Address = Tuple[str, int]


@dataclass(frozen=True)
class LoopSpec:
    """Shape of the parallel loop being monitored."""

    total_iterations: int
    """Iterations in the whole loop, across all workers"""

    worker_count: int
    """Number of workers the loop is spread over"""

    indexed: bool = False
    """Report by global loop index (one shared step) instead of per-worker counts"""

    def __post_init__(self):
        if not isinstance(self.total_iterations, int) or self.total_iterations < 1:
            raise ValueError(
                f"total_iterations must be a positive integer, got {self.total_iterations!r}"
            )
        if not isinstance(self.worker_count, int) or self.worker_count < 1:
            raise ValueError(
                f"worker_count must be a positive integer, got {self.worker_count!r}"
            )

    @property
    def step_size(self) -> int:
        """
        Reporting interval for this loop.

        Per-worker counting divides the loop by the worker count; indexed
        reporting samples the single global index range.
        """
        denominator = 1 if self.indexed else self.worker_count
        return compute_step_size(self.total_iterations, denominator)

    @property
    def iterations_per_worker(self) -> float:
        """Expected share of one worker, assuming an even split."""
        return self.total_iterations / self.worker_count


@dataclass(frozen=True)
class ConnectionDescriptor:
    """
    Everything a worker needs to start reporting.

    This is the only object that crosses the process boundary; workers
    rebuild their reporter from it rather than from a live monitor.
    """

    host: str
    port: int
    step_size: int
    total_iterations: int
    worker_count: int
    session_id: str
    indexed: bool = False  # Workers report on global loop-index multiples

    @property
    def address(self) -> Address:
        return (self.host, self.port)


@dataclass
class WorkerRecord:
    """Aggregator-side state for one worker."""

    worker_id: int
    progress: int = 0  # Highest cumulative count received
    address: Optional[Address] = None  # Source address of the last datagram
    connected: bool = False
    updates_received: int = 0  # Update datagrams applied, duplicates included

    def copy(self) -> "WorkerRecord":
        return WorkerRecord(
            worker_id=self.worker_id,
            progress=self.progress,
            address=self.address,
            connected=self.connected,
            updates_received=self.updates_received,
        )


@dataclass(frozen=True)
class AggregateState:
    """Immutable snapshot of loop progress at a point in time."""

    total_progress: float
    """Fraction of all iterations reported, clamped to [0, 1]"""

    worker_fractions: Tuple[float, ...] = ()
    """Per-worker fraction of an even share, in first-contact order"""

    connected_workers: int = 0
    reported_iterations: int = 0
    timestamp: float = field(default_factory=time.perf_counter)

    @property
    def is_complete(self) -> bool:
        return self.total_progress >= 1.0
