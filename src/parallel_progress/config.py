# parallel_progress/config.py
"""Configuration for progress monitoring."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MonitorConfig:
    """Options recognized by ProgressMonitor."""

    # Loop
    total_iterations: int

    # Reporting
    indexed: bool = False  # Workers pass the global loop index to increment(); one shared step size

    # Display
    show_worker_progress: bool = False  # One bar per worker in addition to the total
    progress_update_period: float = 1.0  # Seconds between renders
    title: str = ""
    start_delay: Optional[float] = None  # If None, defaults to 2 * progress_update_period
    bar_width: int = 100

    # Transport
    host: str = "127.0.0.1"  # Interface the aggregator binds; workers send here
    receive_timeout: float = 0.1  # Receiver thread poll interval (also bounds close latency)
    recv_buffer_bytes: Optional[int] = 4 * 1024 * 1024

    def __post_init__(self):
        if not isinstance(self.total_iterations, int) or isinstance(self.total_iterations, bool):
            raise ValueError(
                f"total_iterations must be an integer, got {type(self.total_iterations).__name__}"
            )
        if self.total_iterations < 1:
            raise ValueError(f"total_iterations must be positive, got {self.total_iterations}")
        if self.progress_update_period <= 0:
            raise ValueError(
                f"progress_update_period must be positive, got {self.progress_update_period}"
            )
        if self.start_delay is not None and self.start_delay < 0:
            raise ValueError(f"start_delay must be non-negative, got {self.start_delay}")
        if self.receive_timeout <= 0:
            raise ValueError(f"receive_timeout must be positive, got {self.receive_timeout}")
        if self.bar_width < 10:
            raise ValueError(f"bar_width must be at least 10, got {self.bar_width}")

    @property
    def effective_start_delay(self) -> float:
        if self.start_delay is None:
            return 2 * self.progress_update_period
        return self.start_delay
