# parallel_progress/monitor.py
"""Progress monitor for data-parallel loops."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from .aggregator import AggregatorServer
from .config import MonitorConfig
from .display import ProgressSink, Renderer, TqdmSink
from .errors import NoPoolError
from .protocol import Address, AggregateState, ConnectionDescriptor, LoopSpec
from .worker import WorkerReporter, attach_reporter, detach_reporter

__all__ = ["ProgressMonitor", "resolve_worker_count"]

logger = logging.getLogger(__name__)

_CLOSED_POOL_STATES = ("CLOSE", "TERMINATE")


def resolve_worker_count(pool: Any = None, num_workers: Optional[int] = None) -> int:
    """
    Determine how many workers a loop is spread over.

    Args:
        pool: A multiprocessing.Pool or concurrent.futures executor
        num_workers: Explicit worker count (takes precedence over pool)

    Returns:
        Worker count

    Raises:
        NoPoolError: If there is no usable pool and no explicit count
    """
    if num_workers is not None:
        return num_workers

    if pool is None:
        raise NoPoolError(
            "You must construct a pool (or pass num_workers) before creating a ProgressMonitor"
        )

    # ThreadPoolExecutor sets _shutdown, ProcessPoolExecutor _shutdown_thread
    shut_down = getattr(pool, "_shutdown", False) is True or getattr(pool, "_shutdown_thread", False) is True
    if getattr(pool, "_state", None) in _CLOSED_POOL_STATES or shut_down:
        raise NoPoolError(f"{type(pool).__name__} has already been shut down")

    # multiprocessing.Pool keeps _processes; concurrent.futures executors keep _max_workers
    for attr in ("_processes", "_max_workers"):
        count = getattr(pool, attr, None)
        if count:
            return int(count)

    raise NoPoolError(f"Cannot determine the worker count of {type(pool).__name__}")


class ProgressMonitor:
    """
    Aggregate progress display for a loop spread over parallel workers.

    Construct the monitor in the coordinating process after creating the
    pool, hand it to the workers, and call ``increment()`` once per finished
    iteration. When a monitor is pickled into a worker process it arrives as
    that process's WorkerReporter, so the same ``increment()`` call works on
    both sides. Threads of a thread pool calling ``increment()`` on the
    monitor itself each get their own reporter.

    With ``indexed=True`` workers pass the global loop index instead, as in
    ``ppm.increment(i)`` for ``i`` in ``1..total_iterations``; reports are
    then sampled on one shared step size over the whole index range.

    Example:
        >>> with mp.Pool(4) as pool, ProgressMonitor(10_000, pool=pool) as ppm:
        ...     pool.map(work_chunk, [(ppm, chunk) for chunk in chunks])
    """

    def __init__(
        self,
        total_iterations: int,
        *,
        pool: Any = None,
        num_workers: Optional[int] = None,
        sink: Optional[ProgressSink] = None,
        **options: Any,
    ):
        """
        Bind the aggregator and start the render timer.

        Args:
            total_iterations: Iterations in the whole loop
            pool: Worker pool the loop runs on (used to size the display)
            num_workers: Worker count, if no pool is given
            sink: Display to render into (default: tqdm bars)
            **options: Any other MonitorConfig field (show_worker_progress,
                progress_update_period, title, host, ...)

        Raises:
            NoPoolError: If neither pool nor num_workers is usable
            ValueError: If any option is invalid
        """
        self.config = MonitorConfig(total_iterations=total_iterations, **options)
        worker_count = resolve_worker_count(pool, num_workers)
        self.loop = LoopSpec(
            total_iterations=total_iterations,
            worker_count=worker_count,
            indexed=self.config.indexed,
        )
        self._closed = False
        self._owned_reporters = []

        self.server = AggregatorServer(
            self.loop,
            host=self.config.host,
            receive_timeout=self.config.receive_timeout,
            recv_buffer_bytes=self.config.recv_buffer_bytes,
        )
        try:
            host, port = self.server.address
            self.descriptor = ConnectionDescriptor(
                host=host,
                port=port,
                step_size=self.loop.step_size,
                total_iterations=self.loop.total_iterations,
                worker_count=self.loop.worker_count,
                session_id=uuid.uuid4().hex,
                indexed=self.loop.indexed,
            )

            if sink is None:
                sink = TqdmSink(
                    title=self.config.title,
                    show_worker_progress=self.config.show_worker_progress,
                    ncols=self.config.bar_width,
                )
            self.sink = sink
            self.renderer = Renderer(
                self.server.sample_aggregate,
                sink,
                period=self.config.progress_update_period,
                start_delay=self.config.effective_start_delay,
                show_worker_progress=self.config.show_worker_progress,
                expected_workers=worker_count,
            )

            self.server.start()
            self.renderer.start()
        except BaseException:
            self.server.close()
            raise

    # Pickling a monitor ships only its descriptor; the receiving process
    # gets its own reporter.
    def __reduce__(self):
        return (attach_reporter, (self.descriptor,))

    @property
    def step_size(self) -> int:
        return self.descriptor.step_size

    @property
    def address(self) -> Address:
        return self.descriptor.address

    @property
    def closed(self) -> bool:
        return self._closed

    def sample_aggregate(self) -> AggregateState:
        """Current aggregate progress."""
        return self.server.sample_aggregate()

    def reporter(self, worker_id: Optional[int] = None) -> WorkerReporter:
        """
        Create a reporter for a thread-based worker.

        The monitor closes (and flushes) every reporter it hands out when it
        is itself closed.

        Args:
            worker_id: Identity to register with (default: process id, which
                is only unique for process-based workers)
        """
        reporter = WorkerReporter(self.descriptor, worker_id=worker_id)
        self._owned_reporters.append(reporter)
        return reporter

    def increment(self, index: Optional[int] = None) -> None:
        """
        Record one iteration finished in the calling worker.

        Args:
            index: Global 1-based loop index (required when the monitor is
                indexed, ignored otherwise)
        """
        attach_reporter(self.descriptor).increment(index)

    def flush(self) -> None:
        """Send the calling worker's unsent count."""
        attach_reporter(self.descriptor).flush()

    def close(self) -> None:
        """
        Flush local reporters, show completion, and release the endpoint.

        Safe to call any number of times; never raises.
        """
        if self._closed:
            return
        self._closed = True

        for reporter in self._owned_reporters:
            reporter.close()
        detach_reporter(self.descriptor.session_id)

        try:
            self.renderer.finish()
        except Exception as e:
            logger.warning("Final render failed: %s", e, exc_info=True)

        self.server.close()

        state = self.server.sample_aggregate()
        logger.info(
            "Monitor closed: %d/%d iterations reported by %d workers",
            state.reported_iterations, self.loop.total_iterations, state.connected_workers,
        )

    def __enter__(self) -> "ProgressMonitor":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def __repr__(self) -> str:
        host, port = self.address
        return (
            f"ProgressMonitor(total_iterations={self.loop.total_iterations}, "
            f"workers={self.loop.worker_count}, step_size={self.step_size}, "
            f"address={host}:{port}, closed={self._closed})"
        )
