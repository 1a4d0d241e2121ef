#!/usr/bin/env python3
"""
Run a synthetic parallel loop with a live progress display.

Examples:
  python -m parallel_progress --iterations 200000 --workers 8
  python -m parallel_progress --iterations 5000 --delay 0.001 --show-workers
  python -m parallel_progress --log-dir ./logs --title "demo loop"
"""

from __future__ import annotations

import argparse
import logging
import multiprocessing as mp
import os
import signal
import sys
import time
from datetime import datetime
from typing import List, Optional, Sequence

from setproctitle import setproctitle

from .logger import setup_logger
from .monitor import ProgressMonitor

__all__ = ["main", "run_demo", "split_iterations", "chunk_tasks"]

logger = logging.getLogger(__name__)

LINE_WIDTH = 100


def split_iterations(total: int, parts: int) -> List[int]:
    """
    Split a loop into near-equal chunk sizes.

    Examples:
        >>> split_iterations(10, 3)
        [4, 3, 3]
    """
    parts = max(1, min(parts, total))
    base, remainder = divmod(total, parts)
    return [base + (1 if i < remainder else 0) for i in range(parts)]


def format_elapsed_time(seconds: float) -> str:
    """Format elapsed time for display."""
    if seconds >= 3600:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h{minutes:02d}m"
    elif seconds >= 60:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m{secs:02d}s"
    else:
        return f"{seconds:.1f}s"


def _init_worker() -> None:
    setproctitle(f"ppg:worker[{os.getpid()}]")
    # Leave interrupt handling to the parent
    signal.signal(signal.SIGINT, signal.SIG_IGN)


def _run_chunk(args) -> int:
    """
    Pool task: burn through one chunk, reporting each iteration.

    The chunk covers global loop indices ``first .. first + n - 1``; the
    index only matters when the monitor is indexed.
    """
    ppm, first, n_iterations, delay = args
    for i in range(first, first + n_iterations):
        if delay:
            time.sleep(delay)
        ppm.increment(i)
    ppm.flush()
    return n_iterations


def chunk_tasks(ppm, chunk_sizes: Sequence[int], delay: float = 0.0) -> List[tuple]:
    """Pool task arguments with 1-based starting indices for each chunk."""
    tasks = []
    first = 1
    for n in chunk_sizes:
        tasks.append((ppm, first, n, delay))
        first += n
    return tasks


def print_header(iterations: int, workers: int, chunks: int, ppm: ProgressMonitor) -> None:
    host, port = ppm.address
    lines = [
        "",
        "PARALLEL LOOP PROGRESS",
        "━" * LINE_WIDTH,
        f"Start Time: {datetime.now():%Y-%m-%d %H:%M:%S}",
        "",
        f"Iterations:           {iterations:,}",
        f"Workers:              {workers}",
        f"Chunks:               {chunks}",
        f"Step size:            {ppm.step_size:,}",
        f"Aggregator:           {host}:{port}",
        "",
    ]
    print("\n".join(lines), flush=True)


def run_demo(
    iterations: int,
    workers: int,
    chunks: Optional[int] = None,
    delay: float = 0.0,
    show_worker_progress: bool = False,
    period: float = 1.0,
    title: str = "",
    quiet: bool = False,
    indexed: bool = False,
) -> int:
    """
    Run the demo loop on a spawned process pool.

    Returns:
        Number of iterations the workers completed
    """
    setproctitle("ppg:main")
    chunk_sizes = split_iterations(iterations, chunks or workers * 4)

    ctx = mp.get_context("spawn")
    start = time.perf_counter()
    with ctx.Pool(workers, initializer=_init_worker) as pool:
        with ProgressMonitor(
            iterations,
            pool=pool,
            show_worker_progress=show_worker_progress,
            progress_update_period=period,
            title=title,
            indexed=indexed,
        ) as ppm:
            if not quiet:
                print_header(iterations, workers, len(chunk_sizes), ppm)
            tasks = chunk_tasks(ppm, chunk_sizes, delay)
            completed = sum(pool.imap_unordered(_run_chunk, tasks))
        state = ppm.sample_aggregate()

    elapsed = time.perf_counter() - start
    logger.info(
        "Loop finished: %d iterations, %d reported, %s",
        completed, state.reported_iterations, format_elapsed_time(elapsed),
    )
    if not quiet:
        print(f"\nCompleted {completed:,} iterations in {format_elapsed_time(elapsed)}", flush=True)
    return completed


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="parallel_progress",
        description="Run a synthetic parallel loop with aggregate progress reporting.",
    )
    ap.add_argument("--iterations", type=int, default=100_000, help="Total loop iterations")
    ap.add_argument("--workers", type=int, default=os.cpu_count() or 2, help="Pool size")
    ap.add_argument("--chunks", type=int, default=None, help="Number of pool tasks (default: 4 per worker)")
    ap.add_argument("--delay", type=float, default=0.0, help="Seconds of simulated work per iteration")
    ap.add_argument("--show-workers", action="store_true", help="Show one bar per worker")
    ap.add_argument("--indexed", action="store_true", help="Report by global loop index")
    ap.add_argument("--period", type=float, default=1.0, help="Seconds between display updates")
    ap.add_argument("--title", default="", help="Title of the total-progress bar")
    ap.add_argument("--log-dir", default=None, help="Write a log file to this directory")
    ap.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.iterations < 1 or args.workers < 1:
        print("ERROR: --iterations and --workers must be positive", file=sys.stderr)
        return 2

    if args.log_dir:
        setup_logger(
            args.log_dir,
            level=logging.DEBUG if args.verbose else logging.INFO,
            force=True,
        )

    try:
        run_demo(
            args.iterations,
            args.workers,
            chunks=args.chunks,
            delay=args.delay,
            show_worker_progress=args.show_workers,
            period=args.period,
            title=args.title,
            indexed=args.indexed,
        )
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
