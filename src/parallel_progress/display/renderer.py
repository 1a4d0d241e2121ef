# display/renderer.py
"""Fixed-period rendering of aggregate progress."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Tuple

from setproctitle import setthreadtitle

from ..protocol import AggregateState
from .sinks import ProgressSink

__all__ = ["Renderer"]

logger = logging.getLogger(__name__)


class Renderer:
    """
    Periodically samples progress and pushes it to a sink.

    Rendering runs on its own timer, independent of how many datagrams
    arrive, so display cost is bounded by the period rather than by report
    volume. The sink is called at most once per period.
    """

    def __init__(
        self,
        source: Callable[[], AggregateState],
        sink: ProgressSink,
        period: float = 1.0,
        start_delay: Optional[float] = None,
        show_worker_progress: bool = False,
        expected_workers: int = 0,
    ):
        """
        Args:
            source: Returns the current aggregate state
            sink: Display to update
            period: Seconds between renders
            start_delay: Seconds before the first render (default: two periods)
            show_worker_progress: Pass per-worker fractions to the sink
            expected_workers: Pad the per-worker view to this many slots
        """
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")

        self.source = source
        self.sink = sink
        self.period = period
        self.start_delay = 2 * period if start_delay is None else max(0.0, start_delay)
        self.show_worker_progress = show_worker_progress
        self.expected_workers = expected_workers
        self.renders = 0
        self.render_failures = 0  # Consecutive; the first of a run is logged with its traceback

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._finished = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the render timer. No-op if already started or finished."""
        with self._lock:
            if self._finished or self._thread is not None:
                return
            self._thread = threading.Thread(target=self._run, name="ppg:renderer", daemon=True)
            self._thread.start()

    def _run(self) -> None:
        setthreadtitle("ppg:renderer")

        if self._stop_event.wait(self.start_delay):
            return

        while True:
            try:
                state = self.render_once()
            except Exception as e:
                self.render_failures += 1
                if self.render_failures == 1:
                    logger.error("Render failed: %s", e, exc_info=True)
                else:
                    logger.debug("Render failed again (%d in a row): %s", self.render_failures, e)
            else:
                if self.render_failures:
                    logger.info("Rendering recovered after %d failures", self.render_failures)
                    self.render_failures = 0
                if not self.show_worker_progress and state.is_complete:
                    logger.debug("Loop complete after %d renders; timer stopping", self.renders)
                    return

            if self._stop_event.wait(self.period):
                return

    def _worker_view(self, state: AggregateState) -> Tuple[float, ...]:
        if not self.show_worker_progress:
            return ()
        fractions = state.worker_fractions
        missing = self.expected_workers - len(fractions)
        if missing > 0:
            fractions = fractions + (0.0,) * missing
        return fractions

    def render_once(self) -> AggregateState:
        """Sample the source and update the sink once."""
        state = self.source()
        self.sink.update(state.total_progress, self._worker_view(state))
        self.renders += 1
        return state

    def stop(self) -> None:
        """Stop the timer without touching the sink."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.period + 1.0)
            if thread.is_alive():
                logger.warning("Renderer thread did not stop in time")

    def finish(self) -> None:
        """
        Stop the timer, show completion, and close the sink.

        Safe to call repeatedly; only the first call renders.
        """
        with self._lock:
            if self._finished:
                return
            self._finished = True

        self.stop()

        slots = 0
        if self.show_worker_progress:
            slots = self.expected_workers
            try:
                slots = max(slots, len(self.source().worker_fractions))
            except Exception as e:
                logger.debug("Final sample failed: %s", e)

        try:
            self.sink.update(1.0, (1.0,) * slots)
            self.renders += 1
        finally:
            self.sink.close()
