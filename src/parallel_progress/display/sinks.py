# display/sinks.py
"""Progress sinks: where sampled progress ends up."""

from __future__ import annotations

from typing import List, Optional, Sequence, TextIO

from tqdm import tqdm

__all__ = ["ProgressSink", "NullSink", "TqdmSink"]

BAR_FORMAT = "{desc} {percentage:3.0f}%|{bar}| [{elapsed}<{remaining}]"


class ProgressSink:
    """
    Display contract used by the renderer.

    ``update`` receives the total fraction and, in per-worker mode, one
    fraction per worker. All values are already clamped to [0, 1].
    """

    def update(self, total: float, workers: Sequence[float] = ()) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class NullSink(ProgressSink):
    """Discards all progress (headless runs)."""

    def update(self, total: float, workers: Sequence[float] = ()) -> None:
        pass


class TqdmSink(ProgressSink):
    """Terminal progress bars: one for the total, optionally one per worker."""

    resolution = 1000

    def __init__(
        self,
        title: str = "",
        show_worker_progress: bool = False,
        ncols: int = 100,
        file: Optional[TextIO] = None,
        leave: bool = True,
    ):
        """
        Create the total-progress bar.

        Args:
            title: Description of the total bar
            show_worker_progress: Add a bar per worker as workers appear
            ncols: Bar width in characters
            file: Output stream (default: stderr, as tqdm does)
            leave: Keep the bars on screen after closing
        """
        self.show_worker_progress = show_worker_progress
        self.ncols = ncols
        self.file = file
        self.leave = leave
        self._closed = False

        if not title and show_worker_progress:
            title = "Total progress"
        self._bars: List[tqdm] = [self._make_bar(title, position=0)]

    def _make_bar(self, desc: str, position: int) -> tqdm:
        return tqdm(
            total=self.resolution,
            desc=desc,
            position=position,
            ncols=self.ncols,
            file=self.file,
            leave=self.leave,
            bar_format=BAR_FORMAT,
        )

    @property
    def bars(self) -> List[tqdm]:
        return list(self._bars)

    def _set(self, bar: tqdm, fraction: float) -> None:
        n = round(min(1.0, max(0.0, fraction)) * self.resolution)
        if n != bar.n:
            bar.update(n - bar.n)

    def update(self, total: float, workers: Sequence[float] = ()) -> None:
        if self._closed:
            return

        self._set(self._bars[0], total)
        if not self.show_worker_progress:
            return

        for i, fraction in enumerate(workers, start=1):
            if i >= len(self._bars):
                self._bars.append(self._make_bar(f"Worker {i}", position=i))
            self._set(self._bars[i], fraction)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for bar in reversed(self._bars):
            bar.close()
