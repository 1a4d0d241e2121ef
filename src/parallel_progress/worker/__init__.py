"""Worker-side reporting."""

from .reporter import (
    ReporterState,
    WorkerReporter,
    attach_reporter,
    detach_reporter,
    close_reporters,
)

__all__ = [
    "ReporterState",
    "WorkerReporter",
    "attach_reporter",
    "detach_reporter",
    "close_reporters",
]
