# parallel_progress/errors.py
"""Exception types raised by the progress-reporting subsystem."""

from __future__ import annotations

__all__ = ["ProgressError", "NoPoolError", "MalformedMessageError"]


class ProgressError(Exception):
    """Base class for progress monitor errors."""


class NoPoolError(ProgressError):
    """Raised when a monitor is constructed without a worker pool to size it."""


class MalformedMessageError(ProgressError, ValueError):
    """Raised when a datagram does not decode to a progress message."""

    def __init__(self, message: str, payload: bytes = b""):
        super().__init__(message)
        self.payload = payload
