"""Aggregate progress reporting for data-parallel loops."""

from .config import MonitorConfig
from .errors import ProgressError, NoPoolError, MalformedMessageError
from .sampling import compute_step_size
from .protocol import (
    LoopSpec,
    ConnectionDescriptor,
    WorkerRecord,
    AggregateState,
    ProgressMessage,
    MessageKind,
)
from .worker import WorkerReporter, attach_reporter
from .aggregator import AggregatorServer
from .display import Renderer, ProgressSink, NullSink, TqdmSink
from .monitor import ProgressMonitor

__all__ = [
    # Public API
    "ProgressMonitor",
    "MonitorConfig",

    # Building blocks
    "compute_step_size",
    "WorkerReporter",
    "attach_reporter",
    "AggregatorServer",
    "Renderer",

    # Sinks
    "ProgressSink",
    "NullSink",
    "TqdmSink",

    # Data model
    "LoopSpec",
    "ConnectionDescriptor",
    "WorkerRecord",
    "AggregateState",
    "ProgressMessage",
    "MessageKind",

    # Errors
    "ProgressError",
    "NoPoolError",
    "MalformedMessageError",
]
