"""Aggregator side: receive endpoint and worker table."""

from .server import AggregatorServer
from .table import WorkerTable

__all__ = ["AggregatorServer", "WorkerTable"]
