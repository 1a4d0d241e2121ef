"""Rendering of aggregate progress."""

from .renderer import Renderer
from .sinks import ProgressSink, NullSink, TqdmSink

__all__ = ["Renderer", "ProgressSink", "NullSink", "TqdmSink"]
