"""Data model and wire format shared by workers and the aggregator."""

from .types import (
    Address,
    LoopSpec,
    ConnectionDescriptor,
    WorkerRecord,
    AggregateState,
)
from .wire import (
    MessageKind,
    ProgressMessage,
    MESSAGE_SIZE,
    encode_message,
    decode_message,
)

__all__ = [
    # Data model
    "Address",
    "LoopSpec",
    "ConnectionDescriptor",
    "WorkerRecord",
    "AggregateState",

    # Wire format
    "MessageKind",
    "ProgressMessage",
    "MESSAGE_SIZE",
    "encode_message",
    "decode_message",
]
