# protocol/wire.py
"""
Binary datagram format for worker progress messages.

Each datagram is exactly two unsigned 64-bit integers in network byte
order: ``[worker_id, value]``. A value of 0 is a registration; any other
value is the worker's cumulative iteration count.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import Enum

from ..errors import MalformedMessageError

__all__ = [
    "MessageKind",
    "ProgressMessage",
    "MESSAGE_STRUCT",
    "MESSAGE_SIZE",
    "MAX_VALUE",
    "encode_message",
    "decode_message",
]

MESSAGE_STRUCT = struct.Struct("!QQ")
MESSAGE_SIZE = MESSAGE_STRUCT.size
MAX_VALUE = 2**64 - 1


class MessageKind(Enum):
    REGISTRATION = "registration"
    UPDATE = "update"


@dataclass(frozen=True)
class ProgressMessage:
    """One worker-to-aggregator datagram."""

    worker_id: int
    value: int

    @property
    def kind(self) -> MessageKind:
        return MessageKind.REGISTRATION if self.value == 0 else MessageKind.UPDATE

    @classmethod
    def registration(cls, worker_id: int) -> "ProgressMessage":
        return cls(worker_id=worker_id, value=0)

    @classmethod
    def update(cls, worker_id: int, value: int) -> "ProgressMessage":
        if value <= 0:
            raise ValueError(f"update value must be positive, got {value}")
        return cls(worker_id=worker_id, value=value)


def encode_message(message: ProgressMessage) -> bytes:
    """
    Pack a message into its 16-byte wire form.

    Raises:
        ValueError: If either field does not fit an unsigned 64-bit integer
    """
    for name in ("worker_id", "value"):
        v = getattr(message, name)
        if not 0 <= v <= MAX_VALUE:
            raise ValueError(f"{name} out of range for wire format: {v}")
    return MESSAGE_STRUCT.pack(message.worker_id, message.value)


def decode_message(payload: bytes) -> ProgressMessage:
    """
    Unpack a datagram into a message.

    Raises:
        MalformedMessageError: If the payload is not exactly one record
    """
    if len(payload) != MESSAGE_SIZE:
        raise MalformedMessageError(
            f"expected {MESSAGE_SIZE}-byte datagram, got {len(payload)} bytes",
            payload=bytes(payload[:64]),
        )
    worker_id, value = MESSAGE_STRUCT.unpack(payload)
    return ProgressMessage(worker_id=worker_id, value=value)
