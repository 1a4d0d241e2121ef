# aggregator/server.py
"""UDP endpoint that collects progress datagrams from workers."""

from __future__ import annotations

import logging
import socket
import threading
from typing import Optional

from setproctitle import setthreadtitle

from ..errors import MalformedMessageError
from ..protocol import (
    Address,
    AggregateState,
    LoopSpec,
    MessageKind,
    WorkerRecord,
    decode_message,
)
from .table import WorkerTable

__all__ = ["AggregatorServer"]

logger = logging.getLogger(__name__)

# Read more than one record so oversized datagrams are detected, not truncated
RECV_SIZE = 64
WILDCARD_HOSTS = ("", "0.0.0.0", "::")


class AggregatorServer:
    """
    Single receive endpoint for a monitored loop.

    The socket is bound at construction so the address can be published
    before any worker starts. ``start()`` launches a receiver thread that
    applies each datagram to the worker table as it arrives; readers call
    ``sample_aggregate()`` on their own schedule.
    """

    def __init__(
        self,
        loop: LoopSpec,
        host: str = "127.0.0.1",
        receive_timeout: float = 0.1,
        recv_buffer_bytes: Optional[int] = 4 * 1024 * 1024,
    ):
        """
        Bind the receive endpoint to an ephemeral port.

        Args:
            loop: Shape of the loop being monitored
            host: Interface to bind; wildcard hosts advertise the machine's hostname
            receive_timeout: Poll interval of the receiver thread (seconds)
            recv_buffer_bytes: Requested kernel receive buffer (None to keep default)

        Raises:
            OSError: If the endpoint cannot be bound
        """
        self.loop = loop
        self.table = WorkerTable(loop)
        self.receive_timeout = receive_timeout

        self.messages_received = 0
        self.dropped_messages = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()
        self._closed = False

        self._sock = self._bind(host, recv_buffer_bytes)
        bound_host, port = self._sock.getsockname()[:2]
        advertised = socket.gethostname() if host in WILDCARD_HOSTS else bound_host
        self.address: Address = (advertised, port)

        logger.info(
            "Aggregator listening on %s:%d (iterations=%d, workers=%d, step=%d)",
            bound_host, port, loop.total_iterations, loop.worker_count, loop.step_size,
        )

    def _bind(self, host: str, recv_buffer_bytes: Optional[int]) -> socket.socket:
        family, socktype, proto, _, sockaddr = socket.getaddrinfo(
            host or None, 0, type=socket.SOCK_DGRAM, flags=socket.AI_PASSIVE
        )[0]
        sock = socket.socket(family, socktype, proto)
        try:
            if recv_buffer_bytes:
                try:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, recv_buffer_bytes)
                except OSError as e:
                    logger.debug("Could not enlarge receive buffer: %s", e)
            sock.bind(sockaddr)
            sock.settimeout(self.receive_timeout)
        except OSError:
            sock.close()
            raise
        return sock

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the receiver thread. No-op if already running or closed."""
        with self._state_lock:
            if self._closed:
                logger.warning("Aggregator already closed; not starting receiver")
                return
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._receive_loop,
                name="ppg:receiver",
                daemon=True,
            )
            self._thread.start()

    def _receive_loop(self) -> None:
        setthreadtitle("ppg:receiver")

        while not self._stop_event.is_set():
            try:
                payload, address = self._sock.recvfrom(RECV_SIZE)
            except socket.timeout:
                continue
            except OSError as e:
                if self._stop_event.is_set():
                    break
                logger.debug("Receive failed: %s", e)
                continue

            self.handle_datagram(payload, address)

        logger.debug("Receiver stopped after %d datagrams", self.messages_received)

    def handle_datagram(self, payload: bytes, address: Optional[Address] = None) -> Optional[WorkerRecord]:
        """
        Apply one datagram to the worker table.

        Malformed datagrams and updates beyond the loop size are logged and
        discarded.

        Args:
            payload: Raw datagram bytes
            address: Sender address, if known

        Returns:
            Copy of the affected record, or None if the datagram was discarded
        """
        self.messages_received += 1
        if address is not None:
            address = tuple(address[:2])

        try:
            message = decode_message(payload)
        except MalformedMessageError as e:
            self.dropped_messages += 1
            logger.warning("Discarding datagram from %s: %s", address, e)
            return None

        if message.kind is MessageKind.REGISTRATION:
            return self.table.register(message.worker_id, address)

        if message.value > self.loop.total_iterations:
            self.dropped_messages += 1
            logger.warning(
                "Discarding update from worker id=%d: %d exceeds loop size %d",
                message.worker_id, message.value, self.loop.total_iterations,
            )
            return None

        return self.table.update(message.worker_id, message.value, address)

    def sample_aggregate(self) -> AggregateState:
        """Snapshot aggregate progress; safe from any thread."""
        return self.table.sample()

    def _drain(self) -> None:
        """Apply datagrams already queued on the socket."""
        try:
            self._sock.setblocking(False)
            while True:
                payload, address = self._sock.recvfrom(RECV_SIZE)
                self.handle_datagram(payload, address)
        except (BlockingIOError, socket.timeout):
            pass
        except OSError as e:
            logger.debug("Drain stopped: %s", e)

    def close(self) -> None:
        """
        Stop receiving and release the endpoint. Safe to call repeatedly.

        Datagrams already queued when the receiver stops are still applied;
        anything arriving later is dropped by the transport.
        """
        with self._state_lock:
            if self._closed:
                return
            self._closed = True

        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self.receive_timeout * 10 + 1.0)
            if self._thread.is_alive():
                logger.warning("Receiver thread did not stop in time")
            else:
                self._drain()

        try:
            self._sock.close()
        except OSError as e:
            logger.debug("Socket close failed: %s", e)

        logger.info(
            "Aggregator closed (%d datagrams, %d dropped, %d workers)",
            self.messages_received, self.dropped_messages, len(self.table),
        )

    def __enter__(self) -> "AggregatorServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False
