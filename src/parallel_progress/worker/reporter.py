# worker/reporter.py
"""Worker-side progress reporter."""

from __future__ import annotations

import logging
import os
import socket
import threading
from enum import Enum
from multiprocessing import util
from typing import Dict, Optional, Tuple

from ..protocol import ConnectionDescriptor, ProgressMessage, encode_message

__all__ = [
    "ReporterState",
    "WorkerReporter",
    "attach_reporter",
    "detach_reporter",
    "close_reporters",
]

logger = logging.getLogger(__name__)


class ReporterState(Enum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    REPORTING = "reporting"
    CLOSED = "closed"


class WorkerReporter:
    """
    Accumulates loop increments inside one worker and reports them.

    Every ``step_size`` increments the cumulative count is sent to the
    aggregator as a single fire-and-forget datagram. Nothing on the hot path
    blocks: the socket is non-blocking and send failures are dropped.

    A reporter belongs to one worker and is not meant to be shared between
    threads; thread-based loops should give each thread its own reporter.
    """

    def __init__(
        self,
        descriptor: ConnectionDescriptor,
        worker_id: Optional[int] = None,
        sock: Optional[socket.socket] = None,
    ):
        """
        Open the outbound channel and register with the aggregator.

        Args:
            descriptor: Connection details published by the monitor
            worker_id: Identity reported to the aggregator (default: process id)
            sock: Pre-built datagram socket (default: a new non-blocking UDP socket)
        """
        self.descriptor = descriptor
        self.worker_id = os.getpid() if worker_id is None else int(worker_id)
        self.step_size = descriptor.step_size
        self.indexed = descriptor.indexed
        self.total_iterations = descriptor.total_iterations

        self.count = 0
        self.last_sent = 0
        self.messages_sent = 0
        self.send_failures = 0
        self.state = ReporterState.UNREGISTERED

        self._sock = sock
        self._sockaddr = descriptor.address
        if self._sock is None:
            self._open_socket()

        self._send(0)
        self.state = ReporterState.REGISTERED

    def _open_socket(self) -> None:
        host, port = self.descriptor.address
        try:
            family, socktype, proto, _, sockaddr = socket.getaddrinfo(
                host, port, type=socket.SOCK_DGRAM
            )[0]
            sock = socket.socket(family, socktype, proto)
            sock.setblocking(False)
        except OSError as e:
            # Reporting is best-effort: the loop still runs, just invisibly
            logger.warning(
                "Worker %d could not open channel to %s:%d: %s",
                self.worker_id, host, port, e,
            )
            return
        self._sock = sock
        self._sockaddr = sockaddr

    @property
    def closed(self) -> bool:
        return self.state is ReporterState.CLOSED

    def _send(self, value: int) -> bool:
        if self._sock is None:
            self.send_failures += 1
            return False

        payload = encode_message(ProgressMessage(self.worker_id, value))
        try:
            self._sock.sendto(payload, self._sockaddr)
        except OSError as e:
            self.send_failures += 1
            logger.debug("Worker %d dropped report value=%d: %s", self.worker_id, value, e)
            return False

        self.messages_sent += 1
        return True

    def increment(self, index: Optional[int] = None) -> None:
        """
        Record one finished iteration.

        Per-worker counting reports whenever the local count reaches a
        step-size multiple. Indexed reporting instead takes the global loop
        index (1-based) and reports on index multiples and on the last
        index; the value sent is still this worker's local count.

        Raises:
            TypeError: If the loop is indexed and no index is given
        """
        self.count += 1
        if self.indexed:
            if index is None:
                raise TypeError("increment() needs the loop index when reporting is indexed")
            due = index % self.step_size == 0 or index == self.total_iterations
        else:
            due = self.count % self.step_size == 0

        if due and self.state is not ReporterState.CLOSED:
            if self._send(self.count):
                self.last_sent = self.count
            self.state = ReporterState.REPORTING

    def flush(self) -> None:
        """Send the current count if the aggregator has not been told yet."""
        if self.state is ReporterState.CLOSED:
            return
        if self.count == 0 or self.count == self.last_sent:
            return
        if self._send(self.count):
            self.last_sent = self.count
        self.state = ReporterState.REPORTING

    def close(self) -> None:
        """Flush the final count and release the socket. Safe to call repeatedly."""
        if self.state is ReporterState.CLOSED:
            return

        try:
            self.flush()
        finally:
            self.state = ReporterState.CLOSED
            sock, self._sock = self._sock, None
            if sock is not None:
                try:
                    sock.close()
                except OSError as e:
                    logger.debug("Worker %d socket close failed: %s", self.worker_id, e)

    def __enter__(self) -> "WorkerReporter":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def __repr__(self) -> str:
        return (
            f"WorkerReporter(worker_id={self.worker_id}, count={self.count}, "
            f"step_size={self.step_size}, state={self.state.value})"
        )


# One reporter per (session, process, thread): every task a pool ships to
# the same worker adds to one cumulative counter, and the threads of a
# thread pool each report as their own worker.
_REPORTERS: Dict[Tuple[str, int, int], WorkerReporter] = {}
_REPORTERS_LOCK = threading.Lock()


def _reset_registry() -> None:
    global _REPORTERS_LOCK
    _REPORTERS.clear()
    _REPORTERS_LOCK = threading.Lock()


if hasattr(os, "register_at_fork"):
    os.register_at_fork(after_in_child=_reset_registry)


def _caller_identity() -> Tuple[int, int]:
    """(thread key, default worker id) for the calling thread."""
    if threading.current_thread() is threading.main_thread():
        return 0, os.getpid()
    # Native thread ids share the process id namespace on Linux and Windows
    native_id = threading.get_native_id()
    return native_id, native_id


def attach_reporter(
    descriptor: ConnectionDescriptor,
    worker_id: Optional[int] = None,
) -> WorkerReporter:
    """
    Return the calling worker's reporter for a monitoring session.

    A worker is a process, or a thread other than the main thread. The first
    call from a worker creates and registers the reporter; later calls with
    the same session return it unchanged. The reporter is flushed and closed
    when the process exits cleanly or the session is detached.

    Args:
        descriptor: Connection details published by the monitor
        worker_id: Identity to register with on first use (default: process
            id in the main thread, native thread id elsewhere)

    Returns:
        The reporter for ``descriptor.session_id`` in this worker
    """
    thread_key, default_id = _caller_identity()
    key = (descriptor.session_id, os.getpid(), thread_key)
    with _REPORTERS_LOCK:
        reporter = _REPORTERS.get(key)
        if reporter is None or reporter.closed:
            reporter = WorkerReporter(
                descriptor, worker_id=default_id if worker_id is None else worker_id
            )
            _REPORTERS[key] = reporter
            util.Finalize(reporter, reporter.close, exitpriority=10)
            logger.debug("Attached %r to %s:%d", reporter, *descriptor.address)
    return reporter


def detach_reporter(session_id: str) -> None:
    """Close every reporter this process attached for a session."""
    pid = os.getpid()
    with _REPORTERS_LOCK:
        keys = [k for k in _REPORTERS if k[0] == session_id and k[1] == pid]
        reporters = [_REPORTERS.pop(k) for k in keys]
    for reporter in reporters:
        reporter.close()


def close_reporters() -> None:
    """Close every reporter attached in this process."""
    with _REPORTERS_LOCK:
        reporters = list(_REPORTERS.values())
        _REPORTERS.clear()
    for reporter in reporters:
        reporter.close()
