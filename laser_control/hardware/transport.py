"""Delivery strategies for an encoded job.

Two transports share one contract -- ``open`` / ``write`` / ``finish`` /
``abort`` -- and are selected by ``connection.use_tftp``:

Stream (TCP)
    Connects to ``hostname:port`` with a bounded connect timeout and
    writes each encoded section as soon as it is produced.  A failure at
    any write aborts the send; bytes already written stay written on the
    controller side.

Block transfer (TFTP)
    Buffers the whole job in memory first, then pushes the buffer as one
    file named ``<job name without whitespace>.lgc``.  Encoding and
    network I/O never interleave.  On failure the buffer is discarded.

All socket-level failures are raised as :class:`TransportError`
subclasses so the caller sees one terminal error type.
"""

from __future__ import annotations

import logging
import socket
from abc import ABC, abstractmethod
from io import BytesIO
from typing import Callable

from laser_control.configs.loader import LaserConfig
from laser_control.hardware.tftp import TftpClient, TftpError, TftpTimeout
from laser_control.job_ir.operations import Job

logger = logging.getLogger(__name__)

TaskCallback = Callable[[str], None]


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TransportError(Exception):
    """Base exception for all delivery failures."""

    pass


class TransportConnectionError(TransportError):
    """Connection refused, unreachable, or broken while writing."""

    pass


class TransportTimeout(TransportError):
    """The controller did not answer within the configured timeout."""

    pass


class TransportRejected(TransportError):
    """The controller refused the transfer (TFTP ``ERROR`` packet)."""

    pass


def _no_task(label: str) -> None:
    pass


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class Transport(ABC):
    """Deliver one encoded job to the controller.

    The driver calls ``open`` once, ``write`` once per encoded section,
    then exactly one of ``finish`` (success) or ``abort`` (failure).
    """

    name: str = ""

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port

    @abstractmethod
    def open(self, job: Job, task: TaskCallback = _no_task) -> None:
        """Prepare to receive *job*'s bytes."""

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Accept the next chunk of the encoded stream."""

    @abstractmethod
    def finish(self, task: TaskCallback = _no_task) -> int:
        """Complete delivery; returns the number of bytes delivered."""

    @abstractmethod
    def abort(self) -> None:
        """Release resources after a failure.  Never raises."""


# ---------------------------------------------------------------------------
# TCP stream
# ---------------------------------------------------------------------------


class StreamTransport(Transport):
    """Write the job over a raw TCP connection.

    Parameters
    ----------
    host, port : str, int
        Controller endpoint.
    connect_timeout : float
        Seconds allowed for the TCP connect.  Writes block.
    """

    name = "tcp"

    def __init__(
        self, host: str, port: int, connect_timeout: float = 3.0,
    ) -> None:
        super().__init__(host, port)
        self.connect_timeout = connect_timeout
        self._sock: socket.socket | None = None
        self._written = 0

    @property
    def is_connected(self) -> bool:
        """``True`` when the socket is open."""
        return self._sock is not None

    def open(self, job: Job, task: TaskCallback = _no_task) -> None:
        task("connecting")
        logger.info("Connecting to %s:%d", self.host, self.port)
        try:
            sock = socket.create_connection(
                (self.host, self.port), timeout=self.connect_timeout,
            )
        except socket.timeout as exc:
            raise TransportTimeout(
                f"Connect to {self.host}:{self.port} timed out after "
                f"{self.connect_timeout}s"
            ) from exc
        except OSError as exc:
            raise TransportConnectionError(
                f"Cannot connect to {self.host}:{self.port}: {exc}"
            ) from exc

        sock.settimeout(None)
        self._sock = sock
        self._written = 0
        task("sending")

    def write(self, data: bytes) -> None:
        if self._sock is None:
            raise TransportConnectionError("Not connected")
        if not data:
            return
        try:
            self._sock.sendall(data)
        except OSError as exc:
            self.abort()
            raise TransportConnectionError(
                f"Write to {self.host}:{self.port} failed: {exc}"
            ) from exc
        self._written += len(data)

    def finish(self, task: TaskCallback = _no_task) -> int:
        if self._sock is None:
            raise TransportConnectionError("Not connected")
        try:
            self._sock.shutdown(socket.SHUT_WR)
        except OSError as exc:
            raise TransportConnectionError(
                f"Closing connection to {self.host}:{self.port} failed: {exc}"
            ) from exc
        finally:
            self.abort()
        logger.info("Sent %d bytes to %s:%d", self._written, self.host, self.port)
        return self._written

    def abort(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None


# ---------------------------------------------------------------------------
# TFTP block transfer
# ---------------------------------------------------------------------------


class BlockTransferTransport(Transport):
    """Buffer the job, then push it as one file over TFTP.

    Parameters
    ----------
    host, port : str, int
        Controller TFTP endpoint.
    timeout : float
        Per-packet acknowledgement timeout.
    max_timeouts : int
        Retransmissions per packet before the transfer fails.
    client_factory : callable, optional
        Builds the TFTP client; replaced in tests.
    """

    name = "tftp"

    def __init__(
        self,
        host: str,
        port: int,
        timeout: float = 5.0,
        max_timeouts: int = 5,
        client_factory: Callable[..., TftpClient] = TftpClient,
    ) -> None:
        super().__init__(host, port)
        self.timeout = timeout
        self.max_timeouts = max_timeouts
        self._client_factory = client_factory
        self._buffer: BytesIO | None = None
        self._filename = ""

    def open(self, job: Job, task: TaskCallback = _no_task) -> None:
        self._buffer = BytesIO()
        self._filename = job.remote_filename
        task("buffering")

    def write(self, data: bytes) -> None:
        if self._buffer is None:
            raise TransportError("Transport not opened")
        self._buffer.write(data)

    def finish(self, task: TaskCallback = _no_task) -> int:
        if self._buffer is None:
            raise TransportError("Transport not opened")
        payload = self._buffer.getvalue()
        self._buffer = None

        task("connecting")
        client = self._client_factory(
            timeout=self.timeout, max_timeouts=self.max_timeouts,
        )
        task("sending")
        try:
            client.send_file(self._filename, payload, self.host, self.port)
        except TftpTimeout as exc:
            raise TransportTimeout(str(exc)) from exc
        except TftpError as exc:
            raise TransportRejected(str(exc)) from exc
        except OSError as exc:
            raise TransportConnectionError(
                f"TFTP transfer to {self.host}:{self.port} failed: {exc}"
            ) from exc
        task("sent.")
        return len(payload)

    def abort(self) -> None:
        self._buffer = None


def make_transport(config: LaserConfig) -> Transport:
    """Build the transport selected by *config*."""
    c = config.connection
    if c.use_tftp:
        return BlockTransferTransport(
            c.hostname, c.port,
            timeout=c.tftp_timeout_s, max_timeouts=c.tftp_max_timeouts,
        )
    return StreamTransport(c.hostname, c.port, connect_timeout=c.connect_timeout_s)
