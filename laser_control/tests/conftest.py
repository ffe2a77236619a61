"""Shared fixtures: in-process mock controllers.

Both servers bind ``127.0.0.1`` on an ephemeral port and run on a daemon
thread, so transport tests exercise real sockets without a device.
"""

from __future__ import annotations

import socket
import struct
import threading

import pytest

from laser_control.hardware.tftp import (
    BLOCK_SIZE,
    OP_DATA,
    OP_WRQ,
    encode_ack,
    encode_error,
)


# ---------------------------------------------------------------------------
# Mock TFTP server
# ---------------------------------------------------------------------------


class MockTftpServer:
    """Minimal TFTP write server.

    Accepts one ``WRQ``, answers from a fresh transfer-ID socket and
    collects the payload.  Misbehaviour is configurable:

    error : tuple[int, str] | None
        Reject the ``WRQ`` with this ``ERROR`` packet.
    silent : bool
        Never answer; every ``WRQ`` (including retransmissions) is counted.
    drop_acks : int
        Withhold this many ACKs so the client must retransmit.
    stale_acks : bool
        Send the previous block's ACK before each real one.
    stray : bool
        Have a third socket send a bogus ACK during the transfer.
    """

    def __init__(
        self,
        *,
        error: tuple[int, str] | None = None,
        silent: bool = False,
        drop_acks: int = 0,
        stale_acks: bool = False,
        stray: bool = False,
    ) -> None:
        self._listen = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._listen.bind(("127.0.0.1", 0))
        self._listen.settimeout(0.2)
        self.port = self._listen.getsockname()[1]

        self.error = error
        self.silent = silent
        self.drop_acks = drop_acks
        self.stale_acks = stale_acks
        self.stray = stray

        self.filename: str | None = None
        self.mode: str | None = None
        self.data = bytearray()
        self.blocks: list[int] = []
        self.wrq_count = 0
        self.retransmits = 0
        self.stray_replies: list[bytes] = []
        self.done = threading.Event()

        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=3.0)
        self._listen.close()

    def _run(self) -> None:
        client = None
        while not self._stop.is_set():
            try:
                packet, client = self._listen.recvfrom(1024)
            except socket.timeout:
                continue
            except OSError:
                return
            if struct.unpack("!H", packet[:2])[0] != OP_WRQ:
                continue
            self.wrq_count += 1
            if self.silent:
                continue
            filename, mode = packet[2:].split(b"\x00")[:2]
            self.filename = filename.decode("ascii")
            self.mode = mode.decode("ascii")
            break

        if client is None or self._stop.is_set():
            return
        if self.error is not None:
            self._listen.sendto(encode_error(*self.error), client)
            return

        xfer = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        xfer.bind(("127.0.0.1", 0))
        xfer.settimeout(0.2)
        try:
            self._transfer(xfer, client)
        finally:
            xfer.close()

    def _transfer(self, xfer: socket.socket, client: tuple[str, int]) -> None:
        xfer.sendto(encode_ack(0), client)
        last = 0
        while not self._stop.is_set():
            try:
                packet, src = xfer.recvfrom(BLOCK_SIZE + 4)
            except socket.timeout:
                continue
            opcode, block = struct.unpack("!HH", packet[:4])
            if opcode != OP_DATA:
                continue
            payload = packet[4:]

            if block == last:
                self.retransmits += 1
                xfer.sendto(encode_ack(block), src)
                continue
            if block != (last + 1) % 65536:
                continue
            if self.drop_acks > 0:
                self.drop_acks -= 1
                self.retransmits += 1
                continue

            self.data += payload
            self.blocks.append(block)
            last = block

            if self.stray:
                self.stray = False
                self._send_stray(client, block)
            if self.stale_acks:
                xfer.sendto(encode_ack((block - 1) % 65536), src)
            xfer.sendto(encode_ack(block), src)

            if len(payload) < BLOCK_SIZE:
                self.done.set()
                return

    def _send_stray(self, client: tuple[str, int], block: int) -> None:
        stranger = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        stranger.bind(("127.0.0.1", 0))
        stranger.settimeout(2.0)
        try:
            stranger.sendto(encode_ack(block), client)
            reply, _ = stranger.recvfrom(1024)
            self.stray_replies.append(reply)
        except socket.timeout:
            pass
        finally:
            stranger.close()


@pytest.fixture()
def tftp_server():
    """Factory for running mock TFTP servers; all are stopped afterwards."""
    servers: list[MockTftpServer] = []

    def make(**kwargs) -> MockTftpServer:
        server = MockTftpServer(**kwargs)
        server.start()
        servers.append(server)
        return server

    yield make
    for server in servers:
        server.stop()


# ---------------------------------------------------------------------------
# Mock TCP listener
# ---------------------------------------------------------------------------


class MockTcpServer:
    """Accept one connection and record everything written to it."""

    def __init__(self) -> None:
        self._server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._server.bind(("127.0.0.1", 0))
        self._server.listen(1)
        self._server.settimeout(5.0)
        self.port = self._server.getsockname()[1]
        self.received = bytearray()
        self.closed = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        try:
            conn, _ = self._server.accept()
        except OSError:
            return
        with conn:
            conn.settimeout(5.0)
            while True:
                try:
                    data = conn.recv(4096)
                except OSError:
                    break
                if not data:
                    break
                self.received += data
        self.closed.set()

    def stop(self) -> None:
        self._server.close()
        if self._thread:
            self._thread.join(timeout=3.0)


@pytest.fixture()
def tcp_server():
    server = MockTcpServer()
    server.start()
    yield server
    server.stop()


def free_port() -> int:
    """A local port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture()
def closed_port() -> int:
    return free_port()
