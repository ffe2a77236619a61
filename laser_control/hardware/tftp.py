"""Minimal TFTP client (RFC 1350) for pushing job files to the controller.

Only the write direction is implemented -- the controller accepts a job
as a file written to its TFTP server and starts cutting once the
transfer completes.

Handles:
    - ``WRQ`` in ``octet`` (binary) mode
    - Lock-step ``DATA`` / ``ACK`` exchange with 512-byte blocks
    - Final short block (empty when the payload is a multiple of 512)
    - Block-number wrap-around after 65535
    - Server transfer ID (port) adopted from the first reply; packets
      from any other address are ignored
    - Duplicate ACKs ignored (no retransmission storm)
    - Retransmission of the last packet on timeout, up to
      ``max_timeouts`` times
    - ``ERROR`` packets surface as :class:`TftpError`
"""

from __future__ import annotations

import logging
import socket
import struct
import time
from typing import Any

logger = logging.getLogger(__name__)

BLOCK_SIZE = 512

OP_WRQ = 2
OP_DATA = 3
OP_ACK = 4
OP_ERROR = 5


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TftpError(Exception):
    """The server answered with a TFTP ``ERROR`` packet."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"TFTP error {code}: {message}")
        self.code = code
        self.message = message


class TftpTimeout(Exception):
    """No acknowledgement after all retransmissions."""

    pass


# ---------------------------------------------------------------------------
# Packet codec
# ---------------------------------------------------------------------------


def encode_wrq(filename: str, mode: str = "octet") -> bytes:
    return (
        struct.pack("!H", OP_WRQ)
        + filename.encode("ascii") + b"\x00"
        + mode.encode("ascii") + b"\x00"
    )


def encode_data(block: int, payload: bytes) -> bytes:
    return struct.pack("!HH", OP_DATA, block) + payload


def encode_ack(block: int) -> bytes:
    return struct.pack("!HH", OP_ACK, block)


def encode_error(code: int, message: str) -> bytes:
    return (
        struct.pack("!HH", OP_ERROR, code)
        + message.encode("ascii", "replace") + b"\x00"
    )


def decode_packet(packet: bytes) -> tuple[int, Any]:
    """Decode a server packet.

    Returns
    -------
    tuple[int, Any]
        ``(OP_ACK, block)``, ``(OP_ERROR, (code, message))``, or
        ``(opcode, raw_body)`` for anything else.
    """
    if len(packet) < 4:
        raise ValueError(f"Short TFTP packet ({len(packet)} bytes)")
    opcode, arg = struct.unpack("!HH", packet[:4])
    if opcode == OP_ACK:
        return opcode, arg
    if opcode == OP_ERROR:
        message = packet[4:].split(b"\x00", 1)[0].decode("ascii", "replace")
        return opcode, (arg, message)
    return opcode, packet[2:]


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class TftpClient:
    """Blocking TFTP write client.

    Parameters
    ----------
    timeout : float
        Seconds to wait for each acknowledgement.
    max_timeouts : int
        Retransmissions of one packet before giving up.

    Examples
    --------
    >>> TftpClient(timeout=5.0).send_file("job.lgc", data, "10.0.0.2", 69)
    """

    def __init__(self, timeout: float = 5.0, max_timeouts: int = 5) -> None:
        self.timeout = timeout
        self.max_timeouts = max_timeouts

    def send_file(
        self, filename: str, data: bytes, host: str, port: int = 69,
    ) -> int:
        """Write *data* to the server as *filename*.

        Returns
        -------
        int
            Number of DATA blocks sent.

        Raises
        ------
        TftpTimeout
            If an acknowledgement never arrives.
        TftpError
            If the server rejects the transfer.
        OSError
            On socket-level failure (unresolvable host, unreachable).
        """
        addr = _resolve(host, port)
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.settimeout(self.timeout)
            logger.info(
                "TFTP write %s (%d bytes) to %s:%d",
                filename, len(data), host, port,
            )
            server = self._exchange(sock, encode_wrq(filename), addr, 0, None)

            block = 0
            offset = 0
            sent = 0
            while True:
                payload = data[offset:offset + BLOCK_SIZE]
                block = (block + 1) % 65536
                self._exchange(
                    sock, encode_data(block, payload), server, block, server,
                )
                sent += 1
                offset += BLOCK_SIZE
                if len(payload) < BLOCK_SIZE:
                    break

            logger.info("TFTP write complete: %d blocks", sent)
            return sent
        finally:
            sock.close()

    def _exchange(
        self,
        sock: socket.socket,
        packet: bytes,
        dest: tuple[str, int],
        expect_block: int,
        server: tuple[str, int] | None,
    ) -> tuple[str, int]:
        """Send *packet* and wait for ``ACK expect_block``.

        *server* is ``None`` only for the initial WRQ, when the server's
        transfer ID is not known yet.  Returns the address the ACK came
        from.
        """
        for attempt in range(self.max_timeouts + 1):
            sock.sendto(packet, dest)
            deadline = time.monotonic() + self.timeout
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                sock.settimeout(remaining)
                try:
                    reply, src = sock.recvfrom(BLOCK_SIZE + 4)
                except socket.timeout:
                    break

                if server is not None and src != server:
                    logger.warning("Ignoring TFTP packet from %s:%d", *src)
                    sock.sendto(encode_error(5, "Unknown transfer ID"), src)
                    continue

                try:
                    opcode, arg = decode_packet(reply)
                except ValueError as exc:
                    logger.warning("Malformed TFTP packet: %s", exc)
                    continue

                if opcode == OP_ERROR:
                    raise TftpError(*arg)
                if opcode == OP_ACK and arg == expect_block:
                    return src
                # Duplicate or stale ACK: keep waiting for the right one

            logger.debug(
                "TFTP timeout waiting for ACK %d (attempt %d/%d)",
                expect_block, attempt + 1, self.max_timeouts + 1,
            )

        raise TftpTimeout(
            f"No ACK for block {expect_block} after "
            f"{self.max_timeouts + 1} attempts ({self.timeout}s each)"
        )


def _resolve(host: str, port: int) -> tuple[str, int]:
    info = socket.getaddrinfo(host, port, socket.AF_INET, socket.SOCK_DGRAM)
    ip, resolved_port = info[0][4][:2]
    return ip, resolved_port
