"""
Hardware communication module.

Provides the cutter driver (job validation, encoding, progress), the two
delivery transports (TCP stream, TFTP block transfer) and the TFTP
client they rely on.
"""

from laser_control.hardware.driver import (
    IllegalJobError,
    LaosDriver,
    LaserCutter,
    SendProgress,
)
from laser_control.hardware.tftp import TftpClient, TftpError, TftpTimeout
from laser_control.hardware.transport import (
    BlockTransferTransport,
    StreamTransport,
    Transport,
    TransportConnectionError,
    TransportError,
    TransportRejected,
    TransportTimeout,
    make_transport,
)

__all__ = [
    "BlockTransferTransport",
    "IllegalJobError",
    "LaosDriver",
    "LaserCutter",
    "SendProgress",
    "StreamTransport",
    "TftpClient",
    "TftpError",
    "TftpTimeout",
    "Transport",
    "TransportConnectionError",
    "TransportError",
    "TransportRejected",
    "TransportTimeout",
    "make_transport",
]
