"""
=============================================================================
CONNECTION HANDLING
=============================================================================

Wraps one accepted client socket. Compared with a full HTTP server the
job is tiny: read once, write the canned bytes, close.

=============================================================================
WHY READ AT ALL?
=============================================================================

We never look at the request, but we still pull one chunk off the socket
before answering:

    Client                                Server
       │                                     │
       │  GET / HTTP/1.1\r\n...  ──────────► │  recv(2048)  → discarded
       │                                     │
       │ ◄──────────  HTTP/1.1 200 OK ...    │  sendall(canned bytes)
       │                                     │
       │ ◄──────────────────────────── FIN   │  shutdown(SHUT_WR)
       │                                     │
       │  FIN ─────────────────────────────► │  drain, then close()

If the server closes while unread request bytes are still sitting in its
receive buffer, the kernel answers with RST instead of FIN, and the
client may throw away the response it already received. Reading the
request (and draining on close) keeps the exchange clean.

The read has a timeout. A client that connects and says nothing still
gets the response once it expires; a client that half-closes right away
gets it immediately.

=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states, mainly for logging and tests."""
    NEW = "new"            # Just accepted
    READING = "reading"    # Discard read in progress
    WRITING = "writing"    # Sending the canned response
    CLOSING = "closing"    # Shutdown sequence running
    CLOSED = "closed"      # Socket released


@dataclass
class Connection:
    """
    One accepted client.

    Attributes:
        socket: The client socket.
        address: Peer address tuple; (ip, port) for IPv4, longer for IPv6.
        id: Short identifier used in log lines.
        state: Current lifecycle state.
        created_at: Time the connection was accepted.
        bytes_received: Bytes read (and discarded) from the client.
        bytes_sent: Bytes of the response written to the client.
        buffer_size: Maximum size of the single discard read.
        timeout: Read timeout in seconds, or None to block.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    bytes_received: int = 0
    bytes_sent: int = 0

    buffer_size: int = 2048
    timeout: Optional[float] = 30.0
    drain_timeout: float = 0.5

    def __post_init__(self):
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0] if self.address else "-"

    @property
    def client_port(self) -> int:
        return self.address[1] if len(self.address) > 1 else 0

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READ: one chunk, thrown away
    # =========================================================================

    def discard_request(self) -> int:
        """
        Read at most ``buffer_size`` bytes and discard them.

        Never raises for client-side conditions: a timeout, a reset or an
        immediate EOF all count as "nothing read" and the caller answers
        anyway.

        Returns:
            Number of bytes read.
        """
        self.state = ConnectionState.READING
        try:
            data = self.socket.recv(self.buffer_size)
        except socket.timeout:
            logger.debug(f"[{self.id}] No request data within {self.timeout}s")
            return 0
        except OSError as e:
            logger.debug(f"[{self.id}] Read failed: {e}")
            return 0

        self.bytes_received += len(data)
        return len(data)

    # =========================================================================
    # WRITE: the canned response
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send the response with sendall().

        Returns:
            True if every byte was handed to the kernel, False if the
            client went away first.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            # Reset, broken pipe, timeout: the client is gone
            logger.warning(f"[{self.id}] Send to {self.client_ip} failed: {e}")
            return False

        self.bytes_sent += len(data)
        return True

    # =========================================================================
    # CLOSE
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully. Safe to call more than once.

        1. shutdown(SHUT_WR) sends FIN so the client sees EOF after the body
        2. Drain whatever the client still sends, with a short timeout
        3. close() releases the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        # Bounded by a deadline so a client that never stops sending
        # cannot hold the worker
        deadline = time.time() + self.drain_timeout
        try:
            self.socket.settimeout(self.drain_timeout)
            while time.time() < deadline and self.socket.recv(1024):
                pass
        except OSError:
            pass  # Includes socket.timeout

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Closed after {self.age * 1000:.1f}ms")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
