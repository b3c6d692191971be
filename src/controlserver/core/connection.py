"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted client socket with the bookkeeping the serve loop
needs: a short id for log lines, a state, and a counter of commands.

Unlike a thread-per-connection server, the socket here is NON-BLOCKING.
The selector tells us when it is readable, and a single recv_into()
then returns immediately with whatever the kernel already holds.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    OPEN ──────► CLOSED

There is no "closing" phase to track: a close happens synchronously on
the loop thread, either because the peer sent STOP_SERVER, because the
peer went away, or because the whole server is tearing down.

=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states."""

    OPEN = "open"
    CLOSED = "closed"


@dataclass(eq=False)
class ClientConnection:
    """
    Represents an accepted client connection.

    Attributes:
        socket: The non-blocking client socket.
        address: Client's (ip, port) tuple.
        id: Unique connection identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when the connection was accepted.
        commands_handled: Number of read cycles served on this connection.
    """

    socket: socket.socket
    address: Tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.OPEN
    created_at: float = field(default_factory=time.time)
    commands_handled: int = 0

    def __post_init__(self):
        self.socket.setblocking(False)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    @property
    def age(self) -> float:
        """Connection age in seconds."""
        return time.time() - self.created_at

    def fileno(self) -> int:
        """Lets the selector treat the connection like its socket."""
        return self.socket.fileno()

    def send(self, data: bytes) -> None:
        """
        Send the whole payload.

        Responses are small, so on a freshly readable socket sendall()
        completes without waiting for the kernel to drain. Errors are
        propagated to the serve loop.
        """
        self.socket.sendall(data)

    def close(self) -> None:
        """
        Close the connection. Safe to call more than once.

        shutdown(SHUT_RDWR) sends FIN before the descriptor is released
        so the peer sees a clean end of stream.
        """
        if self.state == ConnectionState.CLOSED:
            return

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Peer already gone

        self.socket.close()
        self.state = ConnectionState.CLOSED
        logger.debug(
            f"[{self.id}] Connection from {self.client_ip}:{self.client_port} "
            f"closed after {self.commands_handled} commands"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
