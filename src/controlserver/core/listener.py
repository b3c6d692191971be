"""
=============================================================================
LISTENING SOCKET
=============================================================================

Creates and configures the server socket that the serve loop registers
for accept-readiness.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()        Create a TCP socket
    2. setsockopt()    SO_REUSEADDR, so a restart can rebind at once
    3. bind()          Associate the socket with HOST:PORT
    4. listen()        OS starts queueing incoming connections
    5. setblocking()   accept() must never suspend the loop thread
    6. register()      Selector reports "acceptable" when a client waits

SO_REUSEADDR:
─────────────
After close() TCP keeps the address in TIME_WAIT for a while. Without
this option a restarted server fails with "Address already in use".

=============================================================================
"""

import logging
import socket
from typing import Optional, Tuple


logger = logging.getLogger(__name__)


def create_listening_socket() -> socket.socket:
    """Create an unbound TCP socket with SO_REUSEADDR set."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    return sock


def bind_listening_socket(
    sock: socket.socket,
    address: Tuple[str, int],
    backlog: int = 128,
) -> Tuple[str, int]:
    """
    Configure a listening socket for the serve loop.

    Enables address reuse, binds, listens and switches the socket to
    non-blocking mode. The caller still has to register it with the
    selector.

    Args:
        sock: A fresh, unbound TCP socket.
        address: (host, port) to bind to. Port 0 picks a free port.
        backlog: Accept queue length.

    Returns:
        The address actually bound.

    Raises:
        OSError: If the address cannot be bound (logged first).
    """
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

    try:
        sock.bind(address)
    except OSError as e:
        logger.error(f"Failed to bind to {address[0]}:{address[1]}: {e}")
        raise

    sock.listen(backlog)
    sock.setblocking(False)
    return sock.getsockname()[:2]


def accept_pending(sock: socket.socket) -> Optional[Tuple[socket.socket, Tuple[str, int]]]:
    """
    Accept one pending connection from a non-blocking listening socket.

    Returns None when nothing is actually pending. Selectors may report a
    listening socket as acceptable and then lose the race (the client
    reset before accept() ran), so this is an expected outcome.
    """
    try:
        return sock.accept()
    except (BlockingIOError, InterruptedError):
        return None
