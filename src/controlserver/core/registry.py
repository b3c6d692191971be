"""
=============================================================================
CONNECTION REGISTRY
=============================================================================

Keeps track of every channel registered with the readiness multiplexer
(the stdlib `selectors` module) and turns raw selector keys into typed
ready events.

=============================================================================
READINESS-BASED I/O
=============================================================================

A thread-per-connection server blocks in recv() on each socket. A
readiness-based server instead asks the OS ONE question for all sockets
at once:

    "Which of these sockets can I use right now without blocking?"

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      Registered Channels                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   listening socket  ── EVENT_READ ──► ACCEPTABLE  (client waiting)  │
    │   client socket 1   ── EVENT_READ ──► READABLE    (bytes arrived)   │
    │   client socket 2   ── EVENT_READ ──► READABLE                      │
    │   wakeup socket     ── EVENT_READ ──► (internal, never reported)    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

selectors.DefaultSelector picks the best primitive the platform offers
(epoll on Linux, kqueue on BSD/macOS, select() elsewhere).

=============================================================================
THE WAKEUP SOCKET
=============================================================================

select() with no timeout blocks forever. To stop the loop from another
thread (or a signal handler) we register one end of a socketpair() and
write a single byte to the other end. The selector wakes up, the registry
drains the byte and the serve loop sees its shutdown flag.

=============================================================================
"""

import logging
import selectors
import socket
from enum import Enum
from typing import Dict, List, NamedTuple, Optional

from .connection import ClientConnection
from .listener import accept_pending


logger = logging.getLogger(__name__)


class Readiness(Enum):
    """What a ready channel is ready for."""

    ACCEPTABLE = "acceptable"
    READABLE = "readable"


class ReadyEvent(NamedTuple):
    """One entry of a readiness batch."""

    readiness: Readiness
    connection: Optional[ClientConnection] = None


# Marker stored as selector key data for the wakeup socket.
_WAKEUP = object()


class ConnectionRegistry:
    """
    The set of channels registered with the selector.

    The listening socket is registered with data=None; each client is
    registered as its ClientConnection, so a ready key carries the
    connection object straight back to the serve loop.

    Usage:
        registry = ConnectionRegistry()
        registry.register_listener(listening_socket)

        for event in registry.wait():
            if event.readiness is Readiness.ACCEPTABLE:
                registry.accept_and_register()
            else:
                handle(event.connection)
    """

    def __init__(self, selector: Optional[selectors.BaseSelector] = None):
        self._selector = selector or selectors.DefaultSelector()
        self._listener: Optional[socket.socket] = None
        self._connections: Dict[str, ClientConnection] = {}
        self._closed = False

        self._wakeup_reader, self._wakeup_writer = socket.socketpair()
        self._wakeup_reader.setblocking(False)
        self._wakeup_writer.setblocking(False)
        self._selector.register(self._wakeup_reader, selectors.EVENT_READ, data=_WAKEUP)

    @property
    def selector(self) -> selectors.BaseSelector:
        return self._selector

    @property
    def connections(self) -> List[ClientConnection]:
        """Currently registered client connections."""
        return list(self._connections.values())

    @property
    def is_closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._connections)

    def register_listener(self, sock: socket.socket) -> None:
        """Register the listening socket for accept-readiness."""
        self._selector.register(sock, selectors.EVENT_READ, data=None)
        self._listener = sock

    def accept_and_register(self) -> Optional[ClientConnection]:
        """
        Accept exactly one pending connection and register it for reads.

        Returns:
            The new connection, or None if nothing was pending.
        """
        if self._listener is None:
            raise RuntimeError("No listening socket registered")

        accepted = accept_pending(self._listener)
        if accepted is None:
            logger.debug("Spurious accept readiness, nothing pending")
            return None

        client_socket, client_address = accepted
        conn = self.register(ClientConnection(socket=client_socket, address=client_address[:2]))

        logger.debug(f"[{conn.id}] Accepted connection from {conn.client_ip}:{conn.client_port}")
        return conn

    def register(self, conn: ClientConnection) -> ClientConnection:
        """Register an already-connected client for read-readiness."""
        self._selector.register(conn, selectors.EVENT_READ, data=conn)
        self._connections[conn.id] = conn
        return conn

    def wait(self, timeout: Optional[float] = None) -> List[ReadyEvent]:
        """
        Block until at least one channel is ready.

        Args:
            timeout: Seconds to wait. None = wait indefinitely.

        Returns:
            Ready events in the order the selector reported them. A wakeup
            is consumed here and never appears in the list, so the list can
            be empty.
        """
        events: List[ReadyEvent] = []

        for key, mask in self._selector.select(timeout):
            if key.data is _WAKEUP:
                self._drain_wakeup()
            elif key.data is None:
                events.append(ReadyEvent(Readiness.ACCEPTABLE))
            elif mask & selectors.EVENT_READ:
                events.append(ReadyEvent(Readiness.READABLE, key.data))

        return events

    def wakeup(self) -> None:
        """Interrupt a blocked wait() from another thread."""
        try:
            self._wakeup_writer.send(b"\0")
        except BlockingIOError:
            pass  # A wakeup is already pending
        except OSError:
            pass  # Registry already closed

    def _drain_wakeup(self) -> None:
        try:
            while self._wakeup_reader.recv(64):
                pass
        except BlockingIOError:
            pass

    def discard(self, conn: ClientConnection) -> None:
        """
        Unregister a connection.

        Works on connections that are already closed: the selector falls
        back to looking the key up by object identity once fileno() is -1.
        """
        if self._connections.pop(conn.id, None) is None:
            return
        try:
            self._selector.unregister(conn)
        except (KeyError, ValueError):
            pass  # Never registered with this selector

    def close_connections(self) -> int:
        """Close and unregister every client connection. Returns the count."""
        connections = self.connections
        for conn in connections:
            conn.close()
            self.discard(conn)
        return len(connections)

    def unregister_listener(self) -> Optional[socket.socket]:
        """Unregister the listening socket and hand it back to the caller."""
        sock, self._listener = self._listener, None
        if sock is not None:
            try:
                self._selector.unregister(sock)
            except (KeyError, ValueError):
                pass
        return sock

    def close(self) -> None:
        """Close all connections, the wakeup pair and the selector."""
        if self._closed:
            return
        self._closed = True

        self.close_connections()
        self.unregister_listener()
        self._selector.unregister(self._wakeup_reader)
        self._wakeup_reader.close()
        self._wakeup_writer.close()
        self._selector.close()
