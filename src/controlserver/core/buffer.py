"""
=============================================================================
TRANSFER BUFFER
=============================================================================

A fixed-capacity byte buffer that stages bytes between a socket and the
command logic. The server allocates ONE of these and reuses it for every
read cycle on every connection.

=============================================================================
CURSORS: POSITION AND LIMIT
=============================================================================

The buffer has two cursors over a preallocated bytearray:

    ┌───────────────────────────────────────────────────────────────┐
    │ 0          position              limit              capacity  │
    │ │             │                    │                    │     │
    │ ▼             ▼                    ▼                    ▼     │
    │ [ already used ][ active span       ][ unused              ]  │
    └───────────────────────────────────────────────────────────────┘

WRITE MODE (after clear()):
    position = 0, limit = capacity
    fill_from() receives into [position:limit] and advances position.

READ MODE (after flip()):
    limit = old position, position = 0
    read() returns [position:limit] and advances position to limit.

The cycle for every command is therefore:

    clear() ──► fill_from(sock) ──► flip() ──► read() ──► clear()

=============================================================================
WHY SHARING IS SAFE
=============================================================================

The serve loop handles one ready connection at a time on one thread.
Nothing else can touch the buffer between clear() and the final read().
A multi-threaded server would need one buffer per connection instead.

=============================================================================
"""

import socket


class TransferBuffer:
    """
    Fixed-capacity byte buffer with position/limit cursors.

    Usage:
        buffer = TransferBuffer(256)
        buffer.clear()
        count = buffer.fill_from(client_socket)
        buffer.flip()
        data = buffer.read()
    """

    def __init__(self, capacity: int = 256):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._data = bytearray(capacity)
        self._view = memoryview(self._data)
        self._position = 0
        self._limit = capacity

    def __repr__(self) -> str:
        return (
            f"TransferBuffer(capacity={self.capacity}, "
            f"position={self._position}, limit={self._limit})"
        )

    @property
    def capacity(self) -> int:
        return len(self._data)

    @property
    def position(self) -> int:
        return self._position

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def remaining(self) -> int:
        """Number of bytes between position and limit."""
        return self._limit - self._position

    def clear(self) -> "TransferBuffer":
        """Reset to write mode. Old bytes are not zeroed, just forgotten."""
        self._position = 0
        self._limit = self.capacity
        return self

    def flip(self) -> "TransferBuffer":
        """Switch from write mode to read mode over the bytes just written."""
        self._limit = self._position
        self._position = 0
        return self

    def fill_from(self, sock: socket.socket) -> int:
        """
        Receive bytes from a socket into the free span.

        Reads at most `remaining` bytes in a single recv_into() call.
        Whatever else the peer sent stays in the kernel buffer for the
        next cycle.

        Returns:
            Number of bytes received. 0 means end of stream (or a full
            buffer).
        """
        if self.remaining == 0:
            return 0
        count = sock.recv_into(self._view[self._position:self._limit])
        self._position += count
        return count

    def read(self) -> bytes:
        """Return the active span and consume it."""
        data = bytes(self._view[self._position:self._limit])
        self._position = self._limit
        return data
