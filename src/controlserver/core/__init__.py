"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The low-level networking pieces the serve loop is built from.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      CONNECTION REGISTRY                             │
    │  • Owns the selector (epoll/kqueue/select)                          │
    │  • Listening socket registered for ACCEPTABLE                       │
    │  • Client sockets registered for READABLE                           │
    │  • Wakeup socketpair so other threads can interrupt a wait          │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ accept_and_register()
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                        CLIENT CONNECTION                             │
    │  • Non-blocking client socket + id, state, command counter          │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ fill_from()
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                         TRANSFER BUFFER                              │
    │  • One fixed-size buffer shared by every connection                 │
    │  • Safe because the loop dispatches strictly one at a time          │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .buffer import TransferBuffer
from .connection import ClientConnection, ConnectionState
from .listener import accept_pending, bind_listening_socket, create_listening_socket
from .registry import ConnectionRegistry, Readiness, ReadyEvent

__all__ = [
    "TransferBuffer",
    "ClientConnection",
    "ConnectionState",
    "ConnectionRegistry",
    "Readiness",
    "ReadyEvent",
    "accept_pending",
    "bind_listening_socket",
    "create_listening_socket",
]
