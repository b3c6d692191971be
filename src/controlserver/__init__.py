"""
=============================================================================
CONTROLSERVER - Single-Threaded TCP Control Server
=============================================================================

A small network control server built on raw sockets and the `selectors`
module. One thread serves any number of clients:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   1. READINESS-BASED I/O                                            │
    │      - Non-blocking listening and client sockets                    │
    │      - One selector wait drives the whole server                    │
    │                                                                      │
    │   2. TEXT COMMAND PROTOCOL                                          │
    │      - Every message is echoed as "Server received: <text>"         │
    │      - STOP_SERVER shuts the entire server down                     │
    │                                                                      │
    │   3. SHARED TRANSFER BUFFER                                         │
    │      - One fixed 256-byte buffer reused for every read              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    controlserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m controlserver)
    ├── server.py            # ControlServer serve loop
    ├── config.py            # ServerConfig dataclass
    ├── platform.py          # Executor, failure reporting, signals
    ├── client.py            # ControlClient
    ├── core/                # Low-level components
    │   ├── buffer.py        # TransferBuffer
    │   ├── connection.py    # ClientConnection
    │   ├── listener.py      # Listening socket setup
    │   └── registry.py      # ConnectionRegistry (selector)
    └── protocol/
        └── commands.py      # handle_readable, STOP_SERVER

=============================================================================
QUICK START
=============================================================================

    from controlserver import ControlServer, ServerConfig

    ControlServer(ServerConfig(port=1111, debug=True)).run()

    # elsewhere
    from controlserver import ControlClient

    with ControlClient(port=1111) as client:
        print(client.send("ping"))   # Server received: ping
        client.stop()

=============================================================================
"""

__version__ = "1.0.0"

from .client import ControlClient
from .config import ServerConfig
from .platform import Platform
from .server import ControlServer, run_server

__all__ = [
    "ControlClient",
    "ControlServer",
    "Platform",
    "ServerConfig",
    "run_server",
    "__version__",
]
