"""
pytest configuration and fixtures.
"""

import socket
from typing import Generator

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from controlserver import ControlServer, ServerConfig
from controlserver.core import ClientConnection


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(host="127.0.0.1", port=0, log_level="WARNING")


@pytest.fixture
def socket_pair() -> Generator[tuple, None, None]:
    """
    A connected (server_side, client_side) pair.

    The server side is wrapped in a ClientConnection, which makes it
    non-blocking just like an accepted socket.
    """
    server_side, client_side = socket.socketpair()
    client_side.settimeout(2.0)
    conn = ClientConnection(socket=server_side, address=("127.0.0.1", 0))

    yield conn, client_side

    conn.close()
    client_side.close()


class RunningServer:
    """A ControlServer serving on a background thread."""

    def __init__(self, server: ControlServer):
        self.server = server
        self.future = server.serve_in_background()
        if not server.wait_until_listening(timeout=5.0) or not server.is_running:
            # Surface bind errors from the worker thread
            self.future.result(timeout=5.0)
            raise RuntimeError("Server failed to start")

    @property
    def address(self):
        return self.server.address

    def connect(self) -> socket.socket:
        return socket.create_connection(self.address, timeout=5.0)

    def stop(self):
        self.server.shutdown()
        self.future.result(timeout=5.0)
        self.server.platform.shutdown(wait=True)


@pytest.fixture
def running_server(config: ServerConfig) -> Generator[RunningServer, None, None]:
    """Start a server on a free port and stop it after the test."""
    srv = RunningServer(ControlServer(config))

    yield srv

    srv.stop()
