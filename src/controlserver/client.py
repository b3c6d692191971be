"""
Blocking client for the control protocol.

    with ControlClient("127.0.0.1", 1111) as client:
        client.send("ping")      # -> "Server received: ping"
        client.stop()            # server shuts down
"""

import logging
import socket
from typing import Optional

from .protocol import STOP_COMMAND, decode_payload, encode_payload


logger = logging.getLogger(__name__)


class ControlClient:
    """One TCP connection to a control server."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 1111,
        timeout: Optional[float] = 5.0,
        encoding: str = "utf-8",
        buffer_size: int = 4096,
    ):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.encoding = encoding
        self.buffer_size = buffer_size
        self._socket: Optional[socket.socket] = None

    @property
    def is_connected(self) -> bool:
        return self._socket is not None

    def connect(self) -> "ControlClient":
        if self._socket is None:
            self._socket = socket.create_connection((self.host, self.port), timeout=self.timeout)
            logger.debug(f"Connected to {self.host}:{self.port}")
        return self

    def send(self, text: str) -> str:
        """
        Send one command and return the reply.

        The protocol has no framing, so the reply is whatever a single
        recv() returns. An empty string means the server closed the
        connection.
        """
        sock = self.connect()._socket
        sock.sendall(encode_payload(text, self.encoding))
        return decode_payload(sock.recv(self.buffer_size), self.encoding)

    def stop(self) -> None:
        """Send STOP_SERVER and close. The server sends no reply."""
        sock = self.connect()._socket
        sock.sendall(encode_payload(STOP_COMMAND, self.encoding))
        self.close()

    def close(self) -> None:
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
