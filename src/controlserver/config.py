"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the control server.

The server reads its configuration exactly once, at startup, and never
changes it afterwards. That is why ServerConfig is a FROZEN dataclass:
any attempt to mutate it raises dataclasses.FrozenInstanceError.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m controlserver serve --port 3000                  │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── CONTROL_PORT=3000 python -m controlserver serve            │
    │                                                                      │
    │   3. Default values (in this dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import codecs
import logging
import os
from dataclasses import dataclass
from typing import Tuple


_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the control server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog

    PROTOCOL SETTINGS
    - buffer_size, encoding, debug

    LOGGING
    - log_level

    =========================================================================
    USAGE
    =========================================================================

        # Development: echo every command to the log
        ServerConfig(port=1111, debug=True, log_level="DEBUG")

        # Tests: let the OS pick a free port
        ServerConfig(port=0)

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """The IP address to bind to."""

    port: int = 1111
    """
    The port number to listen on.
    0 asks the OS for any free port (useful in tests).
    """

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    # ─────────────────────────────────────────────────────────────────────
    # PROTOCOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    debug: bool = False
    """Log every received payload."""

    buffer_size: int = 256
    """
    Capacity of the shared transfer buffer in bytes.
    A single read never returns more than this; longer messages are
    split across read cycles.
    """

    encoding: str = "utf-8"
    """Text encoding used in both directions."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    @property
    def address(self) -> Tuple[str, int]:
        """The (host, port) pair to bind to."""
        return (self.host, self.port)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        CONTROL_HOST         Server host (default: 127.0.0.1)
        CONTROL_PORT         Server port (default: 1111)
        CONTROL_DEBUG        Log received payloads (1/true/yes/on)
        CONTROL_BUFFER_SIZE  Transfer buffer capacity (default: 256)
        CONTROL_LOG_LEVEL    Logging level (default: INFO)

        =====================================================================
        """
        return cls(
            host=os.getenv("CONTROL_HOST", "127.0.0.1"),
            port=int(os.getenv("CONTROL_PORT", "1111")),
            debug=_env_flag("CONTROL_DEBUG"),
            buffer_size=int(os.getenv("CONTROL_BUFFER_SIZE", "256")),
            log_level=os.getenv("CONTROL_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by ControlServer.__init__ so that a bad value fails at
        startup rather than in the middle of the serve loop.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")

        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level}")

        try:
            codecs.lookup(self.encoding)
        except LookupError:
            raise ValueError(f"Unknown encoding: {self.encoding}") from None
