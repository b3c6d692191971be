"""
=============================================================================
CONTROL SERVER
=============================================================================

The serve loop that ties the registry, the shared transfer buffer and the
command processor together.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONTROL SERVER ARCHITECTURE                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │  ControlServer  │                          │
    │                        │   (serve loop)  │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            │                    │                    │              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐        │
    │    │  Connection  │    │   Transfer   │    │   Command    │        │
    │    │   Registry   │    │    Buffer    │    │  Processor   │        │
    │    │  (selector)  │    │  (256 bytes) │    │ (protocol)   │        │
    │    └──────────────┘    └──────────────┘    └──────────────┘        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
LOOP LIFECYCLE
=============================================================================

    1. BIND
       └── SO_REUSEADDR, bind, listen, non-blocking, register ACCEPTABLE
    2. WAIT
       └── registry.wait() blocks with no timeout
    3. DISPATCH (strictly one event at a time)
       ├── ACCEPTABLE → accept_and_register()
       └── READABLE   → handle_readable() → keep running?
    4. STOP (STOP_SERVER or shutdown())
       ├── rest of the batch is skipped
       ├── remaining client connections are closed
       └── listening socket and selector are closed

=============================================================================
"""

import logging
import selectors
import socket
import threading
from concurrent.futures import Future
from dataclasses import replace
from typing import Optional, Tuple

from .config import ServerConfig
from .core import (
    ClientConnection,
    ConnectionRegistry,
    Readiness,
    TransferBuffer,
    bind_listening_socket,
    create_listening_socket,
)
from .platform import Platform
from .protocol import handle_readable


logger = logging.getLogger(__name__)


class ControlServer:
    """
    Single-threaded, readiness-driven command server.

    =========================================================================
    USAGE
    =========================================================================

        server = ControlServer(ServerConfig(port=1111, debug=True))
        server.run()  # Blocks until a client sends STOP_SERVER

        # Or, embedded / in tests:
        future = server.serve_in_background()
        server.wait_until_listening(timeout=5)
        ...
        server.shutdown()
        future.result(timeout=5)

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        platform: Optional[Platform] = None,
        selector: Optional[selectors.BaseSelector] = None,
        listening_socket: Optional[socket.socket] = None,
        registry: Optional[ConnectionRegistry] = None,
    ):
        """
        Initialize the control server.

        Args:
            config: Server configuration. Defaults are used if not provided.
            platform: Executor, failure reporting and signal handling.
            selector: Readiness multiplexer. DefaultSelector if not provided.
            listening_socket: Unbound TCP socket. Created if not provided.
            registry: Connection registry. Built on `selector` if not provided.
        """
        self.config = config or ServerConfig()
        self.config.validate()  # Fail fast on invalid config

        self.platform = platform or Platform()

        self._registry = registry if registry is not None else ConnectionRegistry(selector)
        self._listening_socket = listening_socket or create_listening_socket()
        self._buffer = TransferBuffer(self.config.buffer_size)

        self._address: Optional[Tuple[str, int]] = None
        self._running = False
        self._started = False
        self._shutdown_requested = False
        self._signals_installed = False

        self._listening_event = threading.Event()
        self._shutdown_event = threading.Event()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound address, or the configured one before binding."""
        return self._address or self.config.address

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def buffer(self) -> TransferBuffer:
        return self._buffer

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self) -> None:
        """
        Bind and serve until stopped (blocking).

        Returns normally after STOP_SERVER or shutdown(). Any other
        exception that escapes the loop still tears everything down.
        """
        if self._started:
            raise RuntimeError("ControlServer instances can only be run once")
        self._started = True

        try:
            self._address = bind_listening_socket(
                self._listening_socket, self.config.address, self.config.backlog
            )
            self._registry.register_listener(self._listening_socket)
        except BaseException:
            self._teardown()
            raise

        self._running = True
        self._install_signal_handlers()
        self._listening_event.set()

        logger.info(f"Control server listening on {self.address[0]}:{self.address[1]}")

        try:
            self._serve_loop()
        finally:
            self._teardown()

    def serve_in_background(self) -> "Future[None]":
        """Submit run() to the platform executor."""
        return self.platform.executor.submit(self.run)

    def shutdown(self) -> None:
        """
        Request a stop from another thread or a signal handler.

        The loop finishes its current batch entry, then tears down as if
        a client had sent STOP_SERVER. Safe to call more than once.
        """
        if self._shutdown_requested:
            return
        logger.info("Shutdown requested")
        self._shutdown_requested = True
        self._registry.wakeup()

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        """Wait until the socket is bound (or the server gave up). False on timeout."""
        return self._listening_event.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Wait until teardown has completed. Returns False on timeout."""
        return self._shutdown_event.wait(timeout)

    # =========================================================================
    # SERVE LOOP
    # =========================================================================

    def _serve_loop(self) -> None:
        while self._running:
            # ─────────────────────────────────────────────────────────────
            # WAIT: the only place this thread ever blocks
            # ─────────────────────────────────────────────────────────────
            events = self._registry.wait()

            for event in events:
                if self._shutdown_requested:
                    break

                if event.readiness is Readiness.ACCEPTABLE:
                    self._accept()
                elif event.readiness is Readiness.READABLE:
                    self._running = self._serve(event.connection)

                if not self._running:
                    # STOP_SERVER: the rest of the batch is not processed
                    break

            if self._shutdown_requested:
                self._running = False

    def _accept(self) -> None:
        try:
            self._registry.accept_and_register()
        except OSError as e:
            # ConnectionAbortedError and friends: the client gave up
            self.platform.report_failure(e)

    def _serve(self, conn: ClientConnection) -> bool:
        """
        Run the command processor for one readable connection.

        Returns the processor's decision. I/O errors on a single client
        are reported and cost that client its connection, nothing more.
        """
        try:
            keep_running = handle_readable(
                self._buffer, conn, self.config.debug, self.config.encoding
            )
        except OSError as e:
            logger.warning(f"[{conn.id}] I/O error, dropping connection: {e}")
            self.platform.report_failure(e)
            conn.close()
            keep_running = True
        except BaseException as e:
            if self.platform.fatal(e):
                self.platform.report_fatal(e)
            raise
        finally:
            self._buffer.clear()

        if conn.is_closed:
            self._registry.discard(conn)

        return keep_running

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    def _teardown(self) -> None:
        """
        Close everything the server owns.

        Client connections that were still registered (including ones that
        were ready in the same batch as the stop command) are closed here.
        """
        self._running = False
        if self._signals_installed:
            self.platform.restore_signal_handlers()
            self._signals_installed = False

        closed = self._registry.close_connections()
        if closed:
            logger.info(f"Closed {closed} remaining client connection(s)")

        self._registry.unregister_listener()
        logger.info("Closing listening socket")
        self._listening_socket.close()
        self._registry.close()

        self._listening_event.set()
        self._shutdown_event.set()
        logger.info("Control server stopped")

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        for name in ("INT", "TERM"):
            if self.platform.add_signal_handler(name, self.shutdown):
                self._signals_installed = True


def run_server(
    config: ServerConfig,
    selector: Optional[selectors.BaseSelector] = None,
    listening_socket: Optional[socket.socket] = None,
    address: Optional[Tuple[str, int]] = None,
    platform: Optional[Platform] = None,
) -> None:
    """
    Serve on `address` until a client sends STOP_SERVER.

    `address` overrides config.host/config.port when given.
    """
    if address is not None:
        config = replace(config, host=address[0], port=address[1])
    ControlServer(config, platform, selector, listening_socket).run()


def setup_logging(log_level: str = "INFO") -> None:
    """Configure logging for command-line use."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("controlserver").setLevel(level)
