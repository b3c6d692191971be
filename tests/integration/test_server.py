"""
End-to-end tests over real loopback TCP connections.
"""

import logging
import selectors
import socket
import struct
import threading
import time

import pytest

from controlserver import ControlServer, Platform, ServerConfig, run_server
from controlserver.core import create_listening_socket


PREFIX = b"Server received: "


def recv_until_closed(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


def assert_port_unbound(address):
    with pytest.raises(ConnectionRefusedError):
        socket.create_connection(address, timeout=2.0).close()


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestEcho:
    """Tests for the normal request/response path."""

    def test_ping(self, running_server):
        with running_server.connect() as client:
            client.sendall(b"ping")
            assert client.recv(4096) == b"Server received: ping"

            client.sendall(b"still here")
            assert client.recv(4096) == b"Server received: still here"

    def test_clients_are_interleaved_without_cross_talk(self, running_server):
        clients = [running_server.connect() for _ in range(3)]
        try:
            for round_number in range(3):
                for index, client in enumerate(clients):
                    text = f"client-{index}-round-{round_number}".encode()
                    client.sendall(text)
                    assert client.recv(4096) == PREFIX + text
        finally:
            for client in clients:
                client.close()

    def test_half_closed_peer_gets_empty_reply(self, running_server):
        with running_server.connect() as client:
            client.shutdown(socket.SHUT_WR)
            assert recv_until_closed(client) == PREFIX

        assert wait_for(lambda: len(running_server.server.registry) == 0)

    def test_long_payload_is_echoed_in_chunks(self, running_server):
        payload = b"a" * 300
        with running_server.connect() as client:
            client.sendall(payload)

            received = b""
            deadline = time.monotonic() + 5.0
            while received.count(b"a") < len(payload) and time.monotonic() < deadline:
                received += client.recv(4096)

        chunks = [chunk for chunk in received.split(PREFIX) if chunk]
        assert sum(len(chunk) for chunk in chunks) == len(payload)
        assert all(len(chunk) <= 256 for chunk in chunks)

    def test_debug_logs_payloads(self, free_port, caplog):
        caplog.set_level(logging.INFO, logger="controlserver")
        server = ControlServer(ServerConfig(port=free_port, debug=True))
        future = server.serve_in_background()
        assert server.wait_until_listening(timeout=5.0)

        with socket.create_connection(server.address, timeout=5.0) as client:
            client.sendall(b"hello")
            client.recv(4096)
            client.sendall(b"STOP_SERVER")

        future.result(timeout=5.0)
        server.platform.shutdown()

        assert "Server received: hello" in caplog.text


class TestStop:
    """Tests for STOP_SERVER and shutdown()."""

    def test_stop_command_terminates_server(self, running_server):
        with running_server.connect() as client:
            client.sendall(b"ping")
            assert client.recv(4096) == b"Server received: ping"

            client.sendall(b"STOP_SERVER")
            assert recv_until_closed(client) == b""

        running_server.future.result(timeout=5.0)

        assert not running_server.server.is_running
        assert running_server.server.wait_for_shutdown(timeout=0)
        assert_port_unbound(running_server.address)

    def test_stop_closes_other_clients(self, running_server):
        bystander = running_server.connect()
        bystander.sendall(b"hi")
        assert bystander.recv(4096) == b"Server received: hi"

        with running_server.connect() as client:
            client.sendall(b"STOP_SERVER")

        running_server.future.result(timeout=5.0)

        assert recv_until_closed(bystander) == b""
        bystander.close()

    def test_shutdown_from_another_thread(self, running_server):
        address = running_server.address

        running_server.stop()

        assert running_server.server.wait_for_shutdown(timeout=5.0)
        assert_port_unbound(address)

    def test_run_only_once(self, running_server):
        running_server.stop()

        with pytest.raises(RuntimeError):
            running_server.server.run()


class TestFailures:
    """Tests for error handling in the serve loop."""

    def test_reset_client_does_not_stop_server(self, config):
        failures = []
        platform = Platform().with_report_failure(failures.append)
        server = ControlServer(config, platform=platform)
        future = server.serve_in_background()
        assert server.wait_until_listening(timeout=5.0)

        try:
            victim = socket.create_connection(server.address, timeout=5.0)
            assert wait_for(lambda: len(server.registry) == 1)
            # SO_LINGER with a zero timeout makes close() send RST
            victim.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
            victim.close()

            assert wait_for(lambda: len(server.registry) == 0)

            with socket.create_connection(server.address, timeout=5.0) as client:
                client.sendall(b"ping")
                assert client.recv(4096) == b"Server received: ping"
        finally:
            server.shutdown()
            future.result(timeout=5.0)
            platform.shutdown()

        assert all(isinstance(error, OSError) for error in failures)

    def test_bind_failure_is_raised(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as taken:
            taken.bind(("127.0.0.1", 0))
            taken.listen()
            port = taken.getsockname()[1]

            server = ControlServer(ServerConfig(port=port))
            with pytest.raises(OSError):
                server.run()

        assert not server.is_running
        server.platform.shutdown()


def test_run_server_with_explicit_collaborators(config, free_port):
    selector = selectors.DefaultSelector()
    listening_socket = create_listening_socket()
    address = ("127.0.0.1", free_port)

    worker = threading.Thread(
        target=run_server,
        args=(config, selector, listening_socket, address),
        daemon=True,
    )
    worker.start()

    assert wait_for(lambda: _can_connect(address))
    with socket.create_connection(address, timeout=5.0) as client:
        client.sendall(b"ping")
        assert client.recv(4096) == b"Server received: ping"
        client.sendall(b"STOP_SERVER")

    worker.join(timeout=5.0)

    assert not worker.is_alive()
    assert listening_socket.fileno() == -1
    assert selector.get_map() is None
    assert_port_unbound(address)


def _can_connect(address) -> bool:
    try:
        with socket.create_connection(address, timeout=0.5) as client:
            client.sendall(b"ready?")
            return client.recv(4096) == b"Server received: ready?"
    except OSError:
        return False
