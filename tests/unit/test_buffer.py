"""
Unit tests for the shared transfer buffer.
"""

import socket

import pytest

from controlserver.core.buffer import TransferBuffer


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    a.settimeout(2.0)
    yield a, b
    a.close()
    b.close()


class TestCursors:
    """Tests for clear/flip/read cursor handling."""

    def test_new_buffer_is_in_write_mode(self):
        buffer = TransferBuffer(256)

        assert buffer.capacity == 256
        assert buffer.position == 0
        assert buffer.limit == 256
        assert buffer.remaining == 256

    def test_flip_exposes_written_span(self, pair):
        reader, writer = pair
        writer.sendall(b"hello")
        buffer = TransferBuffer(16)
        buffer.fill_from(reader)
        buffer.flip()

        assert buffer.position == 0
        assert buffer.limit == 5
        assert buffer.read() == b"hello"
        assert buffer.remaining == 0

    def test_clear_forgets_previous_contents(self, pair):
        reader, writer = pair
        buffer = TransferBuffer(16)
        writer.sendall(b"first message")
        buffer.fill_from(reader)
        buffer.flip()
        buffer.read()

        buffer.clear()
        writer.sendall(b"two")
        buffer.fill_from(reader)
        buffer.flip()

        assert buffer.read() == b"two"

    def test_full_buffer_reads_nothing_more(self, pair):
        reader, writer = pair
        writer.sendall(b"abcdef")
        buffer = TransferBuffer(4)

        assert buffer.fill_from(reader) == 4
        assert buffer.fill_from(reader) == 0
        buffer.flip()
        assert buffer.read() == b"abcd"

    def test_flip_without_writes_is_empty(self):
        buffer = TransferBuffer(8)
        buffer.flip()

        assert buffer.read() == b""

    @pytest.mark.parametrize("capacity", [0, -1])
    def test_invalid_capacity(self, capacity):
        with pytest.raises(ValueError):
            TransferBuffer(capacity)


class TestFillFrom:
    """Tests for receiving from a socket."""

    def test_fill_from_socket(self, pair):
        reader, writer = pair
        writer.sendall(b"ping")
        buffer = TransferBuffer(256)

        assert buffer.fill_from(reader) == 4
        buffer.flip()
        assert buffer.read() == b"ping"

    def test_long_message_is_split_across_cycles(self, pair):
        reader, writer = pair
        writer.sendall(b"x" * 12)
        buffer = TransferBuffer(8)

        assert buffer.fill_from(reader) == 8
        buffer.flip()
        assert buffer.read() == b"x" * 8

        buffer.clear()
        assert buffer.fill_from(reader) == 4

    def test_end_of_stream_reads_zero(self, pair):
        reader, writer = pair
        writer.shutdown(socket.SHUT_WR)
        buffer = TransferBuffer(8)

        assert buffer.fill_from(reader) == 0
        buffer.flip()
        assert buffer.read() == b""
