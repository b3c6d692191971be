"""
=============================================================================
COMMAND PROCESSOR
=============================================================================

Turns one read cycle on a readable connection into a protocol decision.

=============================================================================
WIRE PROTOCOL
=============================================================================

Plain text over TCP. There is no framing: whatever a single read returns
(at most one buffer's worth) IS the command.

    Client                                   Server
      │                                        │
      │  ping ───────────────────────────────► │
      │ ◄─────────────── Server received: ping │
      │                                        │
      │  STOP_SERVER ────────────────────────► │
      │ ◄──────────────────────────── (close)  │   whole server stops
      │                                        │

Matching is exact and case-sensitive on the ENTIRE payload, so
"STOP_SERVER\\n" (what `nc` sends) is echoed like any other text.

=============================================================================
ENCODING
=============================================================================

Payloads are decoded with errors="surrogateescape". Bytes that are not
valid in the configured encoding survive as lone surrogates and are
re-encoded to the very same bytes, so the span sent back always equals
the span read, even when truncation split a multi-byte character.

=============================================================================
"""

import logging
from typing import Union

from ..core.buffer import TransferBuffer
from ..core.connection import ClientConnection


logger = logging.getLogger(__name__)


STOP_COMMAND = "STOP_SERVER"
RESPONSE_PREFIX = "Server received: "

_ERRORS = "surrogateescape"


def decode_payload(data: Union[bytes, bytearray, memoryview], encoding: str = "utf-8") -> str:
    """Decode received bytes into a command payload."""
    return bytes(data).decode(encoding, _ERRORS)


def encode_payload(text: str, encoding: str = "utf-8") -> bytes:
    """Encode a payload or response for the wire."""
    return text.encode(encoding, _ERRORS)


def format_response(payload: str) -> str:
    """The reply for any payload that is not the stop command."""
    return f"{RESPONSE_PREFIX}{payload}"


def is_stop_command(payload: str) -> bool:
    return payload == STOP_COMMAND


def handle_readable(
    buffer: TransferBuffer,
    connection: ClientConnection,
    debug: bool = False,
    encoding: str = "utf-8",
) -> bool:
    """
    Serve one read cycle on a readable connection.

    ┌─────────────────────────────────────────────────────────────────┐
    │                    handle_readable() Flow                        │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   clear() ─► fill_from(socket) ─► flip() ─► decode              │
    │                                               │                  │
    │                        ┌──────────────────────┴─────────┐        │
    │                        ▼                                ▼        │
    │                  STOP_SERVER?                      anything else │
    │                        │                                │        │
    │               close connection              send "Server         │
    │               return False                  received: <text>"    │
    │                                             clear()              │
    │                                             return True          │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

    Readiness without pending bytes is ignored: nothing is sent and the
    connection stays open.

    A zero-byte read means the peer closed its sending side. It is
    answered like an empty command ("Server received: ") on a best-effort
    basis and the connection is then closed, since the selector would
    otherwise report it readable forever.

    Args:
        buffer: The shared transfer buffer.
        connection: The readable client connection.
        debug: Log every received payload.
        encoding: Text encoding for both directions.

    Returns:
        False if the server must stop, True to keep serving.

    Raises:
        OSError: If reading or writing a live connection fails.
    """
    buffer.clear()
    try:
        count = buffer.fill_from(connection.socket)
    except (BlockingIOError, InterruptedError):
        # Spurious readiness: nothing to read yet, the client is still live
        logger.debug(f"[{connection.id}] Spurious read readiness, nothing pending")
        return True
    buffer.flip()
    payload = decode_payload(buffer.read(), encoding)
    connection.commands_handled += 1

    if debug:
        logger.info(f"[{connection.id}] Server received: {payload}")

    if is_stop_command(payload):
        logger.info(f"[{connection.id}] Stop command received, closing client channel")
        connection.close()
        return False

    response = encode_payload(format_response(payload), encoding)

    if count == 0:
        try:
            connection.send(response)
        except OSError as e:
            logger.debug(f"[{connection.id}] Peer gone before reply: {e}")
        logger.info(f"[{connection.id}] End of stream, closing client channel")
        connection.close()
    else:
        connection.send(response)

    buffer.clear()
    return True
