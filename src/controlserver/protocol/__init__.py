"""
Text command protocol: decoding, the stop command and echo replies.
"""

from .commands import (
    RESPONSE_PREFIX,
    STOP_COMMAND,
    decode_payload,
    encode_payload,
    format_response,
    handle_readable,
    is_stop_command,
)

__all__ = [
    "RESPONSE_PREFIX",
    "STOP_COMMAND",
    "decode_payload",
    "encode_payload",
    "format_response",
    "handle_readable",
    "is_stop_command",
]
