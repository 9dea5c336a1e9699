"""Protocol package - RESP protocol implementation."""

from .resp import (
    Command,
    Reply,
    ReplyKind,
    decode_reply,
    encode_command,
    parse_integer,
    encode_simple_string,
    encode_error,
    encode_integer,
    encode_bulk_string,
    encode_array,
    encode_reply,
)

__all__ = [
    'Command',
    'Reply',
    'ReplyKind',
    'decode_reply',
    'encode_command',
    'parse_integer',
    'encode_simple_string',
    'encode_error',
    'encode_integer',
    'encode_bulk_string',
    'encode_array',
    'encode_reply',
]
