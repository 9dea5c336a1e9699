"""
RESP (REdis Serialization Protocol) Codec

This module handles encoding of commands and replies, and decoding of
replies. RESP is a simple line-oriented, binary-safe protocol used by Redis
for client-server communication.

The codec only works on in-memory buffers. It never reads from a socket and
never blocks: when a buffer holds an incomplete reply, decoding reports it
and the caller refills the buffer and tries again.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

from respclient.exceptions import ProtocolError, UsageError
from respclient.protocol.constants import CRLF, INT64_MAX, INT64_MIN

_INTEGER_PATTERN = re.compile(rb"-?[0-9]+")


class ReplyKind(Enum):
    """Reply types, keyed by their leading type-marker byte."""
    SIMPLE_STRING = b"+"
    ERROR = b"-"
    INTEGER = b":"
    BULK_STRING = b"$"
    ARRAY = b"*"

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()


@dataclass(frozen=True)
class Reply:
    """
    A single decoded reply.

    ``value`` holds bytes for simple strings, errors and bulk strings, an int
    for integers and a list of Reply for arrays. Null bulk strings and null
    arrays carry ``None``.
    """
    kind: ReplyKind
    value: Any

    @property
    def is_error(self) -> bool:
        return self.kind is ReplyKind.ERROR

    @property
    def is_null(self) -> bool:
        return self.value is None


@dataclass(frozen=True)
class Command:
    """An immutable, ordered sequence of byte-string arguments."""
    args: Tuple[bytes, ...]

    @classmethod
    def build(cls, *args: Union[bytes, str, int, float], encoding: str = "utf-8") -> "Command":
        """
        Build a command from mixed argument types.

        Args:
            *args: Command name followed by its arguments
            encoding: Encoding used for str arguments

        Returns:
            The immutable command

        Raises:
            UsageError: If no arguments are given or an argument has an
                unsupported type
        """
        if not args:
            raise UsageError("A command needs at least a name")
        return cls(tuple(_to_bytes(arg, encoding) for arg in args))

    @property
    def name(self) -> str:
        return self.args[0].decode("utf-8", errors="replace").upper()

    def __len__(self) -> int:
        return len(self.args)


def _to_bytes(arg: Union[bytes, str, int, float], encoding: str) -> bytes:
    # bool is an int subclass; "True" is never what the caller meant
    if isinstance(arg, bool):
        raise UsageError(f"Invalid command argument {arg!r}: convert booleans explicitly")
    if isinstance(arg, bytes):
        return arg
    if isinstance(arg, (bytearray, memoryview)):
        return bytes(arg)
    if isinstance(arg, str):
        return arg.encode(encoding)
    if isinstance(arg, int):
        return str(arg).encode()
    if isinstance(arg, float):
        return repr(arg).encode()
    raise UsageError(f"Invalid command argument type {type(arg).__name__}")


def encode_command(command: Command) -> bytes:
    """
    Encode a command as a RESP array of bulk strings.

    Args:
        command: Command to encode

    Returns:
        RESP-encoded request bytes, ``*<argc>\\r\\n`` followed by
        ``$<len>\\r\\n<arg>\\r\\n`` for each argument
    """
    parts = [b"*%d\r\n" % len(command.args)]
    for arg in command.args:
        parts.append(b"$%d\r\n" % len(arg))
        parts.append(arg)
        parts.append(CRLF)
    return b"".join(parts)


def parse_integer(raw: bytes) -> int:
    """
    Parse RESP integer text as a 64-bit signed integer.

    Raises:
        ProtocolError: If the text is not a decimal integer or is out of range
    """
    if not _INTEGER_PATTERN.fullmatch(raw):
        raise ProtocolError(f"Invalid integer value: {bytes(raw)!r}")

    value = int(raw)
    if value < INT64_MIN or value > INT64_MAX:
        raise ProtocolError(f"Integer value out of 64-bit range: {bytes(raw)!r}")
    return value


def decode_reply(data: Union[bytes, bytearray], offset: int = 0) -> Tuple[Optional[Reply], int]:
    """
    Decode exactly one reply from a buffer.

    Args:
        data: Buffer holding raw reply bytes
        offset: Position of the reply's type marker in ``data``

    Returns:
        tuple: (reply, next_offset)
               Returns (None, offset) if the buffer holds an incomplete reply

    Raises:
        ProtocolError: If the bytes are not a valid RESP reply
    """
    if offset >= len(data):
        return None, offset

    marker = bytes(data[offset:offset + 1])
    try:
        kind = ReplyKind(marker)
    except ValueError:
        raise ProtocolError(f"Unknown reply type marker: {marker!r}") from None

    line_end = data.find(CRLF, offset + 1)
    if line_end == -1:
        return None, offset

    line = bytes(data[offset + 1:line_end])
    position = line_end + 2

    if kind in (ReplyKind.SIMPLE_STRING, ReplyKind.ERROR):
        return Reply(kind, line), position

    if kind is ReplyKind.INTEGER:
        return Reply(kind, parse_integer(line)), position

    length = parse_integer(line)
    if length < -1:
        raise ProtocolError(f"Invalid {kind.label} length: {length}")
    if length == -1:
        return Reply(kind, None), position

    if kind is ReplyKind.BULK_STRING:
        end = position + length
        if end + 2 > len(data):
            return None, offset
        if data[end:end + 2] != CRLF:
            raise ProtocolError("Bulk String payload is not terminated by CRLF")
        return Reply(kind, bytes(data[position:end])), end + 2

    elements = []
    for _ in range(length):
        element, position = decode_reply(data, position)
        if element is None:
            return None, offset
        elements.append(element)

    return Reply(kind, elements), position


def encode_simple_string(s: str) -> bytes:
    """
    Encode a simple string in RESP format.

    Args:
        s: String to encode

    Returns:
        RESP-encoded simple string
    """
    return f"+{s}\r\n".encode()


def encode_error(error_msg: str) -> bytes:
    """
    Encode an error message in RESP format.

    Args:
        error_msg: Error message to encode

    Returns:
        RESP-encoded error message
    """
    return f"-{error_msg}\r\n".encode()


def encode_integer(value: int) -> bytes:
    """Encode an integer in RESP format."""
    return b":%d\r\n" % value


def encode_bulk_string(s: Optional[Union[str, bytes]]) -> bytes:
    """
    Encode a bulk string in RESP format.

    Args:
        s: String to encode, or None for the null bulk string

    Returns:
        RESP-encoded bulk string
    """
    if s is None:
        return b"$-1\r\n"
    s_bytes = s.encode() if isinstance(s, str) else s
    return b"$%d\r\n" % len(s_bytes) + s_bytes + CRLF


def encode_array(items: Optional[List[bytes]]) -> bytes:
    """
    Encode an array of already-encoded replies.

    Args:
        items: RESP-encoded elements, or None for the null array

    Returns:
        RESP-encoded array
    """
    if items is None:
        return b"*-1\r\n"
    return b"*%d\r\n" % len(items) + b"".join(items)


def encode_reply(reply: Reply) -> bytes:
    """
    Encode a decoded Reply back to its wire form.

    Args:
        reply: Reply of any kind; nested Array elements are encoded recursively

    Returns:
        RESP-encoded reply, with null Bulk Strings and Arrays as their -1 forms
    """
    if reply.kind is ReplyKind.SIMPLE_STRING:
        return b"+" + reply.value + CRLF
    if reply.kind is ReplyKind.ERROR:
        return b"-" + reply.value + CRLF
    if reply.kind is ReplyKind.INTEGER:
        return encode_integer(reply.value)
    if reply.kind is ReplyKind.BULK_STRING:
        return encode_bulk_string(reply.value)
    if reply.value is None:
        return encode_array(None)
    return encode_array([encode_reply(element) for element in reply.value])
