"""Protocol constants shared by the codec and the connection layer."""

CRLF = b"\r\n"

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

# Commands a connection may still issue while in subscription mode
ALLOWED_COMMANDS_WHEN_SUBSCRIBED = frozenset({
    "SUBSCRIBE",
    "UNSUBSCRIBE",
    "PSUBSCRIBE",
    "PUNSUBSCRIBE",
    "PING",
    "QUIT",
})

STATUS_OK = b"OK"
STATUS_QUEUED = b"QUEUED"
