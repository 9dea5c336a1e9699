"""
Command Client Module

This module maps typed method calls to RESP commands and converts the
replies back to Python values.
"""

import logging
from typing import List, Optional, Set, Union

from respclient.commands.lists import Lists
from respclient.config import Config
from respclient.core.connection import Connection
from respclient.core.transaction import Transaction
from respclient.exceptions import ProtocolError, ResponseError
from respclient.protocol.constants import STATUS_OK
from respclient.protocol.resp import Command, Reply, ReplyKind
from respclient.pubsub.subscription import Subscription

logger = logging.getLogger(__name__)

Value = Union[bytes, str, int, float]

SEQUENCE_KEY_PREFIX = "seq:"


class CommandClient:
    """Issues individual commands over a connection."""

    def __init__(self, connection: Connection):
        """
        Initialize the client.

        Args:
            connection: An open connection, owned by this client from now on
        """
        self.connection = connection
        self.lists = Lists(self)

    @classmethod
    def from_config(cls, config: Config) -> "CommandClient":
        """Open a connection described by a Config and wrap it."""
        return cls(Connection.from_config(config))

    @property
    def encoding(self) -> str:
        return self.connection.encoding

    def execute_command(self, *args: Value) -> Reply:
        """
        Send a raw command and return its reply undecoded.

        Args:
            *args: Command name followed by its arguments

        Returns:
            The reply as sent by the server

        Raises:
            ResponseError: If the server answered with an error reply
        """
        command = Command.build(*args, encoding=self.encoding)
        self.connection.send(command)
        reply = self.connection.receive()
        if reply.is_error:
            message = self._decode(reply.value)
            logger.debug(f"Command {command.name} failed: {message}")
            raise ResponseError(message)
        return reply

    def ping(self) -> bool:
        reply = self._expect(self.execute_command("PING"), ReplyKind.SIMPLE_STRING)
        return reply.value == b"PONG"

    def get(self, key: str) -> Optional[str]:
        """
        GET command.

        Returns:
            The value, or None if the key does not exist
        """
        reply = self._expect(self.execute_command("GET", key), ReplyKind.BULK_STRING)
        return self._decode(reply.value)

    def set(self, key: str, value: Value, ex: Optional[int] = None,
            px: Optional[int] = None) -> bool:
        """
        SET command.

        Args:
            key: The key to set
            value: The value to store
            ex: Optional expiration in seconds
            px: Optional expiration in milliseconds

        Returns:
            True if the server acknowledged with OK
        """
        args: List[Value] = ["SET", key, value]
        if ex is not None:
            args.extend(["EX", ex])
        if px is not None:
            args.extend(["PX", px])

        reply = self._expect(self.execute_command(*args),
                             ReplyKind.SIMPLE_STRING, ReplyKind.BULK_STRING)
        return self._is_ok(reply)

    def incr(self, key: str) -> int:
        return self._integer("INCR", key)

    def incrby(self, key: str, amount: int) -> int:
        return self._integer("INCRBY", key, amount)

    def delete(self, *keys: str) -> int:
        """
        DEL command.

        Returns:
            Number of keys that were removed
        """
        return self._integer("DEL", *keys)

    def lpush(self, key: str, *values: Value) -> int:
        """LPUSH command. Returns the list length after the push."""
        return self._integer("LPUSH", key, *values)

    def rpush(self, key: str, *values: Value) -> int:
        """RPUSH command. Returns the list length after the push."""
        return self._integer("RPUSH", key, *values)

    def lrange(self, key: str, start: int, stop: int) -> List[str]:
        """
        LRANGE command.

        Args:
            key: The list key
            start: First index, negative values count from the tail
            stop: Last index (inclusive), negative values count from the tail

        Returns:
            The selected elements in list order
        """
        reply = self._expect(self.execute_command("LRANGE", key, start, stop), ReplyKind.ARRAY)
        return self._strings(reply)

    def ltrim(self, key: str, start: int, stop: int) -> bool:
        reply = self._expect(self.execute_command("LTRIM", key, start, stop), ReplyKind.SIMPLE_STRING)
        return self._is_ok(reply)

    def llen(self, key: str) -> int:
        return self._integer("LLEN", key)

    def sadd(self, key: str, *members: Value) -> int:
        """SADD command. Returns the number of members that were added."""
        return self._integer("SADD", key, *members)

    def smembers(self, key: str) -> Set[str]:
        reply = self._expect(self.execute_command("SMEMBERS", key), ReplyKind.ARRAY)
        return set(self._strings(reply))

    def publish(self, channel: str, message: Value) -> int:
        """
        PUBLISH command.

        Returns:
            Number of subscribers that received the message
        """
        return self._integer("PUBLISH", channel, message)

    def get_next_sequence(self, type_name: str) -> int:
        """
        Return the next identifier for a record type.

        The counter lives in ``seq:<type_name>`` and is advanced with INCR, so
        identifiers are unique and strictly increasing per type.
        """
        return self.incr(f"{SEQUENCE_KEY_PREFIX}{type_name}")

    def create_transaction(self) -> Transaction:
        return Transaction(self.connection)

    def create_subscription(self) -> Subscription:
        """
        Hand this client's connection over to a new subscription.

        The connection rejects regular commands while it is subscribed.
        """
        return Subscription(self.connection)

    def close(self) -> None:
        self.connection.close()

    def _integer(self, *args: Value) -> int:
        reply = self._expect(self.execute_command(*args), ReplyKind.INTEGER)
        return reply.value

    def _expect(self, reply: Reply, *kinds: ReplyKind) -> Reply:
        if reply.kind not in kinds:
            expected = " or ".join(kind.label for kind in kinds)
            raise ProtocolError(f"Expected {expected} reply, got {reply.kind.label}")
        return reply

    def _is_ok(self, reply: Reply) -> bool:
        return reply.kind is ReplyKind.SIMPLE_STRING and reply.value == STATUS_OK

    def _strings(self, reply: Reply) -> List[Optional[str]]:
        if reply.value is None:
            return []

        values = []
        for element in reply.value:
            self._expect(element, ReplyKind.BULK_STRING, ReplyKind.SIMPLE_STRING)
            values.append(self._decode(element.value))
        return values

    def _decode(self, value: Optional[bytes]) -> Optional[str]:
        if value is None:
            return None
        return value.decode(self.encoding)

    def __enter__(self) -> "CommandClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
