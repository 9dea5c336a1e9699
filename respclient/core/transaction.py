"""
Transaction Module

This module queues commands locally and commits them to the server as a
single MULTI/EXEC block.
"""

import logging
from typing import List, Union

from respclient.core.connection import Connection
from respclient.exceptions import ProtocolError, TransactionError, UsageError
from respclient.protocol.constants import STATUS_OK, STATUS_QUEUED
from respclient.protocol.resp import Command, Reply, ReplyKind

logger = logging.getLogger(__name__)

OPEN = "open"
COMMITTED = "committed"
DISCARDED = "discarded"


class Transaction:
    """A MULTI/EXEC session bound to one connection."""

    def __init__(self, connection: Connection):
        """
        Initialize an empty transaction.

        Args:
            connection: The connection the transaction will be committed on
        """
        self.connection = connection
        self.state = OPEN
        self._commands: List[Command] = []

    @property
    def commands(self) -> List[Command]:
        return list(self._commands)

    def queue(self, command: Command) -> None:
        """
        Append a command to the pending list. Nothing is sent yet.

        Raises:
            UsageError: If the transaction was already committed or discarded
        """
        if self.state != OPEN:
            raise UsageError(f"Cannot queue {command.name}: transaction already {self.state}")
        self._commands.append(command)

    def queue_command(self, *args: Union[bytes, str, int, float]) -> None:
        """Build a command from raw arguments and queue it."""
        self.queue(Command.build(*args, encoding=self.connection.encoding))

    def discard(self) -> None:
        """Drop the pending commands without contacting the server."""
        if self.state == COMMITTED:
            raise UsageError("Cannot discard: transaction already committed")
        self.state = DISCARDED
        self._commands = []

    def commit(self) -> List[Reply]:
        """
        Send MULTI, every queued command and EXEC, then collect the results.

        Returns:
            One reply per queued command, in queuing order. A command that
            failed at execution time is represented by its error reply.

        Raises:
            UsageError: If the transaction was already committed or discarded
            TransactionError: If the server aborted the transaction
            ProtocolError: If a reply has an unexpected shape; the connection
                is failed because later replies can no longer be matched
        """
        if self.state != OPEN:
            raise UsageError(f"Cannot commit: transaction already {self.state}")
        self.state = COMMITTED

        commands = self._commands
        encoding = self.connection.encoding
        pipeline = [Command.build("MULTI", encoding=encoding)]
        pipeline.extend(commands)
        pipeline.append(Command.build("EXEC", encoding=encoding))

        logger.debug(f"Committing transaction with {len(commands)} queued commands")
        self.connection.send_many(pipeline)

        try:
            return self._read_results(commands)
        except ProtocolError as e:
            # Replies may be left unread; the stream is out of step
            self.connection.fail(f"unexpected transaction reply: {e}")
            raise

    def _read_results(self, commands: List[Command]) -> List[Reply]:
        # Every reply is read, even after a rejection, so the stream stays in step
        errors = []
        multi_reply = self.connection.receive()
        if multi_reply.is_error:
            errors.append(f"MULTI: {_text(multi_reply)}")
        elif not _is_status(multi_reply, STATUS_OK):
            raise ProtocolError(f"Expected +OK for MULTI, got {multi_reply.kind.label}")

        for command in commands:
            reply = self.connection.receive()
            if reply.is_error:
                errors.append(f"{command.name}: {_text(reply)}")
            elif not _is_status(reply, STATUS_QUEUED):
                raise ProtocolError(f"Expected +QUEUED for {command.name}, got {reply.kind.label}")

        exec_reply = self.connection.receive()

        if exec_reply.is_error:
            errors.append(f"EXEC: {_text(exec_reply)}")
        if errors:
            logger.warning(f"Transaction aborted by server: {'; '.join(errors)}")
            raise TransactionError(f"Transaction aborted: {'; '.join(errors)}")

        if exec_reply.kind is not ReplyKind.ARRAY:
            raise ProtocolError(f"Expected Array reply for EXEC, got {exec_reply.kind.label}")
        if exec_reply.is_null:
            raise TransactionError("Transaction aborted: EXEC returned a null reply")
        if len(exec_reply.value) != len(commands):
            raise ProtocolError(
                f"EXEC returned {len(exec_reply.value)} replies for {len(commands)} queued commands"
            )

        return list(exec_reply.value)

    def __enter__(self) -> "Transaction":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.state == OPEN:
            self.discard()


def _is_status(reply: Reply, status: bytes) -> bool:
    return reply.kind is ReplyKind.SIMPLE_STRING and reply.value == status


def _text(reply: Reply) -> str:
    return reply.value.decode("utf-8", errors="replace")
