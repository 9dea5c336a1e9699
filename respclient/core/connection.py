"""
Connection Module

This module owns the duplex byte stream to a Redis-compatible server.
Commands are framed with the RESP codec on the way out and replies are
decoded from a read buffer on the way in.
"""

import logging
import socket
import threading
from typing import Iterable, Optional

from respclient.config import Config
from respclient.exceptions import ConnectionError, ProtocolError, UsageError
from respclient.protocol.constants import ALLOWED_COMMANDS_WHEN_SUBSCRIBED
from respclient.protocol.resp import Command, Reply, decode_reply, encode_command

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class Connection:
    """A single-owner connection to a Redis-compatible server."""

    def __init__(self, host: str = "localhost", port: int = 6379,
                 socket_timeout: Optional[float] = None,
                 connect_timeout: Optional[float] = 5.0,
                 encoding: str = "utf-8"):
        """
        Initialize an unconnected connection.

        Args:
            host: Server host name or address
            port: Server port
            socket_timeout: Seconds a send or receive may block, None for no limit
            connect_timeout: Seconds connect() may block, None for no limit
            encoding: Encoding used for str command arguments
        """
        self.host = host
        self.port = port
        self.socket_timeout = socket_timeout
        self.connect_timeout = connect_timeout
        self.encoding = encoding

        self._sock: Optional[socket.socket] = None
        self._buffer = bytearray()
        self._failed = False
        self._subscribed = False
        self._state_lock = threading.Lock()
        self._write_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Config) -> "Connection":
        """Build and connect a connection described by a Config."""
        connection = cls(
            host=config.host,
            port=config.port,
            socket_timeout=config.socket_timeout,
            connect_timeout=config.connect_timeout,
            encoding=config.encoding,
        )
        connection.connect()
        return connection

    @property
    def is_connected(self) -> bool:
        return self._sock is not None

    @property
    def in_subscription_mode(self) -> bool:
        return self._subscribed

    def connect(self) -> None:
        """
        Open the stream, discarding any state left by a previous failure.

        Raises:
            UsageError: If the connection is already open
            ConnectionError: If the server cannot be reached
        """
        if self._sock is not None:
            raise UsageError(f"Connection to {self.host}:{self.port} is already open")

        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.connect_timeout)
            sock.settimeout(self.socket_timeout)
        except OSError as e:
            logger.warning(f"Connection to {self.host}:{self.port} failed: {e}")
            raise ConnectionError(f"Error connecting to {self.host}:{self.port}: {e}") from e

        with self._state_lock:
            self._sock = sock
            self._buffer = bytearray()
            self._failed = False
            self._subscribed = False

        logger.info(f"Connected to {self.host}:{self.port}")

    def send(self, command: Command) -> None:
        """
        Write one command to the stream.

        Raises:
            UsageError: If the connection is not open, or is in subscription
                mode and the command is not a pub/sub command
            ConnectionError: If the write fails
        """
        self.send_many([command])

    def send_many(self, commands: Iterable[Command]) -> None:
        """
        Write several commands in one buffer (pipelining).

        Replies arrive in the same order the commands were written.
        """
        commands = list(commands)
        if self._subscribed:
            for command in commands:
                if command.name not in ALLOWED_COMMANDS_WHEN_SUBSCRIBED:
                    raise UsageError(
                        f"Command {command.name} is not allowed while the connection "
                        f"is subscribed to channels"
                    )

        payload = b"".join(encode_command(command) for command in commands)
        sock = self._require_socket()

        for command in commands:
            logger.debug(f"Sending command: {command.name} ({len(command.args) - 1} arguments)")

        try:
            with self._write_lock:
                sock.sendall(payload)
        except OSError as e:
            self.fail(f"write failed: {e}")
            raise ConnectionError(f"Error writing to {self.host}:{self.port}: {e}") from e

    def receive(self) -> Reply:
        """
        Read exactly one reply, blocking until it has fully arrived.

        Raises:
            UsageError: If the connection is not open
            ConnectionError: If the stream ends, times out or is closed
            ProtocolError: If the server sent malformed bytes
        """
        sock = self._require_socket()

        while True:
            try:
                reply, consumed = decode_reply(self._buffer)
            except ProtocolError as e:
                self.fail(f"malformed reply: {e}")
                raise

            if reply is not None:
                del self._buffer[:consumed]
                return reply

            try:
                chunk = sock.recv(READ_CHUNK_SIZE)
            except OSError as e:
                self.fail(f"read failed: {e}")
                raise ConnectionError(f"Error reading from {self.host}:{self.port}: {e}") from e

            if not chunk:
                self.fail("connection closed by server")
                raise ConnectionError(f"Connection to {self.host}:{self.port} closed")

            self._buffer.extend(chunk)

    def enter_subscription_mode(self) -> None:
        self._subscribed = True

    def leave_subscription_mode(self) -> None:
        self._subscribed = False

    def close(self) -> None:
        """
        Close the stream. Safe to call from another thread while a receive()
        is blocked: the blocked call fails with ConnectionError.
        """
        sock = self._detach(failed=False)
        if sock is None:
            return
        _shutdown(sock)
        logger.info(f"Closed connection to {self.host}:{self.port}")

    def _require_socket(self) -> socket.socket:
        sock = self._sock
        if sock is not None:
            return sock
        if self._failed:
            raise ConnectionError(
                f"Connection to {self.host}:{self.port} failed earlier; call connect() again"
            )
        raise UsageError(f"Connection to {self.host}:{self.port} is not open")

    def _detach(self, failed: bool = False) -> Optional[socket.socket]:
        with self._state_lock:
            sock, self._sock = self._sock, None
            if sock is not None:
                self._buffer = bytearray()
                self._subscribed = False
                self._failed = failed
        return sock

    def fail(self, reason: str) -> None:
        """
        Drop the stream and mark the connection as failed. Used when the
        reply stream can no longer be trusted to be in step with the
        commands sent; later calls raise ConnectionError until connect().
        """
        sock = self._detach(failed=True)
        if sock is None:
            # Closed by its owner while this call was blocked
            return
        logger.warning(f"Connection to {self.host}:{self.port} failed: {reason}")
        _shutdown(sock)

    def __enter__(self) -> "Connection":
        if self._sock is None:
            self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _shutdown(sock: socket.socket) -> None:
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        # Peer already gone
        pass
    sock.close()
