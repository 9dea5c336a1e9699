"""Exceptions raised by the client core."""

from typing import List


class RespError(Exception):
    """Base exception for every error raised by respclient."""
    pass


class ProtocolError(RespError):
    """Malformed reply bytes or a reply of an unexpected kind."""
    pass


class ConnectionError(RespError):
    """The stream was refused, closed or timed out."""
    pass


class ResponseError(RespError):
    """The server answered a command with an error reply."""
    pass


class TransactionError(RespError):
    """The server aborted a queued MULTI/EXEC transaction."""

    def __init__(self, message: str):
        super().__init__(message)
        self.results: List = []


class UsageError(RespError):
    """The API was used out of order (double commit, closed connection, ...)."""
    pass
