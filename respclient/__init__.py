"""
respclient - A Simple Redis Protocol Client

A minimal, thread-based Redis client core supporting:
RESP encoding/decoding, connections, typed commands,
MULTI/EXEC transactions, pub/sub and a typed object store.
"""

from respclient.config import Config
from respclient.core.connection import Connection
from respclient.core.transaction import Transaction
from respclient.commands.client import CommandClient
from respclient.pubsub.subscription import Subscription, SubscriptionThread
from respclient.store.typed_client import TypedClient
from respclient.store.serialization import JsonSerializer, Serializer
from respclient.protocol.resp import Command, Reply, ReplyKind
from respclient.exceptions import (
    RespError,
    ProtocolError,
    ConnectionError,
    ResponseError,
    TransactionError,
    UsageError,
)

__version__ = "1.0.0"
__all__ = [
    'Config',
    'Connection',
    'Transaction',
    'CommandClient',
    'Subscription',
    'SubscriptionThread',
    'TypedClient',
    'JsonSerializer',
    'Serializer',
    'Command',
    'Reply',
    'ReplyKind',
    'RespError',
    'ProtocolError',
    'ConnectionError',
    'ResponseError',
    'TransactionError',
    'UsageError',
]
