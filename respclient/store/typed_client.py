"""
Typed Client Module

This module stores application records as serialized string values, with
bookkeeping keys per record type:

- ``seq:<TypeName>`` - counter advanced with INCR to hand out identifiers
- ``urn:<TypeName>:<id>`` - the serialized record
- ``ids:<TypeName>`` - set of stored identifiers, maintained best-effort
"""

import logging
from typing import Any, Generic, Optional, TypeVar

from respclient.commands.client import CommandClient
from respclient.exceptions import ResponseError
from respclient.store.serialization import Serializer

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TypedClient(Generic[T]):
    """Stores and loads records of one type through a CommandClient."""

    def __init__(self, client: CommandClient, type_name: str, serializer: Serializer[T]):
        """
        Initialize a typed client.

        Args:
            client: The command client used for every round trip
            type_name: Name used in the record type's keys (e.g. "Hero")
            serializer: Converts records to and from string values
        """
        self.client = client
        self.type_name = type_name
        self.serializer = serializer

    @property
    def sequence_key(self) -> str:
        return f"seq:{self.type_name}"

    @property
    def ids_key(self) -> str:
        return f"ids:{self.type_name}"

    def urn_key(self, record_id: Any) -> str:
        return f"urn:{self.type_name}:{record_id}"

    def get_next_sequence(self) -> int:
        return self.client.get_next_sequence(self.type_name)

    def store(self, record: T) -> T:
        """
        Write a record under its URN key and register its id.

        The record must expose an ``id`` attribute. The id set is a side
        artifact: a server error while adding to it is logged and the record
        write stands.

        Returns:
            The record that was stored
        """
        record_id = record.id
        self.client.set(self.urn_key(record_id), self.serializer.dumps(record))

        try:
            self.client.sadd(self.ids_key, record_id)
        except ResponseError as e:
            logger.warning(f"Stored {self.urn_key(record_id)} but could not add it to {self.ids_key}: {e}")

        logger.debug(f"Stored {self.urn_key(record_id)}")
        return record

    def get_by_id(self, record_id: Any) -> Optional[T]:
        """
        Load a record by identifier.

        Returns:
            The record, or None if nothing is stored under that id
        """
        value = self.client.get(self.urn_key(record_id))
        if value is None:
            return None
        return self.serializer.loads(value)
