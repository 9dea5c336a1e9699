"""
Serialization strategies for typed records.

A serializer turns one record type into a string value and back. The typed
client is written against the Serializer protocol only, so any object with
matching dumps/loads methods can be used.
"""

import dataclasses
import json
from typing import Any, Callable, Dict, Generic, Optional, Protocol, TypeVar

from respclient.exceptions import ProtocolError

T = TypeVar("T")


class Serializer(Protocol[T]):
    def dumps(self, record: T) -> str:
        ...

    def loads(self, text: str) -> T:
        ...


class JsonSerializer(Generic[T]):
    """
    JSON serializer driven by explicit conversion callables.

    Args:
        from_dict: Builds a record from its decoded JSON object
        to_dict: Turns a record into a JSON-compatible dict, defaults to
            dataclasses.asdict
    """

    def __init__(self, from_dict: Callable[[Dict[str, Any]], T],
                 to_dict: Optional[Callable[[T], Dict[str, Any]]] = None):
        self.from_dict = from_dict
        self.to_dict = to_dict or dataclasses.asdict

    def dumps(self, record: T) -> str:
        return json.dumps(self.to_dict(record), ensure_ascii=False)

    def loads(self, text: str) -> T:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Stored value is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ProtocolError(f"Expected a JSON object, got {type(data).__name__}")
        return self.from_dict(data)
