"""Store package - typed records kept as serialized string values."""

from .serialization import JsonSerializer, Serializer
from .typed_client import TypedClient

__all__ = ['JsonSerializer', 'Serializer', 'TypedClient']
