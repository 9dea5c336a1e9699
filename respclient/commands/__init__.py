"""Commands package - typed command helpers."""

from .client import CommandClient
from .lists import ListView

__all__ = ['CommandClient', 'ListView']
