"""Core package - connection and transaction handling."""

from .connection import Connection
from .transaction import Transaction

__all__ = ['Connection', 'Transaction']
