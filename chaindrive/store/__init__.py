"""
Store Module - Record Store Adapters

The remote side of a transfer: the adapter contract plus the Discord
and in-memory implementations.
"""

from .base import Attachment, Record, RecordStore
from .discord import DiscordStore
from .memory import MemoryStore

__all__ = [
    'Attachment',
    'Record',
    'RecordStore',
    'DiscordStore',
    'MemoryStore',
]
