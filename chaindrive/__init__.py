"""
chaindrive - files of any size on top of a message store

Files are split into fixed-size extents, packed into records of at most
ten attachments and stored as a linked chain of records.
"""

from .exceptions import (
    ChainDriveError,
    TransferIOError,
    MalformedRecordError,
    InvalidRecordError,
    TruncatedChainError,
    ExtentSequenceError,
    StoreError,
    RecordNotFoundError,
    TransferAbandonedError,
    ConfigError,
)
from .progress import ProgressChannel, TransferProgress, TransferTask
from .file import ChainRecord, ExtentSplitter, pack_batches
from .store import RecordStore, DiscordStore, MemoryStore
from .transfer import FileUploader, FileDownloader, Catalog

__all__ = [
    'ChainDriveError',
    'TransferIOError',
    'MalformedRecordError',
    'InvalidRecordError',
    'TruncatedChainError',
    'ExtentSequenceError',
    'StoreError',
    'RecordNotFoundError',
    'TransferAbandonedError',
    'ConfigError',
    'ProgressChannel',
    'TransferProgress',
    'TransferTask',
    'ChainRecord',
    'ExtentSplitter',
    'pack_batches',
    'RecordStore',
    'DiscordStore',
    'MemoryStore',
    'FileUploader',
    'FileDownloader',
    'Catalog',
]
