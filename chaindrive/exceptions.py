"""
Exceptions

Every error chaindrive raises on purpose derives from ChainDriveError so the
CLI can report it with context and exit cleanly.
"""

from pathlib import Path
from typing import Optional


class ChainDriveError(Exception):
    """Base exception for all chaindrive errors."""
    pass


class TransferIOError(ChainDriveError):
    """
    Local read or write failure (source file, extent files, output file).
    
    Aborts the current phase. Partial output is left on disk.
    """
    
    def __init__(self, message: str, path: Optional[Path] = None,
                 phase: Optional[str] = None):
        self.path = path
        self.phase = phase
        details = []
        if phase:
            details.append(f"phase={phase}")
        if path is not None:
            details.append(f"path={path}")
        if details:
            message = f"{message} [{', '.join(details)}]"
        super().__init__(message)


class MalformedRecordError(ChainDriveError):
    """Record content could not be decoded."""
    
    def __init__(self, message: str, line: Optional[str] = None):
        self.line = line
        super().__init__(message)


class InvalidRecordError(ChainDriveError):
    """
    Record decoded fine but lacks the fields the operation needs,
    e.g. a continuation record used as the start of a chain.
    """
    
    def __init__(self, message: str, record_id: Optional[int] = None):
        self.record_id = record_id
        if record_id is not None:
            message = f"{message} [record={record_id}]"
        super().__init__(message)


class TruncatedChainError(InvalidRecordError):
    """The chain ended (or looped) before all announced extents were seen."""
    pass


class ExtentSequenceError(ChainDriveError):
    """Local part files are missing one or more indices."""
    pass


class StoreError(ChainDriveError):
    """Failure reported by a record store adapter."""
    
    def __init__(self, message: str, operation: Optional[str] = None,
                 record_id: Optional[int] = None, status: Optional[int] = None):
        self.operation = operation
        self.record_id = record_id
        self.status = status
        details = []
        if operation:
            details.append(f"operation={operation}")
        if record_id is not None:
            details.append(f"record={record_id}")
        if status is not None:
            details.append(f"status={status}")
        if details:
            message = f"{message} [{', '.join(details)}]"
        super().__init__(message)


class RecordNotFoundError(StoreError):
    """The requested record does not exist in the container."""
    pass


class TransferAbandonedError(ChainDriveError):
    """The progress consumer went away; the background transfer stops."""
    pass


class ConfigError(ChainDriveError):
    """Invalid, missing or unreadable configuration."""
    pass
