"""
Batch Packer

Groups extents into batches that fit in one record. A record store
accepts a fixed number of attachments per record (10 for Discord),
so batch k holds extents [k * limit, (k + 1) * limit).
"""

from typing import List, Sequence, TypeVar

T = TypeVar("T")

# Attachments per record
BATCH_LIMIT = 10


def batch_count(extent_count: int, limit: int = BATCH_LIMIT) -> int:
    """Number of batches needed for `extent_count` extents."""
    return (extent_count + limit - 1) // limit


def pack_batches(extents: Sequence[T], limit: int = BATCH_LIMIT) -> List[List[T]]:
    """
    Split an ordered sequence into batches of at most `limit` items.

    Order is preserved within and across batches. No I/O.
    """
    if limit < 1:
        raise ValueError(f"Batch limit must be at least 1, got {limit}")
    return [list(extents[i:i + limit]) for i in range(0, len(extents), limit)]
