"""
File Module - Extents, Batches and Chain Records

Local side of a transfer: splitting files into extents, packing
extents into record-sized batches and the record metadata codec.
"""

from .splitter import ExtentSplitter, Extent, PART_SIZE, extent_name, remove_extents
from .batching import BATCH_LIMIT, batch_count, pack_batches
from .record import ChainRecord, MARKER, is_chain_content

__all__ = [
    'ExtentSplitter',
    'Extent',
    'PART_SIZE',
    'extent_name',
    'remove_extents',
    'BATCH_LIMIT',
    'batch_count',
    'pack_batches',
    'ChainRecord',
    'MARKER',
    'is_chain_content',
]
