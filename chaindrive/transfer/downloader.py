"""
Chain Reader

Downloads and deletes files stored as record chains.

Download Flow:
1. Fetch the head record and decode it (must carry name/size/len)
2. Fetch the record's attachments (concurrently), append them in order
3. Follow `next` to the following record and repeat
4. When a record has no `next`, check that `len` extents were seen

The walk is sequential: a record's successor is only known once the
record has been decoded.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import AsyncIterator, Optional, Tuple

import aiofiles
import aiofiles.os

from ..exceptions import (
    InvalidRecordError,
    MalformedRecordError,
    TransferIOError,
    TruncatedChainError,
)
from ..file.batching import BATCH_LIMIT, batch_count
from ..file.record import ChainRecord
from ..progress import DELETING, DOWNLOADING, ProgressChannel, ratio
from ..store.base import Record, RecordStore

logger = logging.getLogger(__name__)


def default_output(head: ChainRecord, record_id: Optional[int] = None) -> Path:
    """
    Local file name for a download without an explicit output path.

    Only the last component of the stored name is used, in the current
    directory; the name comes from remote content.

    Raises:
        InvalidRecordError: the stored name has no usable file name
    """
    name = PurePosixPath(head.name.replace("\\", "/")).name
    if name in ("", ".", ".."):
        raise InvalidRecordError(f"Stored name is not a file name: {head.name!r}",
                                 record_id=record_id)
    return Path(name)


@dataclass
class DownloadResult:
    """Outcome of a finished download."""
    path: Path
    head: ChainRecord
    bytes_written: int
    extents_read: int
    records_read: int


class FileDownloader:
    """Walks record chains to download or delete files."""

    def __init__(self, store: RecordStore, container: int,
                 batch_limit: int = BATCH_LIMIT):
        self.store = store
        self.container = container
        self.batch_limit = min(batch_limit, store.max_attachments)

    async def _fetch(self, record_id: int) -> Tuple[Record, ChainRecord]:
        """Fetch and decode one record."""
        record = await self.store.get(self.container, record_id)
        try:
            meta = ChainRecord.from_content(record.content)
        except MalformedRecordError as e:
            raise MalformedRecordError(f"Record {record_id}: {e}", line=e.line) from e
        return record, meta

    async def fetch_head(self, record_id: int) -> Tuple[Record, ChainRecord]:
        """
        Fetch a chain head.

        Raises:
            InvalidRecordError: the record is not the start of a chain
        """
        record, meta = await self._fetch(record_id)
        meta.require_head(record_id)
        return record, meta

    async def _chain(self, record: Record,
                     meta: ChainRecord) -> AsyncIterator[Tuple[Record, ChainRecord]]:
        """Yield (record, metadata) from `record` to the tail, in chain order."""
        seen = {record.id}
        while True:
            yield record, meta
            if meta.next is None:
                return
            if meta.next in seen:
                raise TruncatedChainError(f"Chain loops back to record {meta.next}",
                                          record_id=record.id)
            seen.add(meta.next)
            record, meta = await self._fetch(meta.next)

    async def download(self, head_id: int, output: Optional[Path] = None,
                       progress: Optional[ProgressChannel] = None) -> DownloadResult:
        """
        Download a file by its head record id.

        Args:
            head_id: Id of the chain head
            output: Output path (default: the stored file name in the cwd)
            progress: Optional progress channel

        Raises:
            InvalidRecordError: head_id is not a chain head
            TruncatedChainError: the chain ended before `len` extents
            MalformedRecordError: a record's content does not decode
            StoreError: fetching a record or attachment failed
            TransferIOError: writing the output failed
        """
        record, head = await self.fetch_head(head_id)
        output = Path(output) if output else default_output(head, head_id)
        logger.info(f"Downloading {head.name} ({head.size:,} bytes, "
                    f"{head.extent_count} parts) to {output}")

        bytes_written = 0
        extents_read = 0
        records_read = 0
        last_id = record.id

        try:
            if output.parent != Path(""):
                await aiofiles.os.makedirs(output.parent, exist_ok=True)
            async with aiofiles.open(output, 'wb') as out:
                async for record, meta in self._chain(record, head):
                    parts = await asyncio.gather(*(a.read() for a in record.attachments))
                    for attachment, data in zip(record.attachments, parts):
                        logger.debug(f"Writing {attachment.filename} ({len(data):,} bytes)")
                        await out.write(data)
                        bytes_written += len(data)
                        extents_read += 1

                    records_read += 1
                    last_id = record.id
                    if progress:
                        progress.emit(DOWNLOADING, ratio(bytes_written, head.size))
        except OSError as e:
            raise TransferIOError(f"Cannot write output: {e}",
                                  path=output, phase=DOWNLOADING) from e

        if extents_read < head.extent_count:
            raise TruncatedChainError(
                f"Chain ended after {extents_read} of {head.extent_count} parts",
                record_id=last_id,
            )
        if bytes_written != head.size:
            logger.warning(f"Downloaded {bytes_written:,} bytes, head announces {head.size:,}")

        if progress:
            progress.emit(DOWNLOADING, 1.0)

        logger.info(f"Downloaded {output}")
        return DownloadResult(path=output, head=head, bytes_written=bytes_written,
                              extents_read=extents_read, records_read=records_read)

    async def delete(self, head_id: int,
                     progress: Optional[ProgressChannel] = None) -> int:
        """
        Delete every record of a chain, head first.

        Returns:
            Number of records deleted

        Raises:
            InvalidRecordError: head_id is not a chain head
            StoreError: fetching or deleting a record failed (walk stops)
            TruncatedChainError: the chain ended before `len` extents; the
                reachable records are deleted already
        """
        record, head = await self.fetch_head(head_id)
        estimated = max(1, batch_count(head.extent_count, self.batch_limit))
        logger.info(f"Deleting {head.name} (~{estimated} records)")

        deleted = 0
        extents_seen = 0
        last_id = record.id
        async for record, meta in self._chain(record, head):
            await self.store.delete(self.container, record.id)
            deleted += 1
            extents_seen += len(record.attachments)
            last_id = record.id
            logger.debug(f"Deleted record {record.id}")
            if progress:
                progress.emit(DELETING, ratio(deleted, estimated))

        if extents_seen < head.extent_count:
            raise TruncatedChainError(
                f"Chain ended after {extents_seen} of {head.extent_count} parts, "
                f"{deleted} records deleted",
                record_id=last_id,
            )

        if progress:
            progress.emit(DELETING, 1.0)

        logger.info(f"Deleted {head.name} ({deleted} records)")
        return deleted
