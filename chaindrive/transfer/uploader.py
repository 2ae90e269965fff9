"""
File Uploader

Design Decision: Linking the Chain
==================================

A record's `next` pointer is the id of the following record, and ids
are only known once a record exists.

Options Considered:
1. Create head first with placeholder content, then edit every record
   once all ids are known
   - Records appear in reading order in the channel
   - A crash between create and edit leaves placeholder records that
     nobody can read or list
2. Create tail first, so each record's successor already exists
   - Every record is created with its final content, no edit pass
   - A crash leaves only unnamed continuation records, which the
     catalog never lists

Decision: Tail first ("atomic") by default
- The head is the last record created, so a file becomes visible only
  when its whole chain is in place
- Head first ("edit") stays available as a link mode

Upload Flow:
1. Split the file into extents (a private directory under the cache
   directory, so concurrent uploads never share extent files)
2. Pack extents into batches of at most `batch_limit`
3. Create one record per batch, sequentially
4. Link (atomic: already done; edit: edit pass)
5. Remove local extents and their directory
"""

import asyncio
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import aiofiles
import aiofiles.os

from ..exceptions import StoreError, TransferIOError
from ..file.batching import BATCH_LIMIT, pack_batches
from ..file.record import MARKER, ChainRecord
from ..file.splitter import Extent, ExtentSplitter, remove_extents
from ..progress import EDITING, UPLOADING, ProgressChannel, ratio
from ..store.base import Record, RecordStore

logger = logging.getLogger(__name__)

# Link modes
LINK_ATOMIC = "atomic"
LINK_EDIT = "edit"
LINK_MODES = (LINK_ATOMIC, LINK_EDIT)

# Content of a record created before the edit pass
PLACEHOLDER_CONTENT = MARKER


@dataclass
class UploadResult:
    """Records of an uploaded chain, head first."""
    records: List[Record]
    head: ChainRecord

    @property
    def head_id(self) -> int:
        """Id that identifies the file for download/list/delete."""
        return self.records[0].id

    @property
    def record_count(self) -> int:
        return len(self.records)


class FileUploader:
    """
    Uploads local files as record chains.

    One upload at a time per instance; the instance holds no state
    between uploads.
    """

    def __init__(self, store: RecordStore, container: int,
                 cache_dir: Path, splitter: Optional[ExtentSplitter] = None,
                 batch_limit: int = BATCH_LIMIT, link_mode: str = LINK_ATOMIC):
        """
        Args:
            store: Record store to write to
            container: Container (channel) id
            cache_dir: Where temporary extents are written
            splitter: Extent splitter (default 10MB extents)
            batch_limit: Extents per record, capped by the store's limit
            link_mode: "atomic" (tail first) or "edit" (head first + edit pass)
        """
        if link_mode not in LINK_MODES:
            raise ValueError(f"Unknown link mode: {link_mode!r} (expected one of {LINK_MODES})")
        self.store = store
        self.container = container
        self.cache_dir = Path(cache_dir)
        self.splitter = splitter or ExtentSplitter()
        self.batch_limit = min(batch_limit, store.max_attachments)
        self.link_mode = link_mode

    async def upload(self, file_path: Path,
                     progress: Optional[ProgressChannel] = None) -> UploadResult:
        """
        Upload a file.

        Returns:
            UploadResult whose head_id is the file handle

        Raises:
            TransferIOError: local read/write/cleanup failure
            StoreError: record creation or edit failed (remaining steps skipped)
        """
        file_path = Path(file_path)
        try:
            size = file_path.stat().st_size
        except OSError as e:
            raise TransferIOError(f"Cannot open file: {e}", path=file_path) from e

        # Reject names the record format cannot carry before any work
        ChainRecord(name=file_path.name).to_content()
        logger.info(f"Uploading {file_path.name} ({size:,} bytes) to {self.container}")

        work_dir = await self._make_work_dir()
        extents = await self.splitter.split_file(file_path, work_dir, progress)
        head = ChainRecord(name=file_path.name, size=size, extent_count=len(extents))

        # An empty file still needs a head record
        batches = pack_batches(extents, self.batch_limit) or [[]]

        if self.link_mode == LINK_ATOMIC:
            records = await self._create_tail_first(batches, head, progress)
            if progress:
                progress.emit(EDITING, 1.0)
        else:
            records = await self._create_head_first(batches, progress)
            records = await self._link(records, head, progress)

        logger.info("Cleaning up...")
        await remove_extents(extents)
        await self._remove_work_dir(work_dir)

        logger.info(f"Uploaded {file_path.name} as {len(records)} records, head {records[0].id}")
        return UploadResult(records=records, head=head)

    async def _make_work_dir(self) -> Path:
        """Create a directory for this upload's extents inside the cache."""
        try:
            await aiofiles.os.makedirs(self.cache_dir, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix="upload-", dir=self.cache_dir))
        except OSError as e:
            raise TransferIOError(f"Cannot create extent directory: {e}",
                                  path=self.cache_dir) from e

    async def _remove_work_dir(self, work_dir: Path):
        try:
            await aiofiles.os.rmdir(work_dir)
        except OSError as e:
            raise TransferIOError(f"Failed to remove extent directory: {e}",
                                  path=work_dir, phase="cleanup") from e

    async def _read_extent(self, extent: Extent) -> Tuple[str, bytes]:
        try:
            async with aiofiles.open(extent.path, 'rb') as f:
                return extent.filename, await f.read()
        except OSError as e:
            raise TransferIOError(f"Cannot read extent: {e}",
                                  path=extent.path, phase=UPLOADING) from e

    async def _read_batch(self, batch: List[Extent]) -> List[Tuple[str, bytes]]:
        """Load one batch's attachments concurrently, in batch order."""
        return list(await asyncio.gather(*(self._read_extent(e) for e in batch)))

    async def _create(self, batch: List[Extent], content: str,
                      number: int, total: int) -> Record:
        attachments = await self._read_batch(batch)
        try:
            record = await self.store.create(self.container, attachments, content)
        except StoreError as e:
            logger.error(f"Upload aborted at batch {number}/{total}: {e}")
            raise
        logger.debug(f"Created record {record.id} for batch {number}/{total} "
                     f"({len(batch)} extents)")
        return record

    async def _create_tail_first(self, batches: List[List[Extent]], head: ChainRecord,
                                 progress: Optional[ProgressChannel]) -> List[Record]:
        """Create records last batch first, each carrying its final content."""
        total = len(batches)
        created: List[Record] = []
        next_id: Optional[int] = None

        for k in range(total - 1, -1, -1):
            if k == 0:
                meta = ChainRecord(name=head.name, size=head.size,
                                   extent_count=head.extent_count, next=next_id)
            else:
                meta = ChainRecord(next=next_id)

            record = await self._create(batches[k], meta.to_content(), k + 1, total)
            created.append(record)
            next_id = record.id

            if progress:
                progress.emit(UPLOADING, ratio(len(created), total))

        created.reverse()
        return created

    async def _create_head_first(self, batches: List[List[Extent]],
                                 progress: Optional[ProgressChannel]) -> List[Record]:
        """Create records in chain order with placeholder content."""
        total = len(batches)
        created: List[Record] = []

        for k, batch in enumerate(batches):
            created.append(await self._create(batch, PLACEHOLDER_CONTENT, k + 1, total))
            if progress:
                progress.emit(UPLOADING, ratio(len(created), total))

        return created

    async def _link(self, records: List[Record], head: ChainRecord,
                    progress: Optional[ProgressChannel]) -> List[Record]:
        """Edit pass: write head metadata and next pointers."""
        total = len(records)
        linked: List[Record] = []

        for i, record in enumerate(records):
            next_id = records[i + 1].id if i + 1 < total else None
            if i == 0:
                meta = ChainRecord(name=head.name, size=head.size,
                                   extent_count=head.extent_count, next=next_id)
            else:
                meta = ChainRecord(next=next_id)

            content = meta.to_content()
            if content == record.content:
                # Tail continuation record: placeholder is already final
                linked.append(record)
            else:
                try:
                    linked.append(await self.store.edit(self.container, record.id, content))
                except StoreError as e:
                    logger.error(f"Linking aborted at record {i + 1}/{total}: {e}")
                    raise

            if progress:
                progress.emit(EDITING, ratio(i + 1, total))

        return linked
