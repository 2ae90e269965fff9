"""
Catalog

Lists the files stored in a container. The container's full history is
paged newest to oldest (before = id of the oldest record seen so far)
until an empty page comes back; only chain heads written by chaindrive
are kept.
"""

import logging
from dataclasses import dataclass
from typing import List

from ..file.record import ChainRecord, is_chain_content
from ..store.base import Record, RecordStore

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


@dataclass(frozen=True)
class CatalogEntry:
    """A stored file: its head record id and decoded head metadata."""
    record_id: int
    record: ChainRecord

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def size(self) -> int:
        return self.record.size or 0


class Catalog:
    """Paginated view over a container's chain heads."""

    def __init__(self, store: RecordStore, container: int, page_size: int = PAGE_SIZE):
        if page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {page_size}")
        self.store = store
        self.container = container
        self.page_size = page_size

    async def fetch_history(self) -> List[Record]:
        """Every record of the container, newest first."""
        history: List[Record] = []
        before = None

        while True:
            page = await self.store.list_page(self.container, before=before,
                                              limit=self.page_size)
            if not page:
                break
            history.extend(page)
            before = history[-1].id
            logger.debug(f"Fetched page of {len(page)} records (total {len(history)})")

        return history

    async def list_files(self) -> List[CatalogEntry]:
        """
        Chain heads in retrieval order.

        Records without the marker line, and continuation records (no
        name), are skipped.

        Raises:
            MalformedRecordError: a marked record does not decode
            StoreError: a page could not be fetched
        """
        logger.info(f"Retrieving records from {self.container}...")
        entries = []
        for record in await self.fetch_history():
            if not is_chain_content(record.content):
                continue
            meta = ChainRecord.from_content(record.content)
            if meta.name is None:
                continue
            entries.append(CatalogEntry(record_id=record.id, record=meta))

        logger.info(f"Found {len(entries)} files")
        return entries
