"""
In-Memory Record Store

Keeps containers in process memory. Used by the tests and handy for
trying the transfer pipeline without network access.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..exceptions import RecordNotFoundError, StoreError
from .base import Attachment, NewAttachment, Record, RecordStore

logger = logging.getLogger(__name__)


@dataclass
class _StoredRecord:
    id: int
    content: str
    attachments: List[Tuple[str, bytes]]


class MemoryStore(RecordStore):
    """
    Record store backed by dictionaries.

    Ids increase monotonically across all containers. Every call is
    logged in `calls` as (operation, record_id) for inspection.
    """

    def __init__(self, max_attachments: int = 10, max_attachment_size: Optional[int] = None,
                 first_id: int = 1000):
        self.max_attachments = max_attachments
        self.max_attachment_size = max_attachment_size
        self._next_id = first_id
        self._containers: Dict[int, Dict[int, _StoredRecord]] = {}
        self.calls: List[Tuple[str, Optional[int]]] = []

    def _container(self, container: int) -> Dict[int, _StoredRecord]:
        return self._containers.setdefault(container, {})

    def _lookup(self, container: int, record_id: int, operation: str) -> _StoredRecord:
        stored = self._container(container).get(record_id)
        if stored is None:
            raise RecordNotFoundError("Unknown record", operation=operation,
                                      record_id=record_id, status=404)
        return stored

    def _to_record(self, stored: _StoredRecord) -> Record:
        attachments = []
        for filename, data in stored.attachments:
            async def fetch(data=data) -> bytes:
                await asyncio.sleep(0)
                return data
            attachments.append(Attachment(filename=filename, size=len(data), fetch=fetch))
        return Record(id=stored.id, content=stored.content, attachments=attachments)

    async def create(self, container: int, attachments: Sequence[NewAttachment],
                     content: str) -> Record:
        if len(attachments) > self.max_attachments:
            raise StoreError(
                f"Too many attachments: {len(attachments)} > {self.max_attachments}",
                operation="create", status=400,
            )
        if self.max_attachment_size is not None:
            for filename, data in attachments:
                if len(data) > self.max_attachment_size:
                    raise StoreError(f"Attachment too large: {filename}",
                                     operation="create", status=413)

        record_id = self._next_id
        self._next_id += 1
        stored = _StoredRecord(id=record_id, content=content,
                               attachments=[(name, bytes(data)) for name, data in attachments])
        self._container(container)[record_id] = stored
        self.calls.append(("create", record_id))
        logger.debug(f"Created record {record_id} in {container}")
        return self._to_record(stored)

    async def edit(self, container: int, record_id: int, content: str) -> Record:
        stored = self._lookup(container, record_id, "edit")
        stored.content = content
        self.calls.append(("edit", record_id))
        return self._to_record(stored)

    async def get(self, container: int, record_id: int) -> Record:
        stored = self._lookup(container, record_id, "get")
        self.calls.append(("get", record_id))
        return self._to_record(stored)

    async def delete(self, container: int, record_id: int) -> None:
        self._lookup(container, record_id, "delete")
        del self._container(container)[record_id]
        self.calls.append(("delete", record_id))

    async def list_page(self, container: int, before: Optional[int] = None,
                        limit: int = 100) -> List[Record]:
        ids = sorted(self._container(container), reverse=True)
        if before is not None:
            ids = [i for i in ids if i < before]
        self.calls.append(("list_page", before))
        return [self._to_record(self._container(container)[i]) for i in ids[:limit]]

    def record_ids(self, container: int) -> List[int]:
        """Ids currently stored in a container, oldest first."""
        return sorted(self._container(container))

    def post_message(self, container: int, content: str,
                     attachments: Sequence[NewAttachment] = ()) -> int:
        """Insert a record directly, bypassing limits (for unrelated channel traffic)."""
        record_id = self._next_id
        self._next_id += 1
        self._container(container)[record_id] = _StoredRecord(
            id=record_id, content=content, attachments=list(attachments)
        )
        return record_id
