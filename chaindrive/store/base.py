"""
Record Store Contract

The transfer code only talks to a record store through this interface:
create/edit/get/delete one record and page through a container's
history. Adapters raise StoreError (or RecordNotFoundError) and
nothing else.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

# (filename, bytes) pairs handed to create()
NewAttachment = Tuple[str, bytes]


@dataclass
class Attachment:
    """A binary attachment of a stored record; bytes are fetched lazily."""
    filename: str
    size: int
    fetch: Callable[[], Awaitable[bytes]] = field(repr=False)

    async def read(self) -> bytes:
        return await self.fetch()


@dataclass
class Record:
    """A record as seen through the store: id, text content, attachments."""
    id: int
    content: str
    attachments: List[Attachment] = field(default_factory=list)


class RecordStore(ABC):
    """
    Message-oriented record store.

    Records live in containers (e.g. a channel). Ids are assigned by the
    store on creation and grow with creation time.
    """

    # Maximum attachments per record
    max_attachments: int = 10

    @abstractmethod
    async def create(self, container: int, attachments: Sequence[NewAttachment],
                     content: str) -> Record:
        """Create a record and return it with its assigned id."""

    @abstractmethod
    async def edit(self, container: int, record_id: int, content: str) -> Record:
        """Replace a record's text content."""

    @abstractmethod
    async def get(self, container: int, record_id: int) -> Record:
        """Fetch one record."""

    @abstractmethod
    async def delete(self, container: int, record_id: int) -> None:
        """Delete one record."""

    @abstractmethod
    async def list_page(self, container: int, before: Optional[int] = None,
                        limit: int = 100) -> List[Record]:
        """Up to `limit` records older than `before`, newest first."""

    async def close(self):
        """Release network resources."""

    async def __aenter__(self) -> 'RecordStore':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
