"""
Chain Record

Design Decision: Record Content Format
======================================

Every remote record carries a small block of metadata in its text content.
It tells a reader:
- What the file is called and how big it is (head record only)
- How many extents the whole chain holds (head record only)
- Which record comes next (any record except the tail)

Options Considered:
1. JSON - Easy to parse, but noisy in a chat client
2. key=value lines - Readable by a human looking at the channel
3. Binary header in an attachment - Costs an attachment slot

Decision: key=value lines behind a marker line
- The marker identifies records written by chaindrive
- Unknown keys are ignored so newer writers stay readable
- Fits comfortably in a 2000 character message

Example:
```
### This message is generated by chaindrive. Do not edit this message.
name=backup.tar
size=25000000
len=3
next=1187391123409817661
```
"""

from dataclasses import dataclass
from typing import Optional, List

from ..exceptions import MalformedRecordError, InvalidRecordError

MARKER = "### This message is generated by chaindrive. Do not edit this message."

# Keys on the wire
NAME_KEY = "name"
SIZE_KEY = "size"
LEN_KEY = "len"
NEXT_KEY = "next"


def _parse_count(key: str, value: str, line: str) -> int:
    """Parse a non-negative decimal integer field."""
    if not value.isascii() or not value.isdigit():
        raise MalformedRecordError(
            f"Value of '{key}' is not a non-negative integer: {value!r}",
            line=line,
        )
    return int(value)


def is_chain_content(content: str) -> bool:
    """True when the content starts with the chaindrive marker line."""
    return content.split("\n", 1)[0].rstrip("\r") == MARKER


@dataclass
class ChainRecord:
    """
    Metadata embedded in one record of a chain.

    Only the head carries name/size/extent_count. Any record may
    carry next; a record without next is the tail.
    """
    name: Optional[str] = None
    size: Optional[int] = None
    extent_count: Optional[int] = None
    next: Optional[int] = None

    @property
    def is_head(self) -> bool:
        return (self.name is not None and self.size is not None
                and self.extent_count is not None)

    @property
    def is_tail(self) -> bool:
        return self.next is None

    def require_head(self, record_id: Optional[int] = None) -> 'ChainRecord':
        """Return self, or raise InvalidRecordError if this is not a chain head."""
        missing = [
            key for key, value in (
                (NAME_KEY, self.name),
                (SIZE_KEY, self.size),
                (LEN_KEY, self.extent_count),
            )
            if value is None
        ]
        if missing:
            raise InvalidRecordError(
                f"Not a chain head, missing: {', '.join(missing)}",
                record_id=record_id,
            )
        return self

    def to_content(self) -> str:
        """Serialize to record content, marker line first."""
        if self.name is not None and ("\n" in self.name or "\r" in self.name):
            raise InvalidRecordError(f"File name contains a newline: {self.name!r}")

        lines: List[str] = [MARKER]
        if self.name is not None:
            lines.append(f"{NAME_KEY}={self.name}")
        if self.size is not None:
            lines.append(f"{SIZE_KEY}={self.size}")
        if self.extent_count is not None:
            lines.append(f"{LEN_KEY}={self.extent_count}")
        if self.next is not None:
            lines.append(f"{NEXT_KEY}={self.next}")
        return "\n".join(lines)

    @classmethod
    def from_content(cls, content: str) -> 'ChainRecord':
        """
        Parse record content.

        Empty content yields a record with every field absent. Lines
        starting with '#' are comments (the marker included).

        Raises:
            MalformedRecordError: a line has no '=' or a numeric
                field does not parse
        """
        record = cls()
        if not content:
            return record

        for raw_line in content.split("\n"):
            line = raw_line.rstrip("\r")
            if not line or line.startswith("#"):
                continue

            key, sep, value = line.partition("=")
            if not sep:
                raise MalformedRecordError(
                    f"Expected key=value, got {line!r}", line=line
                )

            if key == NAME_KEY:
                record.name = value
            elif key == SIZE_KEY:
                record.size = _parse_count(key, value, line)
            elif key == LEN_KEY:
                record.extent_count = _parse_count(key, value, line)
            elif key == NEXT_KEY:
                record.next = _parse_count(key, value, line)

        return record
