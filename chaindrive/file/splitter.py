"""
Extent Splitter

Design Decision: Extent Size
============================

Options Considered:
| Size    | Pros                          | Cons                             |
|---------|-------------------------------|----------------------------------|
| 8MB     | Fits every upload tier        | More records for large files     |
| 10MB    | Matches the store's file cap  | -                                |
| 25MB    | Fewer records                 | Rejected by most store accounts  |

Decision: 10MB (10,000,000 bytes)
- Largest size the record store accepts for a single attachment
- Ten extents fill one record (100MB per record)

Splitting Strategy: Fixed-Size
- Extent N covers bytes [N * size, (N + 1) * size)
- Extent files are named <original name>.part<N>
- Reassembly orders by the full numeric index N
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import aiofiles
import aiofiles.os

from ..exceptions import ExtentSequenceError, TransferIOError
from ..progress import ASSEMBLING, DISASSEMBLING, ProgressChannel, ratio

logger = logging.getLogger(__name__)

# Extent size: 10MB
PART_SIZE = 1000 * 1000 * 10  # 10,000,000 bytes


def extent_name(name: str, index: int) -> str:
    """Local file name of extent `index` of `name`."""
    return f"{name}.part{index}"


@dataclass(frozen=True)
class Extent:
    """One fixed-size piece of a file, stored in a local temporary file."""
    index: int
    path: Path
    size: int

    @property
    def filename(self) -> str:
        return self.path.name


class ExtentSplitter:
    """
    Splits byte streams into fixed-size extent files and joins them back.

    Features:
    - Fixed-size extents (default 10MB)
    - Async file I/O (aiofiles)
    - Progress events per extent
    - Works with sources of unknown length
    """

    def __init__(self, extent_size: int = PART_SIZE):
        if extent_size < 1:
            raise ValueError(f"extent_size must be positive, got {extent_size}")
        self.extent_size = extent_size

    def extent_count(self, total_size: int) -> int:
        """Calculate number of extents for a source of the given size."""
        return (total_size + self.extent_size - 1) // self.extent_size

    async def _read_extent(self, reader, name: str) -> bytes:
        """Read up to one full extent; short reads are retried until EOF."""
        chunks = []
        remaining = self.extent_size
        while remaining > 0:
            try:
                chunk = await reader.read(remaining)
            except OSError as e:
                raise TransferIOError(f"Cannot read source: {e}",
                                      path=Path(name), phase=DISASSEMBLING) from e
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    async def split(self, reader, name: str, output_dir: Path,
                    total_size: Optional[int] = None,
                    progress: Optional[ProgressChannel] = None) -> List[Extent]:
        """
        Split an async byte reader into extent files.

        Args:
            reader: Object with an async read(n) method (e.g. an aiofiles handle)
            name: Base name for the extent files
            output_dir: Directory the extents are written to
            total_size: Source length if known, used for progress only
            progress: Optional progress channel

        Returns:
            Extents in index order

        Raises:
            TransferIOError: reading the source or writing an extent failed
        """
        output_dir = Path(output_dir)
        expected = self.extent_count(total_size) if total_size else 0
        extents: List[Extent] = []

        try:
            await aiofiles.os.makedirs(output_dir, exist_ok=True)
        except OSError as e:
            raise TransferIOError(f"Cannot create output directory: {e}",
                                  path=output_dir, phase=DISASSEMBLING) from e

        while True:
            data = await self._read_extent(reader, name)
            if not data:
                break

            index = len(extents)
            part_path = output_dir / extent_name(name, index)
            logger.debug(f"Writing {part_path.name} ({len(data):,} bytes)")
            try:
                async with aiofiles.open(part_path, 'wb') as f:
                    await f.write(data)
            except OSError as e:
                raise TransferIOError(f"Cannot write extent: {e}",
                                      path=part_path, phase=DISASSEMBLING) from e

            extents.append(Extent(index=index, path=part_path, size=len(data)))
            if progress:
                progress.emit(DISASSEMBLING, ratio(len(extents), expected))

        if progress:
            progress.emit(DISASSEMBLING, 1.0)

        logger.info(f"Disassembled {name} into {len(extents)} parts")
        return extents

    async def split_file(self, file_path: Path, output_dir: Path,
                         progress: Optional[ProgressChannel] = None) -> List[Extent]:
        """Split a local file into extents named after the file."""
        file_path = Path(file_path)
        try:
            total_size = file_path.stat().st_size
            async with aiofiles.open(file_path, 'rb') as f:
                return await self.split(f, file_path.name, output_dir,
                                        total_size=total_size, progress=progress)
        except OSError as e:
            raise TransferIOError(f"Cannot open file: {e}",
                                  path=file_path, phase=DISASSEMBLING) from e

    def find_extents(self, name: str, directory: Path) -> List[Extent]:
        """
        Collect the extent files of `name` in `directory`, ordered by index.

        Raises:
            ExtentSequenceError: indices are not contiguous from 0
            TransferIOError: the directory cannot be read
        """
        directory = Path(directory)
        pattern = re.compile(re.escape(name) + r"\.part(\d+)")
        found = {}

        try:
            for entry in directory.iterdir():
                match = pattern.fullmatch(entry.name)
                if match and entry.is_file():
                    found[int(match.group(1))] = entry
        except OSError as e:
            raise TransferIOError(f"Cannot read directory: {e}",
                                  path=directory, phase=ASSEMBLING) from e

        missing = [i for i in range(len(found)) if i not in found]
        if missing:
            raise ExtentSequenceError(
                f"Missing parts for {name}: {', '.join(extent_name(name, i) for i in missing[:5])}"
            )

        return [
            Extent(index=i, path=found[i], size=found[i].stat().st_size)
            for i in sorted(found)
        ]

    async def assemble(self, name: str, directory: Path,
                       output: Optional[Path] = None,
                       progress: Optional[ProgressChannel] = None) -> Path:
        """
        Join the extent files of `name` back into one file.

        Returns:
            Path of the assembled file (default: directory/name)
        """
        directory = Path(directory)
        output = Path(output) if output else directory / name
        extents = self.find_extents(name, directory)

        try:
            async with aiofiles.open(output, 'wb') as out:
                for extent in extents:
                    logger.debug(f"Writing {extent.filename}")
                    async with aiofiles.open(extent.path, 'rb') as f:
                        await out.write(await f.read())
                    if progress:
                        progress.emit(ASSEMBLING, ratio(extent.index + 1, len(extents)))
        except OSError as e:
            raise TransferIOError(f"Cannot assemble file: {e}",
                                  path=output, phase=ASSEMBLING) from e

        if progress:
            progress.emit(ASSEMBLING, 1.0)

        logger.info(f"Assembled {len(extents)} parts into {output}")
        return output


async def remove_extents(extents: List[Extent]):
    """
    Delete temporary extent files.

    Raises:
        TransferIOError: a file could not be removed
    """
    for extent in extents:
        logger.debug(f"Removing {extent.path}")
        try:
            await aiofiles.os.remove(extent.path)
        except OSError as e:
            raise TransferIOError(f"Failed to remove extent: {e}",
                                  path=extent.path, phase="cleanup") from e
