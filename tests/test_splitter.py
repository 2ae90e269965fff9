"""Tests for the extent splitter and batch packer."""

import asyncio
import io

import pytest

from chaindrive.exceptions import ExtentSequenceError, TransferIOError
from chaindrive.file.batching import batch_count, pack_batches
from chaindrive.file.splitter import ExtentSplitter, extent_name, remove_extents
from chaindrive.progress import ASSEMBLING, DISASSEMBLING, ProgressChannel


class AsyncBytesReader:
    """Async reader over in-memory bytes, length unknown to the splitter."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)

    async def read(self, size: int) -> bytes:
        return self._buffer.read(size)


class TrickleReader(AsyncBytesReader):
    """Returns at most `chunk` bytes per read, like a socket."""

    def __init__(self, data: bytes, chunk: int):
        super().__init__(data)
        self._chunk = chunk

    async def read(self, size: int) -> bytes:
        await asyncio.sleep(0)
        return self._buffer.read(min(size, self._chunk))


class FailingReader:
    async def read(self, size: int) -> bytes:
        raise OSError("device unplugged")


def test_extent_count():
    splitter = ExtentSplitter(extent_size=10)

    assert splitter.extent_count(0) == 0
    assert splitter.extent_count(1) == 1
    assert splitter.extent_count(10) == 1
    assert splitter.extent_count(11) == 2
    assert ExtentSplitter().extent_count(25_000_000) == 3


def test_extent_size_must_be_positive():
    with pytest.raises(ValueError):
        ExtentSplitter(extent_size=0)


@pytest.mark.asyncio
async def test_split_file_writes_named_extents(make_file, tmp_path):
    source = make_file('data.bin', 25)
    out_dir = tmp_path / 'parts'

    extents = await ExtentSplitter(extent_size=10).split_file(source, out_dir)

    assert [e.index for e in extents] == [0, 1, 2]
    assert [e.filename for e in extents] == ['data.bin.part0', 'data.bin.part1', 'data.bin.part2']
    assert [e.size for e in extents] == [10, 10, 5]
    assert b''.join(e.path.read_bytes() for e in extents) == source.read_bytes()


@pytest.mark.asyncio
async def test_split_empty_file_gives_no_extents(make_file, tmp_path):
    source = make_file('empty.bin', 0)
    progress = ProgressChannel()

    extents = await ExtentSplitter(extent_size=10).split_file(source, tmp_path / 'parts', progress)

    assert extents == []
    assert progress.drain()[-1].fraction == 1.0


@pytest.mark.asyncio
async def test_split_reports_progress_per_extent(make_file, tmp_path):
    source = make_file('data.bin', 40)
    progress = ProgressChannel()

    await ExtentSplitter(extent_size=10).split_file(source, tmp_path / 'parts', progress)

    events = progress.drain()
    assert {e.label for e in events} == {DISASSEMBLING}
    assert [e.fraction for e in events] == [0.25, 0.5, 0.75, 1.0, 1.0]


@pytest.mark.asyncio
async def test_split_stream_of_unknown_length(tmp_path):
    progress = ProgressChannel()

    extents = await ExtentSplitter(extent_size=4).split(
        AsyncBytesReader(b'abcdefghij'), 'stream', tmp_path / 'parts', progress=progress
    )

    assert [e.path.read_bytes() for e in extents] == [b'abcd', b'efgh', b'ij']
    assert all(e.fraction == 1.0 for e in progress.drain())


@pytest.mark.asyncio
async def test_split_fills_extents_across_short_reads(tmp_path):
    extents = await ExtentSplitter(extent_size=10).split(
        TrickleReader(b'abcdefghijklmno', chunk=3), 'trickle', tmp_path / 'parts'
    )

    assert [e.size for e in extents] == [10, 5]
    assert [e.path.read_bytes() for e in extents] == [b'abcdefghij', b'klmno']


@pytest.mark.asyncio
async def test_split_stream_reader_fed_in_small_chunks(tmp_path):
    reader = asyncio.StreamReader()

    async def feed():
        for i in range(5):
            reader.feed_data(bytes([65 + i]) * 3)
            await asyncio.sleep(0)
        reader.feed_eof()

    feeder = asyncio.ensure_future(feed())
    extents = await ExtentSplitter(extent_size=10).split(reader, 'socket', tmp_path / 'parts')
    await feeder

    assert [e.size for e in extents] == [10, 5]
    assert b''.join(e.path.read_bytes() for e in extents) == b'AAABBBCCCDDDEEE'


@pytest.mark.asyncio
async def test_split_missing_source_raises_io_error(tmp_path):
    with pytest.raises(TransferIOError) as exc_info:
        await ExtentSplitter().split_file(tmp_path / 'missing.bin', tmp_path / 'parts')

    assert exc_info.value.phase == DISASSEMBLING


@pytest.mark.asyncio
async def test_split_read_failure_raises_io_error(tmp_path):
    with pytest.raises(TransferIOError):
        await ExtentSplitter().split(FailingReader(), 'x', tmp_path / 'parts')


@pytest.mark.asyncio
async def test_assemble_orders_by_numeric_index(make_file, tmp_path):
    source = make_file('big.bin', 123)
    parts = tmp_path / 'parts'
    splitter = ExtentSplitter(extent_size=10)
    await splitter.split_file(source, parts)
    output = tmp_path / 'restored.bin'
    progress = ProgressChannel()

    result = await splitter.assemble('big.bin', parts, output, progress)

    assert result == output
    assert output.read_bytes() == source.read_bytes()
    events = progress.drain()
    assert {e.label for e in events} == {ASSEMBLING}
    assert events[-1].fraction == 1.0


@pytest.mark.asyncio
async def test_assemble_defaults_to_parts_directory(tmp_path):
    parts = tmp_path / 'parts'
    parts.mkdir()
    (parts / 'a.txt.part0').write_bytes(b'hello ')
    (parts / 'a.txt.part1').write_bytes(b'world')

    result = await ExtentSplitter().assemble('a.txt', parts)

    assert result == parts / 'a.txt'
    assert result.read_bytes() == b'hello world'


def test_find_extents_ignores_other_files(tmp_path):
    for name in ['a.txt.part0', 'a.txt.part1', 'a.txt.partial', 'ba.txt.part0', 'a.txt.part1.bak']:
        (tmp_path / name).write_bytes(b'x')

    extents = ExtentSplitter().find_extents('a.txt', tmp_path)

    assert [e.filename for e in extents] == ['a.txt.part0', 'a.txt.part1']


def test_find_extents_detects_gap(tmp_path):
    for i in (0, 1, 3):
        (tmp_path / extent_name('a.txt', i)).write_bytes(b'x')

    with pytest.raises(ExtentSequenceError) as exc_info:
        ExtentSplitter().find_extents('a.txt', tmp_path)

    assert 'a.txt.part2' in str(exc_info.value)


@pytest.mark.asyncio
async def test_remove_extents(make_file, tmp_path):
    parts = tmp_path / 'parts'
    extents = await ExtentSplitter(extent_size=10).split_file(make_file('x.bin', 30), parts)

    await remove_extents(extents)

    assert list(parts.iterdir()) == []


@pytest.mark.asyncio
async def test_remove_missing_extent_raises(make_file, tmp_path):
    extents = await ExtentSplitter(extent_size=10).split_file(make_file('x.bin', 30), tmp_path / 'p')
    extents[1].path.unlink()

    with pytest.raises(TransferIOError):
        await remove_extents(extents)


def test_pack_batches_preserves_order():
    batches = pack_batches(list(range(25)), 10)

    assert batches == [list(range(10)), list(range(10, 20)), list(range(20, 25))]


def test_pack_batches_edge_cases():
    assert pack_batches([], 10) == []
    assert pack_batches([1, 2, 3], 3) == [[1, 2, 3]]
    assert pack_batches([1, 2, 3], 1) == [[1], [2], [3]]
    with pytest.raises(ValueError):
        pack_batches([1], 0)


def test_batch_count():
    assert batch_count(0, 10) == 0
    assert batch_count(3, 10) == 1
    assert batch_count(10, 10) == 1
    assert batch_count(11, 10) == 2
