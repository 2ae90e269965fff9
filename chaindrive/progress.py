"""
Transfer Progress

Design Decision: Progress Reporting
===================================

Options Considered:
1. Callback invoked per step - Simple, but the closure runs on the
   background task and tends to grab shared UI state
2. Shared progress object polled by the UI - Needs locking
3. Ordered message channel - Background task only produces, the
   foreground only consumes

Decision: Ordered message channel
- Each transfer runs as one asyncio task
- The task pushes TransferProgress events onto an unbounded queue
  (never blocks the transfer)
- The foreground iterates the channel and owns all display state
- Closing the channel from the consumer side makes the next emit()
  raise TransferAbandonedError, ending the task at that point
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, List, Optional, TypeVar

from .exceptions import TransferAbandonedError

logger = logging.getLogger(__name__)

# Phase labels
DISASSEMBLING = "disassembling"
UPLOADING = "uploading"
EDITING = "editing"
DOWNLOADING = "downloading"
DELETING = "deleting"
ASSEMBLING = "assembling"

T = TypeVar("T")

_DONE = object()


def ratio(done: int, total: Optional[int]) -> float:
    """Fraction done/total clamped to [0, 1]; 1.0 when total is 0 or unknown."""
    if not total:
        return 1.0
    return min(max(done / total, 0.0), 1.0)


@dataclass(frozen=True)
class TransferProgress:
    """One progress message: phase label and completion fraction."""
    label: str
    fraction: float


class ProgressChannel:
    """
    One-directional, ordered, non-blocking progress channel.

    Fractions are clamped to [0, 1] and never go down within a phase.
    A new label starts a new phase.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._finished = False
        self._label: Optional[str] = None
        self._fraction = 0.0

    @property
    def closed(self) -> bool:
        """True once the consumer has disconnected."""
        return self._closed

    def emit(self, label: str, fraction: float):
        """
        Push a progress event.

        Raises:
            TransferAbandonedError: the consumer closed the channel
        """
        if self._closed:
            raise TransferAbandonedError(f"Progress consumer disconnected during {label}")

        fraction = min(max(float(fraction), 0.0), 1.0)
        if label == self._label:
            fraction = max(fraction, self._fraction)
        self._label = label
        self._fraction = fraction

        self._queue.put_nowait(TransferProgress(label=label, fraction=fraction))

    def finish(self):
        """Mark the end of the stream (producer side)."""
        if not self._finished:
            self._finished = True
            self._queue.put_nowait(_DONE)

    def close(self):
        """Disconnect the consumer."""
        self._closed = True

    def drain(self) -> List[TransferProgress]:
        """Return every queued event without waiting."""
        events = []
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if item is _DONE:
                # Keep the end marker for a later async iteration
                self._queue.put_nowait(_DONE)
                break
            events.append(item)
        return events

    def __aiter__(self) -> 'ProgressChannel':
        return self

    async def __anext__(self) -> TransferProgress:
        item = await self._queue.get()
        if item is _DONE:
            self._queue.put_nowait(_DONE)
            raise StopAsyncIteration
        return item


class TransferTask(Generic[T]):
    """
    A transfer running in the background with its progress channel.

    Usage:
        task = TransferTask.start(lambda progress: uploader.upload(path, progress))
        async for event in task.events():
            ...
        result = await task.result()
    """

    def __init__(self, channel: ProgressChannel, task: 'asyncio.Task[T]'):
        self.channel = channel
        self._task = task

    @classmethod
    def start(cls, factory: Callable[[ProgressChannel], Awaitable[T]]) -> 'TransferTask[T]':
        """Spawn the transfer on the running loop."""
        channel = ProgressChannel()

        async def runner() -> T:
            try:
                return await factory(channel)
            finally:
                channel.finish()

        return cls(channel, asyncio.create_task(runner()))

    def events(self) -> ProgressChannel:
        return self.channel

    @property
    def done(self) -> bool:
        return self._task.done()

    def abandon(self):
        """Stop listening; the transfer stops at its next progress report."""
        logger.debug("Abandoning transfer task")
        self.channel.close()

    async def result(self) -> T:
        """Wait for the transfer and return its result (or raise its error)."""
        return await self._task
