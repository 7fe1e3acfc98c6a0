"""Bounded audio queue that drops the oldest chunk when full.

Phone audio has a fixed latency budget, so both relay directions
prefer losing a stale 20ms frame over blocking the call.
"""

from __future__ import annotations

import asyncio


class AudioChunkQueue:
    """Async FIFO of audio chunks with drop-oldest overflow."""

    def __init__(self, max_size: int = 100) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._queue: asyncio.Queue[bytes] = asyncio.Queue(maxsize=max_size)
        self._dropped = 0

    def put(self, chunk: bytes) -> bool:
        """Add a chunk without waiting.

        Returns:
            False if an older chunk was discarded to make room.
        """
        try:
            self._queue.put_nowait(chunk)
            return True
        except asyncio.QueueFull:
            pass

        try:
            self._queue.get_nowait()
        except asyncio.QueueEmpty:
            pass
        self._queue.put_nowait(chunk)
        self._dropped += 1
        return False

    async def get(self) -> bytes:
        """Wait for the next chunk."""
        return await self._queue.get()

    def clear(self) -> int:
        """Discard everything buffered. Returns the number of chunks removed."""
        removed = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return removed
            removed += 1

    @property
    def size(self) -> int:
        """Current buffer size."""
        return self._queue.qsize()

    @property
    def dropped(self) -> int:
        """Chunks discarded because the queue was full."""
        return self._dropped
