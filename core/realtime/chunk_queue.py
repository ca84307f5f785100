# SPDX-License-Identifier: Apache-2.0
#
# Copyright (c) 2024-2025 Tandem Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
Bounded FIFO of chunks awaiting transcription.
"""

import asyncio
import logging
from typing import Optional

from config.constants import DEFAULT_CHUNK_QUEUE_SIZE
from core.realtime.models import Chunk

logger = logging.getLogger("tandem.realtime.queue")


class ChunkQueueClosed(RuntimeError):
    """Raised when a chunk is offered after the queue was closed."""


class ChunkQueue:
    """
    ``asyncio.Queue`` wrapper with close semantics.

    ``put`` waits while the queue is full. After :meth:`close`, ``get``
    returns the remaining chunks in order and then ``None``.
    """

    def __init__(self, maxsize: int = DEFAULT_CHUNK_QUEUE_SIZE):
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self.maxsize = maxsize
        # One extra slot so the close sentinel never blocks.
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize + 1)
        self._slots = asyncio.Semaphore(maxsize)
        self._closed = False
        self._next_sequence = 0
        self._pending = 0
        self.total_enqueued = 0
        self.total_discarded = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._pending

    def empty(self) -> bool:
        return self.qsize() == 0

    async def put(self, chunk: Chunk) -> int:
        """Enqueue ``chunk`` and return its sequence number."""
        if self._closed:
            raise ChunkQueueClosed("chunk queue is closed")
        await self._slots.acquire()
        if self._closed:
            self._slots.release()
            raise ChunkQueueClosed("chunk queue is closed")

        chunk.sequence = self._next_sequence
        self._next_sequence += 1
        self._queue.put_nowait(chunk)
        self._pending += 1
        self.total_enqueued += 1
        logger.debug("Chunk %s queued (seq=%d, size=%d)", chunk.id, chunk.sequence, self.qsize())
        return chunk.sequence

    async def get(self) -> Optional[Chunk]:
        """Wait for the next chunk; ``None`` means closed and fully drained."""
        item = await self._queue.get()
        if item is None:
            # Leave the sentinel for any other waiter.
            self._queue.put_nowait(None)
            return None
        self._pending -= 1
        self._slots.release()
        return item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    def discard_pending(self) -> int:
        """Drop queued chunks that have not been taken yet."""
        discarded = 0
        sentinel = False
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if item is None:
                sentinel = True
                continue
            self._pending -= 1
            self._slots.release()
            discarded += 1
        if sentinel:
            self._queue.put_nowait(None)
        if discarded:
            logger.info("Discarded %d unprocessed chunks", discarded)
        self.total_discarded += discarded
        return discarded
