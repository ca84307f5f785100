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
Chunk producer: turns the live frame stream into queued chunks.

Frames arrive on the capture thread and are handed to the event loop with
``call_soon_threadsafe``. A timer-driven tick moves them into the open chunk's
buffer, samples the level meter and asks the boundary planner whether the
chunk is done. Because ticks do not depend on frames, a stalled stream still
reaches the planner's hard limit.
"""

import asyncio
import contextlib
import logging
import time
from typing import Callable, Optional

import numpy as np

from core.realtime.audio_buffer import AudioBuffer
from core.realtime.audio_level import AudioLevelMonitor
from core.realtime.chunk_planner import BoundaryDecision, BoundaryReason, ChunkBoundaryPlanner
from core.realtime.chunk_queue import ChunkQueue
from core.realtime.config import RealtimeConfig
from core.realtime.models import Chunk

logger = logging.getLogger("tandem.realtime.producer")

FrameSink = Callable[[np.ndarray], object]


class ChunkProducer:
    """Captures audio under planner control and enqueues finished chunks."""

    def __init__(
        self,
        queue: ChunkQueue,
        config: RealtimeConfig,
        audio_capture=None,
        planner: Optional[ChunkBoundaryPlanner] = None,
        monitor: Optional[AudioLevelMonitor] = None,
        recording_sink: Optional[FrameSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.queue = queue
        self.config = config
        self.audio_capture = audio_capture
        self._clock = clock
        self.planner = planner or ChunkBoundaryPlanner(
            base_duration=config.base_chunk_duration,
            quiet_threshold=config.quiet_threshold,
            max_extension=config.max_extension,
            clock=clock,
        )
        self.monitor = monitor or AudioLevelMonitor(clock=clock)
        self.recording_sink = recording_sink
        # Generous cap; the planner closes chunks long before this fills.
        self.buffer = AudioBuffer(
            max_duration_seconds=max(60.0, config.hard_chunk_limit * 4),
            sample_rate=config.sample_rate,
        )

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._frames: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._stream_lost = False
        self._last_frame_at: Optional[float] = None
        self._samples_emitted = 0
        self.chunks_produced = 0
        self.last_decision: Optional[BoundaryDecision] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self, device_index: Optional[int] = None) -> None:
        """Begin the first chunk, start capture (if any) and the tick task."""
        if self._running:
            logger.warning("Chunk producer already running")
            return

        self._loop = asyncio.get_running_loop()
        self._frames = asyncio.Queue()
        self._running = True
        self._stream_lost = False
        self._samples_emitted = 0
        self._last_frame_at = self._clock()
        self.buffer.clear()
        self.monitor.reset()
        self.planner.begin_chunk(self._clock())

        if self.audio_capture is not None:
            try:
                self.audio_capture.start_capture(
                    device_index=device_index,
                    callback=self.submit_frame,
                    on_error=self._on_stream_error,
                )
            except Exception:
                self._running = False
                raise

        self._task = asyncio.create_task(self._run(), name="chunk-producer")
        logger.info(
            "Chunk producer started (base=%.1fs, threshold=%.0f%%, extension=%.1fs)",
            self.planner.base_duration,
            self.planner.quiet_threshold,
            self.planner.max_extension,
        )

    def submit_frame(self, frame: np.ndarray) -> None:
        """Accept one captured frame; callable from any thread."""
        if not self._running or self._loop is None:
            return
        frame = np.asarray(frame, dtype=np.float32).reshape(-1)
        self.monitor.push_frame(frame)
        if self.recording_sink is not None:
            self.recording_sink(frame)
        try:
            self._loop.call_soon_threadsafe(self._frames.put_nowait, frame)
        except RuntimeError:
            # Event loop already closed during shutdown
            logger.debug("Dropping frame after event loop shutdown")

    def _on_stream_error(self, exc: Exception) -> None:
        logger.warning("Audio stream unavailable: %s", exc)
        self.monitor.mark_unavailable()
        self._stream_lost = True

    async def _run(self) -> None:
        interval = self.config.level_sample_interval
        while self._running:
            await asyncio.sleep(interval)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.error("Chunk producer tick failed: %s", exc, exc_info=True)

    async def tick(self, now: Optional[float] = None) -> Optional[Chunk]:
        """Run one sampling step; returns the chunk emitted on this tick, if any."""
        self._move_frames()
        now = self._clock() if now is None else now
        level = self.monitor.sample()

        decision = self.planner.on_tick(level, now)
        if decision is None and self._is_stalled(now):
            logger.warning("No audio for %.1fs; force-closing chunk", now - self._last_frame_at)
            decision = self.planner.force_close(now)

        if decision is None:
            return None

        self.last_decision = decision
        chunk = await self._emit_chunk(decision)
        self.planner.begin_chunk(now)
        return chunk

    def _move_frames(self) -> None:
        if self._frames is None:
            return
        while True:
            try:
                frame = self._frames.get_nowait()
            except asyncio.QueueEmpty:
                break
            self.buffer.append(frame)
            self._last_frame_at = self._clock()

    def _is_stalled(self, now: float) -> bool:
        if self.buffer.is_empty():
            return False
        if self._stream_lost:
            return True
        return self._last_frame_at is not None and now - self._last_frame_at >= self.config.stall_timeout

    async def _emit_chunk(self, decision: BoundaryDecision) -> Optional[Chunk]:
        samples = self.buffer.drain()
        if samples.size == 0:
            logger.debug("Chunk boundary (%s) with no audio; nothing queued", decision.reason.value)
            return None

        sample_rate = self.config.sample_rate
        chunk = Chunk(
            data=AudioBuffer.encode_wav(samples, sample_rate),
            captured_at_offset_ms=int(self._samples_emitted * 1000 / sample_rate),
            duration_ms=int(samples.size * 1000 / sample_rate),
        )
        self._samples_emitted += samples.size
        await self.queue.put(chunk)
        self.chunks_produced += 1
        logger.debug(
            "Chunk %d closed (%s, %.2fs audio)",
            chunk.sequence,
            decision.reason.value,
            samples.size / sample_rate,
        )
        return chunk

    async def stop(self) -> Optional[Chunk]:
        """Stop capture and the tick task, then flush the open chunk."""
        if not self._running:
            return None

        if self.audio_capture is not None:
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, self.audio_capture.stop_capture)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to stop audio capture: %s", exc, exc_info=True)
        self._running = False

        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        # Let frames scheduled by the capture thread land before flushing.
        await asyncio.sleep(0)
        self._move_frames()
        decision = self.planner.force_close(self._clock(), BoundaryReason.FORCED)
        chunk = await self._emit_chunk(decision)
        logger.info("Chunk producer stopped after %d chunks", self.chunks_produced)
        return chunk
