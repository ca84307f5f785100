# SPDX-License-Identifier: Apache-2.0
"""
Unit tests for ChunkProducer.

The tick task interval is set far beyond the test duration so each test
drives ``tick`` by hand after moving the fake clock.
"""

import asyncio
import io
from unittest.mock import MagicMock

import numpy as np
import pytest
import soundfile as sf

from core.realtime.chunk_planner import BoundaryReason
from core.realtime.chunk_producer import ChunkProducer
from core.realtime.chunk_queue import ChunkQueue
from core.realtime.config import RealtimeConfig

SAMPLE_RATE = 16000


def frames(seconds: float, value: float) -> np.ndarray:
    return np.full(int(seconds * SAMPLE_RATE), value, dtype=np.float32)


def decoded_length(chunk) -> int:
    samples, rate = sf.read(io.BytesIO(chunk.data), dtype="float32")
    assert rate == SAMPLE_RATE
    return samples.shape[0]


@pytest.fixture
def config():
    return RealtimeConfig(level_sample_interval=3600.0, stall_timeout=1.0, queue_maxsize=8)


async def start_producer(config, clock, **kwargs):
    queue = ChunkQueue(config.queue_maxsize)
    producer = ChunkProducer(queue, config, clock=clock, **kwargs)
    await producer.start()
    return producer, queue


async def feed(producer, samples):
    producer.submit_frame(samples)
    await asyncio.sleep(0)


async def tick_at(producer, clock, t):
    clock.now = t
    return await producer.tick()


class TestBoundaries:
    """Chunks are emitted on planner decisions."""

    @pytest.mark.asyncio
    async def test_quiet_audio_closes_at_base_duration(self, config, clock):
        producer, queue = await start_producer(config, clock)
        try:
            await feed(producer, frames(5.0, 0.0))
            assert await tick_at(producer, clock, 4.9) is None

            chunk = await tick_at(producer, clock, 5.0)

            assert chunk is not None
            assert chunk.captured_at_offset_ms == 0
            assert chunk.duration_ms == 5000
            assert decoded_length(chunk) == 5 * SAMPLE_RATE
            assert producer.last_decision.reason == BoundaryReason.QUIET
            assert await queue.get() is chunk
        finally:
            await producer.stop()

    @pytest.mark.asyncio
    async def test_offsets_follow_emitted_audio(self, config, clock):
        producer, queue = await start_producer(config, clock)
        try:
            await feed(producer, frames(5.0, 0.0))
            first = await tick_at(producer, clock, 5.0)
            await feed(producer, frames(5.0, 0.0))
            second = await tick_at(producer, clock, 10.0)

            assert first.sequence == 0
            assert second.sequence == 1
            assert second.captured_at_offset_ms == 5000
        finally:
            await producer.stop()

    @pytest.mark.asyncio
    async def test_boundary_without_audio_emits_nothing(self, config, clock):
        producer, queue = await start_producer(config, clock)
        try:
            assert await tick_at(producer, clock, 5.0) is None
            assert queue.empty()
            assert producer.chunks_produced == 0
        finally:
            await producer.stop()


class TestStalls:
    """A silent or lost stream still produces bounded chunks."""

    @pytest.mark.asyncio
    async def test_no_frames_for_stall_timeout_force_closes(self, config, clock):
        producer, queue = await start_producer(config, clock)
        try:
            await feed(producer, frames(1.0, 0.5))
            await tick_at(producer, clock, 0.5)

            chunk = await tick_at(producer, clock, 1.5)

            assert chunk is not None
            assert producer.last_decision.reason == BoundaryReason.FORCED
            assert decoded_length(chunk) == SAMPLE_RATE
        finally:
            await producer.stop()

    @pytest.mark.asyncio
    async def test_stream_error_force_closes_next_tick(self, config, clock):
        capture = MagicMock()
        producer, queue = await start_producer(config, clock, audio_capture=capture)
        try:
            kwargs = capture.start_capture.call_args.kwargs
            assert kwargs["callback"] == producer.submit_frame

            await feed(producer, frames(0.5, 0.5))
            kwargs["on_error"](OSError("device unplugged"))

            chunk = await tick_at(producer, clock, 0.6)

            assert chunk is not None
            assert producer.last_decision.reason == BoundaryReason.FORCED
        finally:
            await producer.stop()
        capture.stop_capture.assert_called_once()


class TestStop:
    """Shutdown flushes the open chunk."""

    @pytest.mark.asyncio
    async def test_stop_flushes_remaining_audio(self, config, clock):
        producer, queue = await start_producer(config, clock)
        await feed(producer, frames(0.5, 0.3))

        chunk = await producer.stop()

        assert chunk is not None
        assert decoded_length(chunk) == SAMPLE_RATE // 2
        assert await queue.get() is chunk
        assert producer.is_running is False

    @pytest.mark.asyncio
    async def test_frames_after_stop_are_ignored(self, config, clock):
        producer, queue = await start_producer(config, clock)
        await producer.stop()

        producer.submit_frame(frames(0.5, 0.3))
        await asyncio.sleep(0)

        assert queue.empty()

    @pytest.mark.asyncio
    async def test_recording_sink_receives_frames(self, config, clock):
        sink = MagicMock()
        producer, queue = await start_producer(config, clock, recording_sink=sink)
        try:
            await feed(producer, frames(0.1, 0.2))
        finally:
            await producer.stop()

        sink.assert_called_once()
        assert sink.call_args.args[0].shape == (int(0.1 * SAMPLE_RATE),)
