# SPDX-License-Identifier: Apache-2.0
"""
Unit tests for AudioBuffer.

Tests frame accumulation, overflow handling and WAV encoding.
"""

import io
import threading

import numpy as np
import pytest
import soundfile as sf

from core.realtime.audio_buffer import AudioBuffer


class TestAudioBuffer:
    """Test suite for AudioBuffer class."""

    @pytest.fixture
    def buffer(self):
        return AudioBuffer(max_duration_seconds=2, sample_rate=16000)

    def test_init_default_params(self):
        buffer = AudioBuffer()

        assert buffer.max_samples == 60 * 16000
        assert buffer.is_empty()

    def test_invalid_sample_rate(self):
        with pytest.raises(ValueError):
            AudioBuffer(sample_rate=0)

    def test_append_and_drain(self, buffer):
        buffer.append(np.array([0.1, 0.2], dtype=np.float32))
        buffer.append(np.array([0.3], dtype=np.float32))

        samples = buffer.drain()

        np.testing.assert_allclose(samples, [0.1, 0.2, 0.3])
        assert buffer.is_empty()

    def test_empty_frames_are_ignored(self, buffer):
        buffer.append(np.array([], dtype=np.float32))

        assert buffer.get_stats()["total_samples_added"] == 0

    def test_overflow_drops_oldest_frames(self, buffer):
        """Frames beyond max duration push out the oldest ones."""
        buffer.append(np.full(16000, 0.1, dtype=np.float32))
        buffer.append(np.full(16000, 0.2, dtype=np.float32))
        buffer.append(np.full(16000, 0.3, dtype=np.float32))

        assert buffer.get_duration() == 2.0
        assert buffer.get_stats()["total_samples_dropped"] == 16000
        assert buffer.drain()[0] == pytest.approx(0.2)

    def test_concurrent_appends(self, buffer):
        def writer():
            for _ in range(50):
                buffer.append(np.zeros(10, dtype=np.float32))

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert buffer.get_size() == 2000


class TestEncodeWav:
    """PCM16 WAV payloads for the speech engine."""

    def test_encodes_pcm16_wav(self):
        payload = AudioBuffer.encode_wav(np.linspace(-1, 1, 1600, dtype=np.float32), 16000)

        data, sample_rate = sf.read(io.BytesIO(payload), dtype="float32")
        assert payload[:4] == b"RIFF"
        assert sample_rate == 16000
        assert len(data) == 1600

    def test_clips_out_of_range_samples(self):
        payload = AudioBuffer.encode_wav(np.array([2.0, -2.0], dtype=np.float32), 16000)

        data, _ = sf.read(io.BytesIO(payload), dtype="float32")
        assert data.max() <= 1.0
        assert data.min() >= -1.0
