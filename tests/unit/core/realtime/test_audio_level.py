# SPDX-License-Identifier: Apache-2.0
"""
Unit tests for AudioLevelMonitor.
"""

import threading

import numpy as np
import pytest

from core.realtime.audio_level import AudioLevelMonitor


class TestComputeLevel:
    """Mapping RMS onto 0-100."""

    def test_full_scale_is_100(self):
        assert AudioLevelMonitor.compute_level(np.ones(100, dtype=np.float32)) == 100.0

    def test_silence_is_zero(self):
        assert AudioLevelMonitor.compute_level(np.zeros(100, dtype=np.float32)) == 0.0

    def test_floor_maps_to_zero(self):
        frame = np.full(100, 10 ** (-60 / 20), dtype=np.float32)
        assert AudioLevelMonitor.compute_level(frame) == pytest.approx(0.0, abs=0.01)

    def test_minus_30_dbfs_is_half(self):
        frame = np.full(100, 10 ** (-30 / 20), dtype=np.float32)
        assert AudioLevelMonitor.compute_level(frame) == pytest.approx(50.0, abs=0.05)

    def test_empty_frame_raises(self):
        with pytest.raises(ValueError):
            AudioLevelMonitor.compute_level(np.array([], dtype=np.float32))

    def test_non_finite_frame_raises(self):
        with pytest.raises(ValueError):
            AudioLevelMonitor.compute_level(np.array([np.nan, 0.1], dtype=np.float32))


class TestSampling:
    """Sampling behaviour of the monitor."""

    def test_sample_uses_latest_frame(self, clock):
        monitor = AudioLevelMonitor(clock=clock)
        monitor.push_frame(np.zeros(10, dtype=np.float32))
        monitor.push_frame(np.ones(10, dtype=np.float32))

        assert monitor.sample() == 100.0
        assert monitor.current_level() == 100.0

    def test_no_new_frame_keeps_last_level(self, clock):
        monitor = AudioLevelMonitor(clock=clock)
        monitor.push_frame(np.ones(10, dtype=np.float32))
        monitor.sample()

        assert monitor.sample() == 100.0

    def test_bad_frame_keeps_last_level(self, clock):
        monitor = AudioLevelMonitor(clock=clock)
        monitor.push_frame(np.ones(10, dtype=np.float32))
        monitor.sample()
        monitor.push_frame(np.array([np.inf], dtype=np.float32))

        assert monitor.sample() == 100.0

    def test_unavailable_stream_does_not_raise(self, clock):
        monitor = AudioLevelMonitor(clock=clock)
        monitor.push_frame(np.ones(10, dtype=np.float32))
        monitor.sample()
        monitor.mark_unavailable()

        assert monitor.is_available is False
        assert monitor.sample() == 100.0

    def test_push_from_other_threads(self, clock):
        monitor = AudioLevelMonitor(clock=clock)
        threads = [
            threading.Thread(target=monitor.push_frame, args=(np.full(8, 0.5, dtype=np.float32),))
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert 0.0 < monitor.sample() < 100.0

    def test_reset_clears_level(self, clock):
        monitor = AudioLevelMonitor(clock=clock)
        monitor.push_frame(np.ones(10, dtype=np.float32))
        monitor.sample()
        monitor.reset()

        assert monitor.current_level() == 0.0
        assert monitor.last_frame_time is None
