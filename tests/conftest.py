# SPDX-License-Identifier: Apache-2.0
"""
Pytest configuration for Tandem tests.
"""

import io

import numpy as np
import pytest
import soundfile as sf


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def make_wav_bytes(duration: float = 0.5, sample_rate: int = 16000, amplitude: float = 0.2) -> bytes:
    """Return a mono PCM16 WAV payload containing a sine tone."""
    t = np.arange(int(duration * sample_rate), dtype=np.float32) / sample_rate
    samples = (amplitude * np.sin(2 * np.pi * 440 * t)).astype(np.float32)
    buffer = io.BytesIO()
    sf.write(buffer, samples, sample_rate, format="WAV", subtype="PCM_16")
    return buffer.getvalue()


@pytest.fixture
def wav_bytes():
    return make_wav_bytes()


@pytest.fixture
def make_wav():
    return make_wav_bytes
