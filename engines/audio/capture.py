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
"""Microphone capture for the live pipeline, implemented with PyAudio."""

import importlib
import logging
import threading
from typing import Callable, Dict, List, Optional

import numpy as np

from config.constants import (
    AUDIO_NORMALIZATION_DIVISOR,
    DEFAULT_AUDIO_CHANNELS,
    DEFAULT_AUDIO_GAIN,
    DEFAULT_CHUNK_SIZE_SAMPLES,
    DEFAULT_SAMPLE_RATE_HZ,
    MAX_AUDIO_GAIN,
    MIN_AUDIO_GAIN,
)

logger = logging.getLogger("tandem.audio.capture")

FrameCallback = Callable[[np.ndarray], None]
ErrorCallback = Callable[[Exception], None]

# Consecutive read failures tolerated before the stream is declared lost.
MAX_CONSECUTIVE_READ_ERRORS = 10


class AudioCaptureError(RuntimeError):
    """Raised when the input stream cannot be opened."""


class AudioCapture:
    """
    Blocking-read PyAudio capture running on a background thread.

    Each frame is normalised to float32 in [-1, 1], gain-adjusted and passed to
    the frame callback on the capture thread. PyAudio is imported lazily so the
    rest of the pipeline works without it.
    """

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE_HZ,
        channels: int = DEFAULT_AUDIO_CHANNELS,
        chunk_size: int = DEFAULT_CHUNK_SIZE_SAMPLES,
        gain: float = DEFAULT_AUDIO_GAIN,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_size = chunk_size
        self.gain = gain

        self.pyaudio = None
        self.stream = None
        self.is_capturing = False
        self.capture_thread: Optional[threading.Thread] = None
        self._pyaudio_module = None

    def _ensure_module(self):
        if self._pyaudio_module is None:
            try:
                self._pyaudio_module = importlib.import_module("pyaudio")
            except ImportError as exc:
                raise ImportError(
                    "PyAudio is not installed. Install it with: pip install 'tandem[audio]'"
                ) from exc
        return self._pyaudio_module

    def _ensure_instance(self):
        if self.pyaudio is None:
            self.pyaudio = self._ensure_module().PyAudio()
            logger.info("PyAudio initialized")
        return self.pyaudio

    def get_input_devices(self) -> List[Dict]:
        """Return available input devices as ``index``/``name``/``max_input_channels`` dicts."""
        try:
            instance = self._ensure_instance()
        except ImportError:
            logger.warning("PyAudio not installed; audio input listing unavailable")
            return []

        devices = []
        for i in range(instance.get_device_count()):
            try:
                info = instance.get_device_info_by_index(i)
            except OSError as exc:
                logger.warning("Failed to get info for device %s: %s", i, exc)
                continue
            if info.get("maxInputChannels", 0) > 0:
                devices.append(
                    {
                        "index": i,
                        "name": info.get("name", "Unknown"),
                        "max_input_channels": info.get("maxInputChannels", 0),
                        "default_sample_rate": info.get("defaultSampleRate", 0),
                    }
                )
        return devices

    def start_capture(
        self,
        device_index: Optional[int] = None,
        callback: Optional[FrameCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """Open the input stream and start the capture thread.

        Args:
            device_index: Input device index, ``None`` for the system default.
            callback: Receives every captured frame (capture thread).
            on_error: Called once if the stream is lost while capturing.
        """
        if self.is_capturing:
            logger.warning("Audio capture is already running")
            return

        instance = self._ensure_instance()
        module = self._ensure_module()
        try:
            self.stream = instance.open(
                format=module.paInt16,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                input_device_index=device_index,
                frames_per_buffer=self.chunk_size,
            )
        except OSError as exc:
            logger.error("Failed to open input stream: %s", exc)
            raise AudioCaptureError(str(exc)) from exc

        self.is_capturing = True
        self.capture_thread = threading.Thread(
            target=self._capture_loop, args=(callback, on_error), name="AudioCapture", daemon=True
        )
        self.capture_thread.start()
        logger.info("Audio capture started (device_index=%s)", device_index)

    def _capture_loop(self, callback: Optional[FrameCallback], on_error: Optional[ErrorCallback]):
        consecutive_errors = 0
        while self.is_capturing:
            try:
                raw = self.stream.read(self.chunk_size, exception_on_overflow=False)
            except OSError as exc:
                consecutive_errors += 1
                if consecutive_errors >= MAX_CONSECUTIVE_READ_ERRORS:
                    logger.error("Audio stream lost after %d read errors: %s", consecutive_errors, exc)
                    self.is_capturing = False
                    if on_error:
                        on_error(exc)
                    break
                continue

            consecutive_errors = 0
            frame = self.convert_frame(raw, self.channels, self.gain)
            if callback:
                try:
                    callback(frame)
                except Exception as exc:  # noqa: BLE001
                    logger.error("Audio frame callback failed: %s", exc, exc_info=True)

        logger.info("Audio capture loop stopped")

    @staticmethod
    def convert_frame(raw: bytes, channels: int = 1, gain: float = 1.0) -> np.ndarray:
        """Turn interleaved int16 bytes into a mono float32 frame."""
        samples = np.frombuffer(raw, dtype=np.int16).astype(np.float32) / AUDIO_NORMALIZATION_DIVISOR
        if channels > 1:
            samples = samples.reshape(-1, channels).mean(axis=1)
        return np.clip(samples * gain, -1.0, 1.0)

    def stop_capture(self) -> None:
        """Stop the capture thread and close the stream."""
        if not self.is_capturing and self.stream is None:
            return

        self.is_capturing = False
        if self.capture_thread:
            self.capture_thread.join(timeout=2.0)
            self.capture_thread = None

        if self.stream:
            try:
                self.stream.stop_stream()
                self.stream.close()
            except OSError as exc:
                logger.warning("Error closing input stream: %s", exc)
            self.stream = None

        logger.info("Audio capture stopped")

    def set_gain(self, gain: float) -> None:
        if not MIN_AUDIO_GAIN <= gain <= MAX_AUDIO_GAIN:
            logger.warning("Gain value %s is out of range [%s, %s]", gain, MIN_AUDIO_GAIN, MAX_AUDIO_GAIN)
            gain = float(np.clip(gain, MIN_AUDIO_GAIN, MAX_AUDIO_GAIN))
        self.gain = gain

    def close(self) -> None:
        self.stop_capture()
        if self.pyaudio:
            self.pyaudio.terminate()
            self.pyaudio = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
