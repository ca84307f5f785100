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
音频缓冲区模块

Accumulates captured frames for the chunk that is currently open and turns
them into the PCM16 WAV payload handed to the speech engine.
"""

import io
import logging
import threading
from typing import List

import numpy as np
import soundfile as sf

logger = logging.getLogger("tandem.realtime.buffer")


class AudioBuffer:
    """音频缓冲区，保存当前分块的音频帧"""

    def __init__(self, max_duration_seconds: float = 60.0, sample_rate: int = 16000):
        """
        初始化音频缓冲区

        Args:
            max_duration_seconds: 最大缓冲时长（秒），超出时丢弃最早的帧
            sample_rate: 采样率（Hz）
        """
        if sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        self.max_duration_seconds = max_duration_seconds
        self.sample_rate = sample_rate
        self.max_samples = int(max_duration_seconds * sample_rate)

        self._frames: List[np.ndarray] = []
        self._size = 0
        self.lock = threading.Lock()

        self.total_samples_added = 0
        self.total_samples_dropped = 0

    def append(self, audio_chunk: np.ndarray) -> None:
        """添加音频帧（float32，单声道）"""
        frame = np.asarray(audio_chunk, dtype=np.float32).reshape(-1)
        if frame.size == 0:
            return

        with self.lock:
            self._frames.append(frame.copy())
            self._size += frame.size
            self.total_samples_added += frame.size

            while self._size > self.max_samples and self._frames:
                dropped = self._frames.pop(0)
                self._size -= dropped.size
                self.total_samples_dropped += dropped.size
                logger.warning("Audio buffer overflow, dropped %d samples", dropped.size)

    def drain(self) -> np.ndarray:
        """取出并清空全部音频"""
        with self.lock:
            if not self._frames:
                return np.array([], dtype=np.float32)
            samples = np.concatenate(self._frames)
            self._frames = []
            self._size = 0
            return samples

    def clear(self) -> None:
        with self.lock:
            self._frames = []
            self._size = 0

    def get_duration(self) -> float:
        """缓冲区中音频的时长（秒）"""
        with self.lock:
            return self._size / self.sample_rate

    def get_size(self) -> int:
        with self.lock:
            return self._size

    def is_empty(self) -> bool:
        with self.lock:
            return self._size == 0

    def get_stats(self) -> dict:
        with self.lock:
            return {
                "current_samples": self._size,
                "current_duration_seconds": self._size / self.sample_rate,
                "max_duration_seconds": self.max_duration_seconds,
                "total_samples_added": self.total_samples_added,
                "total_samples_dropped": self.total_samples_dropped,
            }

    @staticmethod
    def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
        """
        将 float32 音频编码为 PCM16 WAV 字节

        Args:
            samples: 音频数据，范围 [-1, 1]
            sample_rate: 采样率（Hz）
        """
        clipped = np.clip(np.asarray(samples, dtype=np.float32).reshape(-1), -1.0, 1.0)
        output = io.BytesIO()
        sf.write(output, clipped, int(sample_rate), format="WAV", subtype="PCM_16")
        return output.getvalue()
