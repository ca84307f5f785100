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
"""Interface every speech recognition engine used by the pipeline implements."""

import io
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import soundfile as sf

WHISPER_SAMPLE_RATE = 16000


@dataclass
class TranscriptionResult:
    """Outcome of transcribing one chunk."""

    success: bool
    text: str = ""
    language: Optional[str] = None
    segments: List[Dict[str, Any]] = field(default_factory=list)
    model: Optional[str] = None
    error: Optional[str] = None


def ensure_audio_sample_rate(
    audio_chunk: np.ndarray,
    source_rate: Optional[int],
    target_rate: Optional[int]
) -> Tuple[np.ndarray, Optional[int]]:
    """Resample ``audio_chunk`` linearly to ``target_rate``.

    Args:
        audio_chunk: Input audio samples.
        source_rate: Actual sampling rate of the input data.
        target_rate: Desired sampling rate. ``None`` preserves the input rate.

    Returns:
        Tuple[np.ndarray, Optional[int]]: Resampled audio and its sampling rate.
    """
    if audio_chunk.size == 0:
        return audio_chunk, target_rate or source_rate

    if source_rate is None or source_rate <= 0:
        source_rate = target_rate

    if target_rate is None or target_rate <= 0 or source_rate == target_rate:
        return audio_chunk, source_rate

    duration = audio_chunk.shape[0] / float(source_rate)
    target_length = max(1, int(round(duration * target_rate)))
    if target_length == audio_chunk.shape[0]:
        return audio_chunk, target_rate

    source_positions = np.linspace(0.0, duration, num=audio_chunk.shape[0], endpoint=False)
    target_positions = np.linspace(0.0, duration, num=target_length, endpoint=False)
    resampled = np.interp(target_positions, source_positions, audio_chunk).astype(np.float32)
    return resampled, target_rate


def decode_wav_bytes(audio_bytes: bytes, target_rate: int = WHISPER_SAMPLE_RATE) -> np.ndarray:
    """Decode a WAV payload to mono float32 at ``target_rate``.

    Raises:
        ValueError: If the payload is empty or not a readable audio format.
    """
    if not audio_bytes:
        raise ValueError("Invalid audio: empty chunk payload")
    try:
        samples, rate = sf.read(io.BytesIO(audio_bytes), dtype="float32", always_2d=False)
    except (RuntimeError, TypeError) as exc:
        raise ValueError(f"Invalid audio format: {exc}") from exc
    if samples.ndim > 1:
        samples = samples.mean(axis=1)
    resampled, _ = ensure_audio_sample_rate(samples, rate, target_rate)
    return resampled


class SpeechEngine(ABC):
    """Speech recognition engine base class."""

    @abstractmethod
    def get_name(self) -> str:
        """Engine name for logs and segment metadata."""
        pass

    @abstractmethod
    async def transcribe_chunk(
        self,
        audio_bytes: bytes,
        model: Optional[str] = None,
        language: Optional[str] = None,
        threads: Optional[int] = None,
    ) -> TranscriptionResult:
        """
        Transcribe one WAV encoded chunk.

        Args:
            audio_bytes: Mono PCM16 WAV payload.
            model: Model override (e.g. a lighter model after resource errors).
            language: Source language code, ``None`` or ``"auto"`` to detect.
            threads: CPU thread override.

        Raises:
            TranscriptionError: When the engine cannot produce a result.
        """
        pass

    def close(self) -> None:
        """Release engine resources."""
        pass
