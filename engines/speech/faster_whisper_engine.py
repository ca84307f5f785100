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
Faster-Whisper 语音识别引擎实现

Local chunk transcription with faster-whisper. One model is cached per
(size, threads) pair so a lighter model can be swapped in on demand.
参考: https://github.com/SYSTRAN/faster-whisper
"""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Optional, Tuple

import numpy as np

from config.app_config import get_app_dir
from core.resilience.exceptions import TranscriptionError
from engines.speech.base import SpeechEngine, TranscriptionResult, decode_wav_bytes

logger = logging.getLogger("tandem.speech.faster_whisper")

# Chunks quieter than this RMS are treated as silence and not sent to the model.
SILENCE_RMS = 0.01


class FasterWhisperEngine(SpeechEngine):
    """Faster-Whisper 引擎实现"""

    MODEL_SIZES = ('tiny', 'base', 'small', 'medium', 'large-v3')

    def __init__(
        self,
        model_size: str = 'base',
        device: str = 'cpu',
        compute_type: str = 'int8',
        threads: int = 4,
        download_root: Optional[str] = None,
        beam_size: int = 1,
    ):
        """
        Args:
            model_size: 默认模型大小
            device: 计算设备 ('cpu', 'cuda', 'auto')
            compute_type: 计算类型 ('int8', 'float16', 'float32')
            threads: 默认 CPU 线程数
            download_root: 模型下载目录，默认 ~/.tandem/models
            beam_size: 解码 beam size，实时转录使用较小值
        """
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.threads = threads
        self.beam_size = beam_size
        self.download_root = download_root or str(get_app_dir() / "models")
        Path(self.download_root).mkdir(parents=True, exist_ok=True)

        self._models: Dict[Tuple[str, int], object] = {}
        self._models_lock = threading.Lock()
        # The model is not re-entrant; one worker serialises inference.
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="WhisperWorker")

        logger.info(
            "Faster-Whisper engine configured: model=%s, device=%s, compute_type=%s",
            model_size,
            device,
            compute_type,
        )

    def get_name(self) -> str:
        return f"faster-whisper-{self.model_size}"

    def _load_model(self, model_size: str, threads: int):
        """延迟加载模型"""
        key = (model_size, threads)
        with self._models_lock:
            model = self._models.get(key)
            if model is not None:
                return model

            try:
                from faster_whisper import WhisperModel
            except ImportError as exc:
                raise TranscriptionError(
                    "faster-whisper is not installed. Install it with: pip install faster-whisper",
                    cause=exc,
                ) from exc

            logger.info("Loading Faster-Whisper model: %s (threads=%d)", model_size, threads)
            device, compute_type = self.device, self.compute_type
            try:
                model = WhisperModel(
                    model_size,
                    device=device,
                    compute_type=compute_type,
                    cpu_threads=threads,
                    download_root=self.download_root,
                )
            except ValueError as exc:
                if "CUDA" not in str(exc):
                    raise TranscriptionError(f"Model configuration error: {exc}", cause=exc) from exc
                logger.warning("CUDA not available: %s. Falling back to CPU.", exc)
                self.device, self.compute_type = "cpu", "int8"
                model = WhisperModel(
                    model_size,
                    device="cpu",
                    compute_type="int8",
                    cpu_threads=threads,
                    download_root=self.download_root,
                )

            self._models[key] = model
            return model

    def _transcribe_sync(
        self, audio_bytes: bytes, model_size: str, language: Optional[str], threads: int
    ) -> TranscriptionResult:
        try:
            audio = decode_wav_bytes(audio_bytes)
        except ValueError as exc:
            raise TranscriptionError(str(exc), cause=exc) from exc

        energy = float(np.sqrt(np.mean(audio ** 2))) if audio.size else 0.0
        if energy < SILENCE_RMS:
            logger.debug("Audio energy too low (%.4f), skipping transcription", energy)
            return TranscriptionResult(success=True, text="", language=language, model=model_size)

        model = self._load_model(model_size, threads)
        try:
            segments, info = model.transcribe(
                audio,
                language=None if language in (None, "auto") else language,
                beam_size=self.beam_size,
                vad_filter=False,
                word_timestamps=False,
            )
            segment_dicts = [
                {"start": seg.start, "end": seg.end, "text": seg.text.strip()} for seg in segments
            ]
        except MemoryError as exc:
            raise TranscriptionError("Out of memory during transcription", cause=exc) from exc
        except RuntimeError as exc:
            raise TranscriptionError(f"Transcription failed: {exc}", cause=exc) from exc

        text = " ".join(item["text"] for item in segment_dicts if item["text"])
        detected = getattr(info, "language", None) or language
        logger.debug("Transcription result: '%s' (language: %s)", text, detected)
        return TranscriptionResult(
            success=True,
            text=text,
            language=detected,
            segments=segment_dicts,
            model=model_size,
        )

    async def transcribe_chunk(
        self,
        audio_bytes: bytes,
        model: Optional[str] = None,
        language: Optional[str] = None,
        threads: Optional[int] = None,
    ) -> TranscriptionResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            self._transcribe_sync,
            audio_bytes,
            model or self.model_size,
            language,
            threads or self.threads,
        )

    def close(self) -> None:
        with self._models_lock:
            self._models.clear()
        self._executor.shutdown(wait=False)
