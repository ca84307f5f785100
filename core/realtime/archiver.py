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
Streaming recording archiver.

Captured frames are written straight into a temporary PCM16 WAV so long
sessions never hold their audio in memory. On finish the WAV is optionally
converted to MP3 with FFmpeg and the temp path is handed to the session store.
"""

import asyncio
import logging
import os
import shutil
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Dict, Optional

import numpy as np
import soundfile as sf

logger = logging.getLogger("tandem.realtime.archiver")


class RecordingArchiver:
    """Persists the raw audio of a session while it is being captured."""

    def __init__(self, file_manager):
        """
        Args:
            file_manager: FileManager used for temp paths.
        """
        self.file_manager = file_manager
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ArchiverWorker")
        self._lock = threading.Lock()
        self._active: Optional[Dict[str, Any]] = None

    def _run_in_executor(self, func, *args):
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self._executor, func, *args)

    @property
    def is_active(self) -> bool:
        return self._active is not None

    def start(self, start_time: datetime, sample_rate: int) -> bool:
        """Open the temporary WAV for a new session."""
        if sample_rate <= 0:
            logger.error("Invalid sample rate for recording: %s", sample_rate)
            return False

        base_filename = f"recording_{start_time.strftime('%Y%m%d_%H%M%S_%f')}"
        temp_path = self.file_manager.get_temp_path(f"{base_filename}.wav")

        with self._lock:
            self._abort_locked()
            try:
                writer = sf.SoundFile(
                    temp_path,
                    mode="w",
                    samplerate=int(sample_rate),
                    channels=1,
                    subtype="PCM_16",
                )
            except (RuntimeError, OSError) as exc:
                logger.error("Failed to open temporary WAV: %s", exc, exc_info=True)
                return False

            self._active = {
                "base_filename": base_filename,
                "temp_wav_path": temp_path,
                "writer": writer,
                "write_error": None,
                "frames_written": 0,
            }

        logger.info("Recording capture started: %s", temp_path)
        return True

    def append(self, frame: np.ndarray) -> bool:
        """Append one frame; returns False once writing has failed."""
        if frame is None or len(frame) == 0:
            return True

        with self._lock:
            active = self._active
            if not active or active["write_error"] is not None:
                return False
            try:
                samples = np.asarray(frame, dtype=np.float32).reshape(-1)
                active["writer"].write(samples)
                active["frames_written"] += samples.size
                return True
            except (RuntimeError, OSError) as exc:
                active["write_error"] = exc
                logger.error("Failed to append recording frame: %s", exc, exc_info=True)
                return False

    async def finish(self, format: str = "wav") -> Optional[str]:
        """Close the recording and return the path of the finished file, if any."""
        with self._lock:
            active = self._active
            self._active = None
            if not active:
                return None
            try:
                active["writer"].close()
            except (RuntimeError, OSError) as exc:
                logger.warning("Failed to close recording writer: %s", exc)

        temp_wav_path = active["temp_wav_path"]
        if active["write_error"] is not None or active["frames_written"] == 0:
            if active["write_error"] is None:
                logger.info("No audio captured; recording discarded")
            self._cleanup(temp_wav_path)
            return None

        return await self._run_in_executor(
            self._finalize_sync, temp_wav_path, active["base_filename"], format
        )

    def abort(self) -> None:
        with self._lock:
            self._abort_locked()

    def _abort_locked(self) -> None:
        if not self._active:
            return
        try:
            self._active["writer"].close()
        except (RuntimeError, OSError) as exc:
            logger.debug("Failed to close writer during abort: %s", exc)
        self._cleanup(self._active["temp_wav_path"])
        self._active = None

    def _finalize_sync(self, temp_wav_path: str, base_filename: str, format: str) -> Optional[str]:
        final_format = str(format or "wav").strip().lower()
        if final_format == "wav":
            return temp_wav_path

        if final_format != "mp3":
            logger.error("Unsupported recording format '%s', keeping WAV", final_format)
            return temp_wav_path

        if shutil.which("ffmpeg") is None:
            logger.warning("MP3 conversion not available. Keeping WAV.")
            return temp_wav_path

        mp3_path = self.file_manager.get_temp_path(f"{base_filename}.mp3")
        command = ["ffmpeg", "-y", "-i", temp_wav_path, "-codec:a", "libmp3lame", mp3_path]
        try:
            subprocess.run(command, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except (subprocess.CalledProcessError, OSError) as exc:
            logger.error("MP3 conversion failed: %s. Keeping WAV.", exc)
            self._cleanup(mp3_path)
            return temp_wav_path

        self._cleanup(temp_wav_path)
        return mp3_path

    @staticmethod
    def _cleanup(path: str) -> None:
        if not path:
            return
        try:
            os.unlink(path)
        except OSError:
            pass

    def shutdown(self) -> None:
        self.abort()
        self._executor.shutdown(wait=False)
