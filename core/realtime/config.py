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
Configuration for real-time chunking, transcription and translation.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path

from config.constants import (
    DEFAULT_AUDIO_CHANNELS,
    DEFAULT_BASE_CHUNK_SECONDS,
    DEFAULT_CHUNK_QUEUE_SIZE,
    DEFAULT_LEVEL_SAMPLE_INTERVAL_SECONDS,
    DEFAULT_MAX_EXTENSION_SECONDS,
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_QUIET_THRESHOLD_PERCENT,
    DEFAULT_SAMPLE_RATE_HZ,
    DEFAULT_TRANSCRIPTION_TIMEOUT_SECONDS,
    DEFAULT_TRANSLATION_TIMEOUT_SECONDS,
)


@dataclass
class RealtimeConfig:
    """Configuration settings for real-time pipeline sessions."""

    # Audio Settings
    sample_rate: int = DEFAULT_SAMPLE_RATE_HZ
    channels: int = DEFAULT_AUDIO_CHANNELS

    # Chunk boundary settings
    base_chunk_duration: float = DEFAULT_BASE_CHUNK_SECONDS
    quiet_threshold: float = DEFAULT_QUIET_THRESHOLD_PERCENT
    max_extension: float = DEFAULT_MAX_EXTENSION_SECONDS
    level_sample_interval: float = DEFAULT_LEVEL_SAMPLE_INTERVAL_SECONDS
    # stall_timeout: no frames for this long force-closes the open chunk.
    stall_timeout: float = 1.0
    queue_maxsize: int = DEFAULT_CHUNK_QUEUE_SIZE

    # External call timeouts
    transcription_timeout: float = DEFAULT_TRANSCRIPTION_TIMEOUT_SECONDS
    translation_timeout: float = DEFAULT_TRANSLATION_TIMEOUT_SECONDS
    max_concurrent_translations: int = 4

    # Task Timeouts
    # processing_task_timeout: time allowed for the consumer to drain the queue on stop.
    processing_task_timeout: float = 30.0
    # translation_task_timeout: time to wait for in-flight translations after the drain.
    translation_task_timeout: float = 30.0

    # "process" finishes queued chunks on stop, "discard" drops them.
    drain_policy: str = "process"
    # "error" marks exhausted translations as error, "graceful" keeps the original text.
    translation_failure_policy: str = "error"

    # Engine defaults
    transcription_model: str = "base"
    transcription_threads: int = 4
    translation_model: str = DEFAULT_OLLAMA_MODEL

    save_recording: bool = True
    recording_format: str = "wav"

    base_dir: Path = field(default_factory=lambda: Path.home() / "Documents" / "Tandem")

    @classmethod
    def from_dict(cls, config_dict: dict) -> "RealtimeConfig":
        """Create a RealtimeConfig instance from a dictionary, ignoring unknown keys."""
        valid_keys = {f.name for f in fields(cls)}
        filtered_args = {k: v for k, v in config_dict.items() if k in valid_keys}
        if "base_dir" in filtered_args:
            filtered_args["base_dir"] = Path(filtered_args["base_dir"]).expanduser()
        return cls(**filtered_args)

    @property
    def hard_chunk_limit(self) -> float:
        """Longest a chunk may ever run, in seconds."""
        return self.base_chunk_duration + self.max_extension

    @property
    def sessions_dir(self) -> Path:
        return self.base_dir / "sessions"
