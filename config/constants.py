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
Shared constants for Tandem.

Numeric defaults used by more than one module live here so the dataclass
configs, the JSON defaults and the command line agree on a single value.
"""

# ============================================================================
# Audio Constants
# ============================================================================

DEFAULT_SAMPLE_RATE_HZ = 16000  # 16 kHz (Whisper baseline)
DEFAULT_AUDIO_CHANNELS = 1  # Mono
DEFAULT_CHUNK_SIZE_SAMPLES = 512  # ~32ms at 16kHz
DEFAULT_AUDIO_GAIN = 1.0
MIN_AUDIO_GAIN = 0.0
MAX_AUDIO_GAIN = 10.0

AUDIO_NORMALIZATION_DIVISOR = 32768.0  # For int16 to float32 conversion

# Level meter floor; anything quieter reads as 0%
LEVEL_METER_FLOOR_DBFS = -60.0

# ============================================================================
# Chunking Constants
# ============================================================================

DEFAULT_BASE_CHUNK_SECONDS = 5.0
DEFAULT_QUIET_THRESHOLD_PERCENT = 15.0
DEFAULT_MAX_EXTENSION_SECONDS = 2.0
DEFAULT_LEVEL_SAMPLE_INTERVAL_SECONDS = 0.05
DEFAULT_CHUNK_QUEUE_SIZE = 32

# ============================================================================
# Resilience Constants
# ============================================================================

DEFAULT_RETRY_BASE_DELAY_SECONDS = 1.0
DEFAULT_RETRY_BACKOFF_MULTIPLIER = 2.0
DEFAULT_RETRY_MAX_DELAY_SECONDS = 10.0
DEFAULT_MAX_RETRY_ATTEMPTS = 3

DEFAULT_CIRCUIT_BREAKER_THRESHOLD = 5
DEFAULT_CIRCUIT_BREAKER_TIMEOUT_SECONDS = 30.0
DEFAULT_FALLBACK_AUTO_RESET_SECONDS = 60.0

DEFAULT_TRANSCRIPTION_TIMEOUT_SECONDS = 30.0
DEFAULT_TRANSLATION_TIMEOUT_SECONDS = 10.0

TRANSLATION_UNAVAILABLE_TEXT = "[Translation unavailable]"

# ============================================================================
# Session Storage Constants
# ============================================================================

SESSION_INDEX_LIMIT = 100
DEFAULT_SESSION_MAX_AGE_DAYS = 30
DEFAULT_SESSION_LIST_LIMIT = 50

# ============================================================================
# Logging Constants
# ============================================================================

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT = 5
LOG_SEPARATOR_LENGTH = 60  # characters for "=" * 60

# ============================================================================
# HTTP Constants
# ============================================================================

DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama3.2:3b"
TRANSLATION_CACHE_SIZE = 256
