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
Retry, circuit breaker and fallback timings.
"""

from dataclasses import dataclass, fields

from config.constants import (
    DEFAULT_CIRCUIT_BREAKER_THRESHOLD,
    DEFAULT_CIRCUIT_BREAKER_TIMEOUT_SECONDS,
    DEFAULT_FALLBACK_AUTO_RESET_SECONDS,
    DEFAULT_MAX_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF_MULTIPLIER,
    DEFAULT_RETRY_BASE_DELAY_SECONDS,
    DEFAULT_RETRY_MAX_DELAY_SECONDS,
)


@dataclass
class ResilienceConfig:
    """Settings shared by every guarded external service."""

    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY_SECONDS
    retry_backoff_multiplier: float = DEFAULT_RETRY_BACKOFF_MULTIPLIER
    retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY_SECONDS
    max_retry_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS

    circuit_breaker_threshold: int = DEFAULT_CIRCUIT_BREAKER_THRESHOLD
    circuit_breaker_timeout: float = DEFAULT_CIRCUIT_BREAKER_TIMEOUT_SECONDS

    fallback_auto_reset: float = DEFAULT_FALLBACK_AUTO_RESET_SECONDS

    @classmethod
    def from_dict(cls, config_dict: dict) -> "ResilienceConfig":
        valid_keys = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in config_dict.items() if k in valid_keys})
