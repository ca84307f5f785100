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
Per-service circuit breaker.
"""

import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

from config.constants import (
    DEFAULT_CIRCUIT_BREAKER_THRESHOLD,
    DEFAULT_CIRCUIT_BREAKER_TIMEOUT_SECONDS,
)

logger = logging.getLogger("tandem.resilience.breaker")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class CircuitBreaker:
    """
    Closed/open/half-open gate in front of one external service.

    ``threshold`` consecutive failures open the breaker for ``timeout``
    seconds. After that a single trial call is admitted; its outcome either
    closes the breaker or reopens it for another ``timeout``.
    """

    def __init__(
        self,
        service: str,
        threshold: int = DEFAULT_CIRCUIT_BREAKER_THRESHOLD,
        timeout: float = DEFAULT_CIRCUIT_BREAKER_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self.service = service
        self.threshold = threshold
        self.timeout = timeout
        self._clock = clock

        self._state = CircuitState.CLOSED
        self.failures = 0
        self.last_failure_time: Optional[float] = None
        self.next_attempt_time: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._clock() >= self.next_attempt_time:
            self._state = CircuitState.HALF_OPEN
            self._trial_in_flight = False
            logger.info("Circuit breaker for %s is half-open", self.service)
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def retry_in(self) -> float:
        if self._state != CircuitState.OPEN or self.next_attempt_time is None:
            return 0.0
        return max(0.0, self.next_attempt_time - self._clock())

    def allow_request(self) -> bool:
        """Whether a call may go out now; claims the half-open trial slot."""
        state = self.state
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.HALF_OPEN and not self._trial_in_flight:
            self._trial_in_flight = True
            return True
        return False

    def record_success(self) -> bool:
        """Returns True when this success closed a tripped breaker."""
        was_tripped = self._state != CircuitState.CLOSED
        self._state = CircuitState.CLOSED
        self.failures = 0
        self.next_attempt_time = None
        self._trial_in_flight = False
        if was_tripped:
            logger.info("Circuit breaker for %s closed", self.service)
        return was_tripped

    def record_failure(self) -> bool:
        """Returns True when this failure opened the breaker."""
        now = self._clock()
        self.failures += 1
        self.last_failure_time = now

        if self._state == CircuitState.HALF_OPEN:
            self._open(now)
            logger.warning("Trial call failed; circuit breaker for %s reopened", self.service)
            return True
        if self._state == CircuitState.CLOSED and self.failures >= self.threshold:
            self._open(now)
            logger.warning(
                "Circuit breaker for %s opened after %d consecutive failures",
                self.service,
                self.failures,
            )
            return True
        return False

    def release_trial(self) -> None:
        """Give back a half-open trial slot whose call never completed."""
        self._trial_in_flight = False

    def _open(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self.next_attempt_time = now + self.timeout
        self._trial_in_flight = False

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self.failures = 0
        self.last_failure_time = None
        self.next_attempt_time = None
        self._trial_in_flight = False

    def snapshot(self) -> Dict[str, Any]:
        return {
            "service": self.service,
            "state": self.state.value,
            "failures": self.failures,
            "last_failure_time": self.last_failure_time,
            "next_attempt_time": self.next_attempt_time,
            "threshold": self.threshold,
            "timeout": self.timeout,
        }
