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
Silence-aware chunk boundary selection.

A chunk runs for a base duration; if the speaker is still talking when it
elapses, the planner waits for a quiet moment for at most ``max_extension``
seconds. The hard limit is enforced against the planner's own clock on every
tick, whether or not fresh audio levels are arriving.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from config.constants import (
    DEFAULT_BASE_CHUNK_SECONDS,
    DEFAULT_MAX_EXTENSION_SECONDS,
    DEFAULT_QUIET_THRESHOLD_PERCENT,
)

logger = logging.getLogger("tandem.realtime.planner")


class PlannerState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    AWAITING_QUIET_MOMENT = "awaiting_quiet_moment"


class BoundaryReason(str, Enum):
    QUIET = "quiet"
    QUIET_DURING_EXTENSION = "quiet_during_extension"
    MAX_EXTENSION = "max_extension"
    HARD_LIMIT = "hard_limit"
    FORCED = "forced"


@dataclass(frozen=True)
class BoundaryDecision:
    reason: BoundaryReason
    duration: float
    level: Optional[float] = None


class ChunkBoundaryPlanner:
    """Two-state machine deciding when the capturing chunk should end."""

    def __init__(
        self,
        base_duration: float = DEFAULT_BASE_CHUNK_SECONDS,
        quiet_threshold: float = DEFAULT_QUIET_THRESHOLD_PERCENT,
        max_extension: float = DEFAULT_MAX_EXTENSION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if base_duration <= 0:
            raise ValueError("base_duration must be positive")
        if max_extension < 0:
            raise ValueError("max_extension must not be negative")
        if not 0 <= quiet_threshold <= 100:
            raise ValueError("quiet_threshold must be between 0 and 100")

        self.base_duration = float(base_duration)
        self.quiet_threshold = float(quiet_threshold)
        self.max_extension = float(max_extension)
        self._clock = clock

        self.state = PlannerState.IDLE
        self._chunk_started_at: Optional[float] = None
        self._extension_started_at: Optional[float] = None

    @property
    def hard_limit(self) -> float:
        return self.base_duration + self.max_extension

    def _now(self, now: Optional[float]) -> float:
        return self._clock() if now is None else now

    def begin_chunk(self, now: Optional[float] = None) -> None:
        self.state = PlannerState.ACCUMULATING
        self._chunk_started_at = self._now(now)
        self._extension_started_at = None

    def elapsed(self, now: Optional[float] = None) -> float:
        if self._chunk_started_at is None:
            return 0.0
        return self._now(now) - self._chunk_started_at

    def on_tick(self, level: float, now: Optional[float] = None) -> Optional[BoundaryDecision]:
        """
        Feed one level sample; return a decision when the chunk must end.

        Args:
            level: Current loudness percentage (0-100).
            now: Clock reading for this tick; defaults to the planner clock.
        """
        if self.state == PlannerState.IDLE:
            return None

        now = self._now(now)
        elapsed = now - self._chunk_started_at
        is_quiet = level < self.quiet_threshold

        if self.state == PlannerState.ACCUMULATING:
            if elapsed >= self.base_duration and is_quiet:
                return self._finish(BoundaryReason.QUIET, elapsed, level)
        else:
            if is_quiet:
                return self._finish(BoundaryReason.QUIET_DURING_EXTENSION, elapsed, level)
            if now - self._extension_started_at >= self.max_extension:
                return self._finish(BoundaryReason.MAX_EXTENSION, elapsed, level)

        if elapsed >= self.hard_limit:
            return self._finish(BoundaryReason.HARD_LIMIT, elapsed, level)

        if self.state == PlannerState.ACCUMULATING and elapsed >= self.base_duration:
            self.state = PlannerState.AWAITING_QUIET_MOMENT
            self._extension_started_at = now
            logger.debug("Speech at chunk boundary (level=%.1f); extending", level)
        return None

    def force_close(
        self, now: Optional[float] = None, reason: BoundaryReason = BoundaryReason.FORCED
    ) -> BoundaryDecision:
        """End the current chunk regardless of level (stalled stream or stop)."""
        return self._finish(reason, self.elapsed(now), None)

    def _finish(
        self, reason: BoundaryReason, elapsed: float, level: Optional[float]
    ) -> BoundaryDecision:
        self.state = PlannerState.IDLE
        self._chunk_started_at = None
        self._extension_started_at = None
        return BoundaryDecision(reason=reason, duration=elapsed, level=level)
