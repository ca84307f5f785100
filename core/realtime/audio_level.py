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
Live audio level meter.
"""

import logging
import threading
import time
from typing import Callable, Optional

import numpy as np

from config.constants import LEVEL_METER_FLOOR_DBFS

logger = logging.getLogger("tandem.realtime.level")


class AudioLevelMonitor:
    """
    Converts the most recent audio frame into a 0-100 loudness percentage.

    The capture thread hands frames in with :meth:`push_frame`; the producer
    calls :meth:`sample` once per tick. When no usable frame is available the
    previous reading is kept, so :meth:`current_level` never fails.
    """

    def __init__(
        self,
        floor_dbfs: float = LEVEL_METER_FLOOR_DBFS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if floor_dbfs >= 0:
            raise ValueError("floor_dbfs must be negative")
        self.floor_dbfs = float(floor_dbfs)
        self._clock = clock
        self._lock = threading.Lock()
        self._pending_frame: Optional[np.ndarray] = None
        self._level = 0.0
        self._available = True
        self.last_sample_time: Optional[float] = None
        self.last_frame_time: Optional[float] = None

    def push_frame(self, frame: np.ndarray) -> None:
        """Record the newest frame; safe to call from any thread."""
        with self._lock:
            self._pending_frame = frame
            self._available = True
            self.last_frame_time = self._clock()

    def mark_unavailable(self) -> None:
        with self._lock:
            self._pending_frame = None
            self._available = False

    @property
    def is_available(self) -> bool:
        return self._available

    def sample(self) -> float:
        """Measure the pending frame, if any, and return the current level."""
        with self._lock:
            frame = self._pending_frame
            self._pending_frame = None

        if frame is None:
            return self._level

        try:
            level = self.compute_level(frame, self.floor_dbfs)
        except (TypeError, ValueError) as exc:
            logger.debug("Unable to measure audio frame, keeping last level: %s", exc)
            return self._level

        self._level = level
        self.last_sample_time = self._clock()
        return level

    def current_level(self) -> float:
        return self._level

    def reset(self) -> None:
        with self._lock:
            self._pending_frame = None
            self._available = True
        self._level = 0.0
        self.last_sample_time = None
        self.last_frame_time = None

    @staticmethod
    def compute_level(frame: np.ndarray, floor_dbfs: float = LEVEL_METER_FLOOR_DBFS) -> float:
        """Map the RMS of a float frame in [-1, 1] onto 0-100 between ``floor_dbfs`` and 0 dBFS."""
        samples = np.asarray(frame, dtype=np.float32).reshape(-1)
        if samples.size == 0:
            raise ValueError("empty audio frame")
        if not np.all(np.isfinite(samples)):
            raise ValueError("audio frame contains non-finite samples")

        rms = float(np.sqrt(np.mean(np.square(samples))))
        if rms <= 0.0:
            return 0.0

        dbfs = 20.0 * np.log10(rms)
        percentage = (dbfs - floor_dbfs) / (-floor_dbfs) * 100.0
        return float(min(100.0, max(0.0, round(percentage, 2))))
