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
Process-wide fallback mode.

While active, translation is bypassed and segments carry their original text.
The mode expires ``auto_reset_timeout`` seconds after it was last armed;
expiry is evaluated lazily whenever the mode is queried.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from config.constants import DEFAULT_FALLBACK_AUTO_RESET_SECONDS

logger = logging.getLogger("tandem.resilience.fallback")

StateListener = Callable[[bool, Optional[str]], None]


class FallbackMode:
    def __init__(
        self,
        auto_reset_timeout: float = DEFAULT_FALLBACK_AUTO_RESET_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        on_change: Optional[StateListener] = None,
    ):
        self.auto_reset_timeout = auto_reset_timeout
        self._clock = clock
        self.on_change = on_change

        self._enabled = False
        self.reason: Optional[str] = None
        self.activated_at: Optional[float] = None
        self._expires_at: Optional[float] = None
        self.manual = False

    @property
    def enabled(self) -> bool:
        self.check_expiry()
        return self._enabled

    def activate(self, reason: str, manual: bool = False) -> bool:
        """
        Enable fallback mode.

        Returns:
            True if the mode was switched on by this call. When it is already
            active the state is left alone apart from re-arming the timer.
        """
        now = self._clock()
        self.check_expiry(now)
        if self._enabled:
            if not self.manual:
                self._expires_at = now + self.auto_reset_timeout
            return False

        self._enabled = True
        self.reason = reason
        self.activated_at = now
        self.manual = manual
        self._expires_at = None if manual else now + self.auto_reset_timeout
        logger.warning("Fallback mode activated: %s", reason)
        self._notify(reason)
        return True

    def deactivate(self, reason: str = "manual") -> bool:
        if not self._enabled:
            return False
        previous = self.reason
        logger.info("Fallback mode deactivated (%s); previous reason: %s", reason, previous)
        self._enabled = False
        self.reason = None
        self.activated_at = None
        self._expires_at = None
        self.manual = False
        self._notify(previous)
        return True

    def check_expiry(self, now: Optional[float] = None) -> bool:
        """Deactivate if the auto-reset deadline passed; returns True on expiry."""
        if not self._enabled or self._expires_at is None:
            return False
        now = self._clock() if now is None else now
        if now < self._expires_at:
            return False
        return self.deactivate("auto_reset")

    def _notify(self, reason: Optional[str]) -> None:
        if self.on_change is not None:
            self.on_change(self._enabled, reason)

    def snapshot(self) -> Dict[str, Any]:
        enabled = self.enabled
        return {
            "enabled": enabled,
            "reason": self.reason,
            "activated_at": self.activated_at,
            "auto_reset_timeout": self.auto_reset_timeout,
            "manual": self.manual,
        }
