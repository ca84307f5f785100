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
Error handling service for external engine calls.

One instance is owned by (or injected into) a pipeline run. It keeps
per-service error statistics and circuit breakers, decides how each failure
is recovered from, and owns the fallback mode that bypasses translation when
failures look systemic.
"""

import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from core.realtime.events import EventBus, EventType
from core.resilience.categories import ErrorCategory, categorize_error, describe_error, get_error_type
from core.resilience.circuit_breaker import CircuitBreaker
from core.resilience.config import ResilienceConfig
from core.resilience.exceptions import CircuitOpenError, ServiceTimeoutError
from core.resilience.fallback import FallbackMode

logger = logging.getLogger("tandem.resilience")

TRANSCRIPTION = "transcription"
TRANSLATION = "translation"

CIRCUIT_BREAKER_REASON_PREFIX = "circuit_breaker"

QUALITY_REDUCTION_SUGGESTIONS: Dict[str, Dict[str, Any]] = {
    TRANSCRIPTION: {"model": "tiny", "threads": 2},
    TRANSLATION: {"model": "phi3:mini", "temperature": 0.1, "max_tokens": 500},
}

# Categories whose fallback switches the whole pipeline into fallback mode.
SYSTEMIC_CATEGORIES = frozenset({ErrorCategory.CONNECTION, ErrorCategory.SERVICE_UNAVAILABLE})


class RecoveryAction(str, Enum):
    RETRY = "retry"
    FALLBACK = "fallback"
    REDUCE_QUALITY = "reduce_quality"
    SKIP = "skip"
    RECONFIGURE = "reconfigure"


NOTIFICATION_SEVERITY = {
    RecoveryAction.RETRY: "warning",
    RecoveryAction.FALLBACK: "warning",
    RecoveryAction.REDUCE_QUALITY: "warning",
    RecoveryAction.SKIP: "info",
    RecoveryAction.RECONFIGURE: "info",
}


@dataclass
class RecoveryDecision:
    """What the caller should do about one failed attempt."""

    action: RecoveryAction
    service: str
    category: ErrorCategory
    attempt: int
    delay: float = 0.0
    exhausted: bool = False
    notify_user: bool = False
    message: str = ""
    suggestions: Dict[str, Any] = field(default_factory=dict)
    circuit_open: bool = False
    fallback_reason: Optional[str] = None

    @property
    def should_retry(self) -> bool:
        return not self.exhausted and self.action in (
            RecoveryAction.RETRY,
            RecoveryAction.REDUCE_QUALITY,
            RecoveryAction.RECONFIGURE,
        )


@dataclass
class ServiceErrorStats:
    total: int = 0
    consecutive: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[float] = None
    types: Counter = field(default_factory=Counter)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "consecutive": self.consecutive,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time,
            "types": dict(self.types),
        }


class ErrorHandlingService:
    """Categorises failures, runs circuit breakers and decides recovery."""

    def __init__(
        self,
        config: Optional[ResilienceConfig] = None,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or ResilienceConfig()
        self.event_bus = event_bus
        self._clock = clock
        self.breakers: Dict[str, CircuitBreaker] = {}
        self.stats: Dict[str, ServiceErrorStats] = {}
        self.fallback = FallbackMode(
            auto_reset_timeout=self.config.fallback_auto_reset,
            clock=clock,
            on_change=self._on_fallback_change,
        )
        for service in (TRANSCRIPTION, TRANSLATION):
            self._breaker(service)
            self._stats(service)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _breaker(self, service: str) -> CircuitBreaker:
        breaker = self.breakers.get(service)
        if breaker is None:
            breaker = CircuitBreaker(
                service,
                threshold=self.config.circuit_breaker_threshold,
                timeout=self.config.circuit_breaker_timeout,
                clock=self._clock,
            )
            self.breakers[service] = breaker
        return breaker

    def _stats(self, service: str) -> ServiceErrorStats:
        return self.stats.setdefault(service, ServiceErrorStats())

    def _publish(self, event_type: EventType, **payload: Any) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event_type, **payload)

    def _on_fallback_change(self, enabled: bool, reason: Optional[str]) -> None:
        event_type = (
            EventType.FALLBACK_MODE_ACTIVATED if enabled else EventType.FALLBACK_MODE_DEACTIVATED
        )
        self._publish(event_type, reason=reason)

    def record_success(self, service: str) -> None:
        self._stats(service).consecutive = 0
        if self._breaker(service).record_success():
            self._publish(EventType.CIRCUIT_BREAKER_RESET, service=service)
        reason = self.fallback.reason or ""
        if self.fallback.enabled and not self.fallback.manual and service in reason.split(":"):
            self.fallback.deactivate(f"{service}_recovered")

    def record_failure(self, service: str, error: BaseException) -> None:
        stats = self._stats(service)
        stats.total += 1
        stats.consecutive += 1
        stats.last_error = str(error) or error.__class__.__name__
        stats.last_error_time = time.time()
        stats.types[get_error_type(error)] += 1

        if self._breaker(service).record_failure():
            self._on_breaker_opened(service)

    def _on_breaker_opened(self, service: str) -> None:
        breaker = self._breaker(service)
        self._publish(
            EventType.CIRCUIT_BREAKER_ACTIVATED,
            service=service,
            failures=breaker.failures,
            retry_in=breaker.retry_in(),
        )
        self._publish(
            EventType.ERROR_NOTIFICATION,
            service=service,
            severity="error",
            action="circuit_breaker",
            message=f"{service.capitalize()} service is failing repeatedly; pausing calls",
        )
        self.fallback.activate(f"{CIRCUIT_BREAKER_REASON_PREFIX}:{service}")

    # ------------------------------------------------------------------
    # Guarded calls
    # ------------------------------------------------------------------

    def before_call(self, service: str) -> None:
        """Raise :class:`CircuitOpenError` if ``service`` may not be called now."""
        breaker = self._breaker(service)
        if not breaker.allow_request():
            self.fallback.activate(f"{CIRCUIT_BREAKER_REASON_PREFIX}:{service}")
            raise CircuitOpenError(service, breaker.retry_in())

    async def call(
        self,
        service: str,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> Any:
        """
        Invoke ``func`` behind the breaker for ``service``.

        Every invocation is one logical call for breaker accounting. A timeout
        is reported as :class:`ServiceTimeoutError` and counted as a failure.
        """
        self.before_call(service)
        try:
            if timeout is not None:
                result = await asyncio.wait_for(func(*args, **kwargs), timeout=timeout)
            else:
                result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            self._breaker(service).release_trial()
            raise
        except asyncio.TimeoutError as exc:
            error = ServiceTimeoutError(service, timeout or 0.0)
            self.record_failure(service, error)
            raise error from exc
        except Exception as exc:
            self.record_failure(service, exc)
            raise
        self.record_success(service)
        return result

    def is_bypassed(self, service: str = TRANSLATION) -> bool:
        """Whether calls to ``service`` should be skipped in favour of pass-through."""
        return self.fallback.enabled or self._breaker(service).is_open

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    @staticmethod
    def categorize_error(error: BaseException) -> ErrorCategory:
        return categorize_error(error)

    def determine_recovery_strategy(
        self, category: ErrorCategory, consecutive_failures: int, service: str = TRANSLATION
    ) -> Tuple[RecoveryAction, bool]:
        """
        Map a failure onto a recovery action.

        Returns:
            ``(action, notify_user)``
        """
        if category == ErrorCategory.CONNECTION:
            action = RecoveryAction.RETRY if consecutive_failures < 3 else RecoveryAction.FALLBACK
            return action, consecutive_failures >= 2
        if category == ErrorCategory.SERVICE_UNAVAILABLE:
            return RecoveryAction.FALLBACK, True
        if category == ErrorCategory.RESOURCE:
            return RecoveryAction.REDUCE_QUALITY, consecutive_failures >= 2
        if category == ErrorCategory.FORMAT:
            return RecoveryAction.SKIP, True
        if category == ErrorCategory.CONFIGURATION:
            return RecoveryAction.RECONFIGURE, True
        # permission and unknown: one retry, then fall back
        action = RecoveryAction.RETRY if consecutive_failures < 2 else RecoveryAction.FALLBACK
        return action, action == RecoveryAction.FALLBACK

    def calculate_backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        exponent = max(0, attempt - 1)
        delay = self.config.retry_base_delay * (self.config.retry_backoff_multiplier ** exponent)
        return min(delay, self.config.retry_max_delay)

    def handle_error(
        self,
        error: BaseException,
        service: str,
        attempt: int = 1,
        context: Optional[Dict[str, Any]] = None,
    ) -> RecoveryDecision:
        """
        Decide how to recover from ``error`` on attempt number ``attempt``.

        The failure itself must already be recorded (``call`` does this).
        """
        context = context or {}

        if isinstance(error, CircuitOpenError):
            reason = f"{CIRCUIT_BREAKER_REASON_PREFIX}:{service}"
            self.fallback.activate(reason)
            return RecoveryDecision(
                action=RecoveryAction.FALLBACK,
                service=service,
                category=ErrorCategory.SERVICE_UNAVAILABLE,
                attempt=attempt,
                circuit_open=True,
                message=str(error),
                fallback_reason=reason,
            )

        category = categorize_error(error)
        consecutive = self._stats(service).consecutive
        action, notify = self.determine_recovery_strategy(category, consecutive, service)
        message, suggestion = describe_error(error)

        decision = RecoveryDecision(
            action=action,
            service=service,
            category=category,
            attempt=attempt,
            notify_user=notify,
            message=message,
        )

        if action == RecoveryAction.RETRY:
            decision.delay = self.calculate_backoff_delay(attempt)
        elif action == RecoveryAction.REDUCE_QUALITY:
            decision.suggestions = dict(QUALITY_REDUCTION_SUGGESTIONS.get(service, {}))
        elif action == RecoveryAction.FALLBACK:
            decision.fallback_reason = f"{service}:{category.value}"
            if category in SYSTEMIC_CATEGORIES:
                self.fallback.activate(decision.fallback_reason)

        if action in (RecoveryAction.RETRY, RecoveryAction.REDUCE_QUALITY, RecoveryAction.RECONFIGURE):
            decision.exhausted = attempt >= self.config.max_retry_attempts

        logger.warning(
            "%s error (%s, attempt %d, consecutive %d): %s -> %s%s",
            service,
            category.value,
            attempt,
            consecutive,
            error,
            action.value,
            " (exhausted)" if decision.exhausted else "",
        )

        if notify:
            self._publish(
                EventType.ERROR_NOTIFICATION,
                service=service,
                severity=NOTIFICATION_SEVERITY[action],
                action=action.value,
                category=category.value,
                message=message,
                suggestion=suggestion,
                context=context,
            )
        return decision

    # ------------------------------------------------------------------
    # Manual control and reporting
    # ------------------------------------------------------------------

    def enable_fallback_mode(self, reason: str = "manual") -> bool:
        return self.fallback.activate(reason, manual=True)

    def disable_fallback_mode(self) -> bool:
        return self.fallback.deactivate("manual")

    def is_in_fallback_mode(self) -> bool:
        return self.fallback.enabled

    def get_error_stats(self) -> Dict[str, Any]:
        return {
            "services": {name: stats.to_dict() for name, stats in self.stats.items()},
            "circuit_breakers": {name: breaker.snapshot() for name, breaker in self.breakers.items()},
            "fallback_mode": self.fallback.snapshot(),
        }

    def clear_error_stats(self) -> None:
        for service in list(self.stats):
            self.stats[service] = ServiceErrorStats()
        logger.info("Error statistics cleared")

    def reset(self) -> None:
        """Return breakers, stats and fallback mode to their initial state."""
        self.fallback.deactivate("reset")
        for breaker in self.breakers.values():
            breaker.reset()
        self.clear_error_stats()
