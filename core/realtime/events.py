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
Typed event bus for pipeline notifications.

The orchestrator and the error handling service publish ``PipelineEvent``
objects; the command line, a UI or a test harness subscribes. Publishers never
see listener failures.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Set, Tuple

logger = logging.getLogger("tandem.events")


class EventType(str, Enum):
    SESSION_STARTED = "session-started"
    TRANSCRIPTION_UPDATE = "transcription-update"
    TRANSLATION_UPDATE = "translation-update"
    SESSION_COMPLETED = "session-completed"
    FALLBACK_MODE_ACTIVATED = "fallback-mode-activated"
    FALLBACK_MODE_DEACTIVATED = "fallback-mode-deactivated"
    ERROR_NOTIFICATION = "error-notification"
    CIRCUIT_BREAKER_ACTIVATED = "circuit-breaker-activated"
    CIRCUIT_BREAKER_RESET = "circuit-breaker-reset"


@dataclass
class PipelineEvent:
    """An event published by the pipeline.

    Attributes:
        type: Which notification this is.
        payload: Event specific data (segment dicts, reasons, stats).
        timestamp: Wall clock time of publication.
    """

    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


EventCallback = Callable[[PipelineEvent], None]


class EventBus:
    """Fan-out of pipeline events to callbacks and async streams."""

    def __init__(self):
        self._subscribers: List[Tuple[EventCallback, Optional[Set[EventType]]]] = []
        self._streams: List[Tuple[asyncio.Queue, Optional[Set[EventType]]]] = []
        self.history_limit = 200
        self._history: List[PipelineEvent] = []

    def subscribe(
        self, callback: EventCallback, types: Optional[Iterable[EventType]] = None
    ) -> Callable[[], None]:
        """
        Register ``callback`` for all events or only ``types``.

        Returns:
            A function that removes the subscription.
        """
        entry = (callback, set(types) if types else None)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, event_type: EventType, **payload: Any) -> PipelineEvent:
        event = PipelineEvent(type=EventType(event_type), payload=payload)
        self._history.append(event)
        if len(self._history) > self.history_limit:
            del self._history[: len(self._history) - self.history_limit]

        for callback, wanted in list(self._subscribers):
            if wanted is not None and event.type not in wanted:
                continue
            try:
                callback(event)
            except Exception as exc:  # noqa: BLE001
                logger.error("Event listener failed for %s: %s", event.type.value, exc, exc_info=True)

        for queue, wanted in list(self._streams):
            if wanted is None or event.type in wanted:
                queue.put_nowait(event)

        return event

    def history(self, event_type: Optional[EventType] = None) -> List[PipelineEvent]:
        """Recently published events, oldest first."""
        if event_type is None:
            return list(self._history)
        return [event for event in self._history if event.type == event_type]

    async def stream(
        self,
        types: Optional[Iterable[EventType]] = None,
        until: Optional[EventType] = EventType.SESSION_COMPLETED,
    ) -> AsyncIterator[PipelineEvent]:
        """Yield events as they are published.

        The iterator finishes after yielding an ``until`` event. Pass
        ``until=None`` to keep streaming until the consumer stops iterating.
        """
        wanted = set(types) if types else None
        if wanted is not None and until is not None:
            wanted.add(until)
        entry = (asyncio.Queue(), wanted)
        self._streams.append(entry)
        try:
            while True:
                event = await entry[0].get()
                yield event
                if until is not None and event.type == until:
                    break
        finally:
            self._streams.remove(entry)
