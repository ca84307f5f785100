# SPDX-License-Identifier: Apache-2.0
"""
Unit tests for EventBus.
"""

import asyncio

import pytest

from core.realtime.events import EventBus, EventType


class TestEventBus:
    """Subscription, filtering, streaming and isolation of listeners."""

    def test_subscribe_and_unsubscribe(self):
        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe(received.append)

        bus.publish(EventType.SESSION_STARTED, session_id="s1")
        unsubscribe()
        bus.publish(EventType.SESSION_STARTED, session_id="s2")

        assert [e.payload["session_id"] for e in received] == ["s1"]

    def test_type_filter(self):
        bus = EventBus()
        received = []
        bus.subscribe(received.append, types=[EventType.TRANSLATION_UPDATE])

        bus.publish(EventType.TRANSCRIPTION_UPDATE)
        bus.publish(EventType.TRANSLATION_UPDATE)

        assert [e.type for e in received] == [EventType.TRANSLATION_UPDATE]

    def test_listener_errors_are_contained(self):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("listener bug")

        bus.subscribe(broken)
        bus.subscribe(received.append)

        bus.publish(EventType.ERROR_NOTIFICATION, message="x")

        assert len(received) == 1

    def test_history_is_bounded(self):
        bus = EventBus()
        bus.history_limit = 3
        for i in range(5):
            bus.publish(EventType.TRANSCRIPTION_UPDATE, index=i)

        assert [e.payload["index"] for e in bus.history()] == [2, 3, 4]
        assert bus.history(EventType.SESSION_COMPLETED) == []

    def test_event_type_values(self):
        assert EventType.CIRCUIT_BREAKER_ACTIVATED.value == "circuit-breaker-activated"
        assert EventType.FALLBACK_MODE_DEACTIVATED.value == "fallback-mode-deactivated"

    @pytest.mark.asyncio
    async def test_stream_until_session_completed(self):
        bus = EventBus()

        async def collect():
            return [event.type async for event in bus.stream()]

        task = asyncio.create_task(collect())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        bus.publish(EventType.SESSION_STARTED)
        bus.publish(EventType.TRANSCRIPTION_UPDATE)
        bus.publish(EventType.SESSION_COMPLETED)

        types = await asyncio.wait_for(task, timeout=1.0)

        assert types == [
            EventType.SESSION_STARTED,
            EventType.TRANSCRIPTION_UPDATE,
            EventType.SESSION_COMPLETED,
        ]
