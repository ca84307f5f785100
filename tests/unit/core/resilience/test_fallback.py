# SPDX-License-Identifier: Apache-2.0
"""
Unit tests for FallbackMode.
"""

from unittest.mock import MagicMock

import pytest

from core.resilience.fallback import FallbackMode


@pytest.fixture
def listener():
    return MagicMock()


@pytest.fixture
def fallback(clock, listener):
    return FallbackMode(auto_reset_timeout=60.0, clock=clock, on_change=listener)


class TestFallbackMode:
    def test_activate_and_notify(self, fallback, listener):
        assert fallback.activate("translation:connection") is True

        assert fallback.enabled
        assert fallback.reason == "translation:connection"
        listener.assert_called_once_with(True, "translation:connection")

    def test_second_activation_keeps_reason(self, fallback, listener):
        fallback.activate("first")

        assert fallback.activate("second") is False
        assert fallback.reason == "first"
        assert listener.call_count == 1

    def test_auto_reset(self, fallback, clock, listener):
        fallback.activate("translation:connection")
        clock.advance(59.0)
        assert fallback.enabled

        clock.advance(1.0)

        assert not fallback.enabled
        listener.assert_called_with(False, "translation:connection")

    def test_rearming_extends_deadline(self, fallback, clock):
        """A new failure while active pushes the auto reset out."""
        fallback.activate("translation:connection")
        clock.advance(50.0)
        fallback.activate("translation:connection")
        clock.advance(50.0)

        assert fallback.enabled

        clock.advance(10.0)
        assert not fallback.enabled

    def test_manual_activation_never_expires(self, fallback, clock):
        fallback.activate("manual", manual=True)
        clock.advance(3600.0)

        assert fallback.enabled
        assert fallback.deactivate() is True
        assert fallback.deactivate() is False

    def test_snapshot(self, fallback):
        fallback.activate("manual", manual=True)

        snapshot = fallback.snapshot()

        assert snapshot == {
            "enabled": True,
            "reason": "manual",
            "activated_at": 0.0,
            "auto_reset_timeout": 60.0,
            "manual": True,
        }
