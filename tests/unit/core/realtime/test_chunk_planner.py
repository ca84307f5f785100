# SPDX-License-Identifier: Apache-2.0
"""
Unit tests for ChunkBoundaryPlanner.
"""

import pytest

from core.realtime.chunk_planner import BoundaryReason, ChunkBoundaryPlanner, PlannerState

LOUD = 80.0
QUIET = 5.0


@pytest.fixture
def planner(clock):
    p = ChunkBoundaryPlanner(base_duration=5.0, quiet_threshold=15.0, max_extension=2.0, clock=clock)
    p.begin_chunk(0.0)
    return p


class TestBaseDuration:
    """Behaviour before and at the base duration."""

    def test_no_boundary_before_base_even_when_quiet(self, planner):
        for t in (0.5, 1.0, 2.5, 4.95):
            assert planner.on_tick(QUIET, t) is None
        assert planner.state == PlannerState.ACCUMULATING

    def test_quiet_at_base_ends_on_same_tick(self, planner):
        decision = planner.on_tick(QUIET, 5.0)

        assert decision is not None
        assert decision.reason == BoundaryReason.QUIET
        assert decision.duration == pytest.approx(5.0)
        assert planner.state == PlannerState.IDLE

    def test_loud_at_base_starts_extension(self, planner):
        assert planner.on_tick(LOUD, 5.0) is None
        assert planner.state == PlannerState.AWAITING_QUIET_MOMENT


class TestExtension:
    """Waiting for a quiet moment after the base duration."""

    def test_quiet_during_extension_ends_chunk(self, planner):
        planner.on_tick(LOUD, 5.0)
        assert planner.on_tick(LOUD, 5.5) is None

        decision = planner.on_tick(QUIET, 6.0)

        assert decision.reason == BoundaryReason.QUIET_DURING_EXTENSION
        assert decision.duration == pytest.approx(6.0)

    def test_max_extension_ends_chunk(self, planner):
        planner.on_tick(LOUD, 5.0)
        assert planner.on_tick(LOUD, 6.9) is None

        decision = planner.on_tick(LOUD, 7.0)

        assert decision.reason == BoundaryReason.MAX_EXTENSION

    def test_loud_speech_never_exceeds_hard_limit(self, planner):
        """Sampled every 50ms, continuous speech ends no later than base + extension."""
        t = 0.0
        decision = None
        while decision is None:
            t = round(t + 0.05, 2)
            decision = planner.on_tick(LOUD, t)
            assert t <= planner.hard_limit + 1e-9

        assert decision.duration <= planner.hard_limit + 1e-9


class TestHardLimit:
    """The hard limit holds even when ticks are sparse."""

    def test_first_tick_after_stall_uses_hard_limit(self, planner):
        decision = planner.on_tick(LOUD, 9.0)

        assert decision.reason == BoundaryReason.HARD_LIMIT
        assert decision.duration == pytest.approx(9.0)

    def test_extension_started_late_is_capped(self, planner):
        planner.on_tick(LOUD, 5.5)

        decision = planner.on_tick(LOUD, 7.0)

        assert decision.reason == BoundaryReason.HARD_LIMIT

    def test_uses_injected_clock_when_now_omitted(self, planner, clock):
        clock.advance(5.0)

        decision = planner.on_tick(QUIET)

        assert decision.reason == BoundaryReason.QUIET


class TestForceCloseAndValidation:
    """Forced boundaries and constructor checks."""

    def test_force_close_reports_elapsed(self, planner):
        decision = planner.force_close(2.0)

        assert decision.reason == BoundaryReason.FORCED
        assert decision.duration == pytest.approx(2.0)
        assert decision.level is None
        assert planner.state == PlannerState.IDLE

    def test_idle_planner_ignores_ticks(self, clock):
        planner = ChunkBoundaryPlanner(clock=clock)
        assert planner.on_tick(QUIET, 100.0) is None

    def test_begin_chunk_restarts_timing(self, planner):
        planner.on_tick(QUIET, 5.0)
        planner.begin_chunk(5.0)

        assert planner.on_tick(QUIET, 9.0) is None
        assert planner.on_tick(QUIET, 10.0).reason == BoundaryReason.QUIET

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"base_duration": 0},
            {"max_extension": -1},
            {"quiet_threshold": 150},
        ],
    )
    def test_invalid_arguments_rejected(self, kwargs):
        with pytest.raises(ValueError):
            ChunkBoundaryPlanner(**kwargs)
