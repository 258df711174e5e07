"""
Unit tests for control/speed_governor.py.

Tests the SpeedGovernor in isolation:
- Per-tick delta limit in both directions
- No overshoot, never negative
- Convergence from standstill
- Config builder
"""

import math

import pytest

from control.speed_governor import SpeedGovernor, SpeedGovernorConfig, build_speed_governor
from trajectory.utils import mph_to_mps


def _make_governor(speed_delta: float = 0.672, tick: float = 0.02) -> SpeedGovernor:
    """Helper to build a SpeedGovernor with common defaults."""
    return SpeedGovernor(SpeedGovernorConfig(speed_delta=speed_delta, tick=tick))


class TestDeltaLimit:
    def test_accelerates_by_one_delta(self):
        gov = _make_governor()
        assert gov.step(0.0, 49.7) == pytest.approx(0.672)

    def test_decelerates_by_one_delta(self):
        gov = _make_governor()
        assert gov.step(40.0, 20.0) == pytest.approx(40.0 - 0.672)

    def test_no_overshoot_upward(self):
        gov = _make_governor()
        assert gov.step(49.5, 49.7) == 49.7

    def test_no_overshoot_downward(self):
        gov = _make_governor()
        assert gov.step(30.2, 30.0) == 30.0

    def test_at_target_stays(self):
        gov = _make_governor()
        assert gov.step(49.7, 49.7) == 49.7

    def test_negative_target_floors_at_zero(self):
        gov = _make_governor()
        assert gov.step(0.3, -10.0) == 0.0
        assert gov.step(0.0, -10.0) == 0.0

    @pytest.mark.parametrize("reference", [0.0, 0.5, 12.0, 49.7, 60.0])
    @pytest.mark.parametrize("target", [-5.0, 0.0, 0.3, 25.0, 49.7, 80.0])
    def test_change_bounded_and_non_negative(self, reference, target):
        gov = _make_governor()
        new = gov.step(reference, target)
        assert abs(new - reference) <= 0.672 + 1e-12
        assert new >= 0.0
        # Moves toward the target, never past it
        floor_target = max(0.0, target)
        assert min(reference, floor_target) - 1e-12 <= new <= max(reference, floor_target) + 1e-12


class TestConvergence:
    def test_reaches_cruise_in_expected_ticks(self):
        gov = _make_governor()
        target = 49.7
        expected_ticks = math.ceil(target / 0.672)
        speed = 0.0
        history = []
        for _ in range(expected_ticks + 10):
            speed = gov.step(speed, target)
            history.append(speed)
        assert history[expected_ticks - 2] < target
        assert history[expected_ticks - 1] == target
        assert all(v == target for v in history[expected_ticks - 1:])

    def test_implied_acceleration_below_ten(self):
        gov = _make_governor()
        assert gov.max_accel_mps2 == pytest.approx(mph_to_mps(0.672) / 0.02)
        assert gov.max_accel_mps2 < 10.0

    def test_decelerate_target(self):
        gov = _make_governor()
        assert gov.decelerate(10.0) == pytest.approx(10.0 - 0.672)
        assert gov.decelerate(0.2) == 0.0


def test_build_speed_governor_from_config():
    gov = build_speed_governor({"speed_delta_mph": 0.5, "tick_s": 0.05})
    assert gov.config.speed_delta == 0.5
    assert gov.config.tick == 0.05
    assert gov.config.min_speed == 0.0


def test_build_speed_governor_defaults():
    gov = build_speed_governor({})
    assert gov.config.speed_delta == pytest.approx(0.672)
    assert gov.config.tick == 0.02


def test_non_positive_delta_rejected():
    with pytest.raises(ValueError, match="speed_delta"):
        _make_governor(speed_delta=0.0)
