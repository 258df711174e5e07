"""
Unit tests for trajectory/lane_planner.py.

Covers:
- Cruising with clear lanes
- Lane-change candidate selection and tie-break
- Front/rear margin boundaries
- Speed matching when boxed in
- Changing-lane hold and completion
- Determinism
"""

import pytest

from data.formats.data_format import LANE_CLEAR_GAP, LaneGapSummary, Maneuver, ManeuverState
from trajectory.lane_planner import LanePlanner, LanePlannerConfig, build_lane_planner


def _make_planner(**overrides) -> LanePlanner:
    cfg = LanePlannerConfig(
        target_speed=49.7,
        front_margin=30.0,
        rear_margin=5.0,
        anchor_spacing=30.0,
        lane_change_anchor_spacing=40.0,
        lane_change_distance=60.0,
        lane_width=4.0,
        max_s=6945.554,
    )
    for key, value in overrides.items():
        setattr(cfg, key, value)
    return LanePlanner(cfg)


def _summary(front=None, rear=None, front_speeds=None) -> LaneGapSummary:
    summary = LaneGapSummary.all_clear(3)
    for lane, gap in (front or {}).items():
        summary.front_gaps[lane] = gap
    for lane, gap in (rear or {}).items():
        summary.rear_gaps[lane] = gap
    for lane, speed in (front_speeds or {}).items():
        summary.front_speeds[lane] = speed
    return summary


CRUISING = Maneuver()


class TestCruising:
    def test_clear_road_keeps_lane_at_cruise_speed(self):
        intent = _make_planner().plan(_summary(), 1, CRUISING, ego_s=100.0)
        assert intent.lane == 1
        assert intent.target_speed == 49.7
        assert intent.anchor_spacing == 30.0
        assert intent.maneuver.state is ManeuverState.CRUISING
        assert not intent.blocked

    def test_leader_outside_margin_does_not_trigger_change(self):
        summary = _summary(front={1: 35.0}, front_speeds={1: 30.0})
        intent = _make_planner().plan(summary, 1, CRUISING, ego_s=100.0)
        assert intent.lane == 1
        assert intent.target_speed == 49.7

    def test_blocked_with_both_neighbors_clear_prefers_left(self):
        summary = _summary(front={1: 15.0}, front_speeds={1: 29.7})
        intent = _make_planner().plan(summary, 1, CRUISING, ego_s=100.0)
        assert intent.lane == 0
        assert intent.maneuver.state is ManeuverState.CHANGING_LANE
        assert intent.maneuver.target_lane == 0
        assert intent.maneuver.start_s == 100.0
        assert intent.maneuver.distance == 60.0
        assert intent.anchor_spacing == 40.0
        assert intent.target_speed == 49.7

    def test_tie_break_right(self):
        summary = _summary(front={1: 15.0}, front_speeds={1: 29.7})
        intent = _make_planner(tie_break="right").plan(summary, 1, CRUISING, ego_s=100.0)
        assert intent.lane == 2

    def test_larger_forward_gap_wins(self):
        summary = _summary(front={0: 50.0, 1: 15.0, 2: 80.0})
        intent = _make_planner().plan(summary, 1, CRUISING, ego_s=100.0)
        assert intent.lane == 2

    def test_unsafe_rear_gap_rules_out_lane(self):
        summary = _summary(front={1: 15.0}, rear={0: 3.0})
        intent = _make_planner().plan(summary, 1, CRUISING, ego_s=100.0)
        assert intent.lane == 2

    def test_edge_lane_only_has_one_neighbor(self):
        summary = _summary(front={0: 10.0})
        intent = _make_planner().plan(summary, 0, CRUISING, ego_s=100.0)
        assert intent.lane == 1

        summary = _summary(front={2: 10.0})
        intent = _make_planner().plan(summary, 2, CRUISING, ego_s=100.0)
        assert intent.lane == 1

    def test_boxed_in_matches_leader_speed(self):
        summary = _summary(front={0: 20.0, 1: 15.0, 2: 25.0}, front_speeds={1: 29.7})
        intent = _make_planner().plan(summary, 1, CRUISING, ego_s=100.0)
        assert intent.lane == 1
        assert intent.maneuver.state is ManeuverState.CRUISING
        assert intent.target_speed == pytest.approx(29.7)
        assert intent.blocked

    def test_boxed_in_speed_never_above_cruise(self):
        summary = _summary(front={0: 20.0, 1: 15.0, 2: 25.0}, front_speeds={1: 70.0})
        intent = _make_planner().plan(summary, 1, CRUISING, ego_s=100.0)
        assert intent.target_speed == 49.7

    def test_boxed_in_speed_never_negative(self):
        summary = _summary(front={0: 20.0, 1: 15.0, 2: 25.0}, front_speeds={1: -3.0})
        intent = _make_planner().plan(summary, 1, CRUISING, ego_s=100.0)
        assert intent.target_speed == 0.0


class TestMarginBoundaries:
    @pytest.mark.parametrize("front_gap", [29.0, 30.0, 30.001, 45.0])
    @pytest.mark.parametrize("rear_gap", [4.0, 5.0, 5.001, 20.0])
    def test_change_requires_both_margins(self, front_gap, rear_gap):
        # Lane 2 is ruled out so only lane 0 is evaluated
        summary = _summary(front={0: front_gap, 1: 10.0}, rear={0: rear_gap, 2: 0.0})
        intent = _make_planner().plan(summary, 1, CRUISING, ego_s=100.0)
        expected = front_gap > 30.0 and rear_gap > 5.0
        assert (intent.lane == 0) is expected
        assert (intent.maneuver.state is ManeuverState.CHANGING_LANE) is expected

    @pytest.mark.parametrize("current_gap", [29.999, 30.0, 30.5])
    def test_blocked_only_below_front_margin(self, current_gap):
        summary = _summary(front={1: current_gap})
        intent = _make_planner().plan(summary, 1, CRUISING, ego_s=100.0)
        assert (intent.lane == 0) is (current_gap < 30.0)


class TestChangingLane:
    def _changing(self, start_s=100.0, target=0):
        return Maneuver(state=ManeuverState.CHANGING_LANE, target_lane=target,
                        start_s=start_s, distance=60.0)

    def test_target_lane_held_until_distance_covered(self):
        planner = _make_planner()
        maneuver = self._changing()
        # Current lane gets clear and the other side looks better: still held
        summary = _summary(front={0: 10.0}, front_speeds={0: 40.0})
        intent = planner.plan(summary, 1, maneuver, ego_s=130.0)
        assert intent.lane == 0
        assert intent.maneuver == maneuver
        assert intent.anchor_spacing == 40.0

    def test_held_lane_still_matches_leader_speed(self):
        summary = _summary(front={0: 10.0}, front_speeds={0: 40.0})
        intent = _make_planner().plan(summary, 1, self._changing(), ego_s=130.0)
        assert intent.target_speed == pytest.approx(40.0)
        assert intent.blocked

    def test_completes_after_distance(self):
        intent = _make_planner().plan(_summary(), 0, self._changing(), ego_s=160.0)
        assert intent.lane == 0
        assert intent.maneuver.state is ManeuverState.CRUISING
        assert intent.anchor_spacing == 30.0

    def test_completion_waits_for_lateral_position(self):
        planner = _make_planner()
        intent = planner.plan(_summary(), 0, self._changing(), ego_s=170.0, ego_d=4.5)
        assert intent.maneuver.state is ManeuverState.CHANGING_LANE
        intent = planner.plan(_summary(), 0, self._changing(), ego_s=170.0, ego_d=2.1)
        assert intent.maneuver.state is ManeuverState.CRUISING

    def test_completion_across_track_seam(self):
        planner = _make_planner()
        maneuver = self._changing(start_s=6920.0)
        assert planner.plan(_summary(), 0, maneuver, ego_s=10.0).maneuver.changing_lane
        assert not planner.plan(_summary(), 0, maneuver, ego_s=40.0).maneuver.changing_lane

    def test_completion_tick_cruises_in_new_lane(self):
        """A blocked new lane does not start another change on the completion tick."""
        planner = _make_planner()
        summary = _summary(front={0: 10.0}, front_speeds={0: 40.0})
        intent = planner.plan(summary, 0, self._changing(), ego_s=200.0)
        assert intent.lane == 0
        assert intent.maneuver.state is ManeuverState.CRUISING
        assert intent.anchor_spacing == 30.0
        assert intent.target_speed == pytest.approx(40.0)
        assert intent.blocked

    def test_new_change_evaluated_on_following_tick(self):
        planner = _make_planner()
        summary = _summary(front={0: 10.0})
        completed = planner.plan(summary, 0, self._changing(), ego_s=200.0)
        intent = planner.plan(summary, completed.lane, completed.maneuver, ego_s=200.5)
        assert intent.lane == 1
        assert intent.maneuver.state is ManeuverState.CHANGING_LANE
        assert intent.maneuver.target_lane == 1
        assert intent.maneuver.start_s == 200.5

    def test_small_backward_step_does_not_complete(self):
        # Ego s can fall just behind start_s when planning falls back to the car position
        planner = _make_planner()
        intent = planner.plan(_summary(), 0, self._changing(start_s=100.0), ego_s=99.5)
        assert intent.maneuver.changing_lane
        assert intent.lane == 0


class TestDeterminism:
    def test_identical_inputs_identical_intent(self):
        planner = _make_planner()
        summary = _summary(front={1: 12.0, 0: 40.0}, rear={2: 3.0}, front_speeds={1: 25.0})
        first = planner.plan(summary, 1, CRUISING, ego_s=321.0, ego_d=6.0)
        for _ in range(20):
            assert planner.plan(summary, 1, CRUISING, ego_s=321.0, ego_d=6.0) == first

    def test_plan_does_not_mutate_summary(self):
        summary = _summary(front={1: 12.0})
        before = LaneGapSummary(list(summary.front_gaps), list(summary.front_speeds),
                                list(summary.rear_gaps), list(summary.rear_speeds))
        _make_planner().plan(summary, 1, CRUISING, ego_s=0.0)
        assert summary == before


def test_build_lane_planner_from_config():
    planner = build_lane_planner(
        {"target_speed_mph": 45.0, "front_margin_m": 25.0, "tie_break": "RIGHT"},
        {"lane_width_m": 3.5},
        {"max_s": 1000.0},
    )
    assert planner.config.target_speed == 45.0
    assert planner.config.front_margin == 25.0
    assert planner.config.rear_margin == 5.0
    assert planner.config.lane_width == 3.5
    assert planner.config.max_s == 1000.0
    assert planner.config.tie_break == "right"


def test_invalid_tie_break_rejected():
    with pytest.raises(ValueError, match="tie_break"):
        _make_planner(tie_break="center")


def test_clear_gap_sentinel_is_acceptable():
    planner = _make_planner()
    assert planner.lane_is_acceptable(_summary(), 0)
    assert LANE_CLEAR_GAP > planner.config.front_margin
