"""
Lane and speed planner.

Two-state machine (cruising / changing lane) deciding which lane to occupy and
which speed to target for the next horizon. The planner holds no state of its
own: the current maneuver comes in with every call and the next one goes out
with the returned intent, so identical inputs always give identical output.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from data.formats.data_format import LaneGapSummary, Maneuver, ManeuverState, PlannedIntent
from trajectory.map_geometry import DEFAULT_MAX_S

logger = logging.getLogger(__name__)


@dataclass
class LanePlannerConfig:
    """Configuration for lane selection and speed targeting."""

    target_speed: float = 49.7  # mph, cruise target just under the 50 mph limit
    front_margin: float = 30.0  # m, leader closer than this blocks the lane
    rear_margin: float = 5.0  # m, follower closer than this forbids cutting in
    anchor_spacing: float = 30.0  # m
    lane_change_anchor_spacing: float = 40.0  # m, longer anchors soften the lateral move
    lane_change_distance: float = 60.0  # m of travel before a change can complete
    lane_width: float = 4.0  # m
    num_lanes: int = 3
    tie_break: str = "left"  # "left" (lower index) or "right" when neighbor gaps are equal
    max_s: float = DEFAULT_MAX_S


class LanePlanner:
    """Keeps or changes lane based on per-lane gaps."""

    def __init__(self, config: LanePlannerConfig) -> None:
        tie_break = str(config.tie_break).strip().lower()
        if tie_break not in {"left", "right"}:
            raise ValueError(f"tie_break must be 'left' or 'right', got {config.tie_break!r}")
        config.tie_break = tie_break
        self.config = config

    def plan(
        self,
        summary: LaneGapSummary,
        current_lane: int,
        maneuver: Maneuver,
        ego_s: float,
        ego_d: Optional[float] = None,
    ) -> PlannedIntent:
        """Decide lane and target speed for this tick.

        Args:
            summary: Per-lane gaps from perception.
            current_lane: Lane the ego is currently assigned to.
            maneuver: Maneuver carried over from the previous tick.
            ego_s: Ego longitudinal position used for perception (m).
            ego_d: Ego lateral offset, when known (m).

        Returns:
            PlannedIntent with the next maneuver attached.
        """
        cfg = self.config

        if maneuver.changing_lane:
            if maneuver.is_complete(ego_s, ego_d, cfg.lane_width, cfg.max_s):
                logger.info(f"Lane change to lane {maneuver.target_lane} complete at s={ego_s:.1f}")
                # Settle in the new lane for this tick; changes are evaluated from the next one.
                return self._intent(summary, current_lane, Maneuver(), cfg.anchor_spacing)
            else:
                lane = maneuver.target_lane if maneuver.target_lane is not None else current_lane
                return self._intent(summary, lane, maneuver, cfg.lane_change_anchor_spacing)

        if summary.front_gaps[current_lane] < cfg.front_margin:
            candidate = self.select_lane_change(summary, current_lane)
            if candidate is not None:
                logger.info(
                    f"Lane {current_lane} blocked (gap={summary.front_gaps[current_lane]:.1f}m), "
                    f"changing to lane {candidate} at s={ego_s:.1f}"
                )
                maneuver = Maneuver(
                    state=ManeuverState.CHANGING_LANE,
                    target_lane=candidate,
                    start_s=ego_s,
                    distance=cfg.lane_change_distance,
                )
                return self._intent(summary, candidate, maneuver, cfg.lane_change_anchor_spacing)

        return self._intent(summary, current_lane, maneuver, cfg.anchor_spacing)

    def lane_is_acceptable(self, summary: LaneGapSummary, lane: int) -> bool:
        """Enough room ahead and behind to move into this lane."""
        return (summary.front_gaps[lane] > self.config.front_margin
                and summary.rear_gaps[lane] > self.config.rear_margin)

    def select_lane_change(self, summary: LaneGapSummary, current_lane: int) -> Optional[int]:
        """Best acceptable neighbor lane, or None."""
        neighbors: List[int] = [
            lane for lane in (current_lane - 1, current_lane + 1)
            if 0 <= lane < summary.num_lanes
        ]
        if self.config.tie_break == "right":
            neighbors.reverse()

        best_lane = None
        best_gap = -1.0
        for lane in neighbors:
            if not self.lane_is_acceptable(summary, lane):
                continue
            # Strict comparison keeps the tie-break side on equal gaps.
            if summary.front_gaps[lane] > best_gap:
                best_lane = lane
                best_gap = summary.front_gaps[lane]
        return best_lane

    def _intent(self, summary: LaneGapSummary, lane: int, maneuver: Maneuver,
                anchor_spacing: float) -> PlannedIntent:
        target_speed = self.config.target_speed
        blocked = summary.front_gaps[lane] < self.config.front_margin
        if blocked:
            target_speed = max(0.0, min(target_speed, summary.front_speeds[lane]))
        return PlannedIntent(
            lane=lane,
            target_speed=target_speed,
            anchor_spacing=anchor_spacing,
            maneuver=maneuver,
            blocked=blocked,
        )


def build_lane_planner(planner_cfg: dict, road_cfg: Optional[dict] = None,
                       map_cfg: Optional[dict] = None) -> LanePlanner:
    """Build a LanePlanner from the config dictionaries."""
    road_cfg = road_cfg or {}
    map_cfg = map_cfg or {}
    config = LanePlannerConfig(
        target_speed=float(planner_cfg.get("target_speed_mph", 49.7)),
        front_margin=float(planner_cfg.get("front_margin_m", 30.0)),
        rear_margin=float(planner_cfg.get("rear_margin_m", 5.0)),
        anchor_spacing=float(planner_cfg.get("anchor_spacing_m", 30.0)),
        lane_change_anchor_spacing=float(planner_cfg.get("lane_change_anchor_spacing_m", 40.0)),
        lane_change_distance=float(planner_cfg.get("lane_change_distance_m", 60.0)),
        lane_width=float(road_cfg.get("lane_width_m", 4.0)),
        num_lanes=int(road_cfg.get("num_lanes", 3)),
        tie_break=str(planner_cfg.get("tie_break", "left")),
        max_s=float(map_cfg.get("max_s", DEFAULT_MAX_S)),
    )
    return LanePlanner(config)
