"""
Path controller: turns the planner's lane/speed intent into waypoints.

Each tick the controller keeps every unconsumed point of the previous path,
fits a natural cubic spline through the tail of that path plus three anchors on
the desired lane, and samples the spline so consecutive points are one tick of
travel apart at the reference speed. Fitting happens in the frame of the path's
last point so the curve is a function of local x.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.interpolate import CubicSpline

from control.speed_governor import SpeedGovernor, SpeedGovernorConfig
from data.formats.data_format import EgoState, Point, Pose, Trajectory
from trajectory.map_geometry import RoadMap, lane_center_d
from trajectory.utils import mph_to_mps, to_global_frame, to_local_frame

logger = logging.getLogger(__name__)

NUM_ANCHORS = 3
MIN_SEED_SPACING = 1e-3  # m; closer tail points give no usable heading


class TrajectoryGenerationError(RuntimeError):
    """Raised when the anchors cannot define a valid spline."""


@dataclass
class PathControllerConfig:
    """Configuration for trajectory synthesis."""

    horizon: int = 50  # points per trajectory (1 s at 50 Hz)
    tick: float = 0.02  # s between consecutive points
    lane_width: float = 4.0  # m
    seed_back_distance: float = 1.0  # m, synthetic point behind the pose on the first tick


class PathController:
    """Trajectory synthesizer sharing the driver's EgoState."""

    def __init__(self, config: PathControllerConfig, road_map: RoadMap,
                 ego_state: EgoState, speed_governor: Optional[SpeedGovernor] = None) -> None:
        if config.horizon < 1:
            raise ValueError(f"horizon must be at least 1, got {config.horizon}")
        self.config = config
        self.road_map = road_map
        self.state = ego_state
        self.speed_governor = speed_governor or SpeedGovernor(SpeedGovernorConfig(tick=config.tick))

    def update_readings(self, pose: Pose, ego_speed: float, ego_s: float,
                        previous_trajectory: Sequence[Point]) -> None:
        """Store this tick's readings in the shared ego state."""
        self.state.pose = pose
        self.state.reference_speed = float(ego_speed)
        self.state.s = float(ego_s)
        self.state.previous_trajectory = [
            (float(x), float(y)) for x, y in list(previous_trajectory)[:self.config.horizon]
        ]

    def update_velocity(self, target_speed: float) -> float:
        """Move the reference speed toward target_speed under the acceleration cap."""
        self.state.reference_speed = self.speed_governor.step(self.state.reference_speed, target_speed)
        return self.state.reference_speed

    def get_trajectory(self, desired_lane: int, anchor_spacing: float) -> Trajectory:
        """Build the next horizon of waypoints toward the desired lane.

        Raises:
            TrajectoryGenerationError: anchors not strictly increasing in local x.
        """
        if anchor_spacing <= 0.0:
            raise TrajectoryGenerationError(f"anchor spacing must be positive, got {anchor_spacing}")

        previous = self.state.previous_trajectory
        seed, ref_x, ref_y, ref_yaw = self._seed_points(previous)

        anchor_d = lane_center_d(desired_lane, self.config.lane_width)
        anchors: List[Point] = list(seed)
        for k in range(1, NUM_ANCHORS + 1):
            anchors.append(self.road_map.get_xy(self.state.s + k * anchor_spacing, anchor_d))

        anchor_xy = np.asarray(anchors, dtype=float)
        local_x, local_y = to_local_frame(anchor_xy[:, 0], anchor_xy[:, 1], ref_x, ref_y, ref_yaw)
        spline = self._fit_spline(local_x, local_y)

        xs = [p[0] for p in previous]
        ys = [p[1] for p in previous]

        remaining = self.config.horizon - len(previous)
        if remaining > 0:
            step_x = self._local_step(spline, anchor_spacing)
            new_local_x = step_x * np.arange(1, remaining + 1, dtype=float)
            new_local_y = spline(new_local_x) if step_x > 0.0 else np.zeros(remaining)
            new_x, new_y = to_global_frame(new_local_x, new_local_y, ref_x, ref_y, ref_yaw)
            xs.extend(float(v) for v in new_x)
            ys.extend(float(v) for v in new_y)

        self.state.lane = int(desired_lane)
        return Trajectory(xs=xs, ys=ys)

    def _seed_points(self, previous: Sequence[Point]) -> Tuple[List[Point], float, float, float]:
        """Two points fixing the start position and heading of the new curve."""
        if len(previous) >= 2:
            prev_x, prev_y = previous[-2]
            ref_x, ref_y = previous[-1]
            if math.hypot(ref_x - prev_x, ref_y - prev_y) > MIN_SEED_SPACING:
                ref_yaw = math.atan2(ref_y - prev_y, ref_x - prev_x)
                return [(prev_x, prev_y), (ref_x, ref_y)], ref_x, ref_y, ref_yaw

        # No usable tail: extrapolate backward along the current heading.
        if previous:
            ref_x, ref_y = previous[-1]
        else:
            ref_x, ref_y = self.state.pose.x, self.state.pose.y
        ref_yaw = self.state.pose.yaw
        back = self.config.seed_back_distance
        prev_x = ref_x - back * math.cos(ref_yaw)
        prev_y = ref_y - back * math.sin(ref_yaw)
        return [(prev_x, prev_y), (ref_x, ref_y)], ref_x, ref_y, ref_yaw

    def _fit_spline(self, local_x: np.ndarray, local_y: np.ndarray) -> CubicSpline:
        if not np.all(np.diff(local_x) > 0.0):
            anchors = ", ".join(f"({x:.3f}, {y:.3f})" for x, y in zip(local_x, local_y))
            raise TrajectoryGenerationError(
                f"Spline anchors must be strictly increasing in local x; got [{anchors}] "
                f"(lane={self.state.lane}, s={self.state.s:.2f})"
            )
        return CubicSpline(local_x, local_y, bc_type="natural")

    def _local_step(self, spline: CubicSpline, anchor_spacing: float) -> float:
        """Local-x increment that covers one tick of travel at the reference speed.

        Arc length to the first anchor distance is approximated by the straight
        line to the spline point there.
        """
        target_x = anchor_spacing
        target_y = float(spline(target_x))
        target_dist = math.hypot(target_x, target_y)
        travel = self.config.tick * mph_to_mps(self.state.reference_speed)
        if travel <= 0.0:
            return 0.0
        return target_x * travel / target_dist


def build_path_controller(control_cfg: dict, road_cfg: dict, road_map: RoadMap,
                          ego_state: EgoState, speed_governor: SpeedGovernor) -> PathController:
    """Build a PathController from the config dictionaries."""
    config = PathControllerConfig(
        horizon=int(control_cfg.get("horizon_points", 50)),
        tick=float(control_cfg.get("tick_s", 0.02)),
        lane_width=float(road_cfg.get("lane_width_m", 4.0)),
        seed_back_distance=float(control_cfg.get("seed_back_distance_m", 1.0)),
    )
    return PathController(config, road_map, ego_state, speed_governor)
