"""
Data format definitions for the highway planner.
Shared by perception, planning, control, the bridge and the recorder.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np

from trajectory.utils import wrap_s_delta

LANE_CLEAR_GAP = float("inf")  # Gap reported for a lane with no vehicle on that side
NO_LEADER_SPEED = float("inf")  # Front speed when nothing is ahead (never limits speed)

Point = Tuple[float, float]


@dataclass
class VehicleObservation:
    """One nearby vehicle from sensor fusion."""
    id: int
    x: float
    y: float
    vx: float  # m/s
    vy: float  # m/s
    s: float   # Frenet longitudinal position (m)
    d: float   # Frenet lateral offset (m, positive = right of the yellow line)

    @property
    def speed(self) -> float:
        """Scalar speed in m/s."""
        return math.hypot(self.vx, self.vy)

    @classmethod
    def from_sensor_fusion(cls, row: Sequence[float]) -> "VehicleObservation":
        """Build from a simulator row [id, x, y, vx, vy, s, d]."""
        if len(row) < 7:
            raise ValueError(f"sensor fusion row needs 7 values, got {len(row)}")
        return cls(
            id=int(row[0]),
            x=float(row[1]),
            y=float(row[2]),
            vx=float(row[3]),
            vy=float(row[4]),
            s=float(row[5]),
            d=float(row[6]),
        )


@dataclass
class LaneGapSummary:
    """Nearest forward/rear gap and speed per lane (speeds in mph)."""
    front_gaps: List[float]
    front_speeds: List[float]
    rear_gaps: List[float]
    rear_speeds: List[float]

    @classmethod
    def all_clear(cls, num_lanes: int = 3) -> "LaneGapSummary":
        return cls(
            front_gaps=[LANE_CLEAR_GAP] * num_lanes,
            front_speeds=[NO_LEADER_SPEED] * num_lanes,
            rear_gaps=[LANE_CLEAR_GAP] * num_lanes,
            rear_speeds=[0.0] * num_lanes,
        )

    @property
    def num_lanes(self) -> int:
        return len(self.front_gaps)


@dataclass
class Pose:
    """Cartesian pose of the ego vehicle."""
    x: float
    y: float
    yaw: float  # radians


class ManeuverState(Enum):
    CRUISING = "cruising"
    CHANGING_LANE = "changing_lane"


@dataclass(frozen=True)
class Maneuver:
    """Lane-change progress tracked between ticks."""
    state: ManeuverState = ManeuverState.CRUISING
    target_lane: Optional[int] = None
    start_s: float = 0.0
    distance: float = 0.0  # longitudinal travel (m) needed before the change counts as done

    @property
    def changing_lane(self) -> bool:
        return self.state is ManeuverState.CHANGING_LANE

    def is_complete(self, ego_s: float, ego_d: Optional[float], lane_width: float,
                    max_s: float) -> bool:
        """True once the ego has travelled far enough and sits inside the target lane."""
        if not self.changing_lane:
            return True
        progress = max(0.0, wrap_s_delta(ego_s - self.start_s, max_s))
        if progress < self.distance:
            return False
        if ego_d is None or self.target_lane is None:
            return True
        lane_min = self.target_lane * lane_width
        return lane_min <= ego_d < lane_min + lane_width


@dataclass
class PlannedIntent:
    """Lane and speed requested for the upcoming horizon."""
    lane: int
    target_speed: float  # mph
    anchor_spacing: float  # m
    maneuver: Maneuver
    blocked: bool = False  # Leader in the desired lane is inside the front margin


@dataclass
class EgoState:
    """Continuity state threaded through the pipeline every tick."""
    lane: int = 1
    reference_speed: float = 0.0  # mph
    s: float = 0.0
    pose: Pose = field(default_factory=lambda: Pose(0.0, 0.0, 0.0))
    previous_trajectory: List[Point] = field(default_factory=list)
    maneuver: Maneuver = field(default_factory=Maneuver)
    start_lane: int = 1

    def reset(self) -> None:
        """Start a fresh drive: stationary, cruising, back on the start lane."""
        self.lane = self.start_lane
        self.reference_speed = 0.0
        self.previous_trajectory = []
        self.maneuver = Maneuver()


@dataclass
class Trajectory:
    """Waypoints for the vehicle, one tick interval apart."""
    xs: List[float]
    ys: List[float]

    def __post_init__(self):
        if len(self.xs) != len(self.ys):
            raise ValueError(f"trajectory x/y length mismatch: {len(self.xs)} != {len(self.ys)}")

    def __len__(self) -> int:
        return len(self.xs)

    def points(self) -> List[Point]:
        return list(zip(self.xs, self.ys))

    def as_array(self) -> np.ndarray:
        """[N, 2] array of (x, y)."""
        return np.column_stack([np.asarray(self.xs, dtype=float), np.asarray(self.ys, dtype=float)])


@dataclass
class Telemetry:
    """One telemetry snapshot from the simulator."""
    x: float
    y: float
    yaw: float  # radians
    speed: float = 0.0  # mph, as reported by the simulator
    s: Optional[float] = None
    d: Optional[float] = None
    previous_path: List[Point] = field(default_factory=list)
    end_path_s: Optional[float] = None
    end_path_d: Optional[float] = None
    observations: List[VehicleObservation] = field(default_factory=list)
    timestamp: float = 0.0

    @property
    def pose(self) -> Pose:
        return Pose(self.x, self.y, self.yaw)


@dataclass
class TickRecord:
    """Everything recorded for a single planning tick."""
    timestamp: float
    ego_x: float
    ego_y: float
    ego_s: float
    ego_d: float
    ego_yaw: float
    reference_speed: float
    intent: PlannedIntent
    summary: LaneGapSummary
    trajectory: Trajectory
    degraded: bool = False
