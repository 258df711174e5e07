"""
Lane gap perception.
Turns sensor-fusion observations into per-lane nearest front/rear gaps and speeds.
"""

import math
from typing import Iterable, Optional

from data.formats.data_format import LaneGapSummary, VehicleObservation
from trajectory.utils import mps_to_mph, wrap_s_delta


def lane_index(d: float, lane_width: float, num_lanes: int = 3) -> Optional[int]:
    """Lane containing lateral offset d, or None when off the road or not finite."""
    if not math.isfinite(d):
        return None
    lane = int(math.floor(d / lane_width))
    if lane < 0 or lane >= num_lanes:
        return None
    return lane


def summarize(
    observations: Iterable[VehicleObservation],
    lookahead_time: float,
    ego_s: float,
    lane_width: float,
    num_lanes: int = 3,
    max_s: Optional[float] = None,
) -> LaneGapSummary:
    """
    Summarize nearby vehicles per lane.

    Each vehicle is moved forward by its scalar speed over lookahead_time
    (the time covered by the unconsumed part of the previous path) and
    compared against ego_s. Vehicles off the road are ignored.

    Args:
        observations: Sensor-fusion vehicles for this tick.
        lookahead_time: Prediction horizon in seconds.
        ego_s: Ego longitudinal position to compare against (m).
        lane_width: Lane width (m).
        num_lanes: Number of lanes, numbered from the left.
        max_s: Track length; when given, offsets are wrapped across the lap seam.

    Returns:
        LaneGapSummary with gaps in meters and speeds in mph.
    """
    summary = LaneGapSummary.all_clear(num_lanes)

    for obs in observations:
        lane = lane_index(obs.d, lane_width, num_lanes)
        if lane is None:
            continue

        speed = obs.speed
        predicted_s = obs.s + speed * lookahead_time
        offset = predicted_s - ego_s
        if max_s is not None:
            offset = wrap_s_delta(offset, max_s)

        if offset > 0.0:
            if offset < summary.front_gaps[lane]:
                summary.front_gaps[lane] = offset
                summary.front_speeds[lane] = mps_to_mph(speed)
        else:
            if -offset < summary.rear_gaps[lane]:
                summary.rear_gaps[lane] = -offset
                summary.rear_speeds[lane] = mps_to_mph(speed)

    return summary
