"""
Road map geometry: waypoint table loading and Frenet <-> Cartesian conversion.

The map is one lap of a closed track sampled as rows (x, y, s, dx, dy) where
(dx, dy) is the unit normal pointing to the right of the driving direction.
All conversions are stateless; a single RoadMap instance is shared by every
component that needs it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_MAX_S = 6945.554  # Length of the simulator highway loop (m)


class MapLoadError(RuntimeError):
    """Raised when the waypoint table is missing or malformed."""


def lane_center_d(lane: int, lane_width: float) -> float:
    """Lateral offset of a lane's centerline."""
    return lane_width * (lane + 0.5)


@dataclass(frozen=True, eq=False)
class RoadMap:
    """Read-only centerline samples of a closed track."""
    x: np.ndarray
    y: np.ndarray
    s: np.ndarray
    dx: np.ndarray
    dy: np.ndarray
    max_s: float = DEFAULT_MAX_S

    def __post_init__(self):
        n = len(self.s)
        if n < 2:
            raise MapLoadError(f"road map needs at least 2 waypoints, got {n}")
        for name in ("x", "y", "dx", "dy"):
            if len(getattr(self, name)) != n:
                raise MapLoadError(f"road map column '{name}' has {len(getattr(self, name))} rows, expected {n}")
        columns = np.vstack([self.x, self.y, self.s, self.dx, self.dy])
        if not np.all(np.isfinite(columns)):
            raise MapLoadError("road map contains non-finite values")
        if not np.all(np.diff(self.s) > 0.0):
            bad = int(np.argmin(np.diff(self.s) > 0.0)) + 1
            raise MapLoadError(f"road map s values must be strictly increasing (row {bad}: s={self.s[bad]})")
        if not self.max_s > float(self.s[-1]):
            raise MapLoadError(f"max_s={self.max_s} must exceed last waypoint s={float(self.s[-1])}")

    def __len__(self) -> int:
        return len(self.s)

    def closest_waypoint(self, x: float, y: float) -> int:
        """Index of the waypoint nearest to (x, y)."""
        dist_sq = (self.x - x) ** 2 + (self.y - y) ** 2
        return int(np.argmin(dist_sq))

    def next_waypoint(self, x: float, y: float, yaw: float) -> int:
        """Index of the first waypoint ahead of (x, y) when facing yaw (radians)."""
        closest = self.closest_waypoint(x, y)
        heading = math.atan2(self.y[closest] - y, self.x[closest] - x)
        angle = abs(yaw - heading) % (2.0 * math.pi)
        angle = min(2.0 * math.pi - angle, angle)
        if angle > math.pi / 2.0:
            closest = (closest + 1) % len(self)
        return closest

    def get_frenet(self, x: float, y: float, yaw: float) -> Tuple[float, float]:
        """Project a Cartesian point onto the track; returns (s, d)."""
        next_wp = self.next_waypoint(x, y, yaw)
        prev_wp = (next_wp - 1) % len(self)

        n_x = self.x[next_wp] - self.x[prev_wp]
        n_y = self.y[next_wp] - self.y[prev_wp]
        x_x = x - self.x[prev_wp]
        x_y = y - self.y[prev_wp]

        seg_len_sq = n_x * n_x + n_y * n_y
        proj_norm = (x_x * n_x + x_y * n_y) / seg_len_sq
        proj_x = proj_norm * n_x
        proj_y = proj_norm * n_y

        off_x = x_x - proj_x
        off_y = x_y - proj_y
        frenet_d = math.hypot(off_x, off_y)
        # Normals point to the right of travel; d is negative on the left.
        if off_x * self.dx[prev_wp] + off_y * self.dy[prev_wp] < 0.0:
            frenet_d = -frenet_d

        frenet_s = (float(self.s[prev_wp]) + proj_norm * math.sqrt(seg_len_sq)) % self.max_s
        return frenet_s, float(frenet_d)

    def get_xy(self, s: float, d: float) -> Tuple[float, float]:
        """Convert Frenet (s, d) to Cartesian (x, y), wrapping s around the loop."""
        s = float(s) % self.max_s
        prev_wp = int(np.searchsorted(self.s, s, side="right")) - 1
        if prev_wp < 0:
            # Before the first waypoint: still on the closing segment of the lap.
            prev_wp = len(self) - 1
        next_wp = (prev_wp + 1) % len(self)

        heading = math.atan2(self.y[next_wp] - self.y[prev_wp], self.x[next_wp] - self.x[prev_wp])
        seg_s = (s - float(self.s[prev_wp])) % self.max_s
        seg_x = self.x[prev_wp] + seg_s * math.cos(heading)
        seg_y = self.y[prev_wp] + seg_s * math.sin(heading)

        perp_heading = heading - math.pi / 2.0
        return float(seg_x + d * math.cos(perp_heading)), float(seg_y + d * math.sin(perp_heading))


def load_road_map(path: Union[str, Path], max_s: float = DEFAULT_MAX_S) -> RoadMap:
    """
    Load a waypoint table (x y s dx dy per row, whitespace or comma separated).

    Raises:
        MapLoadError: file missing/unreadable or table malformed.
    """
    path = Path(path)
    if not path.exists():
        raise MapLoadError(f"Unable to access highway map file: {path}")

    try:
        with open(path, "r") as f:
            first_line = f.readline()
        delimiter = "," if "," in first_line else None
        table = np.loadtxt(path, delimiter=delimiter, ndmin=2, dtype=float)
    except (OSError, ValueError) as e:
        raise MapLoadError(f"Malformed highway map file {path}: {e}") from e

    if table.shape[1] != 5:
        raise MapLoadError(f"Highway map rows must have 5 columns (x y s dx dy), got {table.shape[1]}")

    road_map = RoadMap(
        x=table[:, 0].copy(),
        y=table[:, 1].copy(),
        s=table[:, 2].copy(),
        dx=table[:, 3].copy(),
        dy=table[:, 4].copy(),
        max_s=float(max_s),
    )
    logger.info(f"Loaded {len(road_map)} map waypoints from {path} (max_s={max_s})")
    return road_map
