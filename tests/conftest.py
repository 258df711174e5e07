"""
Shared fixtures for the planner tests.
"""

import pytest

from road_helpers import make_circular_map, make_straight_map
from trajectory.map_geometry import RoadMap


@pytest.fixture
def straight_map() -> RoadMap:
    return make_straight_map()


@pytest.fixture
def circular_map() -> RoadMap:
    return make_circular_map()


@pytest.fixture
def default_config() -> dict:
    return {
        "map": {"max_s": 3000.0},
        "road": {"lane_width_m": 4.0, "num_lanes": 3, "start_lane": 1},
        "planner": {
            "target_speed_mph": 49.7,
            "front_margin_m": 30.0,
            "rear_margin_m": 5.0,
            "anchor_spacing_m": 30.0,
            "lane_change_anchor_spacing_m": 40.0,
            "lane_change_distance_m": 60.0,
            "tie_break": "left",
        },
        "control": {"speed_delta_mph": 0.672, "tick_s": 0.02, "horizon_points": 50},
    }
