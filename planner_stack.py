"""
Main highway planner integration script.
Connects all components: lane gap perception, lane planning, and path control.
"""

import argparse
import logging
import math
import sys
import time
from pathlib import Path
from typing import Optional

import uvicorn
import yaml

from bridge.server import create_app
from control.path_controller import build_path_controller
from control.speed_governor import build_speed_governor
from data.formats.data_format import (
    EgoState,
    LaneGapSummary,
    Maneuver,
    PlannedIntent,
    Telemetry,
    TickRecord,
    Trajectory,
)
from data.recorder import PlanRecorder
from perception.lane_gaps import summarize
from trajectory.lane_planner import build_lane_planner
from trajectory.map_geometry import DEFAULT_MAX_S, MapLoadError, RoadMap, load_road_map

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config" / "planner_config.yaml"


def configure_logging(level: int = logging.INFO) -> None:
    """Log to stderr and tmp/logs/planner_stack.log."""
    log_dir = Path(__file__).parent / "tmp" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "planner_stack.log"

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(str(log_file)),
        ],
    )


def load_config(config_path: Optional[str] = None) -> dict:
    """Load configuration from YAML file or use defaults."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path, "r") as f:
            config = yaml.safe_load(f) or {}
        logger.info(f"Loaded configuration from {config_path}")
        return config
    else:
        logger.warning(f"Config file not found at {config_path}, using defaults")
        return {}


class HighwayPlannerStack:
    """Per-tick pipeline: perception -> lane planner -> path controller."""

    def __init__(self, config: dict, road_map: RoadMap,
                 recorder: Optional[PlanRecorder] = None):
        """
        Initialize the planner stack.

        Args:
            config: Parsed configuration (see config/planner_config.yaml)
            road_map: Loaded waypoint map shared by all components
            recorder: Optional recorder receiving one TickRecord per tick
        """
        self.config = config or {}
        road_cfg = self.config.get("road", {}) or {}
        control_cfg = self.config.get("control", {}) or {}
        planner_cfg = self.config.get("planner", {}) or {}
        map_cfg = dict(self.config.get("map", {}) or {})
        map_cfg.setdefault("max_s", road_map.max_s)

        self.road_map = road_map
        self.lane_width = float(road_cfg.get("lane_width_m", 4.0))
        self.num_lanes = int(road_cfg.get("num_lanes", 3))
        self.tick = float(control_cfg.get("tick_s", 0.02))

        start_lane = int(road_cfg.get("start_lane", 1))
        if not 0 <= start_lane < self.num_lanes:
            raise ValueError(f"start_lane {start_lane} outside lanes 0..{self.num_lanes - 1}")
        self.state = EgoState(lane=start_lane, start_lane=start_lane)

        self.speed_governor = build_speed_governor(control_cfg)
        self.lane_planner = build_lane_planner(planner_cfg, road_cfg, map_cfg)
        self.controller = build_path_controller(
            control_cfg, road_cfg, road_map, self.state, self.speed_governor
        )
        self.recorder = recorder
        self.tick_count = 0
        self.degraded_ticks = 0

    def reset_session(self) -> None:
        """New simulator session: every drive starts stationary."""
        self.state.reset()
        logger.info("Planner state reset for new session")

    def process_telemetry(self, telemetry: Telemetry) -> Trajectory:
        """Run the full pipeline for one telemetry snapshot.

        Any failure inside the pipeline degrades the tick instead of
        propagating: the vehicle always gets a horizon-length trajectory.
        """
        reference_speed = self.state.reference_speed
        s, d = telemetry.s, telemetry.d
        ego_s = self.state.s
        summary = LaneGapSummary.all_clear(self.num_lanes)
        intent: Optional[PlannedIntent] = None
        degraded = False

        try:
            if s is None or d is None:
                s, d = self.road_map.get_frenet(telemetry.x, telemetry.y, telemetry.yaw)

            previous = telemetry.previous_path
            ego_s = s
            if previous and telemetry.end_path_s is not None:
                # Plan from where the previous path ends, not where the car is.
                ego_s = telemetry.end_path_s

            summary = summarize(
                telemetry.observations,
                lookahead_time=len(previous) * self.tick,
                ego_s=ego_s,
                lane_width=self.lane_width,
                num_lanes=self.num_lanes,
                max_s=self.road_map.max_s,
            )
            intent = self.lane_planner.plan(summary, self.state.lane, self.state.maneuver, ego_s, d)
            self.state.maneuver = intent.maneuver
            trajectory = self._synthesize(telemetry, ego_s, intent, reference_speed)
        except Exception:
            logger.exception(f"Planning tick failed (tick={self.tick_count}); holding lane")
            degraded = True
            self.degraded_ticks += 1
            intent = self._hold_lane_intent(intent, reference_speed)
            self.state.maneuver = intent.maneuver
            trajectory = self._degraded_trajectory(telemetry, ego_s, intent, reference_speed)

        if self.recorder is not None:
            self.recorder.record_tick(TickRecord(
                timestamp=telemetry.timestamp,
                ego_x=telemetry.x,
                ego_y=telemetry.y,
                ego_s=s if s is not None else ego_s,
                ego_d=d if d is not None else math.nan,
                ego_yaw=telemetry.yaw,
                reference_speed=self.state.reference_speed,
                intent=intent,
                summary=summary,
                trajectory=trajectory,
                degraded=degraded,
            ))
        self.tick_count += 1
        return trajectory

    def _synthesize(self, telemetry: Telemetry, ego_s: float, intent: PlannedIntent,
                    reference_speed: float) -> Trajectory:
        self.controller.update_readings(telemetry.pose, reference_speed, ego_s,
                                        telemetry.previous_path)
        self.controller.update_velocity(intent.target_speed)
        return self.controller.get_trajectory(intent.lane, intent.anchor_spacing)

    def _hold_lane_intent(self, intent: Optional[PlannedIntent],
                          reference_speed: float) -> PlannedIntent:
        return PlannedIntent(
            lane=self.state.lane,
            target_speed=self.speed_governor.decelerate(reference_speed),
            anchor_spacing=self.lane_planner.config.anchor_spacing,
            maneuver=Maneuver(),
            blocked=intent.blocked if intent is not None else False,
        )

    def _degraded_trajectory(self, telemetry: Telemetry, ego_s: float,
                             intent: PlannedIntent, reference_speed: float) -> Trajectory:
        """Hold lane and slow down; fall back to the previous path if that fails too."""
        try:
            return self._synthesize(telemetry, ego_s, intent, reference_speed)
        except Exception:
            logger.exception("Hold-lane trajectory failed; re-emitting previous path")

        horizon = self.controller.config.horizon
        points = list(telemetry.previous_path)[:horizon]
        last = points[-1] if points else (telemetry.x, telemetry.y)
        points.extend([last] * (horizon - len(points)))
        return Trajectory(xs=[p[0] for p in points], ys=[p[1] for p in points])


def build_stack(config: dict, map_path: Optional[str] = None,
                recorder: Optional[PlanRecorder] = None) -> HighwayPlannerStack:
    """Load the road map named in the config and build the stack.

    Raises:
        MapLoadError: the map is missing or malformed.
    """
    map_cfg = config.get("map", {}) or {}
    path = Path(map_path or map_cfg.get("path", "data/highway_map.csv"))
    if not path.is_absolute() and not path.exists():
        path = Path(__file__).parent / path
    road_map = load_road_map(path, max_s=float(map_cfg.get("max_s", DEFAULT_MAX_S)))
    return HighwayPlannerStack(config, road_map, recorder=recorder)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Run the highway planner")
    parser.add_argument("--config", type=str, default=None,
                        help="Path to configuration YAML file (default: config/planner_config.yaml)")
    parser.add_argument("--map", type=str, default=None,
                        help="Path to the highway map CSV (overrides map.path)")
    parser.add_argument("--host", type=str, default=None, help="Bridge host (overrides bridge.host)")
    parser.add_argument("--port", type=int, default=None, help="Bridge port (overrides bridge.port)")
    parser.add_argument("--record", action="store_true", default=None,
                        help="Record planner ticks to HDF5")
    parser.add_argument("--no-record", dest="record", action="store_false",
                        help="Disable recording")
    parser.add_argument("--recording_dir", type=str, default=None,
                        help="Directory for recordings (overrides recording.dir)")
    args = parser.parse_args()

    configure_logging()
    config = load_config(args.config)

    recording_cfg = config.get("recording", {}) or {}
    record = args.record if args.record is not None else bool(recording_cfg.get("enabled", False))
    recorder = None
    if record:
        recorder = PlanRecorder(args.recording_dir or recording_cfg.get("dir", "data/recordings"))
        logger.info(f"Data recording enabled: {recorder.output_file}")

    try:
        stack = build_stack(config, map_path=args.map, recorder=recorder)
    except MapLoadError as e:
        logger.error(str(e))
        if recorder is not None:
            recorder.close()
        sys.exit(1)

    bridge_cfg = config.get("bridge", {}) or {}
    host = args.host or bridge_cfg.get("host", "0.0.0.0")
    port = args.port or int(bridge_cfg.get("port", 4567))
    logger.info(f"Listening to port {port}")
    start = time.time()
    try:
        uvicorn.run(create_app(stack), host=host, port=port, log_level="warning")
    finally:
        if recorder is not None:
            recorder.close()
        logger.info(f"Planner stopped after {stack.tick_count} ticks "
                    f"({stack.degraded_ticks} degraded, {time.time() - start:.1f}s)")


if __name__ == "__main__":
    main()
