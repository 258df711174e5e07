#!/usr/bin/env python3
"""
Recording analysis tool for the highway planner.
Summarizes an HDF5 recording: speed profile, lane changes and trajectory spacing.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Dict

import h5py
import numpy as np


def analyze_recording(path) -> Dict[str, float]:
    """Compute summary metrics for one recording."""
    with h5py.File(path, "r") as f:
        if "timestamps" not in f:
            return {"ticks": 0}
        speeds = np.asarray(f["ego/reference_speed"][:], dtype=float)
        lanes = np.asarray(f["plan/lane"][:], dtype=int)
        states = np.asarray(f["plan/state"][:], dtype=int)
        blocked = np.asarray(f["plan/blocked"][:], dtype=bool)
        degraded = np.asarray(f["plan/degraded"][:], dtype=bool)
        traj_x = np.asarray(f["trajectory/x"][:], dtype=float)
        traj_y = np.asarray(f["trajectory/y"][:], dtype=float)
        metadata = json.loads(f.attrs.get("metadata", "{}"))

    ticks = len(speeds)
    speed_changes = np.abs(np.diff(speeds)) if ticks > 1 else np.zeros(0)
    # A lane change starts when the state goes cruising -> changing, or when the
    # target lane moves while already changing.
    lane_change_starts = 0
    if ticks > 1:
        changing = states[1:] == 1
        started = (states[:-1] == 0) | (lanes[1:] != lanes[:-1])
        lane_change_starts = int(np.count_nonzero(changing & started))
    steps = np.hypot(np.diff(traj_x, axis=1), np.diff(traj_y, axis=1)) if traj_x.size else np.zeros(0)

    return {
        "recording_name": metadata.get("recording_name", Path(path).stem),
        "ticks": ticks,
        "lane_changes": lane_change_starts,
        "lanes_visited": sorted(int(v) for v in np.unique(lanes)),
        "max_reference_speed_mph": float(speeds.max()) if ticks else 0.0,
        "mean_reference_speed_mph": float(speeds.mean()) if ticks else 0.0,
        "max_speed_change_per_tick_mph": float(speed_changes.max()) if speed_changes.size else 0.0,
        "max_trajectory_step_m": float(steps.max()) if steps.size else 0.0,
        "blocked_ticks": int(np.count_nonzero(blocked)),
        "degraded_ticks": int(np.count_nonzero(degraded)),
    }


def main():
    parser = argparse.ArgumentParser(description="Summarize a highway planner recording")
    parser.add_argument("recording", type=str, help="Path to .h5 recording")
    args = parser.parse_args()

    path = Path(args.recording)
    if not path.exists():
        print(f"Recording not found: {path}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(analyze_recording(path), indent=2))


if __name__ == "__main__":
    main()
