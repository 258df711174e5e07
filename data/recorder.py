"""
Data recorder for the highway planner.
Records per-tick ego state, perception gaps, planner intent and the emitted
trajectory to HDF5.
"""

import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import h5py
import numpy as np

from .formats.data_format import ManeuverState, TickRecord

logger = logging.getLogger(__name__)

MANEUVER_CODES = {
    ManeuverState.CRUISING: 0,
    ManeuverState.CHANGING_LANE: 1,
}


class PlanRecorder:
    """Records planner ticks to HDF5 format."""

    def __init__(self, output_dir: str, recording_name: Optional[str] = None,
                 flush_every: int = 50):
        """
        Initialize plan recorder.

        Args:
            output_dir: Directory to save recordings
            recording_name: Name for this recording (default: timestamp)
            flush_every: Number of buffered ticks that triggers a write
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        if recording_name is None:
            recording_name = f"recording_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

        self.recording_name = recording_name
        self.output_file = self.output_dir / f"{recording_name}.h5"
        self.h5_file = h5py.File(self.output_file, "w")

        self.tick_buffer: List[TickRecord] = []
        self.tick_count = 0
        self.flush_every = max(1, int(flush_every))
        self.closed = False

        self.metadata = {
            "recording_start_time": datetime.now().isoformat(),
            "recording_name": recording_name,
            "recording_type": "planner",
        }

    def record_tick(self, record: TickRecord) -> None:
        """Buffer one tick; writes to disk every flush_every ticks."""
        self.tick_buffer.append(record)
        self.tick_count += 1
        if len(self.tick_buffer) >= self.flush_every:
            self.flush()

    def flush(self) -> None:
        """Flush buffered ticks to disk."""
        if not self.tick_buffer:
            return
        records = self.tick_buffer
        self.tick_buffer = []

        flush_start = time.time()
        columns = self._to_columns(records)
        for name, values in columns.items():
            self._append(name, values)
        self.h5_file.flush()
        logger.debug(f"[RECORDER_FLUSH] ticks={len(records)} duration={time.time() - flush_start:.4f}s")

    def _to_columns(self, records: List[TickRecord]) -> Dict[str, np.ndarray]:
        return {
            "timestamps": np.array([r.timestamp for r in records], dtype=np.float64),
            "ego/x": np.array([r.ego_x for r in records], dtype=np.float64),
            "ego/y": np.array([r.ego_y for r in records], dtype=np.float64),
            "ego/s": np.array([r.ego_s for r in records], dtype=np.float64),
            "ego/d": np.array([r.ego_d for r in records], dtype=np.float64),
            "ego/yaw": np.array([r.ego_yaw for r in records], dtype=np.float64),
            "ego/reference_speed": np.array([r.reference_speed for r in records], dtype=np.float64),
            "plan/lane": np.array([r.intent.lane for r in records], dtype=np.int32),
            "plan/target_speed": np.array([r.intent.target_speed for r in records], dtype=np.float64),
            "plan/state": np.array([MANEUVER_CODES[r.intent.maneuver.state] for r in records], dtype=np.int8),
            "plan/blocked": np.array([r.intent.blocked for r in records], dtype=bool),
            "plan/degraded": np.array([r.degraded for r in records], dtype=bool),
            "perception/front_gaps": np.array([r.summary.front_gaps for r in records], dtype=np.float64),
            "perception/front_speeds": np.array([r.summary.front_speeds for r in records], dtype=np.float64),
            "perception/rear_gaps": np.array([r.summary.rear_gaps for r in records], dtype=np.float64),
            "perception/rear_speeds": np.array([r.summary.rear_speeds for r in records], dtype=np.float64),
            "trajectory/x": np.array([r.trajectory.xs for r in records], dtype=np.float64),
            "trajectory/y": np.array([r.trajectory.ys for r in records], dtype=np.float64),
        }

    def _append(self, name: str, values: np.ndarray) -> None:
        """Append rows to an extensible dataset, creating it on first use."""
        if name not in self.h5_file:
            self.h5_file.create_dataset(
                name,
                shape=(0,) + values.shape[1:],
                maxshape=(None,) + values.shape[1:],
                dtype=values.dtype,
                chunks=True,
            )
        dataset = self.h5_file[name]
        if dataset.shape[1:] != values.shape[1:]:
            raise ValueError(
                f"Recording column '{name}' changed shape: {dataset.shape[1:]} -> {values.shape[1:]}"
            )
        start = dataset.shape[0]
        dataset.resize(start + values.shape[0], axis=0)
        dataset[start:] = values

    def close(self):
        """Close the recording file."""
        if self.closed:
            return
        try:
            self.flush()
        finally:
            self.metadata["recording_end_time"] = datetime.now().isoformat()
            self.metadata["total_ticks"] = self.tick_count
            self.h5_file.attrs["metadata"] = json.dumps(self.metadata, indent=2)
            self.h5_file.close()
            self.closed = True
            logger.info(f"Recording saved to: {self.output_file} ({self.tick_count} ticks)")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
