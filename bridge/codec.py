"""
Simulator message framing.

The simulator speaks socket.io-style text frames: a "42" prefix (message +
event) followed by a JSON array ``[event_name, payload]``.
"""

import json
import math
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, Field

from data.formats.data_format import Telemetry, Trajectory, VehicleObservation

EVENT_PREFIX = "42"
MANUAL_EVENT = "manual"
MANUAL_MESSAGE = '42["manual",{}]'


class TelemetryMessage(BaseModel):
    """Telemetry payload from the simulator."""
    x: float
    y: float
    yaw: float  # degrees
    speed: float = 0.0  # mph
    s: Optional[float] = None
    d: Optional[float] = None
    previous_path_x: List[float] = Field(default_factory=list)
    previous_path_y: List[float] = Field(default_factory=list)
    end_path_s: Optional[float] = None
    end_path_d: Optional[float] = None
    sensor_fusion: List[List[float]] = Field(default_factory=list)

    def to_telemetry(self, timestamp: float = 0.0) -> Telemetry:
        """Convert to the planner's Telemetry (yaw in radians)."""
        count = min(len(self.previous_path_x), len(self.previous_path_y))
        return Telemetry(
            x=self.x,
            y=self.y,
            yaw=math.radians(self.yaw),
            speed=self.speed,
            s=self.s,
            d=self.d,
            previous_path=list(zip(self.previous_path_x[:count], self.previous_path_y[:count])),
            end_path_s=self.end_path_s,
            end_path_d=self.end_path_d,
            observations=[VehicleObservation.from_sensor_fusion(row) for row in self.sensor_fusion],
            timestamp=timestamp,
        )


class ControlMessage(BaseModel):
    """Trajectory sent back to the simulator."""
    next_x: List[float]
    next_y: List[float]


def decode_event(message: str) -> Optional[Tuple[str, Optional[Any]]]:
    """
    Split a simulator frame into (event, payload).

    Returns None for frames that are not events. A null body or a null payload
    (manual driving) decodes to (MANUAL_EVENT, None); other events without a
    payload keep their name with a None payload.

    Raises:
        ValueError: the frame is an event but its body is not valid JSON.
    """
    if not message or len(message) <= len(EVENT_PREFIX) or not message.startswith(EVENT_PREFIX):
        return None
    body = message[len(EVENT_PREFIX):]
    try:
        decoded = json.loads(body)
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed event frame: {e}") from e
    if decoded is None:
        return MANUAL_EVENT, None
    if not isinstance(decoded, list) or not decoded or not isinstance(decoded[0], str):
        raise ValueError(f"Event frame must be [name, payload], got {body[:80]!r}")
    if len(decoded) > 1 and decoded[1] is None:
        return MANUAL_EVENT, None
    payload = decoded[1] if len(decoded) > 1 else None
    return decoded[0], payload


def encode_control(trajectory: Trajectory) -> str:
    """Frame a trajectory as a control event."""
    msg = ControlMessage(next_x=list(trajectory.xs), next_y=list(trajectory.ys))
    return f'{EVENT_PREFIX}["control",{msg.model_dump_json()}]'
