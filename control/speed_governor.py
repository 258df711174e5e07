"""
Speed governor: moves the reference speed toward the planner's target under a
fixed per-tick change limit.

With ticks of constant length, a cap on the change per tick is a cap on
longitudinal acceleration, which keeps the emitted trajectories inside the
simulator's acceleration and jerk limits.
"""

from __future__ import annotations

from dataclasses import dataclass

from trajectory.utils import mph_to_mps


@dataclass
class SpeedGovernorConfig:
    """Configuration for the speed governor."""

    speed_delta: float = 3 * 0.224  # mph per tick (~5 m/s^2 at 50 Hz)
    tick: float = 0.02  # s
    min_speed: float = 0.0  # mph


class SpeedGovernor:
    """Acceleration-limited reference speed."""

    def __init__(self, config: SpeedGovernorConfig) -> None:
        if config.speed_delta <= 0.0:
            raise ValueError(f"speed_delta must be positive, got {config.speed_delta}")
        self.config = config

    @property
    def max_accel_mps2(self) -> float:
        """Acceleration implied by the per-tick delta."""
        return mph_to_mps(self.config.speed_delta) / self.config.tick

    def step(self, reference_speed: float, target_speed: float) -> float:
        """Advance the reference speed one tick toward target_speed.

        Never moves by more than speed_delta, never passes the target and
        never drops below min_speed.
        """
        target = max(self.config.min_speed, float(target_speed))
        reference = float(reference_speed)
        delta = self.config.speed_delta

        if reference < target:
            reference = min(target, reference + delta)
        elif reference > target:
            reference = max(target, reference - delta)
        return max(self.config.min_speed, reference)

    def decelerate(self, reference_speed: float) -> float:
        """Target one full delta below the current reference (used for degraded ticks)."""
        return max(self.config.min_speed, float(reference_speed) - self.config.speed_delta)


def build_speed_governor(control_cfg: dict) -> SpeedGovernor:
    """Build a SpeedGovernor from the control config dictionary."""
    config = SpeedGovernorConfig(
        speed_delta=float(control_cfg.get("speed_delta_mph", 3 * 0.224)),
        tick=float(control_cfg.get("tick_s", 0.02)),
        min_speed=float(control_cfg.get("min_speed_mph", 0.0)),
    )
    return SpeedGovernor(config)
