"""
Shared trajectory helpers: speed unit conversion, lap-seam wrapping and
world <-> vehicle frame transforms.
"""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np


MPH_PER_MPS = 2.23694


def mph_to_mps(speed_mph: float) -> float:
    return float(speed_mph) / MPH_PER_MPS


def mps_to_mph(speed_mps: float) -> float:
    return float(speed_mps) * MPH_PER_MPS


def wrap_s_delta(delta_s: float, max_s: float) -> float:
    """Wrap a longitudinal difference on a closed loop into (-max_s/2, max_s/2]."""
    if max_s <= 0.0:
        return float(delta_s)
    wrapped = math.fmod(float(delta_s), max_s)
    if wrapped > max_s / 2.0:
        wrapped -= max_s
    elif wrapped <= -max_s / 2.0:
        wrapped += max_s
    return wrapped


def to_local_frame(
    xs: np.ndarray,
    ys: np.ndarray,
    ref_x: float,
    ref_y: float,
    ref_yaw: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Express world points in the frame anchored at (ref_x, ref_y) facing ref_yaw.

    Translate by -ref, then rotate by -ref_yaw. Local +x points along the heading.
    """
    shift_x = np.asarray(xs, dtype=float) - ref_x
    shift_y = np.asarray(ys, dtype=float) - ref_y
    cos_yaw = math.cos(-ref_yaw)
    sin_yaw = math.sin(-ref_yaw)
    local_x = shift_x * cos_yaw - shift_y * sin_yaw
    local_y = shift_x * sin_yaw + shift_y * cos_yaw
    return local_x, local_y


def to_global_frame(
    local_x: np.ndarray,
    local_y: np.ndarray,
    ref_x: float,
    ref_y: float,
    ref_yaw: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Inverse of to_local_frame: rotate by ref_yaw, then translate by ref."""
    local_x = np.asarray(local_x, dtype=float)
    local_y = np.asarray(local_y, dtype=float)
    cos_yaw = math.cos(ref_yaw)
    sin_yaw = math.sin(ref_yaw)
    xs = local_x * cos_yaw - local_y * sin_yaw + ref_x
    ys = local_x * sin_yaw + local_y * cos_yaw + ref_y
    return xs, ys
