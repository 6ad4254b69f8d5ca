"""Trajectory setpoint messages sent to the flight controller."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

_NAN3 = (math.nan, math.nan, math.nan)


def _triple(value) -> tuple[float, float, float]:
    x, y, z = (float(v) for v in np.asarray(value, dtype=float).reshape(3))
    return x, y, z


@dataclass(frozen=True)
class PositionTarget:
    """One waypoint of a trajectory message."""

    position: tuple[float, float, float] = _NAN3
    velocity: tuple[float, float, float] = _NAN3
    acceleration_or_force: tuple[float, float, float] = _NAN3
    yaw: float = math.nan
    yaw_rate: float = math.nan


def unused_position_target() -> PositionTarget:
    """A waypoint with every field set to NaN."""
    return PositionTarget()


@dataclass(frozen=True)
class TrajectorySetpoint:
    """Waypoint trajectory of five points; only the first one is used."""

    points: tuple[PositionTarget, ...]
    point_valid: tuple[bool, ...]
    time_horizon: tuple[float, ...] = (math.nan,) * 5
    frame_id: str = "local_origin"
    type: int = 0


def build_trajectory_setpoint(position, velocity, yaw, yaw_speed) -> TrajectorySetpoint:
    """Build a setpoint from a position, velocity and yaw target."""
    first = PositionTarget(
        position=_triple(position),
        velocity=_triple(velocity),
        acceleration_or_force=_NAN3,
        yaw=float(yaw),
        yaw_rate=float(yaw_speed),
    )
    xy_pos_valid = all(math.isfinite(v) for v in first.position[:2])
    xy_vel_valid = all(math.isfinite(v) for v in first.velocity[:2])
    # The vertical components do not take part in the validity decision.
    valid = xy_pos_valid or xy_vel_valid
    points = (first,) + tuple(unused_position_target() for _ in range(4))
    return TrajectorySetpoint(
        points=points,
        point_valid=(valid, False, False, False, False),
    )