"""Jerk-limited trajectory simulation towards a goal direction."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

_F = np.float32
FLT_EPSILON = np.finfo(np.float32).eps


def _vec(values) -> np.ndarray:
    return np.array(values, dtype=np.float32).reshape(3)


def _norm(vector: np.ndarray) -> np.float32:
    return _F(np.linalg.norm(vector))


def _normalized(vector: np.ndarray) -> np.ndarray:
    norm = _norm(vector)
    if norm > 0:
        return (vector / norm).astype(np.float32)
    return np.zeros_like(vector, dtype=np.float32)


def norm_clamp(vector, max_norm) -> np.ndarray:
    """Return the vector scaled down so that its norm is at most ``max_norm``."""
    values = np.array(vector, dtype=np.float32)
    norm = _norm(values)
    limit = _F(max_norm)
    if norm > limit:
        return (values * (limit / norm)).astype(np.float32)
    return values


def _xy_norm_z_clamp(vector: np.ndarray, max_xy_norm, min_z, max_z) -> np.ndarray:
    result = np.empty(3, dtype=np.float32)
    result[:2] = norm_clamp(vector[:2], max_xy_norm)
    result[2] = min(_F(max_z), max(_F(min_z), vector[2]))
    return result


@dataclass(eq=False)
class SimulationState:
    """Kinematic state of the vehicle at a point in time."""

    position: np.ndarray = field(default_factory=lambda: np.zeros(3, np.float32))
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3, np.float32))
    acceleration: np.ndarray = field(
        default_factory=lambda: np.zeros(3, np.float32)
    )
    time: float = 0.0

    def __post_init__(self) -> None:
        self.position = _vec(self.position)
        self.velocity = _vec(self.velocity)
        self.acceleration = _vec(self.acceleration)
        self.time = _F(self.time)


@dataclass(frozen=True)
class SimulationLimits:
    """Kinematic limits used while simulating a trajectory."""

    max_z_velocity: float = math.nan
    min_z_velocity: float = math.nan
    max_xy_velocity_norm: float = math.nan
    max_acceleration_norm: float = math.nan
    max_jerk_norm: float = math.nan


def simulate_step_constant_jerk(state: SimulationState, jerk, step_time) -> SimulationState:
    """Advance ``state`` by ``step_time`` under a constant jerk."""
    dt = _F(step_time)
    j = _vec(jerk)
    half = _F(0.5)
    sixth = _F(1.0) / _F(6.0)
    position = (
        state.position
        + dt * state.velocity
        + half * (dt * dt) * state.acceleration
        + sixth * (dt * dt * dt) * j
    )
    velocity = state.velocity + state.acceleration * dt + half * (dt * dt) * j
    acceleration = state.acceleration + dt * j
    return SimulationState(position, velocity, acceleration, state.time + dt)


def jerk_for_velocity_setpoint(
    p_constant, d_constant, max_jerk_norm, desired_velocity, state: SimulationState
) -> np.ndarray:
    """PD jerk command driving the velocity to ``desired_velocity`` and accel to zero."""
    accel_diff = -state.acceleration
    velocity_diff = _vec(desired_velocity) - state.velocity
    p = velocity_diff * _F(p_constant)
    d = accel_diff * _F(d_constant)
    return norm_clamp(p + d, max_jerk_norm)


class TrajectorySimulator:
    """Simulates a jerk-limited flight towards a goal direction."""

    def __init__(
        self,
        config: SimulationLimits,
        start: SimulationState,
        step_time: float = 0.1,
    ) -> None:
        self.config = config
        self.start = start
        self.step_time = _F(step_time)

    def generate_trajectory(self, goal_direction, simulation_duration) -> list[SimulationState]:
        """Return the simulated states, one per time step."""
        cfg = self.config
        step_time = self.step_time
        max_xy = _F(cfg.max_xy_velocity_norm)
        max_z = _F(cfg.max_z_velocity)
        min_z = _F(cfg.min_z_velocity)
        max_jerk = _F(cfg.max_jerk_norm)
        max_acc_cfg = _F(cfg.max_acceleration_norm)

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            num_steps = int(math.ceil(_F(simulation_duration) / step_time))
            unit_goal = _normalized(_vec(goal_direction))
            z_limit = max_z if unit_goal[2] > 0 else min_z
            speed = _F(math.hypot(float(max_xy), float(z_limit)))
            desired_velocity = _xy_norm_z_clamp(unit_goal * speed, max_xy, min_z, max_z)

            # P and D are chosen so that accelerating from rest hits the jerk limit
            max_accel = min(_F(2.0) * np.sqrt(max_jerk), max_acc_cfg)
            desired_speed = _norm(desired_velocity)
            p_constant = (
                (np.sqrt(max_accel * max_accel + max_jerk * desired_speed) - max_accel)
                / desired_speed
                * _F(10.0)
            )
            d_constant = _F(2.0) * np.sqrt(p_constant)

            state = self.start
            steps: list[SimulationState] = []
            for _ in range(num_steps):
                dt = step_time
                damped_jerk = jerk_for_velocity_setpoint(
                    p_constant, d_constant, max_jerk, desired_velocity, state
                )
                jerk = damped_jerk
                requested = state.acceleration + dt * damped_jerk
                if _F(np.dot(requested, requested)) > max_accel * max_accel:
                    dt = (max_accel - _norm(state.acceleration)) / _norm(damped_jerk)
                    if dt <= FLT_EPSILON or dt > step_time:
                        jerk = np.zeros(3, dtype=np.float32)
                        dt = step_time
                state = simulate_step_constant_jerk(state, jerk, dt)
                steps.append(state)
        return steps