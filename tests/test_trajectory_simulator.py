import math

import numpy as np
import pytest

from landing_planner.trajectory_simulator import (
    SimulationLimits,
    SimulationState,
    TrajectorySimulator,
    jerk_for_velocity_setpoint,
    norm_clamp,
    simulate_step_constant_jerk,
)


def _unit(v):
    v = np.asarray(v, dtype=np.float64)
    n = np.linalg.norm(v)
    return v / n if n > 0 else np.zeros_like(v)


def _limits_violations(config, start, steps):
    problems = []
    last = start
    for step in steps:
        dt = float(step.time) - float(last.time)
        jerk = (step.acceleration.astype(float) - last.acceleration.astype(float)) / dt
        last = step
        if np.linalg.norm(jerk) > config.max_jerk_norm + 1e-4:
            problems.append(("jerk", dt))
        if np.linalg.norm(step.acceleration) > config.max_acceleration_norm + 1e-5:
            problems.append(("accel", dt))
        if np.linalg.norm(step.velocity[:2]) > config.max_xy_velocity_norm + 1e-5:
            problems.append(("velocity", dt))
    return problems


def _direction_violations(goal_dir, start, steps):
    problems = []
    last = start
    for step in steps:
        dt = float(step.time) - float(last.time)
        jerk = (step.acceleration.astype(float) - last.acceleration.astype(float)) / dt
        last = step
        vel_dir_error = _unit(step.velocity) - _unit(goal_dir)
        if vel_dir_error.dot(_unit(step.acceleration)) > 0:
            if jerk.dot(vel_dir_error) > 0:
                problems.append(float(step.time))
    return problems


def _limits(max_acceleration):
    return SimulationLimits(
        max_z_velocity=1.0,
        min_z_velocity=-0.5,
        max_xy_velocity_norm=3.0,
        max_acceleration_norm=max_acceleration,
        max_jerk_norm=20.0,
    )


def test_norm_clamp_works_with_zeros():
    clamped = norm_clamp(np.zeros(3), 0)
    assert np.linalg.norm(clamped) == 0.0
    assert not np.isnan(clamped).any()


def test_norm_clamp_passes_short_vectors():
    short_vec = np.array([0.5, 0.6, 0.7], dtype=np.float32)
    clamped = norm_clamp(short_vec, 5.0)
    assert np.linalg.norm(short_vec - clamped) == 0.0


def test_norm_clamp_clamps_long_vectors():
    long_vec = np.array([5.0, 6.0, 7.0])
    clamped = norm_clamp(long_vec, 5.0)
    assert float(np.linalg.norm(clamped)) == pytest.approx(5.0, rel=1e-6)
    assert float(_unit(clamped).dot(_unit(long_vec))) == pytest.approx(1.0, rel=1e-6)


def test_gives_empty_list_with_no_steps():
    sim = TrajectorySimulator(SimulationLimits(), SimulationState())
    assert sim.generate_trajectory(np.zeros(3), 0) == []


def test_gives_constant_vel_when_vel_correct():
    state = SimulationState(velocity=(3.0, 0.0, 0.0))
    config = _limits(3.0)
    sim = TrajectorySimulator(config, state)
    steps = sim.generate_trajectory(np.array([1.0, 0.0, 0.0]), 10)

    assert len(steps) == 100
    for step in steps:
        assert np.linalg.norm(state.velocity - step.velocity) < 1e-5
        assert np.linalg.norm(step.acceleration) < 1e-5
    assert _limits_violations(config, state, steps) == []
    assert steps[-1].time > 10 + state.time


def test_accelerates_to_constant_vel():
    state = SimulationState(velocity=(-3.0, 0.0, 0.0))
    config = _limits(4.0)
    sim = TrajectorySimulator(config, state)
    goal_dir = np.array([1.0, 0.0, 0.0])
    steps = sim.generate_trajectory(goal_dir, 10)

    assert _direction_violations(goal_dir, state, steps) == []
    assert _limits_violations(config, state, steps) == []
    last = steps[-1]
    assert np.linalg.norm(_unit(last.velocity) - _unit(goal_dir)) < 1e-5
    assert np.linalg.norm(last.acceleration) < 1e-5
    assert last.time > 10 + state.time


def test_accelerates_sideways_to_constant_vel():
    state = SimulationState(velocity=(3.0, 0.0, 0.0), time=8.0)
    config = _limits(4.0)
    sim = TrajectorySimulator(config, state)
    goal_dir = np.array([0.0, 1.0, 0.0])
    steps = sim.generate_trajectory(goal_dir, 10)

    assert _direction_violations(goal_dir, state, steps) == []
    assert _limits_violations(config, state, steps) == []
    last = steps[-1]
    assert np.linalg.norm(_unit(last.velocity) - _unit(goal_dir)) < 1e-5
    assert np.linalg.norm(last.acceleration) < 1e-5
    assert last.time > 10 + state.time


def test_simulate_step_constant_jerk_from_rest():
    result = simulate_step_constant_jerk(SimulationState(), (6.0, 0.0, 0.0), 1.0)
    assert np.allclose(result.position, [1.0, 0.0, 0.0])
    assert np.allclose(result.velocity, [3.0, 0.0, 0.0])
    assert np.allclose(result.acceleration, [6.0, 0.0, 0.0])
    assert float(result.time) == pytest.approx(1.0)


def test_simulate_step_keeps_constant_velocity_without_jerk():
    start = SimulationState(position=(1, 2, 3), velocity=(1, 0, -1), time=2.0)
    result = simulate_step_constant_jerk(start, np.zeros(3), 0.5)
    assert np.allclose(result.position, [1.5, 2.0, 2.5])
    assert np.allclose(result.velocity, [1.0, 0.0, -1.0])
    assert float(result.time) == pytest.approx(2.5)


def test_jerk_for_velocity_setpoint_unclamped_and_clamped():
    state = SimulationState()
    jerk = jerk_for_velocity_setpoint(1.0, 0.0, 100.0, (1.0, 2.0, 2.0), state)
    assert np.allclose(jerk, [1.0, 2.0, 2.0])
    clamped = jerk_for_velocity_setpoint(1.0, 0.0, 1.5, (1.0, 2.0, 2.0), state)
    assert float(np.linalg.norm(clamped)) == pytest.approx(1.5, rel=1e-6)


def test_jerk_for_velocity_setpoint_damps_acceleration():
    state = SimulationState(velocity=(1.0, 0.0, 0.0), acceleration=(2.0, 0.0, 0.0))
    jerk = jerk_for_velocity_setpoint(5.0, 3.0, 100.0, (1.0, 0.0, 0.0), state)
    assert np.allclose(jerk, [-6.0, 0.0, 0.0])


def test_step_count_follows_duration():
    sim = TrajectorySimulator(_limits(4.0), SimulationState(), step_time=0.5)
    steps = sim.generate_trajectory((1.0, 0.0, 0.0), 2.2)
    assert len(steps) == math.ceil(2.2 / 0.5)