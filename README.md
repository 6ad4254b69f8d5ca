# landing_planner

This package helps a multicopter find a safe place to land and fly to it.

## What it contains

- **Landing site detection** (`landing_planner.safe_landing_planner`).
  `SafeLandingPlanner` sorts the points of its `cloud` (an N×3 array of
  x, y, z) into a square `Grid` (`landing_planner.grid`) centred on the
  vehicle position given to `set_pose`. Each cell keeps a point count and a
  running mean and variance of the point heights. These come from
  `compute_online_mean_variance`. A cell is landable when it has at least
  `n_points_threshold` points and a standard deviation no larger than
  `std_dev_threshold`. When `smoothing_size` is positive, a second pass
  also requires:
  - more than `min_n_land_cells` landable cells in its neighbourhood, and
  - at most `max_n_mean_diff_cells` neighbours whose mean differs from its
    own by more than `mean_diff_thr`.

  Each `run()` low-pass filters the new grid with the previous one, using
  `alpha`. All parameters live in `PlannerConfig` and are applied with
  `reconfigure()`. A change of grid size, cell size or smoothing size takes
  effect on the next run.
- **Landing waypoint generation** (`landing_planner.waypoint_generator`).
  `WaypointGenerator` is a state machine over `SLPState`. Its phases are
  `GOTO`, `ALTITUDE_CHANGE`, `LOITER` and `LAND`:
  1. Fly to the goal.
  2. Climb or descend to `loiter_height` above the ground.
  3. Loiter while a hysteresis over the central cells settles on a
     decision.
  4. Either land, or search outward in a square spiral for a better spot.

  You feed it through `position_callback`, `trajectory_callback`,
  `mission_callback` (a list of `MissionItem`), `state_callback` and
  `grid_callback`. Each `calculate_waypoint()` call advances it one step
  and passes a `TrajectorySetpoint` to the callable you supplied.
  Parameters are in `WaypointConfig`.
- **Setpoints** (`landing_planner.setpoints`). `build_trajectory_setpoint`
  builds a five-point `TrajectorySetpoint` in which only the first
  `PositionTarget` is used. The first point is marked valid when its x/y
  position or its x/y velocity is finite.
- **Node wiring** (`landing_planner.landing_node`).
  `SafeLandingPlannerNode` connects a planner to callables that you
  supply:
  - one for the `CompanionStatus` heartbeat, whose state is a `MavState`;
  - one for the serialised grid, a `GridMessage` made of `MultiArray`
    fields.

  Clouds go in through `point_cloud_callback` and positions through
  `position_callback`. `cmd_loop()` runs one iteration and
  `check_failsafe()` raises the status to `CRITICAL` or
  `FLIGHT_TERMINATION` when the algorithm has not run in time. `start()`
  launches a background thread that prepares clouds and a periodic loop
  (every 0.1 s). `stop()` ends both.
- **Trajectory simulation** (`landing_planner.trajectory_simulator`).
  `TrajectorySimulator.generate_trajectory` rolls a `SimulationState`
  forward towards a goal direction. It keeps to the velocity, acceleration
  and jerk limits in `SimulationLimits`. The building blocks
  `norm_clamp`, `simulate_step_constant_jerk` and
  `jerk_for_velocity_setpoint` can also be called directly.

Visual output is plain data, `Marker` and `Color`
(`landing_planner.visualization`), which any viewer can use.
`SafeLandingPlannerVisualization.visualize` publishes the following
through a `publish(topic, payload)` callable:
- the binned cloud;
- the land, mean and standard-deviation grids;
- the path segment.

`WaypointGenerator.landing_area_markers` and `goal_marker` do the same for
the landing decision area and the goal. `hsv_to_rgb` maps grid values to
colours.

## Requirements

Python 3.10 or newer and NumPy.

## Examples

### Grid limits

A grid 6 m wide with 2 m cells, centred on the vehicle:

```python
from landing_planner.grid import Grid

grid = Grid(6.0, 2.0)
grid.set_filter_limits((1.2, 3.4, 2.0))
lower, upper = grid.limits()   # lower (-1.8, 0.4), upper (4.2, 6.4)
```

### Online statistics

```python
from landing_planner.safe_landing_planner import compute_online_mean_variance

mean, variance = 0.0, 0.0
for count, height in enumerate([1.0, 1.2, 0.8], start=1):
    mean, variance = compute_online_mean_variance(mean, variance, height, count)
```

### Colour mapping

```python
from landing_planner.visualization import hsv_to_rgb

print(hsv_to_rgb(120.0, 1.0, 1.0))   # (0.0, 1.0, 0.0)
```

### Running the planner

```python
import numpy as np
from landing_planner.safe_landing_planner import PlannerConfig, SafeLandingPlanner

planner = SafeLandingPlanner()
planner.reconfigure(PlannerConfig(alpha=0.0))
planner.set_pose((5.0, 5.0, 5.0))
planner.cloud = np.array([[4.5, 4.5, 0.01], [4.6, 4.4, 0.02]])
planner.run()
print(planner.grid.land)
```

After `run()`, each cell of `planner.grid` is marked in `land` as landable
(1) or not (0). The grid also holds the per-cell `mean`, `variance` and
`counter`.

## What it does not do

The package has no command-line program. It does not subscribe to or
publish on any messaging system; all input comes through method calls and
all output goes to callables you provide. It does not transform point
clouds between coordinate frames. Clouds given to `SafeLandingPlannerNode`
must already be in the local frame, and the node only drops points that
contain NaN. It draws nothing on screen and only produces marker data.

## Tests

The test suite uses pytest, which is declared in the `test` extra:

```
pip install .[test]
pytest
```