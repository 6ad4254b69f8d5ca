"""State machine that turns landing grids into trajectory setpoints."""

from __future__ import annotations

import enum
import itertools
import logging
import math
from dataclasses import dataclass
from typing import Callable, Iterable

import numpy as np

from .grid import Grid
from .setpoints import TrajectorySetpoint, build_trajectory_setpoint
from .visualization import Color, Marker

logger = logging.getLogger(__name__)

LAND_COMMAND = 21
DECISION_GRID_COUNT = 20
ALTITUDE_CHANGE_SPEED = 0.5
LAND_SPEED = 0.5
EXPLORATION_LANDING_RADIUS = 0.5

EXPLORATION_PATTERN = (
    (1.0, 0.0),
    (1.0, 1.0),
    (0.0, 1.0),
    (-1.0, 1.0),
    (-1.0, 0.0),
    (-1.0, -1.0),
    (0.0, -1.0),
    (1.0, -1.0),
)


def _nan3() -> np.ndarray:
    return np.full(3, math.nan)


def _vec3(value) -> np.ndarray:
    return np.array(value, dtype=float).reshape(3)


class SLPState(enum.Enum):
    """Phase of the landing procedure."""

    GOTO = "goTo"
    LOITER = "loiter"
    LAND = "land"
    ALTITUDE_CHANGE = "altitudeChange"


@dataclass
class WaypointConfig:
    """Tunable parameters of the waypoint generator."""

    beta: float = 0.9
    landing_radius: float = 2.0
    can_land_thr: float = 0.4
    loiter_height: float = 4.0
    smoothing_land_cell: int = 2
    vertical_range_error: float = 1.0
    spiral_width: float = 2.0


@dataclass(frozen=True)
class MissionItem:
    """One item of the flight controller's mission."""

    command: int
    is_current: bool = False


class WaypointGenerator:
    """Decides where to fly, loiter and land from the landing grids it receives.

    ``publish_trajectory`` receives every :class:`TrajectorySetpoint` produced.
    """

    def __init__(self, publish_trajectory: Callable[[TrajectorySetpoint], None]) -> None:
        self.publish_trajectory = publish_trajectory

        self.yaw_setpoint = math.nan
        self.yaw_speed_setpoint = math.nan
        self.loiter_yaw = math.nan
        self.yaw = math.nan
        self.factor_exploration = 1.0

        self.grid_received = False
        self.is_land_waypoint = False
        self.decision_taken = False
        self.can_land = True
        self.in_land_vertical_range = False
        self.is_within_landing_radius = False
        self.exploration_is_active = False
        self.start_seq_landing_decision = 0
        self.grid_slp_seq = 0
        self.n_explored_pattern = -1

        self.position = _nan3()
        self.goal = _nan3()
        self.goal_visualization = np.zeros(3)
        self.velocity_setpoint = _nan3()
        self.loiter_position = _nan3()
        self.exploration_anchor = _nan3()
        self.pos_index = (0, 0)

        self.can_land_hysteresis: list[float] = []
        self.grid = Grid(10.0, 1.0)
        self.state = SLPState.GOTO
        self.prev_state = SLPState.GOTO
        self._goal_marker_id = 0
        self._update_smoothing_size = False

        self.reconfigure(WaypointConfig())

    def reconfigure(self, config: WaypointConfig) -> None:
        """Apply new parameters; a new smoothing size takes effect on the next update."""
        self._update_smoothing_size = False
        self.beta = float(config.beta)
        self.landing_radius = float(config.landing_radius)
        self.can_land_thr = float(config.can_land_thr)
        self.loiter_height = float(config.loiter_height)
        self.smoothing_land_cell = int(config.smoothing_land_cell)
        self.vertical_range_error = float(config.vertical_range_error)
        self.spiral_width = float(config.spiral_width)
        if len(self.can_land_hysteresis) != self._hysteresis_size():
            self._update_smoothing_size = True

    def position_callback(self, position, yaw: float) -> None:
        """Record the vehicle position and heading."""
        self.position = _vec3(position)
        self.yaw = float(yaw)
        logger.info("Current position %f %f %f", *self.position)

    def trajectory_callback(self, message: TrajectorySetpoint) -> None:
        """Take the goal and velocity requested by the flight controller."""
        first, second = message.points[0], message.points[1]
        second_position = _vec3(second.position)
        update = bool(np.linalg.norm(second_position - self.goal_visualization) > 0.01) or (
            not math.isfinite(self.goal[0]) and not math.isfinite(self.goal[1])
        )
        if update and message.point_valid[0]:
            self.goal = _vec3(first.position)
            self.velocity_setpoint = _vec3(first.velocity)
            logger.info("Set new goal from FCU %f %f %f", *self.goal)
        if message.point_valid[1]:
            self.goal_visualization = second_position
            self.yaw_setpoint = float(second.yaw)
            self.yaw_speed_setpoint = float(second.yaw_rate)

    def mission_callback(self, waypoints: Iterable[MissionItem]) -> None:
        """Note whether the current mission item is a landing."""
        self.is_land_waypoint = any(
            item.is_current and item.command == LAND_COMMAND for item in waypoints
        )

    def state_callback(self, mode: str, armed: bool) -> None:
        """React to a change of flight mode or arming state."""
        if mode == "AUTO.TAKEOFF":
            self.state = SLPState.GOTO
            self.is_land_waypoint = False
        elif mode == "AUTO.LAND":
            self.is_land_waypoint = True
        elif mode == "AUTO.MISSION":
            pass  # decided by the mission item type
        else:
            self.is_land_waypoint = False
            self.state = SLPState.GOTO
        if not armed:
            self.is_land_waypoint = False

    def grid_callback(self, message) -> None:
        """Store the landing grid computed by the planner."""
        self.grid_slp_seq = int(message.seq)
        if self.grid.grid_size != message.grid_size or self.grid.cell_size != message.cell_size:
            self.grid.resize(message.grid_size, message.cell_size)

        size = self.grid.row_col_size
        rows = message.mean.dim[0].size
        cols = message.mean.dim[1].size
        mean = np.asarray(message.mean.data, dtype=float).reshape(size, size)
        land = np.asarray(message.land.data, dtype=int).reshape(size, size)
        self.grid.mean[:rows, :cols] = mean[:rows, :cols]
        self.grid.land[:rows, :cols] = land[:rows, :cols]

        self.pos_index = (int(message.curr_pos_index[0]), int(message.curr_pos_index[1]))
        self.grid.set_filter_limits(self.position)
        self.grid_received = True

    def calculate_waypoint(self) -> None:
        """Advance the state machine by one step and publish a setpoint."""
        self.update_state()
        handlers = {
            SLPState.GOTO: self._go_to,
            SLPState.ALTITUDE_CHANGE: self._altitude_change,
            SLPState.LOITER: self._loiter,
            SLPState.LAND: self._land,
        }
        handlers[self.state]()

    def update_state(self) -> None:
        """Resize the hysteresis and reset everything when not landing."""
        if self._update_smoothing_size:
            self.can_land_hysteresis = [0.0] * self._hysteresis_size()
            self._update_smoothing_size = False

        if not self.is_land_waypoint:
            self.decision_taken = False
            self.can_land = True
            self.can_land_hysteresis = [0.0] * len(self.can_land_hysteresis)
            self.state = SLPState.GOTO
            self.exploration_is_active = False
            self.n_explored_pattern = -1
            self.factor_exploration = 1.0
            logger.info("Not a land waypoint")

    def landing_area_markers(self) -> list[Marker]:
        """Cells of the decision area coloured by their landing hysteresis."""
        cell = self.grid.cell_size
        grid_min, _ = self.grid.limits()
        low, high = self._window()
        size = self.grid.row_col_size
        markers = []
        for i, j in itertools.product(range(size), repeat=2):
            if not (low <= i < high and low <= j < high):
                continue
            counter = len(markers)
            if self.can_land_hysteresis[counter] > self.can_land_thr:
                color = Color(0.0, 1.0, 0.0, 0.5)
            else:
                color = Color(1.0, 0.0, 0.0, 0.5)
            markers.append(
                Marker(
                    id=counter,
                    kind="cube",
                    position=(
                        i * cell + float(grid_min[0]) + cell / 2.0,
                        j * cell + float(grid_min[1]) + cell / 2.0,
                        1.0,
                    ),
                    scale=(cell, cell, 0.1),
                    color=color,
                )
            )
        return markers

    def goal_marker(self) -> Marker:
        """Sphere at the current goal; each call takes the next id."""
        marker = Marker(
            id=self._goal_marker_id,
            kind="sphere",
            position=tuple(float(v) for v in self.goal),
            scale=(0.5, 0.5, 0.5),
            color=Color(1.0, 1.0, 0.0, 1.0),
        )
        self._goal_marker_id += 1
        return marker

    def _hysteresis_size(self) -> int:
        return (self.smoothing_land_cell * 2) ** 2

    def _window(self) -> tuple[int, int]:
        offset = self.grid.land.shape[0] // 2
        return offset - self.smoothing_land_cell, offset + self.smoothing_land_cell

    def _ground_distance(self) -> float:
        return abs(float(self.position[2]) - float(self.grid.mean[self.pos_index]))

    def _xy_distance_to_goal(self) -> float:
        return float(np.linalg.norm(self.goal[:2] - self.position[:2]))

    def _update_ranges(self) -> None:
        self.is_within_landing_radius = self._xy_distance_to_goal() < self.landing_radius
        self.in_land_vertical_range = (
            abs(self._ground_distance() - self.loiter_height) < self.vertical_range_error
        )
        logger.info(
            "Landing radius: xy %f, z %f", self._xy_distance_to_goal(), self._ground_distance()
        )

    def _publish(self, position, velocity, yaw, yaw_speed) -> None:
        self.publish_trajectory(build_trajectory_setpoint(position, velocity, yaw, yaw_speed))

    def _enter_loiter(self, previous: SLPState) -> None:
        self.start_seq_landing_decision = self.grid_slp_seq
        self.prev_state = previous
        self.state = SLPState.LOITER
        logger.info("Update to loiter state")

    def _go_to(self) -> None:
        self.decision_taken = False
        if self.exploration_is_active:
            self.landing_radius = EXPLORATION_LANDING_RADIUS
            self.yaw_setpoint = math.atan2(
                self.goal[1] - self.position[1], self.goal[0] - self.position[0]
            )
        self._publish(self.goal, self.velocity_setpoint, self.yaw_setpoint, self.yaw_speed_setpoint)
        self._update_ranges()

        if (
            self.is_within_landing_radius
            and not self.in_land_vertical_range
            and self.is_land_waypoint
            and not math.isfinite(self.velocity_setpoint[2])
        ):
            self.prev_state = SLPState.GOTO
            self.state = SLPState.ALTITUDE_CHANGE
            logger.info("Update to altitudeChange state")

        if self.is_within_landing_radius and self.in_land_vertical_range and self.is_land_waypoint:
            self._enter_loiter(SLPState.GOTO)

    def _altitude_change(self) -> None:
        if self.prev_state != SLPState.ALTITUDE_CHANGE:
            self.yaw_setpoint = self.yaw
        self.goal[2] = math.nan
        direction = 1.0 if self._ground_distance() - self.loiter_height < 0.0 else -1.0
        self.velocity_setpoint[2] = direction * ALTITUDE_CHANGE_SPEED
        self._publish(self.goal, self.velocity_setpoint, self.yaw_setpoint, self.yaw_speed_setpoint)

        if self.exploration_is_active:
            self.landing_radius = EXPLORATION_LANDING_RADIUS
        self._update_ranges()

        if self.is_within_landing_radius and self.in_land_vertical_range and self.is_land_waypoint:
            self._enter_loiter(SLPState.ALTITUDE_CHANGE)

    def _loiter(self) -> None:
        if self.prev_state != SLPState.LOITER:
            self.loiter_position = self.position.copy()
            self.loiter_yaw = self.yaw

        low, high = self._window()
        cells = itertools.product(range(low, high), repeat=2)
        for index, (i, j) in enumerate(cells):
            value = float(self.grid.land[i, j])
            self.can_land_hysteresis[index] = (
                self.beta * self.can_land_hysteresis[index] + (1.0 - self.beta) * value
            )

        if abs(self.grid_slp_seq - self.start_seq_landing_decision) > DECISION_GRID_COUNT:
            self.decision_taken = True
            land_counter = 0
            for value in self.can_land_hysteresis:
                landable = value > self.can_land_thr
                if landable:
                    land_counter += 1
                self.can_land = self.can_land and landable
                if not self.can_land and land_counter == len(self.can_land_hysteresis):
                    self.can_land = True
                    self.decision_taken = False
                    self.in_land_vertical_range = False
                    logger.info("Decision changed from can't land to can land")

        self._publish(self.loiter_position, _nan3(), self.loiter_yaw, math.nan)

        if self.decision_taken and self.can_land:
            logger.info("Update to land state")
            self.state = SLPState.LAND

        if self.decision_taken and not self.can_land:
            self._explore()

    def _explore(self) -> None:
        if not self.exploration_is_active:
            self.exploration_anchor = self.loiter_position.copy()
            self.exploration_is_active = True
        offset = (
            self.spiral_width
            * self.factor_exploration
            * 2.0
            * float(self.smoothing_land_cell)
            * self.grid.cell_size
        )
        self.n_explored_pattern += 1
        if self.n_explored_pattern == len(EXPLORATION_PATTERN):
            self.n_explored_pattern = 0
            self.factor_exploration += 1.0
        dx, dy = EXPLORATION_PATTERN[self.n_explored_pattern]
        self.goal = np.array(
            [
                self.exploration_anchor[0] + offset * dx,
                self.exploration_anchor[1] + offset * dy,
                self.exploration_anchor[2],
            ]
        )
        self.velocity_setpoint = _nan3()
        self.state = SLPState.GOTO
        logger.info("Update to goTo state")

    def _land(self) -> None:
        self.loiter_position[2] = math.nan
        velocity = _nan3()
        velocity[2] = -LAND_SPEED
        self._publish(self.loiter_position, velocity, self.loiter_yaw, math.nan)
        self.state = SLPState.LAND