"""Node that runs landing site detection on incoming point clouds."""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, NamedTuple, Optional

import numpy as np

from .safe_landing_planner import SafeLandingPlanner

logger = logging.getLogger(__name__)

AVOIDANCE_COMPONENT_ID = 196
FRAME_ID = "local_origin"
STATUS_PERIOD = 0.2


class MavState(enum.IntEnum):
    """System state reported to the flight controller."""

    UNINIT = 0
    BOOT = 1
    CALIBRATING = 2
    STANDBY = 3
    ACTIVE = 4
    CRITICAL = 5
    EMERGENCY = 6
    POWEROFF = 7
    FLIGHT_TERMINATION = 8


class _Dimension(NamedTuple):
    label: str
    size: int
    stride: int


@dataclass(frozen=True)
class MultiArray:
    """Row-major flattened matrix with its layout."""

    dim: tuple[_Dimension, ...]
    data: tuple
    data_offset: int = 0


@dataclass(frozen=True)
class GridMessage:
    """Serialised landing grid for the waypoint generator."""

    seq: int
    grid_size: float
    cell_size: float
    mean: MultiArray
    land: MultiArray
    std_dev: MultiArray
    counter: MultiArray
    curr_pos_index: tuple[float, float]
    frame_id: str = FRAME_ID


@dataclass
class CompanionStatus:
    """Heartbeat status of the companion process."""

    state: MavState = MavState.UNINIT
    component: int = AVOIDANCE_COMPONENT_ID
    stamp: float = 0.0


def _multi_array(matrix: np.ndarray, values) -> MultiArray:
    rows, cols = matrix.shape
    return MultiArray(
        dim=(
            _Dimension("height", cols, rows * cols),
            _Dimension("width", rows, rows),
        ),
        data=tuple(values),
    )


class SafeLandingPlannerNode:
    """Feeds point clouds and poses to the planner and publishes its results.

    ``publish_status`` receives :class:`CompanionStatus` heartbeats and
    ``publish_grid`` receives :class:`GridMessage` instances. Point clouds
    must already be expressed in the local frame.
    """

    def __init__(
        self,
        publish_status: Callable[[CompanionStatus], None],
        publish_grid: Callable[[GridMessage], None],
        visualizer: Optional[Any] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.planner = SafeLandingPlanner()
        self.publish_status = publish_status
        self.publish_grid = publish_grid
        self.visualizer = visualizer
        self._clock = clock
        self.spin_dt = 0.1

        self.status = CompanionStatus()
        self.current_position = np.zeros(3)
        self.previous_position = np.zeros(3)
        self.position_received = False

        self.start_time = clock()
        self.last_algo_time = 0.0
        self.t_status_sent = 0.0
        self._grid_seq = 0

        self._exit = threading.Event()
        self._cloud_ready = threading.Condition()
        self._newest_cloud: Optional[np.ndarray] = None
        self._transformed = threading.Condition()
        self._cloud_transformed = False
        self._worker: Optional[threading.Thread] = None
        self._timer: Optional[threading.Thread] = None

    def position_callback(self, position) -> None:
        """Record a new vehicle position."""
        self.previous_position = self.current_position
        self.current_position = np.array(position, dtype=float).reshape(3)
        self.position_received = True

    def point_cloud_callback(self, cloud) -> None:
        """Hand the newest cloud to the preparation thread."""
        with self._cloud_ready:
            self._newest_cloud = np.array(cloud, dtype=float).reshape(-1, 3)
            self._cloud_ready.notify_all()

    def cmd_loop(self) -> None:
        """One iteration: wait for a cloud, run the planner and publish."""
        self.status.state = MavState.ACTIVE

        wait_start = self._clock()
        with self._transformed:
            while not self._cloud_transformed:
                if self._exit.is_set():
                    return
                self._transformed.wait(0.1)
                if self._clock() - wait_start > self.planner.timeout_termination:
                    self.status.state = MavState.FLIGHT_TERMINATION
                    self.publish_system_status()

        now = self._clock()
        self.check_failsafe(now - self.last_algo_time, now - self.start_time)
        self.planner.set_pose(self.current_position)

        with self._transformed:
            self.planner.run()
            self._cloud_transformed = False

        if self.visualizer is not None:
            self.visualizer.visualize(
                self.planner, self.current_position, self.previous_position
            )
        self.publish_grid(self.serial_grid())
        self.last_algo_time = self._clock()

        if now - self.t_status_sent > STATUS_PERIOD:
            self.publish_system_status()

    def check_failsafe(self, since_last_algo: float, since_start: float) -> None:
        """Escalate the status when the algorithm has not run for too long."""
        termination = self.planner.timeout_termination
        critical = self.planner.timeout_critical
        if since_last_algo > termination and since_start > termination:
            self.status.state = MavState.FLIGHT_TERMINATION
        elif since_last_algo > critical and since_start > critical:
            self.status.state = MavState.CRITICAL

    def publish_system_status(self) -> None:
        """Send the heartbeat status."""
        self.status.stamp = self._clock()
        self.status.component = AVOIDANCE_COMPONENT_ID
        self.publish_status(replace(self.status))
        self.t_status_sent = self._clock()

    def serial_grid(self) -> GridMessage:
        """Serialise the planner's previous grid; each call takes the next sequence number."""
        grid = self.planner.previous_grid
        variance = grid.variance
        std_dev = np.sqrt(np.asarray(variance, dtype=np.float32))
        message = GridMessage(
            seq=self._grid_seq,
            grid_size=grid.grid_size,
            cell_size=grid.cell_size,
            mean=_multi_array(grid.mean, (float(v) for v in grid.mean.ravel())),
            land=_multi_array(grid.land, (int(v) for v in grid.land.ravel())),
            std_dev=_multi_array(variance, (float(v) for v in std_dev.ravel())),
            counter=_multi_array(grid.counter, (int(v) for v in grid.counter.ravel())),
            curr_pos_index=(
                float(self.planner.pos_index[0]),
                float(self.planner.pos_index[1]),
            ),
        )
        self._grid_seq += 1
        return message

    def start(self) -> None:
        """Start the cloud preparation thread and the periodic main loop."""
        self._exit.clear()
        self._worker = threading.Thread(target=self._prepare_clouds, daemon=True)
        self._timer = threading.Thread(target=self._run_loop, daemon=True)
        self._worker.start()
        self._timer.start()

    def stop(self) -> None:
        """Ask both threads to finish and wait for them."""
        self._exit.set()
        with self._cloud_ready:
            self._cloud_ready.notify_all()
        with self._transformed:
            self._transformed.notify_all()
        for thread in (self._worker, self._timer):
            if thread is not None and thread is not threading.current_thread():
                thread.join()
        self._worker = None
        self._timer = None

    def _run_loop(self) -> None:
        while not self._exit.is_set():
            started = time.monotonic()
            self.cmd_loop()
            elapsed = time.monotonic() - started
            self._exit.wait(max(0.0, self.spin_dt - elapsed))

    def _prepare_clouds(self) -> None:
        while not self._exit.is_set():
            with self._cloud_ready:
                while self._newest_cloud is None and not self._exit.is_set():
                    self._cloud_ready.wait(0.1)
                cloud = self._newest_cloud
                self._newest_cloud = None
            if cloud is None:
                continue
            points = cloud[~np.isnan(cloud).any(axis=1)]
            with self._transformed:
                self.planner.cloud = points
                self._cloud_transformed = True
                self._transformed.notify_all()