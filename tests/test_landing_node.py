import itertools
import math
import threading

import numpy as np
import pytest

from landing_planner.landing_node import (
    CompanionStatus,
    GridMessage,
    MavState,
    SafeLandingPlannerNode,
)


class _Recorder:
    def __init__(self):
        self.items = []
        self.event = threading.Event()

    def __call__(self, item):
        self.items.append(item)
        self.event.set()


class _RecordingVisualizer:
    def __init__(self):
        self.calls = []

    def visualize(self, planner, position, last_position):
        self.calls.append((planner, np.array(position), np.array(last_position)))


def _node(**kwargs):
    return SafeLandingPlannerNode(_Recorder(), _Recorder(), **kwargs)


def test_check_failsafe_escalates_with_time():
    node = _node()
    node.status.state = MavState.ACTIVE
    critical = node.planner.timeout_critical
    termination = node.planner.timeout_termination

    node.check_failsafe(critical / 2, 100.0)
    assert node.status.state == MavState.ACTIVE

    node.check_failsafe(critical + 0.1, critical + 0.1)
    assert node.status.state == MavState.CRITICAL

    node.check_failsafe(termination + 0.1, termination + 0.1)
    assert node.status.state == MavState.FLIGHT_TERMINATION


def test_check_failsafe_ignores_startup_period():
    node = _node()
    node.status.state = MavState.ACTIVE
    node.check_failsafe(1000.0, node.planner.timeout_critical / 2)
    assert node.status.state == MavState.ACTIVE


def test_check_failsafe_sweep():
    node = _node()
    node.status.state = MavState.ACTIVE
    critical = node.planner.timeout_critical
    termination = node.planner.timeout_termination
    since_last = 0.0
    since_start = 100.0
    while since_last < termination + 2.0:
        node.check_failsafe(since_last, since_start)
        if since_last > termination:
            assert node.status.state == MavState.FLIGHT_TERMINATION
        elif since_last > critical:
            assert node.status.state == MavState.CRITICAL
        else:
            assert node.status.state == MavState.ACTIVE
        since_last += 0.2
        since_start += 0.2


def test_publish_system_status_stamps_and_copies():
    statuses = _Recorder()
    node = SafeLandingPlannerNode(statuses, _Recorder(), clock=lambda: 42.0)
    node.status.state = MavState.CRITICAL
    node.publish_system_status()

    assert len(statuses.items) == 1
    sent = statuses.items[0]
    assert isinstance(sent, CompanionStatus)
    assert sent.component == 196
    assert sent.stamp == 42.0
    assert sent.state == MavState.CRITICAL
    assert node.t_status_sent == 42.0
    node.status.state = MavState.ACTIVE
    assert sent.state == MavState.CRITICAL


def test_position_callback_keeps_previous():
    node = _node()
    node.position_callback([1.0, 2.0, 3.0])
    node.position_callback([4.0, 5.0, 6.0])
    assert node.position_received
    assert node.previous_position.tolist() == [1.0, 2.0, 3.0]
    assert node.current_position.tolist() == [4.0, 5.0, 6.0]


def test_serial_grid_layout_and_sequence():
    node = _node()
    grid = node.planner.previous_grid
    size = grid.row_col_size

    first = node.serial_grid()
    second = node.serial_grid()
    assert isinstance(first, GridMessage)
    assert (first.seq, second.seq) == (0, 1)
    assert first.frame_id == "local_origin"
    assert first.grid_size == grid.grid_size
    assert first.cell_size == grid.cell_size
    for array in (first.mean, first.land, first.std_dev, first.counter):
        assert [d.label for d in array.dim] == ["height", "width"]
        assert array.dim[0].size == size
        assert array.dim[0].stride == size * size
        assert array.dim[1].size == size
        assert array.dim[1].stride == size
        assert array.data_offset == 0
        assert len(array.data) == size * size
    assert first.curr_pos_index == (-1.0, -1.0)


def test_serial_grid_data_is_row_major():
    node = _node()
    grid = node.planner.previous_grid
    size = grid.row_col_size
    grid.mean[2, 3] = 1.5
    grid.variance[2, 3] = 4.0
    grid.counter[2, 3] = 7
    grid.land[3, 2] = 1

    message = node.serial_grid()
    assert message.mean.data[2 * size + 3] == pytest.approx(1.5)
    assert message.std_dev.data[2 * size + 3] == pytest.approx(2.0)
    assert message.counter.data[2 * size + 3] == 7
    assert message.land.data[3 * size + 2] == 1
    assert sum(message.land.data) == 1
    assert sum(message.counter.data) == 7


def test_running_node_processes_cloud():
    statuses = _Recorder()
    grids = _Recorder()
    visualizer = _RecordingVisualizer()
    node = SafeLandingPlannerNode(statuses, grids, visualizer=visualizer)
    node.position_callback([0.0, 0.0, 5.0])

    cloud = np.array(
        [
            [0.5, 0.5, 1.0],
            [0.6, 0.4, 1.1],
            [math.nan, 0.0, 0.0],
            [-1.5, 2.5, 0.2],
            [20.0, 20.0, 0.0],
        ]
    )
    node.start()
    try:
        node.point_cloud_callback(cloud)
        assert grids.event.wait(5.0)
    finally:
        node.stop()

    assert grids.items[0].seq == 0
    assert node.planner.cloud.shape == (4, 3)
    assert not np.isnan(node.planner.cloud).any()
    assert int(node.planner.grid.counter.sum()) == 3
    assert node.planner.grid_seq == 1
    assert len(visualizer.calls) == 1
    assert visualizer.calls[0][1].tolist() == [0.0, 0.0, 5.0]
    assert statuses.items
    assert statuses.items[-1].state == MavState.ACTIVE


def test_cmd_loop_reports_termination_while_waiting():
    statuses = _Recorder()
    ticks = itertools.count(0.0, 20.0)
    lock = threading.Lock()

    def clock():
        with lock:
            return next(ticks)

    node = SafeLandingPlannerNode(statuses, _Recorder(), clock=clock)
    loop = threading.Thread(target=node.cmd_loop, daemon=True)
    loop.start()
    try:
        assert statuses.event.wait(5.0)
    finally:
        node.stop()
        loop.join(5.0)

    assert not loop.is_alive()
    assert statuses.items[0].state == MavState.FLIGHT_TERMINATION
    assert node.planner.grid_seq == 0