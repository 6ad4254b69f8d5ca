"""Landing site detection from a point cloud binned into a height grid."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from .grid import Grid

logger = logging.getLogger(__name__)


@dataclass
class PlannerConfig:
    """Tunable parameters of the landing site detection."""

    n_points_threshold: float = 1.0
    std_dev_threshold: float = 0.1
    smoothing_size: int = 1
    mean_diff_thr: float = 0.3
    max_n_mean_diff_cells: int = 2
    grid_size: float = 10.0
    cell_size: float = 1.0
    alpha: float = 0.8
    timeout_critical: float = 0.5
    timeout_termination: float = 15.0
    min_n_land_cells: int = 9


def compute_online_mean_variance(prev_mean, prev_variance, new_value, seq) -> tuple[float, float]:
    """Update a bin's mean and population variance with one more value.

    ``seq`` is the number of values in the bin including the new one.
    """
    seq = float(seq)
    if seq == 0:
        return math.nan, math.nan
    mean = (prev_mean * (seq - 1) + new_value) / seq
    # Welford's algorithm
    delta = new_value - prev_mean
    delta2 = new_value - mean
    prev_m2 = prev_variance * (seq - 1) if seq - 1 >= 0 else 0.0
    m2 = prev_m2 + delta * delta2
    variance = m2 / seq if seq > 0 else math.nan
    return mean, variance


class SafeLandingPlanner:
    """Decides, cell by cell, where the ground is flat enough to land."""

    def __init__(self) -> None:
        self.cloud = np.empty((0, 3))
        self.visualization_cloud: list[tuple[float, float, float, float]] = []
        self.position = np.zeros(3)
        self.pos_index = (-1, -1)
        self.config = PlannerConfig()
        self.timeout_critical = self.config.timeout_critical
        self.timeout_termination = self.config.timeout_termination
        self.grid = Grid(10.0, 1.0)
        self.previous_grid = Grid(10.0, 1.0)
        self.grid_seq = 0
        self._n_lines_padding = 1
        self._size_update = False

    @property
    def smoothing_size(self) -> int:
        return self.config.smoothing_size

    def set_pose(self, position) -> None:
        self.position = np.array(position, dtype=float).reshape(3)

    def run(self) -> None:
        """Bin the current cloud and update the landability of every cell."""
        if self._size_update:
            self.grid.resize(self.config.grid_size, self.config.cell_size)
            self.previous_grid.resize(self.config.grid_size, self.config.cell_size)
            self._n_lines_padding = self.config.smoothing_size
            self._size_update = False
        self.process_pointcloud()
        self.grid.combine(self.previous_grid, self.config.alpha)
        self.is_landing_possible()

    def process_pointcloud(self) -> None:
        """Compute per-cell mean and variance of the heights in the cloud."""
        self.previous_grid, self.grid = self.grid, self.previous_grid
        self.grid.set_filter_limits(self.position)
        self.grid_seq += 1
        self.grid.reset()
        self.visualization_cloud = []
        points = np.asarray(self.cloud, dtype=float).reshape(-1, 3)
        logger.info("Input cloud size %d", len(points))
        bins_per_row = self.config.grid_size / self.config.cell_size
        for x, y, z in points:
            if math.isnan(x) or math.isnan(y) or math.isnan(z):
                continue
            if not self.is_inside_grid(x, y):
                continue
            index = self.compute_grid_indexes(x, y)
            prev_mean = self.grid.mean[index]
            prev_variance = self.grid.variance[index]
            self.grid.increase_counter(index)
            mean, variance = compute_online_mean_variance(
                prev_mean, prev_variance, z, float(self.grid.counter[index])
            )
            self.grid.mean[index] = mean
            self.grid.variance[index] = variance
            self.visualization_cloud.append(
                (x, y, z, index[0] * bins_per_row + index[1])
            )

    def is_landing_possible(self) -> None:
        """Mark cells as landable from point count, spread and neighbourhood."""
        cfg = self.config
        grid = self.grid
        size = grid.row_col_size
        with np.errstate(invalid="ignore"):
            rough = (grid.counter < cfg.n_points_threshold) | (
                np.sqrt(grid.variance) > cfg.std_dev_threshold
            )
        grid.land = np.where(rough, 0, 1)

        n = self._n_lines_padding
        if n > 0:
            padded_size = size + 2 * n
            land_padded = np.zeros((padded_size, padded_size), dtype=int)
            mean_padded = np.zeros((padded_size, padded_size))
            land_padded[n:n + size, n:n + size] = grid.land
            mean_padded[n:n + size, n:n + size] = grid.mean
            land_acc = np.zeros((padded_size, padded_size), dtype=int)
            mean_acc = np.zeros((padded_size, padded_size), dtype=int)
            centre = (slice(n, n + size), slice(n, n + size))
            for k in range(-n, n + 1):
                for t in range(-n, n + 1):
                    shifted = (slice(n + k, n + k + size), slice(n + t, n + t + size))
                    land_acc[centre] += land_padded[shifted]
                    diff = np.abs(mean_padded[centre] - mean_padded[shifted])
                    mean_acc[centre] += diff > cfg.mean_diff_thr

            min_land = cfg.min_n_land_cells
            land_acc = np.where(land_acc <= min_land, 0, land_acc)
            land_acc = np.where(land_acc > min_land, 1, land_acc)
            max_diff = cfg.max_n_mean_diff_cells
            mean_acc = np.where(mean_acc <= max_diff, 1, mean_acc)
            mean_acc = np.where(mean_acc > max_diff, 0, mean_acc)
            grid.land = (mean_acc * land_acc)[centre]

        self.pos_index = self.compute_grid_indexes(self.position[0], self.position[1])

    def is_inside_grid(self, x, y) -> bool:
        grid_min, grid_max = self.grid.limits()
        return grid_min[0] < x < grid_max[0] and grid_min[1] < y < grid_max[1]

    def compute_grid_indexes(self, x, y) -> tuple[int, int]:
        grid_min, _ = self.grid.limits()
        cell = self.grid.cell_size
        return (
            int(math.floor((x - grid_min[0]) / cell)),
            int(math.floor((y - grid_min[1]) / cell)),
        )

    def reconfigure(self, config: PlannerConfig) -> None:
        """Apply new parameters; grid size changes take effect on the next run."""
        self._size_update = False
        self.config = config
        self.timeout_critical = config.timeout_critical
        self.timeout_termination = config.timeout_termination
        if (
            self.grid.grid_size != float(config.grid_size)
            or self.grid.cell_size != float(config.cell_size)
            or self._n_lines_padding != config.smoothing_size
        ):
            self._size_update = True