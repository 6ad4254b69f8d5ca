"""Square grid of height statistics centred on the vehicle."""

from __future__ import annotations

import copy
import math

import numpy as np


class Grid:
    """Per-cell mean, variance, point count and landability of a square area."""

    def __init__(self, grid_size: float, cell_size: float) -> None:
        self._corner_min = np.zeros(2)
        self._corner_max = np.zeros(2)
        self.resize(grid_size, cell_size)

    @property
    def grid_size(self) -> float:
        return self._grid_size

    @property
    def cell_size(self) -> float:
        return self._cell_size

    @property
    def row_col_size(self) -> int:
        return self._row_col_size

    def reset(self) -> None:
        """Zero every cell."""
        self.mean.fill(0.0)
        self.variance.fill(0.0)
        self.counter.fill(0)
        self.land.fill(0)

    def resize(self, grid_size: float, cell_size: float) -> None:
        """Change the grid and cell sizes; all cells are zeroed."""
        self._grid_size = float(grid_size)
        self._cell_size = float(cell_size)
        size = int(math.ceil(self._grid_size / self._cell_size))
        self._row_col_size = size
        self.mean = np.zeros((size, size))
        self.variance = np.zeros((size, size))
        self.counter = np.zeros((size, size), dtype=int)
        self.land = np.zeros((size, size), dtype=int)

    def increase_counter(self, index) -> None:
        self.counter[tuple(index)] += 1

    def set_filter_limits(self, position) -> None:
        """Centre the grid on the x/y of ``position``."""
        half = self._grid_size / 2.0
        x, y = float(position[0]), float(position[1])
        self._corner_min = np.array([x - half, y - half])
        self._corner_max = np.array([x + half, y + half])

    def limits(self) -> tuple[np.ndarray, np.ndarray]:
        """Return the (min, max) x/y corners of the grid."""
        return self._corner_min.copy(), self._corner_max.copy()

    def combine(self, previous: "Grid", alpha: float) -> None:
        """Low-pass filter mean and variance with those of ``previous``."""
        self.mean = alpha * previous.mean + (1.0 - alpha) * self.mean
        self.variance = alpha * previous.variance + (1.0 - alpha) * self.variance

    def copy(self) -> "Grid":
        return copy.deepcopy(self)