"""Marker generation for displaying the landing grid and the flown path."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Callable

import numpy as np

from .grid import Grid

FRAME_ID = "local_origin"


@dataclass(frozen=True)
class Color:
    """RGBA colour with components in [0, 1]."""

    r: float = 0.0
    g: float = 0.0
    b: float = 0.0
    a: float = 0.0


@dataclass(frozen=True)
class Marker:
    """A single display primitive in the local frame."""

    id: int
    kind: str
    position: tuple[float, float, float] = (0.0, 0.0, 0.0)
    scale: tuple[float, float, float] = (0.0, 0.0, 0.0)
    color: Color = Color()
    points: tuple[tuple[float, float, float], ...] = ()
    frame_id: str = FRAME_ID


def hsv_to_rgb(hue: float, saturation: float, value: float) -> tuple[float, float, float]:
    """Convert hue in degrees [0, 360] and saturation/value in [0, 1] to RGB."""
    chroma = value * saturation
    h_prime = math.fmod(hue / 60.0, 6)
    x = chroma * (1 - abs(math.fmod(h_prime, 2) - 1))
    m = value - chroma

    if 0 <= h_prime < 1:
        rgb = (chroma, x, 0.0)
    elif 1 <= h_prime < 2:
        rgb = (x, chroma, 0.0)
    elif 2 <= h_prime < 3:
        rgb = (0.0, chroma, x)
    elif 3 <= h_prime < 4:
        rgb = (0.0, x, chroma)
    elif 4 <= h_prime < 5:
        rgb = (x, 0.0, chroma)
    elif 5 <= h_prime < 6:
        rgb = (chroma, 0.0, x)
    else:
        rgb = (0.0, 0.0, 0.0)
    return rgb[0] + m, rgb[1] + m, rgb[2] + m


def _point(value) -> tuple[float, float, float]:
    x, y, z = (float(v) for v in np.asarray(value, dtype=float).reshape(3))
    return x, y, z


def _cell_centres(grid: Grid):
    """Yield (i, j, x, y) for every cell of the grid in row-major order."""
    cell = grid.cell_size
    grid_min, _ = grid.limits()
    for i in range(grid.row_col_size):
        for j in range(grid.row_col_size):
            yield (
                i,
                j,
                i * cell + float(grid_min[0]) + cell / 2.0,
                j * cell + float(grid_min[1]) + cell / 2.0,
            )


def _hue_color(hue: float) -> Color:
    r, g, b = hsv_to_rgb(hue, 1.0, 1.0)
    return Color(r, g, b, 0.5)


class SafeLandingPlannerVisualization:
    """Builds markers for the planner state and hands them to ``publish``.

    ``publish`` is called as ``publish(topic, payload)``.
    """

    def __init__(self, publish: Callable[[str, Any], None]) -> None:
        self.publish = publish
        self.path_length = 0

    def visualize(self, planner, position, last_position) -> None:
        """Publish the binned cloud, the grids and the latest path segment."""
        grid = planner.grid
        self.publish("/grid_pointcloud", list(planner.visualization_cloud))
        self.publish("/grid", self.grid_markers(grid, planner.smoothing_size))
        self.publish("/grid_mean", self.mean_markers(grid))
        self.publish("/grid_std_dev", self.std_dev_markers(grid))
        self.publish("/path_actual", self.path_marker(position, last_position))

    def grid_markers(self, grid: Grid, smoothing_size: float) -> list[Marker]:
        """Green cells are landable, red ones are not; the centre area is raised."""
        offset = grid.land.shape[0] // 2
        low, high = offset - smoothing_size, offset + smoothing_size
        markers = []
        for marker_id, (i, j, x, y) in enumerate(_cell_centres(grid)):
            if grid.land[i, j]:
                color = Color(0.0, 1.0, 0.0, 0.5)
            else:
                color = Color(1.0, 0.0, 0.0, 0.5)
            height = 0.8 if low <= i < high and low <= j < high else 0.1
            markers.append(
                Marker(
                    id=marker_id,
                    kind="cube",
                    position=(x, y, 0.0),
                    scale=(grid.cell_size, grid.cell_size, height),
                    color=color,
                )
            )
        return markers

    def mean_markers(self, grid: Grid) -> list[Marker]:
        """Cells coloured by mean height, mapped from [-1, 10] onto the hue circle."""
        max_value, min_value = 10.0, -1.0
        markers = []
        for marker_id, (i, j, x, y) in enumerate(_cell_centres(grid)):
            hue = 360.0 * (float(grid.mean[i, j]) - min_value) / (max_value - min_value)
            markers.append(
                Marker(
                    id=marker_id,
                    kind="cube",
                    position=(x, y, 0.0),
                    scale=(grid.cell_size, grid.cell_size, 0.1),
                    color=_hue_color(hue),
                )
            )
        return markers

    def std_dev_markers(self, grid: Grid) -> list[Marker]:
        """Cells coloured by standard deviation, mapped from [0, 1] onto the hue circle."""
        max_value, min_value = 1.0, 0.0
        markers = []
        for marker_id, (i, j, x, y) in enumerate(_cell_centres(grid)):
            variance = float(grid.variance[i, j])
            std_dev = math.sqrt(variance) if variance >= 0 else math.nan
            hue = 360.0 * (std_dev - min_value) / (max_value - min_value)
            markers.append(
                Marker(
                    id=marker_id,
                    kind="cube",
                    position=(x, y, 0.0),
                    scale=(grid.cell_size, grid.cell_size, 0.1),
                    color=_hue_color(hue),
                )
            )
        return markers

    def path_marker(self, position, last_position) -> Marker:
        """Line segment from the previous to the current vehicle position."""
        marker = Marker(
            id=self.path_length,
            kind="line_strip",
            scale=(0.03, 0.0, 0.0),
            color=Color(0.0, 1.0, 0.0, 1.0),
            points=(_point(last_position), _point(position)),
        )
        self.path_length += 1
        return marker