from __future__ import annotations

import logging

import numpy as np

from gantry_headless.kinematics import GantryGeometry, reachable_mask, vertical_extension

LOGGER = logging.getLogger(__name__)

FRACTION_TOLERANCE = 0.01


class ReachabilityMap:
    """Static [y, x] table of grid points every corner can reach, built once at start-up."""

    def __init__(self, geometry: GantryGeometry) -> None:
        self._geometry = geometry
        self._grid = reachable_mask(geometry)
        self._grid.setflags(write=False)

    @property
    def grid(self) -> np.ndarray:
        return self._grid

    @property
    def width(self) -> int:
        return self._geometry.area_width

    @property
    def height(self) -> int:
        return self._geometry.area_height

    @property
    def reachable_count(self) -> int:
        return int(np.count_nonzero(self._grid))

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def is_cell_reachable(self, x: int, y: int) -> bool:
        return self.in_bounds(x, y) and bool(self._grid[y, x])

    def is_height_valid(self, z: float) -> bool:
        per_piston_height = vertical_extension(self._geometry, z)
        return self._geometry.floor_height_m <= per_piston_height <= self._geometry.ceiling_height_m

    def is_reachable(self, x: float, y: float, z: float) -> bool:
        """
        Validate a possibly fractional position.

        A coordinate more than FRACTION_TOLERANCE away from its nearest grid
        line also needs the neighbouring cell in that direction to be
        reachable, so interpolated waypoints never leave reachable territory.
        """
        x_int = int(round(x))
        y_int = int(round(y))
        if not self.in_bounds(x_int, y_int):
            return False

        delta_x = x - x_int
        delta_y = y - y_int

        if delta_x > FRACTION_TOLERANCE and not self.is_cell_reachable(x_int + 1, y_int):
            LOGGER.debug("X+ neighbour of (%s, %s) out of bounds or unreachable", x, y)
            return False
        if delta_x < -FRACTION_TOLERANCE and not self.is_cell_reachable(x_int - 1, y_int):
            LOGGER.debug("X- neighbour of (%s, %s) out of bounds or unreachable", x, y)
            return False
        if delta_y > FRACTION_TOLERANCE and not self.is_cell_reachable(x_int, y_int + 1):
            LOGGER.debug("Y+ neighbour of (%s, %s) out of bounds or unreachable", x, y)
            return False
        if delta_y < -FRACTION_TOLERANCE and not self.is_cell_reachable(x_int, y_int - 1):
            LOGGER.debug("Y- neighbour of (%s, %s) out of bounds or unreachable", x, y)
            return False

        return bool(self._grid[y_int, x_int]) and self.is_height_valid(z)
