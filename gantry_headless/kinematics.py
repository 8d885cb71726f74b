from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np


class Corner(Enum):
    TOP_LEFT = "TL"
    TOP_RIGHT = "TR"
    BOTTOM_LEFT = "BL"
    BOTTOM_RIGHT = "BR"


class Side(Enum):
    TOP = "T"
    BOTTOM = "B"
    LEFT = "L"
    RIGHT = "R"


CORNERS: Tuple[Corner, ...] = (
    Corner.TOP_LEFT,
    Corner.TOP_RIGHT,
    Corner.BOTTOM_LEFT,
    Corner.BOTTOM_RIGHT,
)
SIDES: Tuple[Side, ...] = (Side.TOP, Side.BOTTOM, Side.LEFT, Side.RIGHT)

# Grid cell each side sensor looks down on, relative to the head.
SIDE_OFFSETS: Dict[Side, Tuple[int, int]] = {
    Side.TOP: (0, -1),
    Side.BOTTOM: (0, 1),
    Side.LEFT: (-1, 0),
    Side.RIGHT: (1, 0),
}


@dataclass(frozen=True)
class GantryGeometry:
    area_width: int = 17  # grid points between base hinges, corners included
    area_height: int = 17
    num_horizontal_pistons: int = 2  # in series, per corner
    num_vertical_pistons: int = 2  # stacked, per corner
    ceiling_height_m: float = 20.0
    floor_height_m: float = 2.5
    cube_size_m: float = 2.5
    piston_overhang_m: float = 0.159
    welder_size: int = 1  # cells from the head centre, 1 = 3x3 head
    max_horizontal_extension_m: float = 10.0
    horizontal_speed_limit_mps: float = 1.0
    vertical_speed_limit_mps: float = 1.0

    @property
    def retracted_piston_total_length_m(self) -> float:
        return 2.0 * self.cube_size_m + self.piston_overhang_m

    @property
    def max_z(self) -> float:
        return (self.ceiling_height_m - self.floor_height_m) / self.cube_size_m

    @property
    def min_vertical_extension_m(self) -> float:
        return self.floor_height_m / self.num_vertical_pistons

    @property
    def max_vertical_extension_m(self) -> float:
        return self.ceiling_height_m / self.num_vertical_pistons


def piston_extension(geometry: GantryGeometry, grid_dx, grid_dy):
    """
    Per-piston horizontal extension for a hinge-to-hinge offset given in grid cells.

    Accepts scalars or numpy arrays; the hinge distance loses one cube for the
    base hinge block before being shared among the pistons in series.
    """
    hinge_distance_m = np.sqrt(grid_dx * grid_dx + grid_dy * grid_dy) * geometry.cube_size_m - geometry.cube_size_m
    return hinge_distance_m / geometry.num_horizontal_pistons - geometry.retracted_piston_total_length_m


def _corner_offsets(geometry: GantryGeometry, x, y) -> Dict[Corner, Tuple]:
    size = geometry.welder_size
    far_x = geometry.area_width - 1 - x
    far_y = geometry.area_height - 1 - y
    return {
        Corner.TOP_LEFT: (x - size, y - size),
        Corner.TOP_RIGHT: (far_x - size, y - size),
        Corner.BOTTOM_LEFT: (x - size, far_y - size),
        Corner.BOTTOM_RIGHT: (far_x - size, far_y - size),
    }


def piston_extensions(geometry: GantryGeometry, x: float, y: float) -> Dict[Corner, float]:
    offsets = _corner_offsets(geometry, float(x), float(y))
    return {
        corner: float(piston_extension(geometry, dx, dy))
        for corner, (dx, dy) in offsets.items()
    }


def grid_extensions(geometry: GantryGeometry) -> Dict[Corner, np.ndarray]:
    """Per-corner extension for every integer grid point, arrays indexed [y, x]."""
    ys, xs = np.indices((geometry.area_height, geometry.area_width), dtype=np.float64)
    offsets = _corner_offsets(geometry, xs, ys)
    return {
        corner: piston_extension(geometry, dx, dy)
        for corner, (dx, dy) in offsets.items()
    }


def vertical_extension(geometry: GantryGeometry, z: float) -> float:
    return (float(z) * geometry.cube_size_m + geometry.floor_height_m) / geometry.num_vertical_pistons


def height_from_vertical_extensions(
    geometry: GantryGeometry,
    vertical_positions: Mapping[Corner, Sequence[float]],
) -> float:
    """Logical Z implied by the vertical pistons, averaged over the corners."""
    per_piston_floor = geometry.floor_height_m / geometry.num_vertical_pistons
    total = 0.0
    for corner in CORNERS:
        for position in vertical_positions[corner]:
            total += float(position) - per_piston_floor
    return total / len(CORNERS) / geometry.cube_size_m


def reachable_mask(
    geometry: GantryGeometry,
    extensions: Optional[Dict[Corner, np.ndarray]] = None,
) -> np.ndarray:
    grids = extensions if extensions is not None else grid_extensions(geometry)
    mask = np.ones((geometry.area_height, geometry.area_width), dtype=bool)
    for corner in CORNERS:
        ext = grids[corner]
        mask &= (ext >= 0.0) & (ext <= geometry.max_horizontal_extension_m)
    return mask


def closest_reachable_point(
    geometry: GantryGeometry,
    horizontal_positions: Mapping[Corner, Sequence[float]],
) -> Optional[Tuple[Tuple[int, int], float]]:
    """
    Brute-force search for the reachable grid point whose extensions best match
    the pistons' current positions (sum of squared differences).

    The whole grid is evaluated on every call. At the installed grid sizes that
    is a few hundred points, so no spatial index is kept. Ties resolve to the
    first point in row-major order.
    """
    grids = grid_extensions(geometry)
    mismatch = np.zeros((geometry.area_height, geometry.area_width), dtype=np.float64)
    for corner in CORNERS:
        for position in horizontal_positions[corner]:
            mismatch += (float(position) - grids[corner]) ** 2

    mismatch[~reachable_mask(geometry, grids)] = np.inf
    if not np.isfinite(mismatch).any():
        return None

    best_y, best_x = np.unravel_index(int(np.argmin(mismatch)), mismatch.shape)
    return (int(best_x), int(best_y)), float(mismatch[best_y, best_x])
