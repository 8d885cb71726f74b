from __future__ import annotations

import math
from typing import Optional, Tuple

import numpy as np

from gantry_headless.reachability import ReachabilityMap

UNSCANNED = -1.0
UNREACHABLE = -2.0


class HeightMap:
    """
    Scanned terrain height per grid cell, indexed [y, x].

    Cells hold UNSCANNED, UNREACHABLE or a measured height >= 0. Only the
    scan state machine writes to it.
    """

    def __init__(self, reachability: ReachabilityMap) -> None:
        self._reachability = reachability
        self.heights = np.full((reachability.height, reachability.width), UNSCANNED, dtype=np.float64)
        self.reset()

    def reset(self) -> None:
        self.heights.fill(UNSCANNED)
        self.heights[~self._reachability.grid] = UNREACHABLE

    def get(self, x: int, y: int) -> float:
        return float(self.heights[y, x])

    def is_measured(self, x: int, y: int) -> bool:
        return self.heights[y, x] >= 0.0

    @property
    def measured_count(self) -> int:
        return int(np.count_nonzero(self.heights >= 0.0))

    @property
    def unscanned_count(self) -> int:
        return int(np.count_nonzero(self.heights == UNSCANNED))

    def record(self, x: int, y: int, height: float) -> bool:
        """Store a reading; cells outside the grid or the reachable area are left alone."""
        if not self._reachability.is_cell_reachable(x, y):
            return False
        self.heights[y, x] = max(0.0, float(height))
        return True

    def mark_unobservable(self, x: int, y: int) -> None:
        self.heights[y, x] = UNREACHABLE

    def closest_unmeasured_point(self, from_x: float, from_y: float) -> Optional[Tuple[int, int]]:
        """
        Nearest reachable cell still UNSCANNED, by Euclidean distance. Cells
        marked unobservable are skipped.

        Full-grid scan on every call; ties go to the first cell in row-major
        order.
        """
        candidates = (self.heights == UNSCANNED) & self._reachability.grid
        if not candidates.any():
            return None

        ys, xs = np.indices(self.heights.shape, dtype=np.float64)
        distance = np.sqrt((xs - float(from_x)) ** 2 + (ys - float(from_y)) ** 2)
        distance[~candidates] = np.inf

        best_y, best_x = np.unravel_index(int(np.argmin(distance)), distance.shape)
        return int(best_x), int(best_y)

    def closest_measured_adjacent_point(
        self,
        x: int,
        y: int,
        from_x: float,
        from_y: float,
    ) -> Optional[Tuple[int, int]]:
        """
        Pick the 4-neighbour of (x, y) to scan from.

        Neighbours that already carry a reading win, nearest to (from_x, from_y)
        first. Without any, the last reachable neighbour in (-x, +x, -y, +y)
        order is used. None when no neighbour is reachable.
        """
        best: Optional[Tuple[int, int]] = None
        fallback: Optional[Tuple[int, int]] = None
        best_dist = math.inf

        for adj_x, adj_y in ((x - 1, y), (x + 1, y), (x, y - 1), (x, y + 1)):
            if not self._reachability.is_cell_reachable(adj_x, adj_y):
                continue
            fallback = (adj_x, adj_y)
            if not self.is_measured(adj_x, adj_y):
                continue

            dist = math.sqrt((adj_x - from_x) ** 2 + (adj_y - from_y) ** 2)
            if dist < best_dist:
                best_dist = dist
                best = (adj_x, adj_y)

        return best if best is not None else fallback
