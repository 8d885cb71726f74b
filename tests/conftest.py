from typing import Mapping, Optional, Tuple

import numpy as np
import pytest

from gantry_headless.controller import GantryController
from gantry_headless.devices import SimulatedGantry
from gantry_headless.kinematics import GantryGeometry


def build(
    start: Tuple[float, float, float] = (8.0, 8.0, 3.0),
    drift: Optional[Mapping[str, float]] = None,
    terrain: Optional[np.ndarray] = None,
    geometry: Optional[GantryGeometry] = None,
):
    geometry = geometry or GantryGeometry()
    sim = SimulatedGantry(geometry, start=start, terrain=terrain, drift=drift)
    return sim, GantryController(sim.directory, geometry)


def run_until_idle(sim, controller, dt_s: float = 0.25, max_ticks: int = 20000) -> int:
    """Tick the simulation until no task is pending and no scan is running."""
    for tick in range(max_ticks):
        sim.advance(dt_s)
        controller.tick(dt_s)
        if not controller.scheduler.busy and not controller.state.height_scan_in_progress:
            return tick + 1
    raise AssertionError("controller did not go idle")


@pytest.fixture
def geometry():
    return GantryGeometry()


@pytest.fixture
def aligned():
    return build()
