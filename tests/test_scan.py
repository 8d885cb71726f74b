import numpy as np
import pytest

from conftest import build, run_until_idle
from gantry_headless.commands import handle_command
from gantry_headless.height_map import UNREACHABLE, UNSCANNED, HeightMap
from gantry_headless.kinematics import SIDES, Side
from gantry_headless.scan import HeightScanner, SensorSweep
from gantry_headless.state_machine import ControllerState


class FakeSensor:
    def __init__(self, active_from_range=None):
        self.front_extend = 0.0
        self._active_from = active_from_range

    @property
    def is_active(self):
        return self._active_from is not None and self.front_extend >= self._active_from


def test_sweep_reports_detection_height():
    sensors = {side: FakeSensor() for side in SIDES}
    sensors[Side.LEFT] = FakeSensor(active_from_range=1.0)
    sweep = SensorSweep(sensors)
    sweep.start()

    for _ in range(20):
        if sweep.step(3.0):
            break

    assert sweep.complete
    assert sweep.readings[Side.LEFT] == pytest.approx(2.0)
    assert sweep.readings[Side.TOP] == 0.0
    assert sweep.readings[Side.RIGHT] == 0.0


def test_sweep_grows_range_in_half_steps():
    sensors = {side: FakeSensor() for side in SIDES}
    sweep = SensorSweep(sensors)
    sweep.start()

    sweep.step(3.0)
    assert all(sensors[side].front_extend == 0.5 for side in SIDES)
    sweep.step(3.0)
    assert all(sensors[side].front_extend == 1.0 for side in SIDES)
    assert not sweep.complete


def test_sweep_resolves_to_zero_beyond_head_height():
    sensors = {side: FakeSensor() for side in SIDES}
    sweep = SensorSweep(sensors)
    sweep.start()

    steps = 0
    while not sweep.step(1.2):
        steps += 1
        assert steps < 10
    assert all(sweep.readings[side] == 0.0 for side in SIDES)


def test_heightscan_requires_unlock(aligned):
    _, controller = aligned
    ok, msg = handle_command(controller, "heightscan")
    assert not ok
    assert "Safety lock" in msg
    assert not controller.state.height_scan_in_progress


def test_heightscan_covers_every_reachable_cell():
    terrain = np.zeros((17, 17))
    terrain[8, 9] = 1.2
    terrain[6, 7] = 2.6
    sim, controller = build(terrain=terrain)

    assert handle_command(controller, "unlock")[0]
    ok, _ = handle_command(controller, "heightscan")
    assert ok
    ok, msg = handle_command(controller, "heightscan")
    assert not ok and "already" in msg

    run_until_idle(sim, controller, dt_s=0.5, max_ticks=50000)

    heights = controller.height_map.heights
    reachable = controller.reachability.grid
    assert np.all(heights[reachable] >= 0.0)
    assert np.all(heights[~reachable] == UNREACHABLE)

    assert heights[8, 9] <= 1.2
    assert heights[8, 9] > 1.2 - 0.5
    assert heights[6, 7] <= 2.6
    assert heights[6, 7] > 2.6 - 0.5
    assert heights[10, 8] == 0.0

    assert not controller.state.scan_down_in_progress
    assert "Height scan complete." in controller.state.messages
    assert not controller.state.safety_lock


def test_move_rejected_during_scan(aligned):
    _, controller = aligned
    handle_command(controller, "unlock")
    handle_command(controller, "heightscan")
    ok, msg = handle_command(controller, "move 9 9 3 2")
    assert not ok
    assert "Height scan in progress" in msg


class GridOnlyReachability:
    """Reachability table given directly as a boolean [y, x] array."""

    def __init__(self, grid):
        self.grid = grid
        self.height, self.width = grid.shape

    def is_cell_reachable(self, x, y):
        return 0 <= x < self.width and 0 <= y < self.height and bool(self.grid[y, x])


def _scanner_over(grid, start):
    height_map = HeightMap(GridOnlyReachability(grid))
    state = ControllerState.at(*start)
    state.height_scan_in_progress = True
    moves = []

    def queue_move(x, y, z, time_s, description="", on_finish=None):
        moves.append((x, y, z))

    sweep = SensorSweep({side: FakeSensor() for side in SIDES})
    return HeightScanner(state, height_map, sweep, queue_move), height_map, state, moves


def test_unobservable_cell_is_not_picked_again():
    grid = np.zeros((5, 5), dtype=bool)
    grid[2, 2] = True
    height_map = HeightMap(GridOnlyReachability(grid))

    assert height_map.closest_unmeasured_point(2, 2) == (2, 2)
    height_map.mark_unobservable(2, 2)
    assert height_map.closest_unmeasured_point(2, 2) is None


def test_scan_finishes_when_only_cell_is_isolated():
    grid = np.zeros((5, 5), dtype=bool)
    grid[2, 2] = True
    scanner, height_map, state, moves = _scanner_over(grid, (2.0, 2.0, 3.0))

    assert scanner.step()

    assert height_map.get(2, 2) == UNREACHABLE
    assert not state.height_scan_in_progress
    assert state.messages[-1] == "Height scan complete."
    assert moves == []


def test_scan_skips_isolated_cell_and_continues():
    grid = np.zeros((5, 5), dtype=bool)
    grid[2, 2] = True
    grid[3, 4] = True
    grid[4, 4] = True
    scanner, height_map, state, moves = _scanner_over(grid, (2.0, 2.0, 3.0))

    assert not scanner.step()

    assert height_map.get(2, 2) == UNREACHABLE
    assert height_map.get(4, 3) == UNSCANNED
    assert moves == [(4, 4, 3.0)]
    assert state.height_scan_in_progress
