from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from gantry_headless.devices import SimulatedSensor
from gantry_headless.height_map import HeightMap
from gantry_headless.kinematics import SIDE_OFFSETS, SIDES, Side
from gantry_headless.state_machine import ControllerState

LOGGER = logging.getLogger(__name__)

SENSOR_STEP = 0.5
NO_READING = -1.0
SCAN_MOVE_TIME_S = 1.0

QueueMove = Callable[..., None]


class SensorSweep:
    """
    Per-position sweep of the four side sensors.

    Every step, each side still without a reading either reports a detection
    (height = z - range) or grows its range by SENSOR_STEP. A range beyond
    the head height resolves to 0, meaning nothing within reach.
    """

    def __init__(self, sensors: Dict[Side, SimulatedSensor]) -> None:
        self._sensors = sensors
        self.readings: Dict[Side, float] = {side: NO_READING for side in SIDES}
        self.ranges: Dict[Side, float] = {side: 0.0 for side in SIDES}

    def start(self) -> None:
        for side in SIDES:
            self.readings[side] = NO_READING
            self.ranges[side] = 0.0
            self._sensors[side].front_extend = 0.0

    @property
    def complete(self) -> bool:
        return all(self.readings[side] >= 0.0 for side in SIDES)

    @property
    def max_range(self) -> float:
        return max(self.ranges.values())

    def step(self, head_z: float) -> bool:
        for side in SIDES:
            if self.readings[side] >= 0.0:
                continue
            sensor = self._sensors[side]
            if sensor.is_active:
                self.readings[side] = max(0.0, head_z - self.ranges[side])
                continue

            self.ranges[side] += SENSOR_STEP
            if self.ranges[side] > head_z:
                self.readings[side] = 0.0
                continue
            sensor.front_extend = self.ranges[side]
        return self.complete


class HeightScanner:
    """
    Frontier-expansion height scan.

    Repeatedly targets the nearest unscanned reachable cell, moves the head
    to a neighbour of it (one with a reading if possible) and sweeps the side
    sensors there, until no reachable cell is left unscanned.
    """

    def __init__(
        self,
        state: ControllerState,
        height_map: HeightMap,
        sweep: SensorSweep,
        queue_move: QueueMove,
    ) -> None:
        self._state = state
        self._height_map = height_map
        self.sweep = sweep
        self._queue_move = queue_move

    def start(self) -> None:
        self._state.height_scan_in_progress = True
        self._height_map.reset()
        self.start_sweep()

    def start_sweep(self) -> None:
        self.sweep.start()
        self._state.scan_down_in_progress = True

    def step(self) -> bool:
        """Advance the scan by one step; True once the scan has finished."""
        state = self._state
        if state.scan_down_in_progress:
            if not self.sweep.step(state.position.z):
                return False
            self._record_readings()
            state.scan_down_in_progress = False

        while True:
            next_point = self._height_map.closest_unmeasured_point(state.position.x, state.position.y)
            if next_point is None:
                state.height_scan_in_progress = False
                state.echo("Height scan complete.")
                return True

            adjacent = self._height_map.closest_measured_adjacent_point(
                next_point[0],
                next_point[1],
                state.position.x,
                state.position.y,
            )
            if adjacent is not None:
                break
            LOGGER.warning("Cell %s has no reachable neighbour to scan from; skipping it.", next_point)
            self._height_map.mark_unobservable(*next_point)

        self._queue_move(
            adjacent[0],
            adjacent[1],
            state.position.z,
            SCAN_MOVE_TIME_S,
            description=f"Moving to adjacent measured point ({adjacent[0]}, {adjacent[1]})",
            on_finish=self.start_sweep,
        )
        return False

    def _record_readings(self) -> None:
        head_x = int(round(self._state.position.x))
        head_y = int(round(self._state.position.y))
        for side in SIDES:
            dx, dy = SIDE_OFFSETS[side]
            self._height_map.record(head_x + dx, head_y + dy, self.sweep.readings[side])

    def readings_text(self) -> Optional[str]:
        if not self._state.height_scan_in_progress:
            return None
        return ", ".join(f"{self.sweep.readings[side]:.2f}" for side in SIDES)
