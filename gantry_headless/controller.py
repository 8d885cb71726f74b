from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, Optional, Tuple

from gantry_headless import display
from gantry_headless.devices import ActuatorRig, DeviceDirectory, bind_rig
from gantry_headless.errors import MoveRejectedError, NoReachablePositionError
from gantry_headless.height_map import HeightMap
from gantry_headless.kinematics import (
    CORNERS,
    GantryGeometry,
    closest_reachable_point,
    height_from_vertical_extensions,
    piston_extensions,
    vertical_extension,
)
from gantry_headless.motion import MotionPlanner, execute_equalize_group, execute_move_piston
from gantry_headless.reachability import ReachabilityMap
from gantry_headless.safety import calculate_accuracy, needs_initialization
from gantry_headless.scan import HeightScanner, SensorSweep
from gantry_headless.state_machine import ControllerState, GridPosition
from gantry_headless.tasks import (
    CommitPositionTask,
    EqualizeGroupTask,
    MoveWaypointTask,
    TaskItem,
    TaskScheduler,
)

LOGGER = logging.getLogger(__name__)

INIT_STEP_TIME_S = 1.0


class GantryController:
    """
    Welder head positioning controller.

    Binds the rig, builds the reachability map and recovers the logical
    position from live piston readings at construction. After that all work
    happens inside `tick`, one scheduler step at a time.
    """

    def __init__(self, directory: DeviceDirectory, geometry: GantryGeometry) -> None:
        self.geometry = geometry
        self.rig: ActuatorRig = bind_rig(directory, geometry)
        self.reachability = ReachabilityMap(geometry)
        self.height_map = HeightMap(self.reachability)

        start_z = height_from_vertical_extensions(geometry, self.rig.vertical_positions())
        found = closest_reachable_point(geometry, self.rig.horizontal_positions())
        if found is None:
            raise NoReachablePositionError("No reachable welder position found!")
        (start_x, start_y), mismatch = found
        LOGGER.info(
            "Recovered welder position (%d, %d, %.2f), extension mismatch %.4f",
            start_x, start_y, start_z, mismatch,
        )

        self.state = ControllerState.at(float(start_x), float(start_y), start_z)
        self.scheduler = TaskScheduler(self._execute_task, self._finish_task, self._idle)
        self.planner = MotionPlanner(self.scheduler.enqueue)
        self.scanner = HeightScanner(self.state, self.height_map, SensorSweep(self.rig.sensors), self.queue_move)

    @property
    def task_time_left(self) -> float:
        return self.scheduler.time_left_s

    # ---- tick -------------------------------------------------------------

    def tick(self, dt_s: float) -> None:
        try:
            self.scheduler.tick(dt_s)
        except MoveRejectedError as exc:
            self.state.echo(f"Move rejected, aborting: {exc}")
            self.abort()
        self.update_status_lights()
        self.render()

    def _execute_task(self, task: TaskItem) -> float:
        if isinstance(task, EqualizeGroupTask):
            if task.vertical:
                return execute_equalize_group(
                    self.rig.vertical[task.corner], task.time_s, self.geometry.vertical_speed_limit_mps
                )
            return execute_equalize_group(
                self.rig.horizontal[task.corner], task.time_s, self.geometry.horizontal_speed_limit_mps
            )
        if isinstance(task, MoveWaypointTask):
            return self.execute_move_to(task.x, task.y, task.z, task.time_s)
        if isinstance(task, CommitPositionTask):
            return 0.0
        raise TypeError(f"Unsupported task type: {type(task).__name__}")

    def _finish_task(self, task: TaskItem) -> None:
        if not isinstance(task, CommitPositionTask):
            return
        self.state.position = GridPosition(task.x, task.y, task.z)
        if task.on_finish is not None:
            task.on_finish()

    def _idle(self) -> None:
        if self.state.height_scan_in_progress:
            self.scanner.step()

    # ---- motion primitives ------------------------------------------------

    def execute_move_to(self, x: float, y: float, z: float, time_s: float) -> float:
        """Command every piston towards (x, y, z); returns the slowest piston's time."""
        if not self.reachability.is_reachable(x, y, z):
            raise MoveRejectedError(f"Target position ({x}, {y}, {z}) is not reachable!")
        if self.state.safety_lock:
            raise MoveRejectedError("Safety lock is enabled, cannot move welder! Unlock to proceed.")

        horizontal_limit = self.geometry.horizontal_speed_limit_mps
        vertical_limit = self.geometry.vertical_speed_limit_mps
        per_piston_height = vertical_extension(self.geometry, z)
        extensions = piston_extensions(self.geometry, x, y)

        max_time = 0.0
        for corner in CORNERS:
            for piston in self.rig.horizontal[corner]:
                max_time = max(max_time, execute_move_piston(piston, extensions[corner], time_s, horizontal_limit))
            for piston in self.rig.vertical[corner]:
                max_time = max(max_time, execute_move_piston(piston, per_piston_height, time_s, vertical_limit))

        self.state.target = GridPosition(x, y, z)
        return max_time

    def queue_move(
        self,
        x: float,
        y: float,
        z: float,
        time_s: float,
        description: str = "",
        on_finish: Optional[Callable[[], None]] = None,
    ) -> None:
        self.planner.queue_move(self.state.position.as_tuple(), (x, y, z), time_s, description, on_finish)

    def abort(self) -> None:
        self.rig.stop_all()
        self.state.snap_target_to_position()
        self.state.height_scan_in_progress = False
        self.state.scan_down_in_progress = False
        self.scheduler.clear()

    # ---- safety -----------------------------------------------------------

    def calculate_accuracy(self, x: float, y: float, z: float) -> float:
        return calculate_accuracy(self.rig, self.geometry, x, y, z)

    def needs_initialization(self) -> bool:
        pos = self.state.position
        return needs_initialization(self.rig, self.geometry, pos.x, pos.y, pos.z)

    def try_unlock(self) -> Tuple[bool, str]:
        if self.needs_initialization():
            return False, "Cannot unlock safety lock: Pistons need initialization! Run 'init' command first."
        self.state.safety_lock = False
        return True, "Safety lock disabled."

    def lock(self) -> Tuple[bool, str]:
        self.abort()
        self.state.safety_lock = True
        return True, "Safety lock enabled."

    def start_initialization(self) -> Tuple[bool, str]:
        if self.state.height_scan_in_progress:
            return False, "Cannot initialize pistons: Height scan in progress!"
        if not self.needs_initialization():
            return True, "Pistons are already initialized."

        pos = self.state.position
        self.planner.queue_equalize_all(INIT_STEP_TIME_S)
        self.state.safety_lock = False
        self.queue_move(
            float(round(pos.x)),
            float(round(pos.y)),
            pos.z,
            INIT_STEP_TIME_S,
            description="Final move to current welder position after piston equalization",
            on_finish=self._finish_initialization,
        )
        return True, "Queued piston initialization."

    def _finish_initialization(self) -> None:
        self.state.safety_lock = True
        if self.needs_initialization():
            self.state.echo("Piston initialization failed: Pistons are still misaligned!")
        else:
            self.state.echo("Pistons successfully initialized.")

    # ---- operator requests ------------------------------------------------

    def request_move(self, x: float, y: float, z: float, time_s: float) -> Tuple[bool, str]:
        if self.state.safety_lock:
            return False, "Cannot move welder: Safety lock is enabled! Run 'unlock' to proceed."
        if self.state.height_scan_in_progress:
            return False, "Cannot move welder: Height scan in progress!"
        if not math.isfinite(time_s) or time_s < 0.0:
            return False, f"Cannot move welder: invalid move time {time_s}!"
        if not self.reachability.is_reachable(x, y, z):
            return False, f"Target position ({x}, {y}, {z}) is not reachable!"
        self.queue_move(x, y, z, time_s)
        return True, f"Queued move command: move {x} {y} {z} {time_s}"

    def start_height_scan(self) -> Tuple[bool, str]:
        if self.state.safety_lock:
            return False, "Cannot start scan: Safety lock is enabled! Run 'unlock' to proceed."
        if self.state.height_scan_in_progress:
            return False, "Height scan already in progress!"
        self.scanner.start()
        return True, "Initiated height scan process."

    def debug_closest_grid(self) -> Tuple[bool, str]:
        found = closest_reachable_point(self.geometry, self.rig.horizontal_positions())
        if found is None:
            return False, "DebugFindClosestGrid: no valid grid point found (all extensions out of range)"
        (best_x, best_y), mismatch = found
        pos = self.state.position
        grid_distance = math.hypot(best_x - pos.x, best_y - pos.y)
        return True, (
            f"DebugFindClosestGrid: closest = ({best_x}, {best_y}) with mismatch {mismatch:.4f}; "
            f"current welder pos = ({pos.x}, {pos.y}), grid distance = {grid_distance:.2f}"
        )

    # ---- output -----------------------------------------------------------

    def update_status_lights(self) -> None:
        color = display.status_color(self.state.safety_lock, self.task_time_left)
        for light in self.rig.lights:
            light.color = color

    def map_lines(self):
        return display.render_map(self.reachability, self.height_map, self.state)

    def debug_lines(self):
        current = self.scheduler.current
        return display.render_debug(
            state=self.state,
            accuracy=self.calculate_accuracy(*self.state.position.as_tuple()),
            target_accuracy=self.calculate_accuracy(*self.state.target.as_tuple()),
            queue_length=len(self.scheduler.queue),
            current_description=current.description if current is not None else "",
            task_time_left=self.task_time_left,
            sensor_range=self.scanner.sweep.max_range,
            sensor_readings=self.scanner.readings_text(),
        )

    def render(self) -> None:
        if self.rig.map_surface is not None:
            self.rig.map_surface.write_text("\n".join(self.map_lines()) + "\n")
        if self.rig.debug_surface is not None:
            self.rig.debug_surface.write_text("\n".join(self.debug_lines()) + "\n")

    def snapshot(self) -> Dict[str, Any]:
        snapshot = self.state.snapshot()
        current = self.scheduler.current
        snapshot["task"] = {
            "queue_length": len(self.scheduler.queue),
            "time_left_s": self.task_time_left,
            "current": current.description if current is not None and self.task_time_left > 0 else "",
            "pending": self.scheduler.queue.snapshot(),
        }
        snapshot["accuracy"] = self.calculate_accuracy(*self.state.position.as_tuple())
        snapshot["needs_initialization"] = self.needs_initialization()
        snapshot["height_map"] = {
            "measured": self.height_map.measured_count,
            "unscanned": self.height_map.unscanned_count,
            "reachable": self.reachability.reachable_count,
        }
        return snapshot
