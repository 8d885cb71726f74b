from __future__ import annotations

from typing import List, Optional, Tuple

from gantry_headless.height_map import HeightMap
from gantry_headless.reachability import ReachabilityMap
from gantry_headless.state_machine import ControllerState

LOCKED_COLOR = (255, 0, 0)
MOVING_COLOR = (255, 255, 0)
IDLE_COLOR = (0, 255, 0)


def status_color(safety_lock: bool, task_time_left_s: float) -> Tuple[int, int, int]:
    if safety_lock:
        return LOCKED_COLOR
    if task_time_left_s > 0.0:
        return MOVING_COLOR
    return IDLE_COLOR


def render_map(reachability: ReachabilityMap, height_map: HeightMap, state: ControllerState) -> List[str]:
    """W = head, T = in-flight target, digits = measured height, . = reachable, - = unreachable."""
    lines = ["Welder Reachability Map"]
    for y in range(reachability.height):
        cells: List[str] = []
        for x in range(reachability.width):
            if x == state.position.x and y == state.position.y:
                cells.append("W")
            elif x == state.target.x and y == state.target.y:
                cells.append("T")
            elif reachability.is_cell_reachable(x, y):
                if height_map.is_measured(x, y):
                    cells.append(str(int(round(height_map.get(x, y)))))
                else:
                    cells.append(".")
            else:
                cells.append("-")
        lines.append(" ".join(cells))
    return lines


def render_debug(
    state: ControllerState,
    accuracy: float,
    target_accuracy: float,
    queue_length: int,
    current_description: str,
    task_time_left: float,
    sensor_range: float,
    sensor_readings: Optional[str],
) -> List[str]:
    pos = state.position
    target = state.target
    lines = [
        "Welder Control Debug Screen",
        f"Safety Lock: {'ENGAGED' if state.safety_lock else 'DISENGAGED'}",
        f"Welder Position: ({pos.x:g}, {pos.y:g}, {pos.z:.2f})",
        f"Accuracy to Pos: {accuracy:.2%}",
        f"Welder Target:   ({target.x:g}, {target.y:g}, {target.z:.2f})",
        f"Accuracy to Target: {target_accuracy:.2%}",
        f"Task Queue: {queue_length} tasks",
    ]
    if task_time_left > 0.0:
        lines.append(f"Current Task: {current_description}")
        lines.append(f"Time Left: {task_time_left:.3f} s")
    elif state.height_scan_in_progress:
        lines.append("Height scan in progress:")
        lines.append(f"Sensor Range: {sensor_range:.2f}")
        lines.append(f"Sensor Readings: {sensor_readings or ''}")
    else:
        lines.append("System idle")
    return lines
