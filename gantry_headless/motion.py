from __future__ import annotations

import logging
import math
from typing import Callable, List, Optional, Sequence, Tuple

from gantry_headless.devices import SimulatedPiston
from gantry_headless.kinematics import CORNERS
from gantry_headless.tasks import CommitPositionTask, EqualizeGroupTask, MoveWaypointTask, TaskItem

LOGGER = logging.getLogger(__name__)

STEP_SIZE = 2.0  # grid units between waypoints

Point3 = Tuple[float, float, float]


def execute_move_piston(
    piston: SimulatedPiston,
    target_position: float,
    time_s: float,
    speed_limit: float,
) -> float:
    """
    Command one piston towards target_position within time_s.

    The velocity is clamped to speed_limit, in which case the returned time is
    the longer time actually needed. The limit window is narrowed to the span
    between the current and target positions so the piston cannot overshoot.
    """
    delta = float(target_position) - piston.current_position
    actual_time = float(time_s)

    if actual_time <= 0.0:
        velocity = math.copysign(speed_limit, delta) if delta != 0.0 else 0.0
        actual_time = abs(delta) / speed_limit if delta != 0.0 else 0.0
    else:
        velocity = delta / actual_time
        if abs(velocity) > speed_limit:
            velocity = math.copysign(speed_limit, velocity)
            actual_time = delta / velocity

    if velocity < 0.0:
        piston.min_limit = float(target_position)
        piston.max_limit = piston.current_position
    else:
        piston.min_limit = piston.current_position
        piston.max_limit = float(target_position)
    piston.velocity = velocity
    return actual_time


def execute_equalize_group(
    pistons: Sequence[SimulatedPiston],
    time_s: float,
    speed_limit: float,
) -> float:
    """Drive every piston of a lockstep group to the group's mean position."""
    if not pistons:
        return 0.0
    average = sum(p.current_position for p in pistons) / len(pistons)
    real_time = 0.0
    for piston in pistons:
        real_time = max(real_time, execute_move_piston(piston, average, time_s, speed_limit))
    return real_time


def travel_points(start: Point3, target: Point3, step_size: float = STEP_SIZE) -> List[Point3]:
    """
    Split a straight move into ceil(planar distance / step_size) waypoints.

    Z is interpolated with the same parameter. The final waypoint is the
    target itself. A move without planar travel yields no waypoints.
    """
    start_x, start_y, start_z = start
    target_x, target_y, target_z = target
    delta_x = target_x - start_x
    delta_y = target_y - start_y
    delta_z = target_z - start_z

    steps = int(math.ceil(math.hypot(delta_x, delta_y) / step_size))
    points: List[Point3] = []
    for i in range(1, steps + 1):
        t = i / steps
        points.append((start_x + delta_x * t, start_y + delta_y * t, start_z + delta_z * t))
    if points:
        points[-1] = (float(target_x), float(target_y), float(target_z))
    return points


class MotionPlanner:
    """Turns equalization requests and long moves into queued task items."""

    def __init__(self, enqueue: Callable[[TaskItem], None], step_size: float = STEP_SIZE) -> None:
        self._enqueue = enqueue
        self._step_size = step_size

    def queue_equalize_all(self, time_s: float) -> None:
        for corner in CORNERS:
            self._enqueue(
                EqualizeGroupTask(
                    corner=corner,
                    vertical=True,
                    time_s=time_s,
                    description=f"Equalizing vertical pistons at {corner.name} in target time {time_s} s",
                )
            )
            self._enqueue(
                EqualizeGroupTask(
                    corner=corner,
                    vertical=False,
                    time_s=time_s,
                    description=f"Equalizing piston group: {corner.name}",
                )
            )

    def queue_move(
        self,
        start: Point3,
        target: Point3,
        time_s: float,
        description: str = "",
        on_finish: Optional[Callable[[], None]] = None,
    ) -> List[TaskItem]:
        """
        Queue one waypoint task per travel point and a final commit task.

        Each waypoint gets an equal share of time_s. When there is no planar
        travel a single settle waypoint at the target still drives the pistons
        to the committed position.
        """
        points = travel_points(start, target, self._step_size)
        if not points:
            points = [(float(target[0]), float(target[1]), float(target[2]))]
        per_point_time = time_s / len(points)

        LOGGER.info(
            "Queuing move from (%s, %s, %s) to (%s, %s, %s) in %s s over %d points",
            *start, *target, time_s, len(points),
        )

        queued: List[TaskItem] = []
        for i, (px, py, pz) in enumerate(points, start=1):
            default = f"moving to midpoint ({px:.2f}, {py:.2f}, {pz:.2f}) towards ({target[0]}, {target[1]}, {target[2]})"
            queued.append(
                MoveWaypointTask(
                    x=px,
                    y=py,
                    z=pz,
                    time_s=per_point_time,
                    description=f"({i}/{len(points)}) {description or default}",
                )
            )
        queued.append(
            CommitPositionTask(
                x=float(target[0]),
                y=float(target[1]),
                z=float(target[2]),
                on_finish=on_finish,
            )
        )
        for task in queued:
            self._enqueue(task)
        return queued
