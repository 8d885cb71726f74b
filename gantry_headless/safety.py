from __future__ import annotations

from typing import Sequence

from gantry_headless.devices import ActuatorRig, SimulatedPiston
from gantry_headless.kinematics import CORNERS, GantryGeometry, piston_extensions, vertical_extension

GROUP_TOLERANCE = 0.01
ACCURACY_THRESHOLD = 0.99


def calculate_accuracy(rig: ActuatorRig, geometry: GantryGeometry, x: float, y: float, z: float) -> float:
    """
    1 - (sum of |actual - required| over all pistons) / (sum of |required|).

    1.0 means every piston sits exactly where (x, y, z) needs it; the value is
    unbounded below.
    """
    total_required = 0.0
    error = 0.0
    per_piston_height = vertical_extension(geometry, z)
    extensions = piston_extensions(geometry, x, y)
    for corner in CORNERS:
        target = extensions[corner]
        for piston in rig.horizontal[corner]:
            total_required += abs(target)
            error += abs(piston.current_position - target)
        for piston in rig.vertical[corner]:
            total_required += abs(per_piston_height)
            error += abs(piston.current_position - per_piston_height)
    if total_required == 0.0:
        return 1.0 if error == 0.0 else float("-inf")
    return 1.0 - error / total_required


def group_aligned(pistons: Sequence[SimulatedPiston], tolerance: float = GROUP_TOLERANCE) -> bool:
    if not pistons:
        return True
    average = sum(p.current_position for p in pistons) / len(pistons)
    return all(abs(p.current_position - average) <= tolerance for p in pistons)


def needs_initialization(rig: ActuatorRig, geometry: GantryGeometry, x: float, y: float, z: float) -> bool:
    for group in rig.piston_groups():
        if not group_aligned(group):
            return True
    return calculate_accuracy(rig, geometry, x, y, z) < ACCURACY_THRESHOLD
