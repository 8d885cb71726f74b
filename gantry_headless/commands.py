from __future__ import annotations

import math
from typing import Tuple

from gantry_headless.controller import GantryController

MOVE_USAGE = "Invalid move command format! Use: move <x> <y> <z> <time>"


def parse_move_arguments(argument: str) -> Tuple[int, int, float, float]:
    parts = argument.split()[1:]
    if len(parts) != 4:
        raise ValueError(MOVE_USAGE)
    try:
        target_x = int(parts[0])
        target_y = int(parts[1])
        target_z = float(parts[2])
        time_s = float(parts[3])
    except ValueError as exc:
        raise ValueError(f"{MOVE_USAGE} ({exc})") from exc
    if not math.isfinite(target_z):
        raise ValueError(f"{MOVE_USAGE} (z must be a finite number)")
    if not math.isfinite(time_s):
        raise ValueError(f"{MOVE_USAGE} (time must be a finite number)")
    if time_s < 0.0:
        raise ValueError(f"{MOVE_USAGE} (time must not be negative)")
    return target_x, target_y, target_z, time_s


def handle_command(controller: GantryController, argument: str) -> Tuple[bool, str]:
    """Run one operator command; every outcome is echoed and returned as (ok, message)."""
    ok, message = _dispatch(controller, argument.strip())
    controller.state.echo(message)
    return ok, message


def _dispatch(controller: GantryController, command: str) -> Tuple[bool, str]:
    if command == "init":
        return controller.start_initialization()
    if command == "unlock":
        return controller.try_unlock()
    if command == "lock":
        return controller.lock()
    if command == "move" or command.startswith("move "):
        try:
            target_x, target_y, target_z, time_s = parse_move_arguments(command)
        except ValueError as exc:
            return False, str(exc)
        return controller.request_move(target_x, target_y, target_z, time_s)
    if command == "abort":
        controller.abort()
        return True, "Aborting movement."
    if command == "heightscan":
        return controller.start_height_scan()
    if command == "debug_closest_grid":
        return controller.debug_closest_grid()
    return False, f"Unknown command: {command}"
