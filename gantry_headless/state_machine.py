from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict

LOGGER = logging.getLogger(__name__)


@dataclass
class GridPosition:
    x: float
    y: float
    z: float

    def as_tuple(self):
        return self.x, self.y, self.z


@dataclass
class ControllerState:
    """
    The one mutable controller record.

    `position` is the last confirmed logical position, `target` the in-flight
    one. Only task-finish callbacks and command handlers change it.
    """

    position: GridPosition
    target: GridPosition
    safety_lock: bool = True
    height_scan_in_progress: bool = False
    scan_down_in_progress: bool = False
    status_text: str = "Ready. Run 'init' then 'unlock' before moving."
    messages: Deque[str] = field(default_factory=lambda: deque(maxlen=50))

    @classmethod
    def at(cls, x: float, y: float, z: float) -> "ControllerState":
        return cls(position=GridPosition(x, y, z), target=GridPosition(x, y, z))

    @property
    def phase(self) -> str:
        if self.safety_lock:
            return "locked"
        if self.height_scan_in_progress:
            return "scanning"
        return "unlocked"

    def echo(self, message: str) -> None:
        LOGGER.info(message)
        self.messages.append(message)
        self.status_text = message

    def snap_target_to_position(self) -> None:
        self.target = GridPosition(self.position.x, self.position.y, self.position.z)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "status_text": self.status_text,
            "safety_lock": self.safety_lock,
            "height_scan_in_progress": self.height_scan_in_progress,
            "scan_down_in_progress": self.scan_down_in_progress,
            "position": {"x": self.position.x, "y": self.position.y, "z": self.position.z},
            "target": {"x": self.target.x, "y": self.target.y, "z": self.target.z},
            "messages": list(self.messages),
        }
