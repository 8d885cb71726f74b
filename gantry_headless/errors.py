from __future__ import annotations


class GantryError(RuntimeError):
    """Base class for controller failures."""


class DeviceNotFoundError(GantryError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Could not find device: {name}")
        self.name = name


class NoReachablePositionError(GantryError):
    pass


class MoveRejectedError(GantryError):
    """Raised by the move primitive when a target is unreachable or the lock is engaged."""
