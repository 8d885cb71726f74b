from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional, Union

from gantry_headless.kinematics import Corner


@dataclass
class EqualizeGroupTask:
    corner: Corner
    vertical: bool
    time_s: float
    description: str = ""


@dataclass
class MoveWaypointTask:
    x: float
    y: float
    z: float
    time_s: float
    description: str = ""


@dataclass
class CommitPositionTask:
    x: float
    y: float
    z: float
    on_finish: Optional[Callable[[], None]] = None
    description: str = "Committing position"


TaskItem = Union[EqualizeGroupTask, MoveWaypointTask, CommitPositionTask]


class TaskQueue:
    """FIFO of pending tasks. Insertion order is execution order."""

    def __init__(self) -> None:
        self._items: Deque[TaskItem] = deque()

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def enqueue(self, task: TaskItem) -> None:
        self._items.append(task)

    def dequeue(self) -> TaskItem:
        return self._items.popleft()

    def clear(self) -> None:
        self._items.clear()

    def snapshot(self) -> List[str]:
        return [task.description for task in self._items]


class TaskScheduler:
    """
    Cooperative single-threaded pacing of queued tasks against wall-clock time.

    Each tick does exactly one of: count down the current task's timer,
    start the next queued task, or run the idle hook (a height scan step).
    `execute` returns the seconds the issued commands need; `finish` runs once
    when that time has elapsed, or immediately for zero-duration tasks.
    """

    def __init__(
        self,
        execute: Callable[[TaskItem], float],
        finish: Callable[[TaskItem], None],
        idle: Optional[Callable[[], None]] = None,
    ) -> None:
        self.queue = TaskQueue()
        self.current: Optional[TaskItem] = None
        self.time_left_s = 0.0
        self._execute = execute
        self._finish = finish
        self._idle = idle

    @property
    def busy(self) -> bool:
        return self.time_left_s > 0.0 or bool(self.queue)

    def enqueue(self, task: TaskItem) -> None:
        self.queue.enqueue(task)

    def clear(self) -> None:
        self.queue.clear()
        self.time_left_s = 0.0

    def tick(self, dt_s: float) -> str:
        """Advance by one tick of measured duration dt_s; returns what the tick did."""
        if self.time_left_s > 0.0:
            self.time_left_s -= max(0.0, float(dt_s))
            if self.time_left_s <= 0.0:
                self.time_left_s = 0.0
                self._finish_current()
            return "countdown"

        if self.queue:
            self.current = self.queue.dequeue()
            self.time_left_s = max(0.0, float(self._execute(self.current)))
            if self.time_left_s == 0.0:
                self._finish_current()
            return "execute"

        if self._idle is not None:
            self._idle()
            return "idle"
        return "none"

    def _finish_current(self) -> None:
        task = self.current
        if task is None:
            return
        self._finish(task)
