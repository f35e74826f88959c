"""
Thread-safe in-memory registry of download tasks.
"""

import logging
import threading
from dataclasses import fields as dataclass_fields, replace
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from sailor_cli.models.task import Task, TaskState, can_transition

log = logging.getLogger(__name__)

TASK_FIELDS = frozenset(f.name for f in dataclass_fields(Task))


def _check_fields(values: dict[str, Any]) -> None:
    unknown = set(values) - TASK_FIELDS
    if unknown:
        raise ValueError(f"Unknown task fields: {', '.join(sorted(unknown))}")


class Collection(str, Enum):
    """The two partitions a task can live in."""

    ACTIVE = "active"
    STORED = "stored"


class TaskStore:
    """
    Sole owner of the active and stored task collections.

    Every operation takes the same lock and works on whole tasks, so a poll
    update and a state change can never interleave field by field. Callers
    only ever receive copies; mutations go through the methods below.
    """

    def __init__(
        self,
        active: Iterable[Task] = (),
        stored: Iterable[Task] = (),
    ):
        self._lock = threading.RLock()
        # dicts keep insertion order, which is the display order
        self._collections: dict[Collection, dict[str, Task]] = {
            Collection.ACTIVE: {},
            Collection.STORED: {},
        }
        self.reset(active, stored)

    def reset(self, active: Iterable[Task] = (), stored: Iterable[Task] = ()) -> None:
        """Replaces both collections, e.g. with the tasks restored at startup."""
        with self._lock:
            for items in self._collections.values():
                items.clear()
            for task in active:
                self.add(task, Collection.ACTIVE)
            for task in stored:
                self.add(task, Collection.STORED)

    def _locate(self, content_id: str) -> tuple[Optional[Collection], Optional[Task]]:
        for name, items in self._collections.items():
            if content_id in items:
                return name, items[content_id]
        return None, None

    def add(self, task: Task, collection: Collection = Collection.ACTIVE) -> bool:
        """Adds a copy of ``task``. Returns False if its id is already tracked."""
        with self._lock:
            where, _ = self._locate(task.content_id)
            if where is not None:
                log.debug(f"Task {task.content_id} already tracked in {where.value}.")
                return False
            self._collections[collection][task.content_id] = replace(task)
            return True

    def remove(
        self, content_id: str, collection: Collection = Collection.ACTIVE
    ) -> Optional[Task]:
        """Removes a task from ``collection``; absent ids are a no-op."""
        with self._lock:
            return self._collections[collection].pop(content_id, None)

    def move(self, content_id: str, src: Collection, dst: Collection) -> bool:
        with self._lock:
            task = self._collections[src].pop(content_id, None)
            if task is None:
                return False
            self._collections[dst][content_id] = task
            return True

    def get(self, content_id: str) -> Optional[Task]:
        with self._lock:
            _, task = self._locate(content_id)
            return replace(task) if task else None

    def collection_of(self, content_id: str) -> Optional[Collection]:
        with self._lock:
            where, _ = self._locate(content_id)
            return where

    def update(self, content_id: str, **fields: Any) -> Optional[Task]:
        """
        Writes several fields of one task at once. State changes must go
        through :meth:`transition` so the state machine is enforced.
        """
        if "state" in fields:
            raise ValueError("Use transition() to change a task's state.")
        _check_fields(fields)
        with self._lock:
            _, task = self._locate(content_id)
            if task is None:
                return None
            for key, value in fields.items():
                setattr(task, key, value)
            return replace(task)

    def transition(
        self,
        content_id: str,
        new_state: TaskState,
        *,
        expected: Optional[Iterable[TaskState]] = None,
        **fields: Any,
    ) -> bool:
        """
        Moves a task to ``new_state`` if the edge is legal and, when given,
        its current state is one of ``expected``. Extra ``fields`` are written
        in the same critical section. Returns whether the change happened.
        """
        _check_fields(fields)
        with self._lock:
            _, task = self._locate(content_id)
            if task is None:
                return False
            if expected is not None and task.state not in set(expected):
                return False
            if not can_transition(task.state, new_state):
                log.debug(
                    f"Rejected transition {task.state.value} -> {new_state.value}"
                    f" for {content_id}."
                )
                return False
            for key, value in fields.items():
                setattr(task, key, value)
            task.state = new_state
            return True

    def promote(self, content_id: str) -> Optional[Task]:
        """Atomically flips a complete active task to stored and moves it."""
        with self._lock:
            task = self._collections[Collection.ACTIVE].get(content_id)
            if task is None or task.state is not TaskState.COMPLETE:
                return None
            task.state = TaskState.STORED
            self.move(content_id, Collection.ACTIVE, Collection.STORED)
            return replace(task)

    def active(self) -> list[Task]:
        with self._lock:
            return [replace(t) for t in self._collections[Collection.ACTIVE].values()]

    def stored(self) -> list[Task]:
        with self._lock:
            return [replace(t) for t in self._collections[Collection.STORED].values()]

    def snapshot_all(self) -> tuple[list[Task], list[Task]]:
        """Returns consistent copies of both collections taken under one lock."""
        with self._lock:
            return self.active(), self.stored()

    def for_each_active(self, fn: Callable[[Task], None]) -> None:
        """Calls ``fn`` with a copy of every active task."""
        for task in self.active():
            fn(task)

    def __contains__(self, content_id: str) -> bool:
        with self._lock:
            return self._locate(content_id)[0] is not None

    def __len__(self) -> int:
        with self._lock:
            return sum(len(items) for items in self._collections.values())
