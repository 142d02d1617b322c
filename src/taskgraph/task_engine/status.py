"""Status transitions.

Any status may move to any other. The one guard: a task cannot enter
``done`` while one of its dependencies is not ``done`` unless the caller
overrides it, in which case the result records the unmet dependencies.
A status change never cascades to parents, subtasks or dependents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from ..errors import DependencyNotSatisfied
from .ids import IdLike, normalize_id, resolve, try_resolve
from .model import Task, TaskCollection, TaskStatus


@dataclass(frozen=True)
class StatusChange:
    task_id: str
    old_status: TaskStatus
    new_status: TaskStatus
    changed: bool
    overridden: bool = False
    unmet_dependencies: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "old_status": self.old_status.value,
            "new_status": self.new_status.value,
            "changed": self.changed,
            "overridden": self.overridden,
            "unmet_dependencies": list(self.unmet_dependencies),
        }


def unmet_dependencies(collection: TaskCollection, task: Task) -> list[str]:
    """Dependencies of *task* that are not ``done`` (unresolvable ones included)."""
    unmet: list[str] = []
    for dep_id in task.dependencies:
        dep = try_resolve(collection, dep_id)
        if dep is None or not dep.is_done:
            unmet.append(dep_id)
    return unmet


class StatusMachine:
    def __init__(self, collection: TaskCollection) -> None:
        self._collection = collection

    def can_transition(self, task_id: IdLike, status: Any) -> bool:
        target = TaskStatus.parse(status)
        task = resolve(self._collection, task_id)
        return target != TaskStatus.DONE or not unmet_dependencies(self._collection, task)

    def set_status(self, task_id: IdLike, status: Any, *, override: bool = False) -> StatusChange:
        target = TaskStatus.parse(status)
        key = normalize_id(task_id)
        task = resolve(self._collection, key)
        old = task.status

        unmet: list[str] = []
        if target == TaskStatus.DONE:
            unmet = unmet_dependencies(self._collection, task)
            if unmet and not override:
                raise DependencyNotSatisfied(key, unmet)

        if old == target:
            return StatusChange(
                key, old, target, changed=False, overridden=bool(unmet), unmet_dependencies=tuple(unmet)
            )

        task.transition(target)
        if unmet:
            logger.warning("Task {} marked done with unmet dependencies {} (override)", key, unmet)
        else:
            logger.info("Task {}: {} -> {}", key, old.value, target.value)
        return StatusChange(
            key,
            old,
            target,
            changed=True,
            overridden=bool(unmet),
            unmet_dependencies=tuple(unmet),
        )
