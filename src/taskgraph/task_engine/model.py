"""Task model for the hierarchical task graph.

Tasks nest through ``subtasks``; a task's identifier is always its parent's
identifier plus its own 1-based position, so the tree needs no back-pointers.
Serialization uses the camelCase keys of the persisted document and keeps any
key it does not recognise so newer documents survive a round-trip.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional

from ..errors import InvalidPriority, InvalidStatus
from ..utils import _now_iso
from .ids import TaskId, iter_tasks, normalize_id, parse_id


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    DEFERRED = "deferred"
    CANCELLED = "cancelled"
    BLOCKED = "blocked"

    @classmethod
    def parse(cls, value: Any) -> "TaskStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidStatus(value, [s.value for s in cls]) from None


class TaskPriority(str, Enum):
    """Priority is a tie-break for selection, never a correctness constraint."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"critical": 0, "high": 1, "medium": 2, "low": 3}[self.value]

    @classmethod
    def parse(cls, value: Any) -> "TaskPriority":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidPriority(value, [p.value for p in cls]) from None


# Document key -> attribute name, in the order keys are written.
_FIELD_KEYS: dict[str, str] = {
    "id": "id",
    "title": "title",
    "description": "description",
    "status": "status",
    "priority": "priority",
    "dependencies": "dependencies",
    "details": "details",
    "testStrategy": "test_strategy",
    "subtasks": "subtasks",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _dedupe(ids: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in ids:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def _dependency_order(task_id: Any, raw: Any, dependencies: list[str]) -> dict[str, int]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"task {task_id}: 'dependencyOrder' must be an object")
    order: dict[str, int] = {}
    for key, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"task {task_id}: dependencyOrder[{key!r}] must be an integer")
        dep = normalize_id(key)
        if dep in dependencies:
            order[dep] = value
    return order


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------

@dataclass
class Task:
    id: str = ""
    title: str = ""
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    dependencies: list[str] = field(default_factory=list)
    details: str = ""
    test_strategy: str = ""
    subtasks: list["Task"] = field(default_factory=list)
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)
    # Insertion sequence of each dependency edge, persisted as "dependencyOrder".
    dependency_order: dict[str, int] = field(default_factory=dict)

    # Keys the document carried that this model does not know about.
    extra: dict[str, Any] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for key, attr in _FIELD_KEYS.items():
            value = getattr(self, attr)
            if isinstance(value, Enum):
                value = value.value
            elif attr == "subtasks":
                value = [t.to_dict() for t in value]
            elif attr == "dependencies":
                value = list(value)
            data[key] = value
        order = {d: self.dependency_order[d] for d in self.dependencies if d in self.dependency_order}
        if order:
            data["dependencyOrder"] = order
        for key, value in self.extra.items():
            if key not in data:
                data[key] = copy.deepcopy(value)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Deserialize one task (and its subtree).

        Raises ``ValueError`` subclasses for bad identifiers, statuses or
        priorities; callers attach the document path.
        """
        if not isinstance(data, dict):
            raise ValueError(f"expected task object, got {type(data).__name__}")
        d = dict(data)
        raw_id = d.pop("id", None)
        if raw_id is None:
            raise ValueError(f"task is missing 'id' (title={d.get('title')!r})")
        status_raw = d.pop("status", None)
        priority_raw = d.pop("priority", None)
        deps_raw = d.pop("dependencies", None) or []
        subtasks_raw = d.pop("subtasks", None) or []
        if not isinstance(deps_raw, list):
            raise ValueError(f"task {raw_id}: 'dependencies' must be an array")
        if not isinstance(subtasks_raw, list):
            raise ValueError(f"task {raw_id}: 'subtasks' must be an array")
        now = _now_iso()
        task = cls(
            id=normalize_id(raw_id),
            title=_text(d.pop("title", "")),
            description=_text(d.pop("description", "")),
            status=TaskStatus.PENDING if status_raw is None else TaskStatus.parse(status_raw),
            priority=TaskPriority.MEDIUM if priority_raw is None else TaskPriority.parse(priority_raw),
            dependencies=_dedupe([normalize_id(dep) for dep in deps_raw]),
            details=_text(d.pop("details", "")),
            test_strategy=_text(d.pop("testStrategy", "")),
            subtasks=[cls.from_dict(sub) for sub in subtasks_raw],
            created_at=_text(d.pop("createdAt", None) or now),
            updated_at=_text(d.pop("updatedAt", None) or now),
        )
        task.dependency_order = _dependency_order(raw_id, d.pop("dependencyOrder", None), task.dependencies)
        task.extra = d
        return task

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def touch(self) -> None:
        """Bump ``updated_at`` to now."""
        self.updated_at = _now_iso()

    def transition(self, new_status: TaskStatus) -> None:
        self.status = new_status
        self.touch()

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    @property
    def task_id(self) -> TaskId:
        return parse_id(self.id)


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------

@dataclass
class TaskCollection:
    """Ordered top-level tasks of one tag."""

    tag: str
    tasks: list[Task] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"tasks": [t.to_dict() for t in self.tasks]}
        for key, value in self.extra.items():
            if key not in data:
                data[key] = copy.deepcopy(value)
        return data

    @classmethod
    def from_dict(cls, tag: str, data: dict[str, Any]) -> "TaskCollection":
        d = dict(data)
        if "tasks" not in d:
            raise ValueError("document has no 'tasks' array")
        raw_tasks = d.pop("tasks")
        if not isinstance(raw_tasks, list):
            raise ValueError(f"'tasks' must be an array, got {type(raw_tasks).__name__}")
        return cls(tag=tag, tasks=[Task.from_dict(t) for t in raw_tasks], extra=d)

    def walk(self) -> Iterator[tuple[TaskId, Task]]:
        return iter_tasks(self)

    def all_ids(self) -> list[str]:
        return [str(tid) for tid, _ in self.walk()]

    def position_mismatches(self) -> list[tuple[str, str]]:
        """``(stored_id, expected_id)`` for every task not at its own position."""
        return [(task.id, str(tid)) for tid, task in self.walk() if task.id != str(tid)]

    def renumber(self) -> dict[str, str]:
        """Reassign positional ids and return ``{old_id: new_id}`` for changed tasks."""
        moved: dict[str, str] = {}
        for tid, task in self.walk():
            new_id = str(tid)
            if task.id != new_id:
                moved[task.id] = new_id
                task.id = new_id
        return moved

    def copy(self, tag: Optional[str] = None) -> "TaskCollection":
        clone = copy.deepcopy(self)
        if tag is not None:
            clone.tag = tag
        return clone
