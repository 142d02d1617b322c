"""Hierarchical task identifiers.

An identifier is a non-empty sequence of positive integers rendered with dots
(``"1"``, ``"1.2"``, ``"1.2.3"``). Each segment is a 1-based position: the
first selects a top-level task, every following one a subtask of the task
selected so far. Identifiers compare over the integer sequence, so ``1.2``
sorts before ``1.10`` and a parent sorts before its children.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Union

from ..errors import MalformedIdentifier, NotFound

if TYPE_CHECKING:
    from .model import Task, TaskCollection


@dataclass(frozen=True, order=True)
class TaskId:
    parts: tuple[int, ...]

    def __post_init__(self) -> None:
        if not self.parts:
            raise MalformedIdentifier(self.parts, "identifier is empty")
        for part in self.parts:
            if not isinstance(part, int) or isinstance(part, bool) or part < 1:
                raise MalformedIdentifier(self.parts, f"segment {part!r} is not a positive integer")

    def __str__(self) -> str:
        return ".".join(str(p) for p in self.parts)

    @property
    def depth(self) -> int:
        return len(self.parts)

    @property
    def parent(self) -> "TaskId | None":
        if len(self.parts) == 1:
            return None
        return TaskId(self.parts[:-1])

    @property
    def position(self) -> int:
        """1-based position among siblings."""
        return self.parts[-1]

    def child(self, position: int) -> "TaskId":
        return TaskId(self.parts + (position,))

    def is_ancestor_of(self, other: "TaskId") -> bool:
        return len(other.parts) > len(self.parts) and other.parts[: len(self.parts)] == self.parts


IdLike = Union[str, int, TaskId]


def _parse_segment(text: str, segment: str) -> int:
    if segment == "":
        raise MalformedIdentifier(text, "empty segment")
    if not segment.isascii() or not segment.isdigit():
        raise MalformedIdentifier(text, f"segment {segment!r} is not numeric")
    if len(segment) > 1 and segment.startswith("0"):
        raise MalformedIdentifier(text, f"segment {segment!r} has a leading zero")
    value = int(segment)
    if value < 1:
        raise MalformedIdentifier(text, "segments are 1-based positions")
    return value


def parse_id(value: IdLike) -> TaskId:
    """Parse ``"1.2.3"`` (or ``3``, or an existing :class:`TaskId`)."""
    if isinstance(value, TaskId):
        return value
    if isinstance(value, bool):
        raise MalformedIdentifier(value, "not an identifier")
    if isinstance(value, int):
        if value < 1:
            raise MalformedIdentifier(value, "segments are 1-based positions")
        return TaskId((value,))
    if not isinstance(value, str):
        raise MalformedIdentifier(value, f"expected string, got {type(value).__name__}")
    text = value.strip()
    if not text:
        raise MalformedIdentifier(value, "identifier is empty")
    return TaskId(tuple(_parse_segment(value, seg) for seg in text.split(".")))


def render_id(task_id: TaskId) -> str:
    return str(task_id)


def normalize_id(value: IdLike) -> str:
    """Parse and re-render, e.g. ``" 1.2 "`` -> ``"1.2"``."""
    return render_id(parse_id(value))


def id_sort_key(value: IdLike) -> TaskId:
    return parse_id(value)


def resolve(collection: "TaskCollection", value: IdLike) -> "Task":
    """Return the task at *value*, descending by 1-based position."""
    task_id = parse_id(value)
    siblings = collection.tasks
    task: "Task | None" = None
    for depth, position in enumerate(task_id.parts):
        if position > len(siblings):
            walked = TaskId(task_id.parts[: depth + 1])
            raise NotFound("Task", str(task_id), f"no task at {walked}")
        task = siblings[position - 1]
        siblings = task.subtasks
    assert task is not None
    return task


def try_resolve(collection: "TaskCollection", value: IdLike) -> "Task | None":
    try:
        return resolve(collection, value)
    except (NotFound, MalformedIdentifier):
        return None


def sibling_list(collection: "TaskCollection", value: IdLike) -> "list[Task]":
    """Return the list that holds *value* (top-level tasks or a parent's subtasks)."""
    task_id = parse_id(value)
    parent_id = task_id.parent
    if parent_id is None:
        return collection.tasks
    return resolve(collection, parent_id).subtasks


def iter_tasks(collection: "TaskCollection") -> Iterator[tuple[TaskId, "Task"]]:
    """Yield every task depth-first in document order with its identifier."""
    yield from _walk(None, collection.tasks)


def _walk(prefix: TaskId | None, tasks: "list[Task]") -> Iterator[tuple[TaskId, "Task"]]:
    for pos, task in enumerate(tasks, start=1):
        task_id = TaskId((pos,)) if prefix is None else prefix.child(pos)
        yield task_id, task
        if task.subtasks:
            yield from _walk(task_id, task.subtasks)
