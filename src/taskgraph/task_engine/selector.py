"""Next-task selection.

A task is eligible when it is ``pending`` and every dependency resolves to a
``done`` task. Eligible tasks are ordered by priority, then by how few
unfinished tasks depend on them, then by identifier, which makes the choice
a deterministic total order.
"""

from __future__ import annotations

from typing import Optional

from ..errors import NoneAvailable
from .graph import DependencyGraph
from .ids import TaskId, parse_id
from .model import Task, TaskCollection, TaskStatus
from .status import unmet_dependencies


class NextTaskSelector:
    def __init__(self, collection: TaskCollection, graph: Optional[DependencyGraph] = None) -> None:
        self._collection = collection
        self._graph = graph or DependencyGraph(collection)

    def _is_eligible(self, task: Task) -> bool:
        return task.status == TaskStatus.PENDING and not unmet_dependencies(self._collection, task)

    def _open_dependents(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for tid, task in self._collection.walk():
            if task.is_done:
                continue
            for dep in set(task.dependencies):
                if dep != str(tid):
                    counts[dep] = counts.get(dep, 0) + 1
        return counts

    def eligible_tasks(self) -> list[Task]:
        """Every eligible task, best candidate first."""
        open_dependents = self._open_dependents()
        candidates: list[tuple[int, int, TaskId, Task]] = []
        for tid, task in self._collection.walk():
            if self._is_eligible(task):
                key = str(tid)
                candidates.append((task.priority.rank, open_dependents.get(key, 0), tid, task))
        candidates.sort(key=lambda c: (c[0], c[1], c[2]))
        return [c[3] for c in candidates]

    def select(self) -> Task:
        eligible = self.eligible_tasks()
        if not eligible:
            raise NoneAvailable(self._collection.tag)
        return eligible[0]

    def dependents_blocked_by(self, task_id: str) -> list[str]:
        """Unfinished tasks waiting on *task_id*, in identifier order."""
        key = str(parse_id(task_id))
        nodes = dict((str(tid), task) for tid, task in self._collection.walk())
        return [nid for nid in self._graph.dependents_of(key) if not nodes[nid].is_done]
