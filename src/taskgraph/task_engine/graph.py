"""Dependency graph over every task identifier of a collection.

Nodes are the identifiers of all tasks at every depth; an edge points from a
dependent to one of its prerequisites. The graph writes through to the
tasks' ``dependencies`` lists so the collection stays the single source of
truth, and rebuilds its adjacency lazily after each mutation.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from loguru import logger

from ..constants import MAX_FIX_ITERATIONS
from ..errors import Cycle, MissingReference, SelfDependency, TaskGraphError, UnresolvableCycle
from ..utils import _timestamp_key
from .ids import IdLike, TaskId, normalize_id, parse_id, resolve
from .model import Task, TaskCollection

_UNVISITED, _VISITING, _VISITED = 0, 1, 2


class IssueKind(str, Enum):
    SELF_DEPENDENCY = "self_dependency"
    MISSING_REFERENCE = "missing_reference"
    CYCLE = "cycle"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class ValidationIssue:
    kind: IssueKind
    task_id: str
    # Cycle path for cycles, the offending prerequisite otherwise.
    ids: tuple[str, ...]

    @property
    def message(self) -> str:
        return str(self.to_error())

    def to_error(self) -> TaskGraphError:
        if self.kind == IssueKind.SELF_DEPENDENCY:
            return SelfDependency(self.task_id)
        if self.kind == IssueKind.MISSING_REFERENCE:
            return MissingReference(self.task_id, self.ids[0])
        return Cycle(self.ids)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "task_id": self.task_id, "ids": list(self.ids), "message": self.message}


@dataclass(frozen=True)
class RemovedEdge:
    dependent: str
    prerequisite: str
    reason: IssueKind

    def to_dict(self) -> dict[str, Any]:
        return {"dependent": self.dependent, "prerequisite": self.prerequisite, "reason": self.reason.value}


class DependencyGraph:
    """Structural queries and repairs over a :class:`TaskCollection`."""

    def __init__(self, collection: TaskCollection) -> None:
        self._collection = collection
        self._tasks: Optional[dict[str, Task]] = None
        self._order: list[str] = []

    # -- building -----------------------------------------------------------

    def invalidate(self) -> None:
        self._tasks = None

    def _nodes(self) -> dict[str, Task]:
        if self._tasks is None:
            self._tasks = {}
            for tid, task in self._collection.walk():
                self._tasks[str(tid)] = task
            self._order = sorted(self._tasks, key=parse_id)
        return self._tasks

    @property
    def nodes(self) -> list[str]:
        """All identifiers in identifier order."""
        self._nodes()
        return list(self._order)

    def has_node(self, task_id: IdLike) -> bool:
        return normalize_id(task_id) in self._nodes()

    def prerequisites_of(self, task_id: IdLike) -> list[str]:
        key = normalize_id(task_id)
        task = self._nodes().get(key)
        return list(task.dependencies) if task else []

    def dependents_of(self, task_id: IdLike) -> list[str]:
        key = normalize_id(task_id)
        return [nid for nid in self.nodes if key in self._nodes()[nid].dependencies]

    def _neighbours(self, node: str) -> list[str]:
        tasks = self._nodes()
        deps = {d for d in tasks[node].dependencies if d != node and d in tasks}
        return sorted(deps, key=parse_id)

    # -- mutation -----------------------------------------------------------

    def add_dependency(self, task_id: IdLike, depends_on: IdLike) -> bool:
        """Insert ``task_id -> depends_on``; returns False if it already existed."""
        key = normalize_id(task_id)
        dep = normalize_id(depends_on)
        if key == dep:
            raise SelfDependency(key)
        task = resolve(self._collection, key)
        resolve(self._collection, dep)
        if dep in task.dependencies:
            return False
        sequence = self._next_sequence()
        task.dependencies.append(dep)
        task.dependency_order[dep] = sequence
        task.touch()
        self.invalidate()
        logger.debug("Added dependency {} -> {}", key, dep)
        return True

    def remove_dependency(self, task_id: IdLike, depends_on: IdLike) -> bool:
        """Remove ``task_id -> depends_on`` if present; returns whether it was."""
        key = normalize_id(task_id)
        dep = normalize_id(depends_on)
        task = resolve(self._collection, key)
        if dep not in task.dependencies:
            return False
        task.dependencies = [d for d in task.dependencies if d != dep]
        task.dependency_order.pop(dep, None)
        task.touch()
        self.invalidate()
        logger.debug("Removed dependency {} -> {}", key, dep)
        return True

    # -- validation ---------------------------------------------------------

    def find_cycles(self) -> list[list[str]]:
        """Closed walks found by a depth-first search from each node in id order.

        Meeting a node that is still on the walk stack closes a cycle, which is
        reported as the stack slice from that node to the current one.
        """
        state: dict[str, int] = {}
        cycles: list[list[str]] = []
        for root in self.nodes:
            if state.get(root, _UNVISITED) != _UNVISITED:
                continue
            path = [root]
            pending = [iter(self._neighbours(root))]
            state[root] = _VISITING
            while pending:
                nxt = next(pending[-1], None)
                if nxt is None:
                    state[path.pop()] = _VISITED
                    pending.pop()
                    continue
                seen = state.get(nxt, _UNVISITED)
                if seen == _VISITING:
                    cycles.append(path[path.index(nxt):])
                elif seen == _UNVISITED:
                    state[nxt] = _VISITING
                    path.append(nxt)
                    pending.append(iter(self._neighbours(nxt)))
        return cycles

    def validate(self) -> list[ValidationIssue]:
        tasks = self._nodes()
        issues: list[ValidationIssue] = []
        for node in self.nodes:
            for dep in tasks[node].dependencies:
                if dep == node:
                    issues.append(ValidationIssue(IssueKind.SELF_DEPENDENCY, node, (dep,)))
                elif dep not in tasks:
                    issues.append(ValidationIssue(IssueKind.MISSING_REFERENCE, node, (dep,)))
        for cycle in self.find_cycles():
            issues.append(ValidationIssue(IssueKind.CYCLE, cycle[0], tuple(cycle)))
        return issues

    def would_create_cycle(self, task_id: IdLike, depends_on: IdLike) -> bool:
        """True if adding ``task_id -> depends_on`` would close a cycle."""
        key = normalize_id(task_id)
        start = normalize_id(depends_on)
        tasks = self._nodes()
        visited: set[str] = set()
        queue: deque[str] = deque([start])
        while queue:
            current = queue.popleft()
            if current == key:
                return True
            if current in visited:
                continue
            visited.add(current)
            node = tasks.get(current)
            if node:
                queue.extend(node.dependencies)
        return False

    def topological_order(self) -> list[str]:
        """Identifiers with every prerequisite before its dependents (Kahn's algorithm)."""
        tasks = self._nodes()
        remaining: dict[str, int] = {}
        dependents: dict[str, list[str]] = {nid: [] for nid in tasks}
        for nid in self.nodes:
            deps = self._neighbours(nid)
            remaining[nid] = len(deps)
            for dep in deps:
                dependents[dep].append(nid)
        ready = [nid for nid in self.nodes if remaining[nid] == 0]
        order: list[str] = []
        while ready:
            ready.sort(key=parse_id)
            nid = ready.pop(0)
            order.append(nid)
            for child in dependents[nid]:
                remaining[child] -= 1
                if remaining[child] == 0:
                    ready.append(child)
        if len(order) != len(tasks):
            cycles = self.find_cycles()
            raise Cycle(cycles[0] if cycles else [n for n in self.nodes if remaining[n] > 0])
        return order

    # -- repair -------------------------------------------------------------

    def _next_sequence(self) -> int:
        return 1 + max((s for t in self._nodes().values() for s in t.dependency_order.values()), default=0)

    def _edge_recency(self) -> dict[tuple[str, str], tuple[Any, ...]]:
        # Edges recorded by add_dependency rank by their insertion sequence.
        # Edges without one (hand-edited documents) rank below every recorded
        # edge, ordered by the dependent's updatedAt and then list position.
        ranks: dict[tuple[str, str], tuple[Any, ...]] = {}
        for node, task in self._nodes().items():
            stamp = _timestamp_key(task.updated_at)
            for index, dep in enumerate(task.dependencies):
                sequence = task.dependency_order.get(dep, 0)
                ranks[(node, dep)] = (sequence, stamp, parse_id(node), index, _safe_id(dep))
        return ranks

    def _drop_invalid_edges(self, touched: set[str]) -> list[RemovedEdge]:
        tasks = self._nodes()
        removed: list[RemovedEdge] = []
        for node in self.nodes:
            task = tasks[node]
            kept: list[str] = []
            for dep in task.dependencies:
                if dep == node:
                    reason = IssueKind.SELF_DEPENDENCY
                elif dep not in tasks:
                    reason = IssueKind.MISSING_REFERENCE
                elif dep in kept:
                    reason = IssueKind.DUPLICATE
                else:
                    kept.append(dep)
                    continue
                removed.append(RemovedEdge(node, dep, reason))
            if len(kept) != len(task.dependencies):
                task.dependencies = kept
                task.dependency_order = {d: s for d, s in task.dependency_order.items() if d in kept}
                touched.add(node)
        return removed

    def auto_fix(self, max_iterations: int = MAX_FIX_ITERATIONS) -> list[RemovedEdge]:
        """Repair the graph in place and return the edges that were removed.

        Dangling, self and duplicate edges go first. Then, one cycle at a time,
        the most recently added edge on the cycle is removed until no cycle
        remains; exceeding *max_iterations* raises :class:`UnresolvableCycle`.
        """
        ranks = self._edge_recency()
        touched: set[str] = set()
        removed = self._drop_invalid_edges(touched)
        self.invalidate()

        iterations = 0
        try:
            while True:
                cycles = self.find_cycles()
                if not cycles:
                    break
                if iterations >= max_iterations:
                    raise UnresolvableCycle(iterations, cycles)
                iterations += 1
                cycle = cycles[0]
                edges = [(cycle[i], cycle[(i + 1) % len(cycle)]) for i in range(len(cycle))]
                dependent, prerequisite = max(edges, key=lambda e: ranks.get(e, ()))
                task = self._nodes()[dependent]
                task.dependencies = [d for d in task.dependencies if d != prerequisite]
                task.dependency_order.pop(prerequisite, None)
                touched.add(dependent)
                self.invalidate()
                removed.append(RemovedEdge(dependent, prerequisite, IssueKind.CYCLE))
                logger.warning(
                    "Broke dependency cycle {} by removing {} -> {}",
                    " -> ".join(cycle), dependent, prerequisite,
                )
        finally:
            tasks = self._nodes()
            for node in touched:
                tasks[node].touch()
        return removed


def _safe_id(value: str) -> TaskId | tuple[()]:
    try:
        return parse_id(value)
    except ValueError:
        return ()
