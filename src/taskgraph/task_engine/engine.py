"""Task engine: the operations external collaborators call.

This is the primary entry-point for all task manipulation. It wraps
:class:`TaskStore` with the graph, status and selection rules: each mutating
operation borrows the tag's collection inside a store transaction, applies
the change, re-validates the dependency graph, and lets the transaction
persist the result atomically.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Optional, Union

from loguru import logger

from ..config import Config
from ..errors import DependencyNotSatisfied, NotFound
from .graph import DependencyGraph, IssueKind, RemovedEdge, ValidationIssue
from .ids import IdLike, TaskId, normalize_id, parse_id, resolve, sibling_list
from .model import Task, TaskCollection, TaskPriority, TaskStatus
from .requests import TaskCreate, TaskUpdate, parse_fields
from .selector import NextTaskSelector
from .status import StatusChange, StatusMachine, unmet_dependencies
from .store import TaskStore

if TYPE_CHECKING:
    from ..modes import ModeController


@dataclass(frozen=True)
class DependencyChange:
    task_id: str
    depends_on: str
    changed: bool
    # Graph issues present after the change (a new edge may close a cycle).
    issues: tuple[ValidationIssue, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "depends_on": self.depends_on,
            "changed": self.changed,
            "issues": [i.to_dict() for i in self.issues],
        }


@dataclass(frozen=True)
class RemovalResult:
    removed_ids: tuple[str, ...]
    renumbered: dict[str, str]
    dropped_dependencies: tuple[RemovedEdge, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "removed_ids": list(self.removed_ids),
            "renumbered": dict(self.renumbered),
            "dropped_dependencies": [e.to_dict() for e in self.dropped_dependencies],
        }


StatusFilter = Union[str, TaskStatus, Iterable[Union[str, TaskStatus]], None]


def _status_set(status: StatusFilter) -> Optional[set[TaskStatus]]:
    if status is None:
        return None
    if isinstance(status, (str, TaskStatus)):
        items: Iterable[Any] = str(status.value if isinstance(status, TaskStatus) else status).split(",")
    else:
        items = status
    return {TaskStatus.parse(s) for s in items if str(s).strip()}


def _matches(task: Task, statuses: Optional[set[TaskStatus]], priority: Optional[TaskPriority], search: Optional[str]) -> bool:
    if statuses is not None and task.status not in statuses:
        return False
    if priority is not None and task.priority != priority:
        return False
    if search:
        q = search.lower()
        haystack = (task.title, task.description, task.details, task.id)
        if not any(q in text.lower() for text in haystack):
            return False
    return True


def _remove_subtrees(collection: TaskCollection, victims: list[TaskId]) -> RemovalResult:
    """Detach *victims* (and their descendants), renumber, and repair references."""
    removed: set[str] = set()
    for tid, _ in collection.walk():
        if any(tid == v or v.is_ancestor_of(tid) for v in victims):
            removed.add(str(tid))

    # Pop deepest/last first so earlier positions stay valid while popping.
    for victim in sorted(victims, reverse=True):
        siblings = sibling_list(collection, victim)
        siblings.pop(victim.position - 1)

    renumbered = collection.renumber()
    dropped: list[RemovedEdge] = []
    for tid, task in collection.walk():
        new_deps: list[str] = []
        new_order: dict[str, int] = {}
        for dep in task.dependencies:
            if dep in removed:
                dropped.append(RemovedEdge(str(tid), dep, IssueKind.MISSING_REFERENCE))
                continue
            mapped = renumbered.get(dep, dep)
            if mapped not in new_deps:
                new_deps.append(mapped)
                if dep in task.dependency_order:
                    new_order[mapped] = task.dependency_order[dep]
        task.dependency_order = new_order
        if new_deps != task.dependencies:
            task.dependencies = new_deps
            task.touch()
    return RemovalResult(
        removed_ids=tuple(sorted(removed, key=parse_id)),
        renumbered=renumbered,
        dropped_dependencies=tuple(dropped),
    )


class TaskEngine:
    """Operations over the tag-scoped task collections of one project.

    Parameters
    ----------
    controller:
        The session's :class:`~taskgraph.modes.ModeController`; it owns the
        store and decides how config is loaded.
    """

    def __init__(self, controller: "ModeController") -> None:
        self._controller = controller

    @property
    def store(self) -> TaskStore:
        return self._controller.store

    def _tag(self, tag: Optional[str]) -> str:
        return tag or self._controller.load_config().current_tag

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def load_config(self) -> Config:
        return self._controller.load_config()

    def save_config(self, config: Config) -> None:
        self._controller.save_config(config)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_tasks(
        self,
        *,
        status: StatusFilter = None,
        priority: Optional[str] = None,
        search: Optional[str] = None,
        with_subtasks: bool = True,
        tag: Optional[str] = None,
    ) -> list[Task]:
        """Top-level tasks matching every given filter.

        ``status`` accepts one status, a comma-separated string, or an
        iterable of statuses.
        """
        statuses = _status_set(status)
        prio = TaskPriority.parse(priority) if priority else None
        collection = self.store.load(self._tag(tag))
        out: list[Task] = []
        for task in collection.tasks:
            if not _matches(task, statuses, prio, search):
                continue
            if not with_subtasks:
                task.subtasks = []
            out.append(task)
        return out

    def get_task(self, task_id: IdLike, *, tag: Optional[str] = None) -> Task:
        collection = self.store.load(self._tag(tag))
        return resolve(collection, task_id)

    def get_next_task(self, *, tag: Optional[str] = None) -> Task:
        """The next actionable task; raises ``NoneAvailable`` when there is none."""
        collection = self.store.load(self._tag(tag))
        return NextTaskSelector(collection).select()

    def validate_dependencies(self, *, tag: Optional[str] = None) -> list[ValidationIssue]:
        collection = self.store.load(self._tag(tag))
        issues = DependencyGraph(collection).validate()
        if issues:
            logger.warning("Tag {!r} has {} dependency issue(s)", collection.tag, len(issues))
        return issues

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_status(
        self,
        task_id: IdLike,
        status: Union[str, TaskStatus],
        *,
        override: bool = False,
        tag: Optional[str] = None,
    ) -> StatusChange:
        with self.store.transaction(self._tag(tag)) as tx:
            change = StatusMachine(tx.collection).set_status(task_id, status, override=override)
            tx.dirty = change.changed
            return change

    def add_task(self, fields: Union[dict[str, Any], TaskCreate], *, tag: Optional[str] = None) -> Task:
        """Append a task (or a subtask when ``parent_id`` is given) and return it."""
        request = parse_fields(TaskCreate, fields)
        with self.store.transaction(self._tag(tag), create=True) as tx:
            collection = tx.collection
            parent_id = None if request.parent_id in (None, "") else parse_id(request.parent_id)
            if parent_id is not None:
                parent = resolve(collection, parent_id)
                siblings = parent.subtasks
                new_id = parent_id.child(len(siblings) + 1)
            else:
                siblings = collection.tasks
                new_id = TaskId((len(siblings) + 1,))
            key = str(new_id)
            task = Task(
                id=key,
                title=request.title,
                description=request.description,
                details=request.details,
                test_strategy=request.test_strategy,
                priority=request.priority,
                status=request.status,
            )
            siblings.append(task)
            # The graph records each edge's insertion sequence.
            graph = tx.graph
            for dep in request.dependencies:
                graph.add_dependency(key, dep)
            if task.is_done:
                unmet = unmet_dependencies(collection, task)
                if unmet:
                    raise DependencyNotSatisfied(key, unmet)
            if parent_id is not None:
                parent.touch()
            tx.dirty = True
        logger.info("Added task {} to tag {!r}: {}", key, collection.tag, task.title)
        return task

    def update_task(
        self,
        task_id: IdLike,
        fields: Union[dict[str, Any], TaskUpdate],
        *,
        tag: Optional[str] = None,
    ) -> Task:
        request = parse_fields(TaskUpdate, fields)
        changes = request.model_dump(exclude_none=True)
        with self.store.transaction(self._tag(tag)) as tx:
            task = resolve(tx.collection, task_id)
            if changes:
                for name, value in changes.items():
                    setattr(task, name, value)
                task.touch()
                tx.dirty = True
        logger.info("Updated task {}: {}", task.id, sorted(changes))
        return task

    def remove_task(self, task_id: IdLike, *, tag: Optional[str] = None) -> RemovalResult:
        """Delete a task with its subtree, renumber siblings, and rewrite references."""
        target = parse_id(task_id)
        with self.store.transaction(self._tag(tag)) as tx:
            resolve(tx.collection, target)
            result = _remove_subtrees(tx.collection, [target])
            tx.dirty = True
        logger.info(
            "Removed task {} ({} task(s)); renumbered {}; dropped {} dependency reference(s)",
            target, len(result.removed_ids), result.renumbered or "nothing", len(result.dropped_dependencies),
        )
        return result

    def clear_subtasks(self, task_id: IdLike, *, tag: Optional[str] = None) -> RemovalResult:
        target = parse_id(task_id)
        with self.store.transaction(self._tag(tag)) as tx:
            parent = resolve(tx.collection, target)
            victims = [target.child(pos) for pos in range(1, len(parent.subtasks) + 1)]
            result = _remove_subtrees(tx.collection, victims)
            if victims:
                parent.touch()
                tx.dirty = True
        return result

    def add_dependency(self, task_id: IdLike, depends_on: IdLike, *, tag: Optional[str] = None) -> DependencyChange:
        with self.store.transaction(self._tag(tag)) as tx:
            graph = tx.graph
            changed = graph.add_dependency(task_id, depends_on)
            issues = tuple(graph.validate())
            tx.dirty = changed
        key, dep = normalize_id(task_id), normalize_id(depends_on)
        for issue in issues:
            if issue.kind == IssueKind.CYCLE:
                logger.warning("Dependency {} -> {} leaves a cycle: {}", key, dep, " -> ".join(issue.ids))
        return DependencyChange(key, dep, changed, issues)

    def remove_dependency(self, task_id: IdLike, depends_on: IdLike, *, tag: Optional[str] = None) -> DependencyChange:
        with self.store.transaction(self._tag(tag)) as tx:
            graph = tx.graph
            changed = graph.remove_dependency(task_id, depends_on)
            issues = tuple(graph.validate())
            tx.dirty = changed
        return DependencyChange(normalize_id(task_id), normalize_id(depends_on), changed, issues)

    def fix_dependencies(self, *, tag: Optional[str] = None) -> list[RemovedEdge]:
        """Repair dangling, self, duplicate and cyclic edges; returns what was removed."""
        with self.store.transaction(self._tag(tag)) as tx:
            removed = tx.graph.auto_fix()
            tx.dirty = bool(removed)
        if removed:
            logger.info("Fixed {} dependency edge(s) in tag {!r}", len(removed), tx.collection.tag)
        return removed

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def list_tags(self) -> list[str]:
        return self.store.list_tags()

    def create_tag(self, tag: str, *, copy_from: Optional[str] = None) -> None:
        self.store.create_tag(tag, copy_from=copy_from)

    def use_tag(self, tag: str) -> Config:
        """Make *tag* the current tag; it must already have a document."""
        if not self.store.exists(tag):
            raise NotFound("Tag", tag, f"no document at {self.store.path_for(tag)}")
        config = self._controller.load_config()
        config.current_tag = tag
        self._controller.save_config(config)
        return config

    def delete_tag(self, tag: str) -> None:
        self.store.delete_tag(tag)
        config = self._controller.load_config()
        if config.current_tag == tag:
            config.current_tag = Config().current_tag
            self._controller.save_config(config)
