"""Task graph engine.

This package provides the hierarchical task model, the dependency graph, the
status and selection rules, the per-tag file store, and the engine exposing
the operations collaborators call.
"""

from .engine import DependencyChange, RemovalResult, TaskEngine
from .graph import DependencyGraph, IssueKind, RemovedEdge, ValidationIssue
from .ids import TaskId, normalize_id, parse_id, render_id, resolve
from .model import Task, TaskCollection, TaskPriority, TaskStatus
from .selector import NextTaskSelector
from .status import StatusChange, StatusMachine
from .store import TaskStore

__all__ = [
    "DependencyChange",
    "DependencyGraph",
    "IssueKind",
    "NextTaskSelector",
    "RemovalResult",
    "RemovedEdge",
    "StatusChange",
    "StatusMachine",
    "Task",
    "TaskCollection",
    "TaskEngine",
    "TaskId",
    "TaskPriority",
    "TaskStatus",
    "TaskStore",
    "ValidationIssue",
    "normalize_id",
    "parse_id",
    "render_id",
    "resolve",
]
