"""Dependency-aware hierarchical task graph with crash-safe per-tag storage."""

from __future__ import annotations

__version__ = "0.4.0"

from .config import Config
from .errors import (
    CorruptDocument,
    Cycle,
    DependencyNotSatisfied,
    InvalidPriority,
    InvalidStatus,
    InvalidTag,
    InvalidTaskFields,
    MalformedIdentifier,
    MissingReference,
    NoneAvailable,
    NotFound,
    SelfDependency,
    TaskGraphError,
    UnresolvableCycle,
    WriteFailure,
)
from .modes import ModeController, Policy, StorageBackend
from .task_engine import Task, TaskCollection, TaskEngine, TaskPriority, TaskStatus

__all__ = [
    "__version__",
    "Config",
    "CorruptDocument",
    "Cycle",
    "DependencyNotSatisfied",
    "InvalidPriority",
    "InvalidStatus",
    "InvalidTag",
    "InvalidTaskFields",
    "MalformedIdentifier",
    "MissingReference",
    "ModeController",
    "NoneAvailable",
    "NotFound",
    "Policy",
    "SelfDependency",
    "StorageBackend",
    "Task",
    "TaskCollection",
    "TaskEngine",
    "TaskGraphError",
    "TaskPriority",
    "TaskStatus",
    "UnresolvableCycle",
    "WriteFailure",
]
