"""Error taxonomy for the task graph core.

Every error raised by the core derives from :class:`TaskGraphError` and keeps
the offending identifiers, cycle path or file path as attributes so callers
can report them without digging into internals.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


class TaskGraphError(Exception):
    """Base class for all task graph errors."""

    pass


class MalformedIdentifier(TaskGraphError, ValueError):
    def __init__(self, text: object, reason: str) -> None:
        self.text = text
        self.reason = reason
        super().__init__(f"Malformed task identifier {text!r}: {reason}")


class NotFound(TaskGraphError, KeyError):
    """An identifier or tag that does not resolve."""

    def __init__(self, what: str, key: str, detail: str = "") -> None:
        self.what = what
        self.key = key
        self.detail = detail
        message = f"{what} {key!r} not found"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError would otherwise wrap the message in quotes.
        return str(self.args[0])


class SelfDependency(TaskGraphError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} cannot depend on itself")


class Cycle(TaskGraphError):
    def __init__(self, path: Sequence[str]) -> None:
        self.path = list(path)
        super().__init__("Dependency cycle: " + " -> ".join(self.path + self.path[:1]))


class UnresolvableCycle(TaskGraphError):
    def __init__(self, iterations: int, remaining: Sequence[Sequence[str]]) -> None:
        self.iterations = iterations
        self.remaining = [list(c) for c in remaining]
        super().__init__(
            f"Could not break dependency cycles after {iterations} iterations; "
            f"remaining: {self.remaining}"
        )


class MissingReference(TaskGraphError):
    def __init__(self, task_id: str, missing_id: str) -> None:
        self.task_id = task_id
        self.missing_id = missing_id
        super().__init__(f"Task {task_id} depends on missing task {missing_id}")


class DependencyNotSatisfied(TaskGraphError):
    def __init__(self, task_id: str, unmet: Sequence[str]) -> None:
        self.task_id = task_id
        self.unmet = list(unmet)
        super().__init__(
            f"Cannot mark task {task_id} done; unmet dependencies: {', '.join(self.unmet)}"
        )


class NoneAvailable(TaskGraphError):
    def __init__(self, tag: Optional[str] = None) -> None:
        self.tag = tag
        where = f" in tag {tag!r}" if tag else ""
        super().__init__(f"No eligible task available{where}")


class CorruptDocument(TaskGraphError):
    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Corrupt document {self.path}: {reason}")


class WriteFailure(TaskGraphError):
    def __init__(self, path: Path | str, stage: str, cause: BaseException) -> None:
        self.path = Path(path)
        self.stage = stage
        self.cause = cause
        super().__init__(f"Failed to write {self.path} during {stage}: {cause}")


class InvalidStatus(TaskGraphError, ValueError):
    def __init__(self, value: object, allowed: Sequence[str]) -> None:
        self.value = value
        self.allowed = list(allowed)
        super().__init__(f"Invalid status {value!r}; expected one of {self.allowed}")


class InvalidTag(TaskGraphError, ValueError):
    def __init__(self, tag: object, reason: str) -> None:
        self.tag = tag
        self.reason = reason
        super().__init__(f"Invalid tag {tag!r}: {reason}")


class InvalidTaskFields(TaskGraphError, ValueError):
    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__("Invalid task fields: " + "; ".join(self.errors))


class InvalidPriority(TaskGraphError, ValueError):
    def __init__(self, value: object, allowed: Sequence[str]) -> None:
        self.value = value
        self.allowed = list(allowed)
        super().__init__(f"Invalid priority {value!r}; expected one of {self.allowed}")
