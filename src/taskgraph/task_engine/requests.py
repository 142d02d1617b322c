"""Pydantic models for the field payloads callers pass to the engine."""

from __future__ import annotations

from typing import Any, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import InvalidTaskFields
from .model import TaskPriority, TaskStatus


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("title must not be blank")
    return value


class TaskCreate(BaseModel):
    """Fields accepted by ``add_task``."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    title: str = Field(min_length=1)
    description: str = ""
    details: str = ""
    test_strategy: str = Field(default="", alias="testStrategy")
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    # Raw identifiers; the engine parses them.
    dependencies: list[Union[str, int]] = Field(default_factory=list)
    # Append as a subtask of this task instead of at the top level.
    parent_id: Optional[Union[str, int]] = Field(default=None, alias="parentId")

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        return _not_blank(value)

    @field_validator("dependencies", mode="before")
    @classmethod
    def _dependency_list(cls, value: Any) -> list[Any]:
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            raise ValueError("dependencies must be a list of task identifiers")
        return list(value)


class TaskUpdate(BaseModel):
    """Fields accepted by ``update_task``; omitted fields are left unchanged.

    Status and dependencies have their own operations so their invariants are
    checked in one place.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    details: Optional[str] = None
    test_strategy: Optional[str] = Field(default=None, alias="testStrategy")
    priority: Optional[TaskPriority] = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _not_blank(value)


M = TypeVar("M", bound=BaseModel)


def parse_fields(model: type[M], fields: Any) -> M:
    if isinstance(fields, model):
        return fields
    if not isinstance(fields, dict):
        raise InvalidTaskFields([f"expected a mapping of fields, got {type(fields).__name__}"])
    try:
        return model.model_validate(fields)
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(p) for p in err.get('loc', ())) or 'fields'}: {err.get('msg')}"
            for err in exc.errors()
        ]
        raise InvalidTaskFields(errors) from exc
