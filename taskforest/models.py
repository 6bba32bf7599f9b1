"""
Pydantic models for taskforest.

Defines the task entity, the parent/child edge, the annotated views returned
by hierarchy operations, and the payloads accepted by them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from taskforest.utils.datetime_utils import to_naive_utc, utc_now


class TaskStatus(str, Enum):
    """Workflow status of a task."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskPriority(str, Enum):
    """Priority of a task."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskRecord(BaseModel):
    """
    Task attributes as stored in the entity table.

    Carries no hierarchy information; parent and children are derived from
    the edge table.
    """

    id: UUID = Field(default_factory=uuid4, description="Unique identifier for the task")
    user_id: str = Field(..., min_length=1, description="Owner of the task")
    description: str = Field(..., min_length=1, description="Free-text description")
    completed: bool = Field(default=False, description="Whether the task is completed")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="Workflow status")
    priority: TaskPriority = Field(default=TaskPriority.NONE, description="Priority")
    due_date: Optional[datetime] = Field(default=None, description="Optional due timestamp (UTC)")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=utc_now, description="Last update timestamp")

    @classmethod
    def from_record(cls, record: Any, **extra: Any) -> "TaskRecord":
        """
        Build a model from any object exposing the entity attributes.

        Args:
            record: ORM row or another TaskRecord
            **extra: Additional fields for subclasses (parent_id, children)

        Returns:
            Instance of cls
        """
        data = {name: getattr(record, name) for name in TaskRecord.model_fields}
        data.update(extra)
        return cls.model_validate(data)


class TaskRelationship(BaseModel):
    """A parent -> child edge."""

    id: Optional[int] = Field(default=None, description="Store-assigned, increasing in insertion order")
    parent_task_id: Optional[UUID] = None
    child_task_id: UUID
    created_at: datetime = Field(default_factory=utc_now)


class Task(TaskRecord):
    """
    A task annotated with its resolved position in the forest.

    This is the shape every hierarchy operation returns.
    """

    parent_id: Optional[UUID] = Field(default=None, description="Resolved parent task ID")
    children: List[UUID] = Field(default_factory=list, description="Direct child task IDs")

    class Config:
        """Pydantic configuration."""
        json_schema_extra = {
            "example": {
                "id": "123e4567-e89b-12d3-a456-426614174001",
                "user_id": "user_2abc",
                "description": "Write release notes",
                "completed": False,
                "status": "in_progress",
                "priority": "high",
                "due_date": "2025-02-01T17:00:00",
                "created_at": "2025-01-14T10:00:00",
                "updated_at": "2025-01-14T10:00:00",
                "parent_id": None,
                "children": ["123e4567-e89b-12d3-a456-426614174002"],
            }
        }


class TaskNode(TaskRecord):
    """A task with its children expanded into nested nodes."""

    parent_id: Optional[UUID] = None
    children: List["TaskNode"] = Field(default_factory=list)


class NewTask(BaseModel):
    """Payload for creating a task, optionally under a parent."""

    user_id: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    completed: bool = False
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.NONE
    due_date: Optional[datetime] = None
    parent_id: Optional[UUID] = None

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class TaskUpdate(BaseModel):
    """
    Partial attribute update.

    Only fields explicitly set are applied. Owner and identifiers are not
    part of the model, and unknown fields are rejected.
    """

    description: Optional[str] = Field(default=None, min_length=1)
    completed: Optional[bool] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None

    class Config:
        """Pydantic configuration."""
        extra = "forbid"

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @model_validator(mode='after')
    def validate_required_not_null(self) -> 'TaskUpdate':
        """
        Reject explicit None for attributes that cannot be null.

        Returns:
            The validated update

        Raises:
            ValueError: If description, completed, status or priority is set to None
        """
        for name in ("description", "completed", "status", "priority"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict:
        """Return only the fields that were explicitly provided."""
        return self.model_dump(exclude_unset=True)


class TaskSearchParams(BaseModel):
    """Conjunctive search filters; unset filters are not applied."""

    query: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    completed: Optional[bool] = None
    due_date: Optional[datetime] = None

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)
