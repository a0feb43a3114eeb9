"""Task-related Pydantic schemas shared by the server and API clients."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import UUID4

from .common import USER_SETTABLE_STATUSES, TaskPriority, TaskStatus


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------

class TaskBase(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    due_date: Optional[date] = None
    priority: TaskPriority = TaskPriority.MEDIUM


class TaskCreate(TaskBase):
    status: TaskStatus = TaskStatus.TODO
    parent_task_id: Optional[UUID4] = None

    @field_validator("status")
    @classmethod
    def _not_blocked(cls, value: TaskStatus) -> TaskStatus:
        if value not in USER_SETTABLE_STATUSES:
            raise ValueError("'blocked' is derived from dependencies and cannot be requested")
        return value


class SubtaskCreate(TaskBase):
    """Request body for POST /tasks/{taskId}/subtasks (parent comes from the path)."""


class TaskUpdate(BaseModel):
    """Partial update. Only fields present in the request are applied."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    due_date: Optional[date] = None
    priority: Optional[TaskPriority] = None
    parent_task_id: Optional[UUID4] = None

    @field_validator("title", "priority")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("field cannot be null")
        return value


class TaskRead(BaseModel):
    id: UUID4
    owner_id: uuid.UUID
    title: str
    description: Optional[str] = None
    due_date: Optional[date] = None
    priority: TaskPriority
    status: TaskStatus
    parent_task_id: Optional[UUID4] = None
    subtask_count: int = 0
    dependency_ids: List[UUID4] = Field(default_factory=list)
    dependent_ids: List[UUID4] = Field(default_factory=list)
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TaskTreeNode(TaskRead):
    subtasks: List[TaskRead] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

class TaskStatusChange(BaseModel):
    """Request body for POST /tasks/{taskId}/status."""
    status: TaskStatus


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

class DependencyAdd(BaseModel):
    """Request body for POST /tasks/{taskId}/dependencies."""
    depends_on_id: UUID4


class DependencyRead(BaseModel):
    task_id: UUID4
    depends_on_id: UUID4
    created_at: Optional[datetime] = None


class DependencyCheck(BaseModel):
    """Request body for POST /tasks/validate-dependency."""
    task_id: UUID4
    depends_on_id: UUID4


class DependencyValidation(BaseModel):
    would_create_cycle: bool
