"""Task model."""

from datetime import date, datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Task(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"

    owner_id: uuid.UUID = Field(nullable=False, index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    due_date: Optional[date] = None
    priority: str = Field(nullable=False, default="medium")  # low | medium | high
    status: str = Field(nullable=False, default="todo")  # todo | in-progress | completed | blocked
    # Depth is at most one: a task with a parent never has children of its own.
    parent_task_id: Optional[uuid.UUID] = Field(default=None, foreign_key="tasks.id", index=True)
    completed_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
