"""Task dependency edge (owner-scoped)."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel

from .base import _utcnow


class TaskDependency(SQLModel, table=True):
    """``task_id`` is blocked until ``depends_on_id`` is completed."""

    __tablename__ = "task_dependencies"
    __table_args__ = (
        CheckConstraint("task_id != depends_on_id", name="no_self_dependency"),
    )

    task_id: uuid.UUID = Field(foreign_key="tasks.id", primary_key=True)
    depends_on_id: uuid.UUID = Field(foreign_key="tasks.id", primary_key=True, index=True)
    owner_id: uuid.UUID = Field(nullable=False, index=True)
    created_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
