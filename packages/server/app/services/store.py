"""
Record store for tasks and dependency edges.

A thin, owner-scoped query layer over an AsyncSession. It performs no
validation of its own; the mutation functions in ``app.services.tasks``
decide what may be written and in which order. Writes are flushed
immediately so later reads in the same mutation see them.
"""

from __future__ import annotations

import uuid
from typing import Optional, Sequence

from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.dependency import TaskDependency
from app.models.task import Task
from taskflow_shared.schemas.tasks import TaskUpdate


def _escape_like(text: str) -> str:
    """Make ``%`` and ``_`` in user input match literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class TaskStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    # --- Tasks ---

    async def get_task(self, owner_id: uuid.UUID, task_id: uuid.UUID) -> Optional[Task]:
        task = await self.session.get(Task, task_id)
        if task is None or task.owner_id != owner_id:
            return None
        return task

    async def find_task(self, task_id: uuid.UUID) -> Optional[Task]:
        """Unscoped lookup, only for telling a foreign task from a missing one."""
        return await self.session.get(Task, task_id)

    async def get_tasks(
        self, owner_id: uuid.UUID, task_ids: Sequence[uuid.UUID]
    ) -> list[Task]:
        if not task_ids:
            return []
        result = await self.session.execute(
            select(Task).where(Task.owner_id == owner_id, Task.id.in_(list(task_ids)))
        )
        return list(result.scalars().all())

    async def save_task(self, task: Task) -> Task:
        self.session.add(task)
        await self.session.flush()
        return task

    async def update_task(self, task: Task, changes: TaskUpdate) -> set[str]:
        """Apply the fields the caller explicitly set. Returns the changed field names."""
        changed: set[str] = set()
        fields = changes.model_fields_set

        if "title" in fields and changes.title != task.title:
            task.title = changes.title
            changed.add("title")
        if "description" in fields and changes.description != task.description:
            task.description = changes.description
            changed.add("description")
        if "due_date" in fields and changes.due_date != task.due_date:
            task.due_date = changes.due_date
            changed.add("due_date")
        if "priority" in fields and changes.priority.value != task.priority:
            task.priority = changes.priority.value
            changed.add("priority")
        if "parent_task_id" in fields and changes.parent_task_id != task.parent_task_id:
            task.parent_task_id = changes.parent_task_id
            changed.add("parent_task_id")

        if changed:
            await self.save_task(task)
        return changed

    async def delete_task(self, task: Task) -> None:
        await self.session.delete(task)
        await self.session.flush()

    async def list_task_ids(self, owner_id: uuid.UUID) -> list[uuid.UUID]:
        result = await self.session.execute(
            select(Task.id).where(Task.owner_id == owner_id)
        )
        return [row[0] for row in result.all()]

    async def list_tasks(
        self,
        owner_id: uuid.UUID,
        *,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[Task]:
        stmt = select(Task).where(Task.owner_id == owner_id)
        if status:
            stmt = stmt.where(Task.status == status)
        if priority:
            stmt = stmt.where(Task.priority == priority)
        if search:
            pattern = f"%{_escape_like(search)}%"
            stmt = stmt.where(
                or_(
                    Task.title.ilike(pattern, escape="\\"),
                    Task.description.ilike(pattern, escape="\\"),
                )
            )
        stmt = stmt.order_by(Task.created_at.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_subtasks(self, owner_id: uuid.UUID, parent_id: uuid.UUID) -> list[Task]:
        result = await self.session.execute(
            select(Task)
            .where(Task.owner_id == owner_id, Task.parent_task_id == parent_id)
            .order_by(Task.created_at.asc())
        )
        return list(result.scalars().all())

    async def count_subtasks(
        self, owner_id: uuid.UUID, parent_ids: Sequence[uuid.UUID]
    ) -> dict[uuid.UUID, int]:
        if not parent_ids:
            return {}
        result = await self.session.execute(
            select(Task.parent_task_id, func.count())
            .where(Task.owner_id == owner_id, Task.parent_task_id.in_(list(parent_ids)))
            .group_by(Task.parent_task_id)
        )
        return {parent_id: count for parent_id, count in result.all()}

    # --- Dependency edges ---

    async def get_edge(
        self, owner_id: uuid.UUID, task_id: uuid.UUID, depends_on_id: uuid.UUID
    ) -> Optional[TaskDependency]:
        edge = await self.session.get(TaskDependency, (task_id, depends_on_id))
        if edge is None or edge.owner_id != owner_id:
            return None
        return edge

    async def list_edges(self, owner_id: uuid.UUID) -> list[TaskDependency]:
        result = await self.session.execute(
            select(TaskDependency).where(TaskDependency.owner_id == owner_id)
        )
        return list(result.scalars().all())

    async def list_edges_from(
        self, owner_id: uuid.UUID, task_id: uuid.UUID
    ) -> list[TaskDependency]:
        result = await self.session.execute(
            select(TaskDependency)
            .where(TaskDependency.owner_id == owner_id, TaskDependency.task_id == task_id)
            .order_by(TaskDependency.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_edges_to(
        self, owner_id: uuid.UUID, task_id: uuid.UUID
    ) -> list[TaskDependency]:
        result = await self.session.execute(
            select(TaskDependency)
            .where(
                TaskDependency.owner_id == owner_id,
                TaskDependency.depends_on_id == task_id,
            )
            .order_by(TaskDependency.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_edges_touching(
        self, owner_id: uuid.UUID, task_ids: Sequence[uuid.UUID]
    ) -> list[TaskDependency]:
        """Edges with either endpoint in ``task_ids``, oldest first."""
        if not task_ids:
            return []
        ids = list(task_ids)
        result = await self.session.execute(
            select(TaskDependency)
            .where(
                TaskDependency.owner_id == owner_id,
                or_(TaskDependency.task_id.in_(ids), TaskDependency.depends_on_id.in_(ids)),
            )
            .order_by(TaskDependency.created_at.asc())
        )
        return list(result.scalars().all())

    async def add_edge(self, edge: TaskDependency) -> TaskDependency:
        self.session.add(edge)
        await self.session.flush()
        return edge

    async def delete_edge(self, edge: TaskDependency) -> None:
        await self.session.delete(edge)
        await self.session.flush()
