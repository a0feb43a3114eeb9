"""
Single-level nesting guard.

Runs before a task is created under a parent or moved to a new parent.
Purely structural: dependencies are never consulted.
"""

from __future__ import annotations

import uuid
from typing import Optional

from app.core.errors import (
    CrossOwner,
    ParentAlreadyNested,
    ParentNotFound,
    SelfParent,
    TaskHasSubtasks,
)
from app.models.task import Task
from app.services.store import TaskStore


class HierarchyGuard:
    def __init__(self, store: TaskStore, owner_id: uuid.UUID):
        self.store = store
        self.owner_id = owner_id

    async def can_nest(self, parent_id: uuid.UUID) -> bool:
        try:
            await self.ensure_can_nest(parent_id)
        except (ParentNotFound, CrossOwner, ParentAlreadyNested):
            return False
        return True

    async def ensure_can_nest(
        self, parent_id: uuid.UUID, child: Optional[Task] = None
    ) -> Task:
        """Return the parent if a task may be placed under it, else raise.

        ``child`` is the existing task being reparented, if any.
        """
        parent = await self.store.get_task(self.owner_id, parent_id)
        if parent is None:
            if await self.store.find_task(parent_id) is not None:
                raise CrossOwner(parent_id)
            raise ParentNotFound(parent_id)

        if parent.parent_task_id is not None:
            raise ParentAlreadyNested(parent_id)

        if child is not None:
            if child.id == parent_id:
                raise SelfParent(child.id)
            if await self.store.list_subtasks(self.owner_id, child.id):
                raise TaskHasSubtasks(child.id)

        return parent
