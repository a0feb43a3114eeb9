"""
Status engine: the only writer of ``Task.status``.

Blocked is derived: a task is blocked exactly when it has a dependency that
is not completed and it is not completed itself. Completed is sticky; the
engine never moves a task into or out of it on its own, only through
``mark_completed`` and ``apply_user_status``.

Whenever a recompute changes a task's status, every task that depends on it
is queued for recompute as well (breadth-first). The dependency graph is
acyclic, so the worklist always drains.
"""

from __future__ import annotations

import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Iterable

import structlog

from app.core.errors import StatusNotSettable, SubtasksIncomplete, TaskNotFound
from app.models.task import Task
from app.services.graph import GraphIndex
from app.services.store import TaskStore
from taskflow_shared.schemas.common import USER_SETTABLE_STATUSES, TaskStatus

log = structlog.get_logger()


def derive_status(current: TaskStatus, dependency_statuses: Iterable[TaskStatus]) -> TaskStatus:
    """Status a task should have given its current status and its dependencies."""
    if current == TaskStatus.COMPLETED:
        return current
    if any(s != TaskStatus.COMPLETED for s in dependency_statuses):
        return TaskStatus.BLOCKED
    if current == TaskStatus.BLOCKED:
        return TaskStatus.TODO
    return current


class StatusEngine:
    def __init__(self, store: TaskStore, index: GraphIndex, owner_id: uuid.UUID):
        self.store = store
        self.index = index
        self.owner_id = owner_id

    async def _get(self, task_id: uuid.UUID) -> Task:
        task = await self.store.get_task(self.owner_id, task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    async def _dependency_statuses(self, task_id: uuid.UUID) -> list[TaskStatus]:
        targets = await self.store.get_tasks(self.owner_id, list(self.index.successors(task_id)))
        return [TaskStatus(t.status) for t in targets]

    async def evaluate(self, task_id: uuid.UUID) -> bool:
        """Recompute one task without cascading. Returns True if its status changed."""
        task = await self._get(task_id)
        current = TaskStatus(task.status)
        target = derive_status(current, await self._dependency_statuses(task_id))
        if target == current:
            return False

        task.status = target.value
        await self.store.save_task(task)
        log.info(
            "status.changed",
            task_id=str(task_id),
            from_status=current.value,
            to_status=target.value,
        )
        return True

    async def cascade(self, seeds: Iterable[uuid.UUID]) -> list[uuid.UUID]:
        """Recompute ``seeds`` and everything downstream of a change, to a fixpoint.

        A task is queued at most once at a time; it may be queued again after
        it has been processed if another of its dependencies changes later.
        Returns the ids whose status changed, in processing order.
        """
        queue: deque[uuid.UUID] = deque()
        queued: set[uuid.UUID] = set()
        for task_id in seeds:
            if task_id not in queued:
                queue.append(task_id)
                queued.add(task_id)

        changed: list[uuid.UUID] = []
        while queue:
            task_id = queue.popleft()
            queued.discard(task_id)
            if not await self.evaluate(task_id):
                continue
            changed.append(task_id)
            for dependent in self.index.predecessors(task_id):
                if dependent not in queued:
                    queue.append(dependent)
                    queued.add(dependent)

        if changed:
            log.info("status.cascade_done", changed=len(changed))
        return changed

    async def recompute(self, task_id: uuid.UUID) -> list[uuid.UUID]:
        return await self.cascade([task_id])

    async def propagate_from(self, task_id: uuid.UUID) -> list[uuid.UUID]:
        """Re-evaluate every dependent of a task whose completion state changed."""
        return await self.cascade(self.index.predecessors(task_id))

    async def mark_completed(self, task_id: uuid.UUID) -> Task:
        task = await self._get(task_id)
        incomplete = [
            s.id
            for s in await self.store.list_subtasks(self.owner_id, task_id)
            if s.status != TaskStatus.COMPLETED.value
        ]
        if incomplete:
            raise SubtasksIncomplete(task_id, incomplete)

        if task.status != TaskStatus.COMPLETED.value:
            task.status = TaskStatus.COMPLETED.value
            task.completed_at = datetime.now(timezone.utc)
            await self.store.save_task(task)
            log.info("status.completed", task_id=str(task_id))
            await self.propagate_from(task_id)
        return task

    async def apply_user_status(self, task_id: uuid.UUID, status: TaskStatus) -> Task:
        """Explicit status change requested by the owner.

        ``completed`` goes through :meth:`mark_completed`; ``blocked`` is
        rejected. ``todo`` and ``in-progress`` are stored and then
        re-derived, so a task with an incomplete dependency ends up blocked.
        """
        if status == TaskStatus.COMPLETED:
            return await self.mark_completed(task_id)
        if status not in USER_SETTABLE_STATUSES:
            raise StatusNotSettable(status.value)

        task = await self._get(task_id)
        was_completed = task.status == TaskStatus.COMPLETED.value
        if task.status != status.value:
            task.status = status.value
            task.completed_at = None
            await self.store.save_task(task)
        await self.evaluate(task_id)

        if was_completed:
            log.info("status.reopened", task_id=str(task_id), to_status=task.status)
            await self.propagate_from(task_id)
        return task
