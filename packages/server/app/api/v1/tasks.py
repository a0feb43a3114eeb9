"""
Task endpoints: CRUD, subtasks, completion, dependencies.

Statuses: To Do / In Progress / Completed, plus Blocked which is derived.
- Dependencies: a task is Blocked while any task it depends on is incomplete.
- Completion: a parent task cannot be completed until all its subtasks are.
- Cycle detection on add; a read-only probe is available for pre-flight checks.
- Mutations for one owner are serialised and committed before the lock is released.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedOwner, get_current_owner
from app.core.database import get_session
from app.core.locks import owner_lock
from app.services.tasks import (
    add_dependency,
    change_status,
    create_task,
    delete_task,
    enrich_task,
    enrich_tasks,
    get_task_or_404,
    get_task_tree,
    list_dependencies,
    list_dependents,
    list_subtasks,
    list_tasks,
    mark_completed,
    remove_dependency,
    update_task,
    validate_dependency,
)
from taskflow_shared.schemas.common import TaskPriority, TaskStatus
from taskflow_shared.schemas.tasks import (
    DependencyAdd,
    DependencyCheck,
    DependencyRead,
    DependencyValidation,
    SubtaskCreate,
    TaskCreate,
    TaskRead,
    TaskStatusChange,
    TaskTreeNode,
    TaskUpdate,
)

router = APIRouter()


@asynccontextmanager
async def _mutation(session: AsyncSession, owner_id: uuid.UUID):
    """Hold the owner's lock until the transaction is committed or rolled back."""
    async with owner_lock(owner_id):
        try:
            yield
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------


@router.get("/", response_model=List[TaskRead])
async def list_tasks_endpoint(
    status: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    search: Optional[str] = Query(None, max_length=100),
    auth: AuthenticatedOwner = Depends(get_current_owner),
    session: AsyncSession = Depends(get_session),
):
    """List tasks with optional filters by status, priority and text search."""
    tasks = await list_tasks(
        session, auth.owner_id, status=status, priority=priority, search=search
    )
    return await enrich_tasks(session, tasks)


@router.post("/", response_model=TaskRead, status_code=201)
async def create_task_endpoint(
    task_in: TaskCreate,
    auth: AuthenticatedOwner = Depends(get_current_owner),
    session: AsyncSession = Depends(get_session),
):
    """Create a task, optionally as a subtask of ``parent_task_id``."""
    async with _mutation(session, auth.owner_id):
        task = await create_task(session, task_in, auth.owner_id)
    return await enrich_task(session, task)


@router.get("/tree", response_model=List[TaskTreeNode])
async def task_tree_endpoint(
    auth: AuthenticatedOwner = Depends(get_current_owner),
    session: AsyncSession = Depends(get_session),
):
    """Root tasks, each with its subtasks."""
    return await get_task_tree(session, auth.owner_id)


@router.post("/validate-dependency", response_model=DependencyValidation)
async def validate_dependency_endpoint(
    body: DependencyCheck,
    auth: AuthenticatedOwner = Depends(get_current_owner),
    session: AsyncSession = Depends(get_session),
):
    """Report whether adding the dependency would create a cycle. Writes nothing."""
    async with owner_lock(auth.owner_id):
        return await validate_dependency(
            session, body.task_id, body.depends_on_id, auth.owner_id
        )


@router.get("/{task_id}", response_model=TaskRead)
async def get_task_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedOwner = Depends(get_current_owner),
    session: AsyncSession = Depends(get_session),
):
    """Get a single task with subtask count, dependencies and dependents."""
    task = await get_task_or_404(session, task_id, auth.owner_id)
    return await enrich_task(session, task)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task_endpoint(
    task_id: uuid.UUID,
    task_in: TaskUpdate,
    auth: AuthenticatedOwner = Depends(get_current_owner),
    session: AsyncSession = Depends(get_session),
):
    """Update task fields. Status changes go through /status or /complete."""
    async with _mutation(session, auth.owner_id):
        task = await get_task_or_404(session, task_id, auth.owner_id)
        task = await update_task(session, task, task_in, auth.owner_id)
    return await enrich_task(session, task)


@router.delete("/{task_id}", response_model=TaskRead)
async def delete_task_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedOwner = Depends(get_current_owner),
    session: AsyncSession = Depends(get_session),
):
    """Delete a task together with its subtasks and all edges touching them."""
    async with _mutation(session, auth.owner_id):
        task = await delete_task(session, task_id, auth.owner_id)
    return TaskRead.model_validate(task, from_attributes=True)


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


@router.post("/{task_id}/complete", response_model=TaskRead)
async def complete_task_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedOwner = Depends(get_current_owner),
    session: AsyncSession = Depends(get_session),
):
    """Mark a task completed. Rejected while any subtask is incomplete."""
    async with _mutation(session, auth.owner_id):
        task = await mark_completed(session, task_id, auth.owner_id)
    return await enrich_task(session, task)


@router.post("/{task_id}/status", response_model=TaskRead)
async def change_status_endpoint(
    task_id: uuid.UUID,
    body: TaskStatusChange,
    auth: AuthenticatedOwner = Depends(get_current_owner),
    session: AsyncSession = Depends(get_session),
):
    """Explicit status change. 'blocked' cannot be requested."""
    async with _mutation(session, auth.owner_id):
        task = await change_status(session, task_id, body.status, auth.owner_id)
    return await enrich_task(session, task)


# ---------------------------------------------------------------------------
# Subtasks
# ---------------------------------------------------------------------------


@router.get("/{task_id}/subtasks", response_model=List[TaskRead])
async def list_subtasks_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedOwner = Depends(get_current_owner),
    session: AsyncSession = Depends(get_session),
):
    subtasks = await list_subtasks(session, task_id, auth.owner_id)
    return await enrich_tasks(session, subtasks)


@router.post("/{task_id}/subtasks", response_model=TaskRead, status_code=201)
async def create_subtask_endpoint(
    task_id: uuid.UUID,
    body: SubtaskCreate,
    auth: AuthenticatedOwner = Depends(get_current_owner),
    session: AsyncSession = Depends(get_session),
):
    task_in = TaskCreate(**body.model_dump(), parent_task_id=task_id)
    async with _mutation(session, auth.owner_id):
        task = await create_task(session, task_in, auth.owner_id)
    return await enrich_task(session, task)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@router.get("/{task_id}/dependencies", response_model=List[TaskRead])
async def list_dependencies_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedOwner = Depends(get_current_owner),
    session: AsyncSession = Depends(get_session),
):
    """Tasks this task depends on."""
    tasks = await list_dependencies(session, task_id, auth.owner_id)
    return await enrich_tasks(session, tasks)


@router.post("/{task_id}/dependencies", response_model=DependencyRead, status_code=201)
async def add_dependency_endpoint(
    task_id: uuid.UUID,
    body: DependencyAdd,
    auth: AuthenticatedOwner = Depends(get_current_owner),
    session: AsyncSession = Depends(get_session),
):
    """Make the task depend on ``depends_on_id``. Rejects cycles and duplicates."""
    async with _mutation(session, auth.owner_id):
        edge = await add_dependency(session, task_id, body.depends_on_id, auth.owner_id)
    return DependencyRead.model_validate(edge, from_attributes=True)


@router.delete("/{task_id}/dependencies/{depends_on_id}", response_model=DependencyRead)
async def remove_dependency_endpoint(
    task_id: uuid.UUID,
    depends_on_id: uuid.UUID,
    auth: AuthenticatedOwner = Depends(get_current_owner),
    session: AsyncSession = Depends(get_session),
):
    """Remove a dependency."""
    async with _mutation(session, auth.owner_id):
        edge = await remove_dependency(session, task_id, depends_on_id, auth.owner_id)
    return DependencyRead.model_validate(edge, from_attributes=True)


@router.get("/{task_id}/dependents", response_model=List[TaskRead])
async def list_dependents_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedOwner = Depends(get_current_owner),
    session: AsyncSession = Depends(get_session),
):
    """Tasks that depend on this task."""
    tasks = await list_dependents(session, task_id, auth.owner_id)
    return await enrich_tasks(session, tasks)
