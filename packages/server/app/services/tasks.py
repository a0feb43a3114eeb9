"""
Task service layer: the validated mutation boundary and owner-scoped queries.

Handles:
- Task CRUD with single-level subtask nesting
- Dependency management with cycle detection
- Explicit completion gated on subtasks, with cascading status recompute
- Enrichment of task data for API responses

Every mutation validates first and writes second. A rejected mutation raises
before touching the store; the caller's transaction is committed only after
the status cascade has reached its fixpoint.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    CrossOwner,
    CycleDetected,
    DependencyExists,
    DependencyNotFound,
    SelfDependency,
    TaskNotFound,
)
from app.models.dependency import TaskDependency
from app.models.task import Task
from app.services.graph import GraphIndex, would_create_cycle
from app.services.hierarchy import HierarchyGuard
from app.services.status import StatusEngine
from app.services.store import TaskStore
from taskflow_shared.schemas.common import PRIORITY_RANK, TaskPriority, TaskStatus
from taskflow_shared.schemas.tasks import (
    DependencyValidation,
    TaskCreate,
    TaskRead,
    TaskTreeNode,
    TaskUpdate,
)

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@dataclass
class _Context:
    store: TaskStore
    index: GraphIndex
    engine: StatusEngine
    owner_id: uuid.UUID


async def _context(session: AsyncSession, owner_id: uuid.UUID) -> _Context:
    store = TaskStore(session)
    index = await GraphIndex.load(store, owner_id)
    return _Context(store, index, StatusEngine(store, index, owner_id), owner_id)


async def get_task_or_404(
    session: AsyncSession, task_id: uuid.UUID, owner_id: uuid.UUID
) -> Task:
    task = await TaskStore(session).get_task(owner_id, task_id)
    if not task:
        raise TaskNotFound(task_id)
    return task


async def _get_referenced(
    store: TaskStore, task_id: uuid.UUID, owner_id: uuid.UUID
) -> Task:
    """Look up a task named by the request body: foreign tasks are CrossOwner."""
    task = await store.get_task(owner_id, task_id)
    if task is None:
        if await store.find_task(task_id) is not None:
            raise CrossOwner(task_id)
        raise TaskNotFound(task_id)
    return task


async def enrich_tasks(session: AsyncSession, tasks: Sequence[Task]) -> list[TaskRead]:
    """Convert Task ORM objects of one owner to TaskReads with their graph neighbourhood.

    Subtask counts and edges are fetched in one query each for the whole batch.
    """
    if not tasks:
        return []
    store = TaskStore(session)
    owner_id = tasks[0].owner_id
    ids = [t.id for t in tasks]
    subtask_counts = await store.count_subtasks(owner_id, ids)

    deps: dict[uuid.UUID, list[uuid.UUID]] = defaultdict(list)
    dependents: dict[uuid.UUID, list[uuid.UUID]] = defaultdict(list)
    for edge in await store.list_edges_touching(owner_id, ids):
        deps[edge.task_id].append(edge.depends_on_id)
        dependents[edge.depends_on_id].append(edge.task_id)

    return [
        TaskRead(
            id=task.id,
            owner_id=task.owner_id,
            title=task.title,
            description=task.description,
            due_date=task.due_date,
            priority=task.priority,
            status=task.status,
            parent_task_id=task.parent_task_id,
            subtask_count=subtask_counts.get(task.id, 0),
            dependency_ids=deps.get(task.id, []),
            dependent_ids=dependents.get(task.id, []),
            completed_at=task.completed_at,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )
        for task in tasks
    ]


async def enrich_task(session: AsyncSession, task: Task) -> TaskRead:
    return (await enrich_tasks(session, [task]))[0]


def _listing_order(tasks: list[Task]) -> list[Task]:
    """Due date ascending (nulls last), then priority descending.

    Input is already newest-first, and the sort is stable, so creation time
    descending remains the final tie-breaker.
    """
    return sorted(
        tasks,
        key=lambda t: (
            t.due_date is None,
            t.due_date or datetime.min.date(),
            -PRIORITY_RANK[TaskPriority(t.priority)],
        ),
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def list_tasks(
    session: AsyncSession,
    owner_id: uuid.UUID,
    *,
    status: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    search: Optional[str] = None,
) -> list[Task]:
    tasks = await TaskStore(session).list_tasks(
        owner_id,
        status=status.value if status else None,
        priority=priority.value if priority else None,
        search=search,
    )
    return _listing_order(tasks)


async def get_task_tree(session: AsyncSession, owner_id: uuid.UUID) -> list[TaskTreeNode]:
    tasks = await TaskStore(session).list_tasks(owner_id)
    reads = {r.id: r for r in await enrich_tasks(session, tasks)}

    children: dict[uuid.UUID, list[TaskRead]] = defaultdict(list)
    # Newest-first input, so reversing gives subtasks oldest first.
    for task in reversed(tasks):
        if task.parent_task_id is not None:
            children[task.parent_task_id].append(reads[task.id])

    roots = _listing_order([t for t in tasks if t.parent_task_id is None])
    return [
        TaskTreeNode(**reads[root.id].model_dump(), subtasks=children.get(root.id, []))
        for root in roots
    ]


async def list_subtasks(
    session: AsyncSession, task_id: uuid.UUID, owner_id: uuid.UUID
) -> list[Task]:
    await get_task_or_404(session, task_id, owner_id)
    return await TaskStore(session).list_subtasks(owner_id, task_id)


async def list_dependencies(
    session: AsyncSession, task_id: uuid.UUID, owner_id: uuid.UUID
) -> list[Task]:
    """Tasks that ``task_id`` depends on, oldest edge first."""
    await get_task_or_404(session, task_id, owner_id)
    store = TaskStore(session)
    edges = await store.list_edges_from(owner_id, task_id)
    by_id = {t.id: t for t in await store.get_tasks(owner_id, [e.depends_on_id for e in edges])}
    return [by_id[e.depends_on_id] for e in edges if e.depends_on_id in by_id]


async def list_dependents(
    session: AsyncSession, task_id: uuid.UUID, owner_id: uuid.UUID
) -> list[Task]:
    """Tasks that depend on ``task_id``, oldest edge first."""
    await get_task_or_404(session, task_id, owner_id)
    store = TaskStore(session)
    edges = await store.list_edges_to(owner_id, task_id)
    by_id = {t.id: t for t in await store.get_tasks(owner_id, [e.task_id for e in edges])}
    return [by_id[e.task_id] for e in edges if e.task_id in by_id]


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def create_task(
    session: AsyncSession,
    task_in: TaskCreate,
    owner_id: uuid.UUID,
) -> Task:
    store = TaskStore(session)
    if task_in.parent_task_id is not None:
        await HierarchyGuard(store, owner_id).ensure_can_nest(task_in.parent_task_id)

    task = Task(
        owner_id=owner_id,
        title=task_in.title,
        description=task_in.description,
        due_date=task_in.due_date,
        priority=task_in.priority.value,
        status=task_in.status.value,
        parent_task_id=task_in.parent_task_id,
    )
    if task_in.status == TaskStatus.COMPLETED:
        task.completed_at = datetime.now(timezone.utc)

    # New tasks have no edges yet, so there is nothing to cascade.
    await store.save_task(task)
    log.info(
        "task.created",
        task_id=str(task.id),
        parent_task_id=str(task.parent_task_id) if task.parent_task_id else None,
    )
    return task


async def update_task(
    session: AsyncSession,
    task: Task,
    task_in: TaskUpdate,
    owner_id: uuid.UUID,
) -> Task:
    store = TaskStore(session)
    if "parent_task_id" in task_in.model_fields_set and task_in.parent_task_id is not None:
        if task_in.parent_task_id != task.parent_task_id:
            await HierarchyGuard(store, owner_id).ensure_can_nest(
                task_in.parent_task_id, child=task
            )

    changed = await store.update_task(task, task_in)
    if changed:
        log.info("task.updated", task_id=str(task.id), fields=sorted(changed))
    return task


async def delete_task(
    session: AsyncSession,
    task_id: uuid.UUID,
    owner_id: uuid.UUID,
) -> Task:
    """Delete a task, its subtasks and every edge touching them.

    Tasks that depended on any deleted task are recomputed afterwards, since
    losing a dependency can unblock them.
    """
    ctx = await _context(session, owner_id)
    task = await ctx.store.get_task(owner_id, task_id)
    if task is None:
        raise TaskNotFound(task_id)

    doomed = await ctx.store.list_subtasks(owner_id, task_id)
    doomed_ids = {task.id} | {s.id for s in doomed}

    affected: set[uuid.UUID] = set()
    for victim_id in doomed_ids:
        affected |= ctx.index.predecessors(victim_id)
        for edge in await ctx.store.list_edges_from(owner_id, victim_id):
            await ctx.store.delete_edge(edge)
        for edge in await ctx.store.list_edges_to(owner_id, victim_id):
            await ctx.store.delete_edge(edge)

    # Children before the parent so the self-referencing FK is never dangling.
    for subtask in doomed:
        await ctx.store.delete_task(subtask)
    await ctx.store.delete_task(task)

    for victim_id in doomed_ids:
        ctx.index.remove_node(victim_id)

    survivors = sorted(affected - doomed_ids)
    changed = await ctx.engine.cascade(survivors)
    log.info(
        "task.deleted",
        task_id=str(task_id),
        subtasks=len(doomed),
        recomputed=len(survivors),
        status_changes=len(changed),
    )
    return task


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


async def mark_completed(
    session: AsyncSession,
    task_id: uuid.UUID,
    owner_id: uuid.UUID,
) -> Task:
    ctx = await _context(session, owner_id)
    return await ctx.engine.mark_completed(task_id)


async def change_status(
    session: AsyncSession,
    task_id: uuid.UUID,
    status: TaskStatus,
    owner_id: uuid.UUID,
) -> Task:
    ctx = await _context(session, owner_id)
    return await ctx.engine.apply_user_status(task_id, status)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


async def validate_dependency(
    session: AsyncSession,
    task_id: uuid.UUID,
    depends_on_id: uuid.UUID,
    owner_id: uuid.UUID,
) -> DependencyValidation:
    """Read-only probe: would ``task_id -> depends_on_id`` close a cycle?"""
    ctx = await _context(session, owner_id)
    await _get_referenced(ctx.store, task_id, owner_id)
    await _get_referenced(ctx.store, depends_on_id, owner_id)
    return DependencyValidation(
        would_create_cycle=would_create_cycle(ctx.index, task_id, depends_on_id)
    )


async def add_dependency(
    session: AsyncSession,
    task_id: uuid.UUID,
    depends_on_id: uuid.UUID,
    owner_id: uuid.UUID,
) -> TaskDependency:
    ctx = await _context(session, owner_id)

    # Check both tasks exist for this owner
    task = await ctx.store.get_task(owner_id, task_id)
    if task is None:
        raise TaskNotFound(task_id)
    await _get_referenced(ctx.store, depends_on_id, owner_id)

    if task_id == depends_on_id:
        raise SelfDependency(task_id)

    if ctx.index.has_edge(task_id, depends_on_id):
        raise DependencyExists(task_id, depends_on_id)

    # Adding task -> depends_on closes a cycle iff task is already reachable
    # from depends_on along existing edges.
    if would_create_cycle(ctx.index, task_id, depends_on_id):
        log.info(
            "dependency.cycle_rejected",
            task_id=str(task_id),
            depends_on_id=str(depends_on_id),
        )
        raise CycleDetected(task_id, depends_on_id)

    edge = await ctx.store.add_edge(
        TaskDependency(task_id=task_id, depends_on_id=depends_on_id, owner_id=owner_id)
    )
    ctx.index.add_edge(task_id, depends_on_id)
    log.info("dependency.added", task_id=str(task_id), depends_on_id=str(depends_on_id))

    await ctx.engine.recompute(task_id)
    return edge


async def remove_dependency(
    session: AsyncSession,
    task_id: uuid.UUID,
    depends_on_id: uuid.UUID,
    owner_id: uuid.UUID,
) -> TaskDependency:
    ctx = await _context(session, owner_id)
    if await ctx.store.get_task(owner_id, task_id) is None:
        raise TaskNotFound(task_id)

    edge = await ctx.store.get_edge(owner_id, task_id, depends_on_id)
    if edge is None:
        raise DependencyNotFound(task_id, depends_on_id)

    await ctx.store.delete_edge(edge)
    ctx.index.remove_edge(task_id, depends_on_id)
    log.info("dependency.removed", task_id=str(task_id), depends_on_id=str(depends_on_id))

    await ctx.engine.recompute(task_id)
    return edge
