"""Tests for the single-level nesting guard."""

from __future__ import annotations

import uuid

import pytest

from app.core.errors import (
    CrossOwner,
    ParentAlreadyNested,
    ParentNotFound,
    SelfParent,
    TaskHasSubtasks,
)
from app.services.hierarchy import HierarchyGuard


@pytest.fixture
def guard(store, owner_id):
    return HierarchyGuard(store, owner_id)


async def test_root_task_can_be_a_parent(guard, make_task):
    root = await make_task("root")
    assert await guard.can_nest(root.id)
    assert (await guard.ensure_can_nest(root.id)).id == root.id


async def test_subtask_cannot_be_a_parent(guard, make_task):
    root = await make_task("root")
    child = await make_task("child", parent_task_id=root.id)
    assert not await guard.can_nest(child.id)
    with pytest.raises(ParentAlreadyNested):
        await guard.ensure_can_nest(child.id)


async def test_missing_parent(guard):
    ghost = uuid.uuid4()
    assert not await guard.can_nest(ghost)
    with pytest.raises(ParentNotFound) as exc:
        await guard.ensure_can_nest(ghost)
    assert exc.value.details["parent_task_id"] == str(ghost)


async def test_foreign_parent(guard, make_task, other_owner_id):
    foreign = await make_task("foreign", owner=other_owner_id)
    assert not await guard.can_nest(foreign.id)
    with pytest.raises(CrossOwner):
        await guard.ensure_can_nest(foreign.id)


async def test_reparent_onto_itself(guard, make_task):
    task = await make_task("task")
    with pytest.raises(SelfParent):
        await guard.ensure_can_nest(task.id, child=task)


async def test_reparent_task_with_subtasks(guard, make_task):
    moving = await make_task("moving")
    await make_task("its child", parent_task_id=moving.id)
    target = await make_task("target")
    with pytest.raises(TaskHasSubtasks):
        await guard.ensure_can_nest(target.id, child=moving)


async def test_reparent_leaf_task(guard, make_task):
    leaf = await make_task("leaf")
    target = await make_task("target")
    parent = await guard.ensure_can_nest(target.id, child=leaf)
    assert parent.id == target.id
