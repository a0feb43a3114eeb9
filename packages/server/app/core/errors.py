"""
Domain errors raised by the dependency and status engine.

Every error carries an HTTP status code, a machine-readable error code and
optional details (for not-found errors, the identity that was missing). The
app renders them through a single exception handler; nothing below the API
layer builds HTTP responses.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional


class TaskGraphError(Exception):
    status_code: int = 400
    error_code: str = "TASK_GRAPH_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "error_code": self.error_code, **self.details}


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------

class TaskNotFound(TaskGraphError):
    status_code = 404
    error_code = "TASK_NOT_FOUND"

    def __init__(self, task_id: uuid.UUID):
        super().__init__("Task not found", {"task_id": str(task_id)})


class ParentNotFound(TaskGraphError):
    status_code = 404
    error_code = "PARENT_NOT_FOUND"

    def __init__(self, parent_id: uuid.UUID):
        super().__init__("Parent task not found", {"parent_task_id": str(parent_id)})


class DependencyNotFound(TaskGraphError):
    status_code = 404
    error_code = "DEPENDENCY_NOT_FOUND"

    def __init__(self, task_id: uuid.UUID, depends_on_id: uuid.UUID):
        super().__init__(
            "Dependency not found",
            {"task_id": str(task_id), "depends_on_id": str(depends_on_id)},
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class CrossOwner(TaskGraphError):
    status_code = 403
    error_code = "CROSS_OWNER"

    def __init__(self, task_id: uuid.UUID):
        super().__init__(
            "Referenced task belongs to another owner", {"task_id": str(task_id)}
        )


class SelfDependency(TaskGraphError):
    status_code = 409
    error_code = "SELF_DEPENDENCY"

    def __init__(self, task_id: uuid.UUID):
        super().__init__("A task cannot depend on itself", {"task_id": str(task_id)})


class DependencyExists(TaskGraphError):
    status_code = 409
    error_code = "DEPENDENCY_EXISTS"

    def __init__(self, task_id: uuid.UUID, depends_on_id: uuid.UUID):
        super().__init__(
            "Dependency already exists",
            {"task_id": str(task_id), "depends_on_id": str(depends_on_id)},
        )


class ParentAlreadyNested(TaskGraphError):
    status_code = 422
    error_code = "PARENT_ALREADY_NESTED"

    def __init__(self, parent_id: uuid.UUID):
        super().__init__(
            "Cannot create subtask of a subtask. Only one level of nesting is allowed.",
            {"parent_task_id": str(parent_id)},
        )


class TaskHasSubtasks(TaskGraphError):
    status_code = 422
    error_code = "TASK_HAS_SUBTASKS"

    def __init__(self, task_id: uuid.UUID):
        super().__init__(
            "A task with subtasks cannot become a subtask", {"task_id": str(task_id)}
        )


class SelfParent(TaskGraphError):
    status_code = 422
    error_code = "SELF_PARENT"

    def __init__(self, task_id: uuid.UUID):
        super().__init__("A task cannot be its own parent", {"task_id": str(task_id)})


class StatusNotSettable(TaskGraphError):
    status_code = 422
    error_code = "STATUS_NOT_SETTABLE"

    def __init__(self, status: str):
        super().__init__(
            f"Status '{status}' is derived from dependencies and cannot be set directly",
            {"status": status},
        )


# ---------------------------------------------------------------------------
# Structural invariants
# ---------------------------------------------------------------------------

class CycleDetected(TaskGraphError):
    status_code = 409
    error_code = "CYCLE_DETECTED"

    def __init__(self, task_id: uuid.UUID, depends_on_id: uuid.UUID):
        super().__init__(
            "Adding this dependency would create a circular dependency",
            {"task_id": str(task_id), "depends_on_id": str(depends_on_id)},
        )


class SubtasksIncomplete(TaskGraphError):
    status_code = 422
    error_code = "SUBTASKS_INCOMPLETE"

    def __init__(self, task_id: uuid.UUID, incomplete: list[uuid.UUID]):
        super().__init__(
            "All subtasks must be completed before completing the parent task",
            {"task_id": str(task_id), "incomplete_subtask_ids": [str(i) for i in incomplete]},
        )
