"""
Adjacency view over one owner's dependency edges, plus cycle detection.

An edge ``task -> depends_on`` is stored as a successor of ``task`` and a
predecessor of ``depends_on``. The index holds no state beyond what it
derives from the record store, so it can be rebuilt from edge records at any
time. Mutations apply edge changes to the index as well as the store, which
keeps reads consistent within a single mutation.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from typing import Iterable, Iterator, Optional

from app.core.errors import TaskNotFound
from app.services.store import TaskStore


class GraphIndex:
    def __init__(
        self,
        nodes: Iterable[uuid.UUID] = (),
        edges: Iterable[tuple[uuid.UUID, uuid.UUID]] = (),
    ):
        self._nodes: set[uuid.UUID] = set(nodes)
        self._succ: dict[uuid.UUID, set[uuid.UUID]] = defaultdict(set)
        self._pred: dict[uuid.UUID, set[uuid.UUID]] = defaultdict(set)
        for task_id, depends_on_id in edges:
            self.add_edge(task_id, depends_on_id)

    @classmethod
    async def load(cls, store: TaskStore, owner_id: uuid.UUID) -> "GraphIndex":
        """Rebuild the index for ``owner_id`` from the record store."""
        nodes = await store.list_task_ids(owner_id)
        edges = await store.list_edges(owner_id)
        return cls(nodes, ((e.task_id, e.depends_on_id) for e in edges))

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def successors(self, task_id: uuid.UUID) -> set[uuid.UUID]:
        """Tasks that ``task_id`` depends on."""
        return set(self._succ.get(task_id, ()))

    def predecessors(self, task_id: uuid.UUID) -> set[uuid.UUID]:
        """Tasks that depend on ``task_id``."""
        return set(self._pred.get(task_id, ()))

    def has_edge(self, task_id: uuid.UUID, depends_on_id: uuid.UUID) -> bool:
        return depends_on_id in self._succ.get(task_id, ())

    def edges(self) -> Iterator[tuple[uuid.UUID, uuid.UUID]]:
        for task_id, targets in self._succ.items():
            for depends_on_id in targets:
                yield task_id, depends_on_id

    def add_node(self, task_id: uuid.UUID) -> None:
        self._nodes.add(task_id)

    def remove_node(self, task_id: uuid.UUID) -> None:
        """Drop a task and every edge touching it."""
        for target in self._succ.pop(task_id, set()):
            self._pred[target].discard(task_id)
        for source in self._pred.pop(task_id, set()):
            self._succ[source].discard(task_id)
        self._nodes.discard(task_id)

    def add_edge(self, task_id: uuid.UUID, depends_on_id: uuid.UUID) -> None:
        self._nodes.add(task_id)
        self._nodes.add(depends_on_id)
        self._succ[task_id].add(depends_on_id)
        self._pred[depends_on_id].add(task_id)

    def remove_edge(self, task_id: uuid.UUID, depends_on_id: uuid.UUID) -> None:
        self._succ.get(task_id, set()).discard(depends_on_id)
        self._pred.get(depends_on_id, set()).discard(task_id)


# ---------------------------------------------------------------------------
# Cycle detection
# ---------------------------------------------------------------------------


def would_create_cycle(
    index: GraphIndex, task_id: uuid.UUID, depends_on_id: uuid.UUID
) -> bool:
    """Return True if adding ``task_id -> depends_on_id`` closes a cycle.

    Iterative DFS from ``depends_on_id`` along successor edges. ``on_path``
    holds the nodes on the current DFS stack; ``done`` holds nodes whose
    whole reachable set has been explored without reaching ``task_id``, so
    shared sub-DAGs (diamonds) are walked once. Reaching ``task_id``, or
    meeting a node already on the path, reports a cycle.

    Raises TaskNotFound if either endpoint is not in the index.
    """
    for node in (task_id, depends_on_id):
        if node not in index:
            raise TaskNotFound(node)
    if task_id == depends_on_id:
        return True

    done: set[uuid.UUID] = set()
    on_path: set[uuid.UUID] = {depends_on_id}
    stack: list[tuple[uuid.UUID, Iterator[uuid.UUID]]] = [
        (depends_on_id, iter(index.successors(depends_on_id)))
    ]

    while stack:
        node, children = stack[-1]
        child: Optional[uuid.UUID] = next(children, None)
        if child is None:
            stack.pop()
            on_path.discard(node)
            done.add(node)
            continue
        if child == task_id or child in on_path:
            return True
        if child in done:
            continue
        on_path.add(child)
        stack.append((child, iter(index.successors(child))))

    return False
