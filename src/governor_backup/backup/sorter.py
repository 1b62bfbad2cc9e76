"""Topological sort for self-referential rows.

Groups point at an approver group in the same table, so a group must be
inserted after its approver.  ``sort_nodes`` orders an arbitrary node list
parent-first using a depth-first traversal with cycle detection; a cycle
anywhere fails the whole sort.

Nodes are kept in an arena (the input list) and parents are resolved to
arena indices up front, so missing or cyclic references are found by
lookup rather than by following object references.

Usage:
    from governor_backup.backup.sorter import sort_groups

    ordered = sort_groups(snapshot.groups)
"""

import logging
from collections.abc import Sequence
from typing import TypeVar

from governor_backup.backup.entities import Group
from governor_backup.backup.models import SortableNode
from governor_backup.errors import CycleDetectedError

logger = logging.getLogger(__name__)

GroupT = TypeVar("GroupT", bound=Group)


def sort_nodes(nodes: Sequence[SortableNode]) -> list[SortableNode]:
    """Sort nodes so that every present parent precedes its children.

    Depth-first: before a node is placed, its parent (when present in
    ``nodes``) is visited and placed.  ``visited`` holds placed nodes;
    ``in_progress`` holds the nodes on the current path.  Reaching a node
    that is already in progress means a cycle.

    Parents that are not in ``nodes`` are ignored.  Input order is kept
    wherever dependencies allow it.

    Args:
        nodes: Nodes to sort.

    Returns:
        A permutation of ``nodes``.

    Raises:
        CycleDetectedError: If the parent links contain a cycle.  The
            entire sort fails, including nodes unrelated to the cycle.

    Example:
        >>> a = SortableNode("a", "")
        >>> b = SortableNode("b", "a")
        >>> [n.id for n in sort_nodes([b, a])]
        ['a', 'b']
    """
    index_by_id: dict[str, int] = {}
    for i, node in enumerate(nodes):
        index_by_id.setdefault(node.id, i)

    parent_of: list[int | None] = [
        index_by_id.get(node.parent) if node.parent else None for node in nodes
    ]

    visited: set[int] = set()
    in_progress: set[int] = set()
    result: list[SortableNode] = []

    for start in range(len(nodes)):
        if start in visited:
            continue

        # Walk up the parent chain, then place nodes on the way back down
        path: list[int] = []
        current: int | None = start
        while current is not None and current not in visited:
            if current in in_progress:
                logger.warning(
                    "Detected cycle in group dependencies: group_id=%s",
                    nodes[current].id,
                )
                raise CycleDetectedError(nodes[current].id)
            in_progress.add(current)
            path.append(current)
            current = parent_of[current]

        for index in reversed(path):
            in_progress.discard(index)
            visited.add(index)
            result.append(nodes[index])

    return result


def groups_to_sortable(groups: Sequence[Group]) -> list[SortableNode]:
    """Wrap group rows as sortable nodes keyed by id and approver group."""
    return [
        SortableNode(
            id=str(group.id),
            parent=str(group.approver_group) if group.approver_group else "",
            row=group,
        )
        for group in groups
    ]


def sort_groups(groups: Sequence[GroupT]) -> list[GroupT]:
    """Return groups ordered approver-first.

    Works for either dialect's group model.

    Raises:
        CycleDetectedError: If approver links form a cycle.
    """
    return [node.row for node in sort_nodes(groups_to_sortable(groups))]
