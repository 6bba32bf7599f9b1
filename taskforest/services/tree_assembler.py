"""
Tree assembly for taskforest.

Pure functions that turn flat task rows plus parent -> child edges into
annotated Task views. Nothing here touches the database or mutates its
inputs; rows may be ORM instances or pydantic records alike.
"""

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Sequence

from taskforest.models import Task, TaskNode


def _attachment_order(edges: Iterable[Any]) -> List[Any]:
    # Attachment time, then edge insertion order; child id only for unsaved edges.
    return sorted(
        edges,
        key=lambda edge: (edge.created_at, edge.id or 0, str(edge.child_task_id)),
    )


def assemble(entities: Sequence[Any], edges: Iterable[Any]) -> List[Task]:
    """
    Annotate each entity with its parent and children within this entity set.

    An edge is used only when its parent is set and both endpoints are among
    ``entities``; anything else belongs to another owner's view or is stale
    and is ignored. Every entity is returned, in input order, so callers that
    want the top level filter on ``parent_id is None`` themselves.

    Args:
        entities: Task rows to annotate
        edges: Candidate parent -> child edges

    Returns:
        One annotated Task per input entity
    """
    present = {str(entity.id) for entity in entities}
    parent_of: Dict[str, str] = {}
    children_of: Dict[str, List[str]] = defaultdict(list)

    for edge in _attachment_order(edges):
        if edge.parent_task_id is None:
            continue
        parent_key = str(edge.parent_task_id)
        child_key = str(edge.child_task_id)
        if parent_key in present and child_key in present:
            parent_of[child_key] = parent_key
            children_of[parent_key].append(child_key)

    return [
        Task.from_record(
            entity,
            parent_id=parent_of.get(str(entity.id)),
            children=list(children_of.get(str(entity.id), [])),
        )
        for entity in entities
    ]


def annotate(entities: Sequence[Any], edges: Iterable[Any]) -> List[Task]:
    """
    Annotate entities from the edges that touch them.

    Unlike :func:`assemble`, the other endpoint does not need to be among
    ``entities``: a child outside the set is still listed by id. Used where
    only a local slice of the forest was loaded (update, search, subtasks).

    Args:
        entities: Task rows to annotate
        edges: Edges with at least one endpoint among the entities

    Returns:
        One annotated Task per input entity
    """
    parent_of: Dict[str, str] = {}
    children_of: Dict[str, List[str]] = defaultdict(list)

    for edge in _attachment_order(edges):
        if edge.parent_task_id is None:
            continue
        parent_of[str(edge.child_task_id)] = str(edge.parent_task_id)
        children_of[str(edge.parent_task_id)].append(str(edge.child_task_id))

    return [
        Task.from_record(
            entity,
            parent_id=parent_of.get(str(entity.id)),
            children=list(children_of.get(str(entity.id), [])),
        )
        for entity in entities
    ]


def build_task_tree(tasks: Sequence[Task]) -> List[TaskNode]:
    """
    Nest annotated tasks into TaskNode trees.

    Roots are tasks without a parent, or whose parent is not in ``tasks``.
    Child ids that do not resolve to a task in ``tasks`` are skipped.

    Args:
        tasks: Output of :func:`assemble`

    Returns:
        Root nodes in input order
    """
    nodes: Dict[str, TaskNode] = {
        str(task.id): TaskNode.from_record(task, parent_id=task.parent_id)
        for task in tasks
    }

    for task in tasks:
        node = nodes[str(task.id)]
        for child_id in task.children:
            child = nodes.get(str(child_id))
            if child is not None:
                node.children.append(child)

    return [
        nodes[str(task.id)]
        for task in tasks
        if task.parent_id is None or str(task.parent_id) not in nodes
    ]
