"""
Edge store for taskforest.

Adapter over the task_relationships table. The table's unique index on
child_task_id rejects a second parent for any task; inserts surface that as
sqlalchemy.exc.IntegrityError and never pre-check it.
"""

from typing import Iterable, List, Optional, Union
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskforest.database import TaskORM, TaskRelationshipORM
from taskforest.logging_config import get_logger
from taskforest.utils.datetime_utils import utc_now

logger = get_logger(__name__)

TaskId = Union[UUID, str]


def _ids(task_ids: Iterable[TaskId]) -> List[str]:
    return [str(task_id) for task_id in task_ids]


class RelationshipStore:
    """Reads and writes parent -> child edges within one session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _ordered(self, query):
        return query.order_by(
            TaskRelationshipORM.created_at,
            TaskRelationshipORM.id,
        )

    async def list_all(self, user_id: Optional[str] = None) -> List[TaskRelationshipORM]:
        """
        List edges, optionally restricted to one owner.

        Edges carry no owner column, so ownership is resolved through the
        child task.

        Args:
            user_id: If given, only edges whose child belongs to this owner

        Returns:
            Edges in attachment order
        """
        query = select(TaskRelationshipORM)
        if user_id is not None:
            query = query.join(
                TaskORM, TaskORM.id == TaskRelationshipORM.child_task_id
            ).where(TaskORM.user_id == user_id)
        result = await self.session.execute(self._ordered(query))
        return list(result.scalars().all())

    async def list_by_parent(self, parent_id: TaskId) -> List[TaskRelationshipORM]:
        """List edges whose parent is the given task."""
        return await self.list_by_parents([parent_id])

    async def list_by_parents(self, parent_ids: Iterable[TaskId]) -> List[TaskRelationshipORM]:
        """List edges whose parent is any of the given tasks."""
        keys = _ids(parent_ids)
        if not keys:
            return []
        result = await self.session.execute(
            self._ordered(
                select(TaskRelationshipORM).where(
                    TaskRelationshipORM.parent_task_id.in_(keys)
                )
            )
        )
        return list(result.scalars().all())

    async def list_by_either_endpoint(self, task_id: TaskId) -> List[TaskRelationshipORM]:
        """List the edge to a task's parent and the edges to its children."""
        return await self.list_touching([task_id])

    async def list_touching(self, task_ids: Iterable[TaskId]) -> List[TaskRelationshipORM]:
        """
        List edges with either endpoint among the given tasks.

        Args:
            task_ids: Task IDs to match as parent or child

        Returns:
            Matching edges in attachment order
        """
        keys = _ids(task_ids)
        if not keys:
            return []
        result = await self.session.execute(
            self._ordered(
                select(TaskRelationshipORM).where(
                    or_(
                        TaskRelationshipORM.parent_task_id.in_(keys),
                        TaskRelationshipORM.child_task_id.in_(keys),
                    )
                )
            )
        )
        return list(result.scalars().all())

    async def child_ids(self, parent_id: TaskId) -> List[str]:
        """IDs of the direct children of a task, in attachment order."""
        result = await self.session.execute(
            self._ordered(
                select(TaskRelationshipORM.child_task_id).where(
                    TaskRelationshipORM.parent_task_id == str(parent_id)
                )
            )
        )
        return list(result.scalars().all())

    async def insert(self, parent_id: TaskId, child_id: TaskId) -> TaskRelationshipORM:
        """
        Insert a parent -> child edge and flush it.

        Args:
            parent_id: ID of the parent task
            child_id: ID of the child task

        Returns:
            The persisted edge

        Raises:
            IntegrityError: If the child already has a parent, an endpoint
                does not exist, or the edge is a self-loop
        """
        edge = TaskRelationshipORM(
            parent_task_id=str(parent_id),
            child_task_id=str(child_id),
            created_at=utc_now(),
        )
        self.session.add(edge)
        await self.session.flush()
        logger.debug(f"Linked task {child_id} under {parent_id}")
        return edge

    async def delete_by_child(self, child_id: TaskId) -> int:
        """Delete the edge linking a task to its parent, if any."""
        result = await self.session.execute(
            delete(TaskRelationshipORM).where(
                TaskRelationshipORM.child_task_id == str(child_id)
            )
        )
        return result.rowcount

    async def delete_by_either_endpoint(self, task_id: TaskId) -> int:
        """Delete every edge in which the task is parent or child."""
        key = str(task_id)
        result = await self.session.execute(
            delete(TaskRelationshipORM).where(
                or_(
                    TaskRelationshipORM.parent_task_id == key,
                    TaskRelationshipORM.child_task_id == key,
                )
            )
        )
        return result.rowcount
