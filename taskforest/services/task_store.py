"""
Entity store for taskforest.

Thin adapter over the tasks table. Every owner-scoped query filters on
user_id in SQL so that cross-owner access matches zero rows.
"""

from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskforest.database import TaskORM, TaskRelationshipORM
from taskforest.logging_config import get_logger
from taskforest.models import TaskSearchParams

logger = get_logger(__name__)

TaskId = Union[UUID, str]


class TaskStore:
    """Owner-scoped CRUD over task rows within one session."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize the store with an active session.

        Args:
            session: Session whose transaction all calls join
        """
        self.session = session

    async def get(self, task_id: TaskId, user_id: str) -> Optional[TaskORM]:
        """
        Get a task by ID, restricted to its owner.

        Args:
            task_id: ID of the task
            user_id: Owner the task must belong to

        Returns:
            TaskORM instance or None if absent or not owned
        """
        result = await self.session.execute(
            select(TaskORM).where(
                TaskORM.id == str(task_id),
                TaskORM.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_by_owner(self, user_id: str) -> List[TaskORM]:
        """List all tasks of an owner, newest first."""
        result = await self.session.execute(
            select(TaskORM)
            .where(TaskORM.user_id == user_id)
            .order_by(TaskORM.created_at.desc(), TaskORM.id)
        )
        return list(result.scalars().all())

    async def search(self, user_id: str, params: TaskSearchParams) -> List[TaskORM]:
        """
        List owned tasks matching every provided filter.

        Filters left unset are not applied. The description query is a
        case-insensitive substring match with LIKE wildcards escaped.

        Args:
            user_id: Owner of the tasks
            params: Search filters

        Returns:
            Matching tasks, newest first
        """
        conditions = [TaskORM.user_id == user_id]
        if params.query:
            conditions.append(TaskORM.description.icontains(params.query, autoescape=True))
        if params.status is not None:
            conditions.append(TaskORM.status == params.status)
        if params.priority is not None:
            conditions.append(TaskORM.priority == params.priority)
        if params.completed is not None:
            conditions.append(TaskORM.completed == params.completed)
        if params.due_date is not None:
            conditions.append(TaskORM.due_date == params.due_date)

        result = await self.session.execute(
            select(TaskORM)
            .where(*conditions)
            .order_by(TaskORM.created_at.desc(), TaskORM.id)
        )
        return list(result.scalars().all())

    async def list_children(self, parent_id: TaskId, user_id: str) -> List[TaskORM]:
        """
        List the direct children of a task through the edge table.

        Args:
            parent_id: ID of the parent task
            user_id: Owner the children must belong to

        Returns:
            Child tasks in the order they were attached
        """
        result = await self.session.execute(
            select(TaskORM)
            .join(TaskRelationshipORM, TaskRelationshipORM.child_task_id == TaskORM.id)
            .where(
                TaskRelationshipORM.parent_task_id == str(parent_id),
                TaskORM.user_id == user_id,
            )
            .order_by(TaskRelationshipORM.created_at, TaskRelationshipORM.id)
        )
        return list(result.scalars().all())

    async def insert(self, values: Dict[str, Any]) -> TaskORM:
        """
        Insert a task row and flush it.

        Args:
            values: Column values for the new row

        Returns:
            The persisted TaskORM instance
        """
        task_orm = TaskORM(**values)
        self.session.add(task_orm)
        await self.session.flush()
        return task_orm

    async def update(self, task_id: TaskId, user_id: str, values: Dict[str, Any]) -> int:
        """
        Update attributes of an owned task.

        Returns:
            Number of rows affected; 0 means absent or not owned
        """
        result = await self.session.execute(
            update(TaskORM)
            .where(TaskORM.id == str(task_id), TaskORM.user_id == user_id)
            .values(**values)
        )
        return result.rowcount

    async def delete(self, task_id: TaskId, user_id: str) -> int:
        """
        Delete an owned task row.

        Edges touching the task must be removed first.

        Returns:
            Number of rows affected
        """
        result = await self.session.execute(
            delete(TaskORM).where(TaskORM.id == str(task_id), TaskORM.user_id == user_id)
        )
        return result.rowcount
