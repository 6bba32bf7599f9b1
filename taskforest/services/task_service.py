"""
Task service for taskforest.

Implements the hierarchy operations: create with parent, update, cascading
delete, move, search, and subtree/forest queries. Each operation runs in a
single transaction so a failure part-way leaves no partial edge or entity
state behind.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional, Tuple, Union
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from taskforest.database import DatabaseManager
from taskforest.logging_config import get_logger
from taskforest.models import NewTask, Task, TaskNode, TaskSearchParams, TaskUpdate
from taskforest.services.relationship_store import RelationshipStore
from taskforest.services.task_store import TaskStore
from taskforest.services.tree_assembler import annotate, assemble, build_task_tree
from taskforest.utils.datetime_utils import utc_now

logger = get_logger(__name__)

TaskId = Union[UUID, str]


class TaskServiceError(Exception):
    """Base exception for task service errors."""
    pass


class UnauthorizedError(TaskServiceError):
    """Raised when the owner identifier is missing or does not match."""
    pass


class TaskNotFoundError(TaskServiceError):
    """Raised when a task is absent or not owned by the caller."""
    pass


class TaskConstraintError(TaskServiceError):
    """Raised when a write violates a store constraint (e.g. a second parent)."""
    pass


class TaskCycleError(TaskConstraintError, ValueError):
    """Raised when a move would make a task its own ancestor."""
    pass


class TaskIntegrityError(TaskServiceError):
    """Raised when stored hierarchy data is found to be inconsistent."""
    pass


class TaskOperationError(TaskServiceError):
    """Raised when the store fails unexpectedly."""
    pass


class TaskService:
    """
    Service layer for the task forest.

    Every public operation takes the caller's user ID explicitly, rejects a
    missing one before touching the database, and opens its own transaction
    through the DatabaseManager.
    """

    def __init__(self, db_manager: DatabaseManager) -> None:
        """
        Initialize task service with a database manager.

        Args:
            db_manager: Initialized DatabaseManager providing sessions
        """
        self.db_manager = db_manager

    # ==============================================================================
    # TRANSACTION HELPERS
    # ==============================================================================

    @staticmethod
    def _require_user(user_id: Optional[str]) -> None:
        if not user_id:
            logger.warning("Rejected task operation without a user ID")
            raise UnauthorizedError("Unauthorized")

    @asynccontextmanager
    async def _transaction(
        self, action: str
    ) -> AsyncGenerator[Tuple[TaskStore, RelationshipStore], None]:
        """
        Open one transaction and map store failures to service errors.

        Service errors raised inside the block pass through unchanged.
        Constraint violations become TaskConstraintError; any other
        SQLAlchemy failure is logged and re-raised as TaskOperationError
        without store detail.

        Args:
            action: Short description used in log lines and error messages

        Yields:
            (TaskStore, RelationshipStore) bound to the same session
        """
        try:
            async with self.db_manager.get_session() as session:
                yield TaskStore(session), RelationshipStore(session)
        except IntegrityError as e:
            logger.warning(f"Constraint violation, failed to {action}: {e.orig}")
            raise TaskConstraintError(f"Failed to {action}") from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to {action}: {e}", exc_info=True)
            raise TaskOperationError(f"Failed to {action}") from e

    async def _collect_subtree(
        self,
        relationships: RelationshipStore,
        root_id: str
    ) -> List[str]:
        """
        Walk the subtree under a task with an explicit stack.

        Args:
            relationships: Edge store for the current transaction
            root_id: ID of the subtree root

        Returns:
            Task IDs in post-order (every descendant before its parent,
            root last)

        Raises:
            TaskIntegrityError: If a task is reached twice (stored cycle)
        """
        order: List[str] = []
        seen = set()
        stack: List[Tuple[str, bool]] = [(root_id, False)]

        while stack:
            task_id, expanded = stack.pop()
            if expanded:
                order.append(task_id)
                continue
            if task_id in seen:
                logger.error(f"Cycle found in stored hierarchy at task {task_id}")
                raise TaskIntegrityError(f"Hierarchy cycle detected at task {task_id}")
            seen.add(task_id)
            stack.append((task_id, True))
            for child_id in reversed(await relationships.child_ids(task_id)):
                stack.append((child_id, False))

        return order

    # ==============================================================================
    # CREATE OPERATIONS
    # ==============================================================================

    async def create_task(self, new_task: NewTask, user_id: str) -> Task:
        """
        Create a task, optionally as the child of an existing task.

        The entity row and its parent edge are written in the same
        transaction; if the edge cannot be written the task is not created.

        Args:
            new_task: Task attributes, owner and optional parent ID
            user_id: Caller's user ID

        Returns:
            Created Task with the parent echoed and no children

        Raises:
            UnauthorizedError: If user_id is missing or differs from new_task.user_id
            TaskConstraintError: If the parent does not exist for this owner,
                or the store rejects the task or its edge
        """
        self._require_user(user_id)
        if new_task.user_id != user_id:
            logger.warning(f"User ID mismatch creating task: caller={user_id}")
            raise UnauthorizedError("Unauthorized: user ID mismatch")

        logger.debug(
            f"Creating task: user_id={user_id}, parent_id={new_task.parent_id}, "
            f"description='{new_task.description}'"
        )

        async with self._transaction("create task") as (tasks, relationships):
            if new_task.parent_id is not None:
                parent_orm = await tasks.get(new_task.parent_id, user_id)
                if parent_orm is None:
                    logger.warning(f"Parent task {new_task.parent_id} not found for user {user_id}")
                    raise TaskConstraintError("Failed to create task")

            now = utc_now()
            task_orm = await tasks.insert({
                "id": str(uuid4()),
                "user_id": user_id,
                "description": new_task.description,
                "completed": new_task.completed,
                "status": new_task.status,
                "priority": new_task.priority,
                "due_date": new_task.due_date,
                "created_at": now,
                "updated_at": now,
            })

            if new_task.parent_id is not None:
                await relationships.insert(new_task.parent_id, task_orm.id)

            task = Task.from_record(task_orm, parent_id=new_task.parent_id, children=[])

        logger.info(f"Created task: id={task.id}, parent_id={task.parent_id}")
        return task

    # ==============================================================================
    # READ OPERATIONS
    # ==============================================================================

    async def get_task(self, task_id: TaskId, user_id: str) -> Task:
        """
        Get one owned task with its parent and children resolved.

        Raises:
            UnauthorizedError: If user_id is missing
            TaskNotFoundError: If the task is absent or not owned
        """
        self._require_user(user_id)

        async with self._transaction("get task") as (tasks, relationships):
            task_orm = await tasks.get(task_id, user_id)
            if task_orm is None:
                raise TaskNotFoundError(f"Task {task_id} not found")
            edges = await relationships.list_by_either_endpoint(task_orm.id)
            return annotate([task_orm], edges)[0]

    async def get_top_level_tasks(self, user_id: str) -> List[Task]:
        """
        Get the owner's root tasks, newest first.

        Loads every owned task and the owner's edges, assembles the whole
        forest, and keeps the tasks without a parent.

        Args:
            user_id: Caller's user ID

        Returns:
            Annotated root tasks

        Raises:
            UnauthorizedError: If user_id is missing
        """
        self._require_user(user_id)

        async with self._transaction("load top-level tasks") as (tasks, relationships):
            task_orms = await tasks.list_by_owner(user_id)
            edges = await relationships.list_all(user_id)

        forest = assemble(task_orms, edges)
        return [task for task in forest if task.parent_id is None]

    async def get_task_tree(self, user_id: str) -> List[TaskNode]:
        """
        Get the owner's whole forest as nested nodes.

        Raises:
            UnauthorizedError: If user_id is missing
        """
        self._require_user(user_id)

        async with self._transaction("load task tree") as (tasks, relationships):
            task_orms = await tasks.list_by_owner(user_id)
            edges = await relationships.list_all(user_id)

        return build_task_tree(assemble(task_orms, edges))

    async def get_subtasks(self, task_id: TaskId, user_id: str) -> List[Task]:
        """
        Get the direct children of a task, each with its own children listed.

        Children are read through an owner-filtered join, so a caller who
        does not own them gets an empty list.

        Args:
            task_id: ID of the parent task
            user_id: Caller's user ID

        Returns:
            Annotated child tasks in attachment order

        Raises:
            UnauthorizedError: If user_id is missing
        """
        self._require_user(user_id)

        async with self._transaction("load subtasks") as (tasks, relationships):
            children = await tasks.list_children(task_id, user_id)
            if not children:
                return []
            edges = await relationships.list_by_parents(
                [task_id] + [child.id for child in children]
            )
            return annotate(children, edges)

    async def search_tasks(self, params: TaskSearchParams, user_id: str) -> List[Task]:
        """
        Search owned tasks with conjunctive filters.

        Each result is annotated from the edges touching the result set;
        children outside the result set are still listed by ID.

        Args:
            params: Search filters; unset filters are ignored
            user_id: Caller's user ID

        Returns:
            Matching tasks, newest first

        Raises:
            UnauthorizedError: If user_id is missing
        """
        self._require_user(user_id)
        logger.debug(f"Searching tasks: user_id={user_id}, params={params.model_dump(exclude_none=True)}")

        async with self._transaction("search tasks") as (tasks, relationships):
            task_orms = await tasks.search(user_id, params)
            edges = await relationships.list_touching(task.id for task in task_orms)

        return annotate(task_orms, edges)

    # ==============================================================================
    # UPDATE OPERATIONS
    # ==============================================================================

    async def update_task(self, task_id: TaskId, updates: TaskUpdate, user_id: str) -> Task:
        """
        Update a task's attributes; edges are never touched.

        Args:
            task_id: ID of the task to update
            updates: Fields to change; only explicitly set fields are applied
            user_id: Caller's user ID

        Returns:
            Updated Task with parent and children resolved from its edges

        Raises:
            UnauthorizedError: If user_id is missing
            ValueError: If no fields are provided for update
            TaskNotFoundError: If no owned row matched
        """
        self._require_user(user_id)

        changes = updates.changes()
        if not changes:
            raise ValueError("At least one field must be provided for update")

        logger.debug(f"Updating task {task_id}: fields={sorted(changes)}")
        changes["updated_at"] = utc_now()

        async with self._transaction("update task") as (tasks, relationships):
            affected = await tasks.update(task_id, user_id, changes)
            if affected == 0:
                logger.warning(f"Update matched no task: id={task_id}, user_id={user_id}")
                raise TaskNotFoundError("Task not found, not owned by user, or failed to update")

            task_orm = await tasks.get(task_id, user_id)
            edges = await relationships.list_by_either_endpoint(task_id)
            task = annotate([task_orm], edges)[0]

        logger.info(f"Updated task: id={task_id}")
        return task

    # ==============================================================================
    # HIERARCHY OPERATIONS
    # ==============================================================================

    async def move_task(
        self,
        task_id: TaskId,
        new_parent_id: Optional[TaskId],
        user_id: str
    ) -> Task:
        """
        Reparent a task, or make it a root when new_parent_id is None.

        Args:
            task_id: ID of the task to move
            new_parent_id: New parent ID, or None for top level
            user_id: Caller's user ID

        Returns:
            The moved Task with its new parent

        Raises:
            UnauthorizedError: If user_id is missing
            TaskNotFoundError: If the task or the new parent is not owned
            TaskCycleError: If the new parent is the task or one of its descendants
            TaskConstraintError: If the store rejects the new edge
        """
        self._require_user(user_id)
        logger.debug(f"Moving task {task_id} under {new_parent_id}")

        async with self._transaction("move task") as (tasks, relationships):
            task_orm = await tasks.get(task_id, user_id)
            if task_orm is None:
                raise TaskNotFoundError("Task not found")

            parent_orm = None
            if new_parent_id is not None:
                parent_orm = await tasks.get(new_parent_id, user_id)
                if parent_orm is None:
                    raise TaskNotFoundError("New parent task not found")

                subtree = await self._collect_subtree(relationships, task_orm.id)
                if parent_orm.id in subtree:
                    logger.warning(
                        f"Rejected move of task {task_id} under its own descendant {new_parent_id}"
                    )
                    raise TaskCycleError("Move would create a cycle")

            await relationships.delete_by_child(task_orm.id)
            if parent_orm is not None:
                await relationships.insert(parent_orm.id, task_orm.id)

            edges = await relationships.list_by_either_endpoint(task_orm.id)
            task = annotate([task_orm], edges)[0]

        logger.info(f"Moved task: id={task_id}, new_parent_id={task.parent_id}")
        return task

    # ==============================================================================
    # DELETE OPERATIONS
    # ==============================================================================

    async def delete_task(self, task_id: TaskId, user_id: str) -> List[UUID]:
        """
        Delete a task and all its descendants (cascade delete).

        Descendants are removed before their parents. For every task in the
        subtree, all edges touching it are deleted and then its row.

        Args:
            task_id: ID of the task to delete
            user_id: Caller's user ID

        Returns:
            IDs of the deleted tasks, descendants first

        Raises:
            UnauthorizedError: If user_id is missing
            TaskNotFoundError: If the task is absent or not owned
            TaskIntegrityError: If a descendant belongs to another owner
        """
        self._require_user(user_id)
        logger.debug(f"Deleting task {task_id} and descendants")

        async with self._transaction("delete task") as (tasks, relationships):
            root = await tasks.get(task_id, user_id)
            if root is None:
                raise TaskNotFoundError(f"Task {task_id} not found")

            doomed = await self._collect_subtree(relationships, root.id)

            deleted = 0
            for doomed_id in doomed:
                await relationships.delete_by_either_endpoint(doomed_id)
                deleted += await tasks.delete(doomed_id, user_id)

            if deleted != len(doomed):
                logger.error(
                    f"Subtree of task {task_id} contains tasks not owned by {user_id}: "
                    f"walked={len(doomed)}, deleted={deleted}"
                )
                raise TaskIntegrityError(f"Subtree of task {task_id} spans multiple owners")

        logger.info(f"Deleted task: id={task_id}, descendants={len(doomed) - 1}")
        return [UUID(doomed_id) for doomed_id in doomed]
