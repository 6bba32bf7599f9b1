"""
Pytest configuration and fixtures for taskforest tests.

Provides database fixtures, a service bound to an in-memory database, and
test data factories.
"""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from taskforest.database import DatabaseManager, TaskORM, TaskRelationshipORM
from taskforest.models import NewTask, TaskPriority, TaskRecord, TaskRelationship, TaskStatus
from taskforest.services.task_service import TaskService
from taskforest.utils.datetime_utils import utc_now


@pytest_asyncio.fixture
async def db_manager():
    """
    Create an in-memory SQLite database for testing.

    Yields:
        DatabaseManager instance with in-memory database

    Example:
        async def test_something(db_manager):
            async with db_manager.get_session() as session:
                # Test database operations
    """
    manager = DatabaseManager("sqlite+aiosqlite:///:memory:")
    await manager.initialize()

    yield manager

    # Cleanup
    await manager.close()


@pytest_asyncio.fixture
async def db_session(db_manager):
    """
    Provide a database session for tests; commits on exit.

    Args:
        db_manager: Database manager fixture

    Yields:
        AsyncSession for database operations
    """
    async with db_manager.get_session() as session:
        yield session


@pytest.fixture
def service(db_manager):
    """TaskService bound to the in-memory database."""
    return TaskService(db_manager)


@pytest.fixture
def owner():
    """Primary test user ID."""
    return "u1"


@pytest.fixture
def other_owner():
    """A second, unrelated user ID."""
    return "u2"


@pytest.fixture
def new_task(owner):
    """
    Factory fixture for NewTask payloads.

    Example:
        async def test_something(service, new_task, owner):
            task = await service.create_task(new_task("Write docs"), owner)
    """
    def _new_task(description: str = "Test Task", parent_id=None, user_id: str = None, **fields) -> NewTask:
        return NewTask(
            user_id=user_id or owner,
            description=description,
            parent_id=parent_id,
            **fields
        )
    return _new_task


@pytest_asyncio.fixture
async def task_hierarchy(service, new_task, owner):
    """
    Create a multi-level task hierarchy through the service.

    Creates:
        - Root
          - Child 1
            - Grandchild
          - Child 2
        - Other Root

    Returns:
        Dictionary of created Task instances by role
    """
    root = await service.create_task(new_task("Root"), owner)
    child1 = await service.create_task(new_task("Child 1", parent_id=root.id), owner)
    child2 = await service.create_task(new_task("Child 2", parent_id=root.id), owner)
    grandchild = await service.create_task(new_task("Grandchild", parent_id=child1.id), owner)
    other_root = await service.create_task(new_task("Other Root"), owner)

    return {
        "root": root,
        "child1": child1,
        "child2": child2,
        "grandchild": grandchild,
        "other_root": other_root,
    }


@pytest.fixture
def make_record():
    """
    Factory fixture for TaskRecord models (no database involved).

    Each call is one second newer than the previous one so ordering by
    creation time is deterministic.
    """
    base = datetime(2025, 1, 14, 10, 0, 0)
    counter = {"n": 0}

    def _make_record(
        description: str = "Test Task",
        user_id: str = "u1",
        id: UUID = None,
        status: TaskStatus = TaskStatus.TODO,
        priority: TaskPriority = TaskPriority.NONE,
    ) -> TaskRecord:
        counter["n"] += 1
        created = base + timedelta(seconds=counter["n"])
        return TaskRecord(
            id=id or uuid4(),
            user_id=user_id,
            description=description,
            status=status,
            priority=priority,
            created_at=created,
            updated_at=created,
        )
    return _make_record


@pytest.fixture
def make_edge():
    """
    Factory fixture for TaskRelationship models.

    Edges are numbered and stamped one second apart in creation order.
    """
    base = datetime(2025, 1, 14, 12, 0, 0)
    counter = {"n": 0}

    def _make_edge(parent, child) -> TaskRelationship:
        counter["n"] += 1
        return TaskRelationship(
            id=counter["n"],
            parent_task_id=parent.id if parent is not None else None,
            child_task_id=child.id,
            created_at=base + timedelta(seconds=counter["n"]),
        )
    return _make_edge


@pytest.fixture
def make_task_orm():
    """Factory fixture for TaskORM rows."""
    def _make_task_orm(description: str = "Row", user_id: str = "u1", **fields) -> TaskORM:
        now = utc_now()
        values = {
            "id": str(uuid4()),
            "user_id": user_id,
            "description": description,
            "completed": False,
            "status": TaskStatus.TODO,
            "priority": TaskPriority.NONE,
            "created_at": now,
            "updated_at": now,
        }
        values.update(fields)
        return TaskORM(**values)
    return _make_task_orm


@pytest.fixture
def make_edge_orm():
    """Factory fixture for TaskRelationshipORM rows."""
    def _make_edge_orm(parent_id: str, child_id: str) -> TaskRelationshipORM:
        return TaskRelationshipORM(
            parent_task_id=parent_id,
            child_task_id=child_id,
            created_at=utc_now(),
        )
    return _make_edge_orm
