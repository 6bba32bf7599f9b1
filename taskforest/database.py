"""
Database layer for taskforest.

Provides SQLAlchemy ORM models for the task entity table and the parent/child
edge table, async engine/session management, and database initialization.
"""

import asyncio
from contextlib import asynccontextmanager, nullcontext
from datetime import datetime
from pathlib import Path
from typing import AsyncGenerator, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from taskforest.logging_config import get_logger
from taskforest.models import TaskPriority, TaskStatus

logger = get_logger(__name__)


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class TaskORM(Base):
    """
    SQLAlchemy ORM model for tasks.

    Stores task attributes only. Hierarchy lives in task_relationships so
    there is a single source of truth for parent links.
    """
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Status flags
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[TaskStatus] = mapped_column(
        Enum(TaskStatus, name="task_status", values_callable=_enum_values),
        nullable=False,
        default=TaskStatus.TODO,
    )
    priority: Mapped[TaskPriority] = mapped_column(
        Enum(TaskPriority, name="task_priority", values_callable=_enum_values),
        nullable=False,
        default=TaskPriority.NONE,
    )

    # Timestamps
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<TaskORM(id={self.id}, user_id={self.user_id}, status={self.status})>"


class TaskRelationshipORM(Base):
    """
    SQLAlchemy ORM model for parent -> child edges.

    The unique index on child_task_id is what guarantees a task has at most
    one parent, including under concurrent writers.
    """
    __tablename__ = "task_relationships"
    __table_args__ = (
        UniqueConstraint("parent_task_id", "child_task_id", name="uniq_parent_child"),
        UniqueConstraint("child_task_id", name="uniq_child"),
        CheckConstraint("parent_task_id <> child_task_id", name="no_self_parent"),
    )

    # Monotonic; breaks ties between edges stamped in the same clock tick
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parent_task_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("tasks.id"), nullable=True, index=True
    )
    child_task_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tasks.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<TaskRelationshipORM(parent={self.parent_task_id}, "
            f"child={self.child_task_id})>"
        )


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseManager:
    """
    Manages database connections and session lifecycle.

    Handles async engine creation, session management, and database
    initialization for both production and testing scenarios.
    """

    def __init__(self, database_url: str, echo: bool = False):
        """
        Initialize database manager with connection URL.

        Args:
            database_url: SQLAlchemy database URL
            echo: Log every SQL statement (debugging only)
        """
        self.database_url = database_url
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self.session_maker: Optional[async_sessionmaker[AsyncSession]] = None
        # Set only for in-memory databases, where all sessions share one connection
        self._session_lock: Optional[asyncio.Lock] = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    async def initialize(self) -> None:
        """
        Initialize the database engine and create tables.

        Creates the async engine, session maker, and all tables defined
        in the Base metadata. SQLite connections get foreign key enforcement
        switched on. In-memory databases share one connection so every
        session sees the same data; sessions on such a database are
        serialized so one transaction never commits or rolls back another.
        """
        try:
            logger.info(f"Initializing database: {self.database_url}")
            engine_kwargs = {"echo": self.echo}
            if self.is_sqlite and ":memory:" in self.database_url:
                engine_kwargs["poolclass"] = StaticPool
                engine_kwargs["connect_args"] = {"check_same_thread": False}
                self._session_lock = asyncio.Lock()
            elif self.is_sqlite:
                db_path = make_url(self.database_url).database
                if db_path:
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

            self.engine = create_async_engine(self.database_url, **engine_kwargs)

            if self.is_sqlite:
                event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

            self.session_maker = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )

            # Create all tables
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}", exc_info=True)
            raise

    async def close(self) -> None:
        """
        Close the database engine and cleanup resources.
        """
        if self.engine:
            logger.info("Closing database connection")
            try:
                await self.engine.dispose()
                self.engine = None
                self.session_maker = None
                self._session_lock = None
                logger.info("Database connection closed successfully")
            except Exception as e:
                logger.error(f"Error closing database connection: {e}", exc_info=True)
                raise

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get an async database session wrapping exactly one transaction.

        Commits when the block exits normally and rolls back on any
        exception, so a multi-step write is all-or-nothing. On an in-memory
        database only one session is open at a time; do not open a second
        session while holding one.

        Yields:
            AsyncSession for database operations

        Example:
            async with db_manager.get_session() as session:
                result = await session.execute(select(TaskORM))
                tasks = result.scalars().all()
        """
        if not self.session_maker:
            raise RuntimeError("DatabaseManager not initialized. Call initialize() first.")

        async with self._session_lock or nullcontext():
            async with self.session_maker() as session:
                try:
                    yield session
                    await session.commit()
                except Exception as e:
                    logger.debug(f"Database session error, rolling back: {e}")
                    await session.rollback()
                    raise


# Global database manager instance
_db_manager: Optional[DatabaseManager] = None


def get_database_manager(
    database_url: Optional[str] = None,
    echo: Optional[bool] = None,
) -> DatabaseManager:
    """
    Get or create the global database manager instance.

    Args:
        database_url: SQLAlchemy database URL (default: from Config)
        echo: SQL echo flag (default: from Config)

    Returns:
        DatabaseManager instance
    """
    global _db_manager
    if _db_manager is None:
        if database_url is None or echo is None:
            from taskforest.config import Config

            db_config = Config().get_database_config()
            database_url = database_url or db_config["url"]
            echo = db_config["echo"] if echo is None else echo
        _db_manager = DatabaseManager(database_url, echo=echo)
    return _db_manager


async def init_database(database_url: Optional[str] = None) -> DatabaseManager:
    """
    Initialize the database and return the manager instance.

    Convenience function for application startup.

    Args:
        database_url: SQLAlchemy database URL (default: from Config)

    Returns:
        Initialized DatabaseManager instance
    """
    db_manager = get_database_manager(database_url)
    await db_manager.initialize()
    return db_manager
