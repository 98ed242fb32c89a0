"""Database connection and session management for the application store"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from app.config import settings
from app.db.models import Base

_is_sqlite = settings.database_url.startswith("sqlite")

if _is_sqlite:
    # Development and tests; one shared connection so in-memory stores survive
    engine = create_async_engine(
        settings.database_url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=settings.debug,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        # Owner deletes cascade through ON DELETE CASCADE, which SQLite ignores by default
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
else:
    # PostgreSQL, long-running process with a direct connection
    engine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncSession:
    """Request-scoped session; routes commit explicitly"""
    async with async_session_maker() as session:
        yield session


async def init_db():
    """Create any missing tables. Schema changes go through alembic/."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db():
    """Drop all tables (tests only)"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
