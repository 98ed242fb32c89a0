"""Short-lived connections to users' relational databases.

Each helper opens exactly one connection and closes it when the ``async with``
block exits, whether or not the block raised. Nothing is pooled: every request
gets its own connection.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from pathlib import Path
from typing import AsyncIterator
from urllib.parse import quote

import aiomysql
import aiosqlite
import asyncpg

from app.config import settings
from app.exceptions import DatabaseConnectionError
from .types import DatabaseType, MySQLConfig, PostgresConfig, SQLiteConfig, check_sqlite_path, sqlite_root

logger = logging.getLogger(__name__)


def _postgres_ssl(config: PostgresConfig):
    """CockroachDB requires SSL unless explicitly disabled; others use the server default."""
    if config.db_type == DatabaseType.COCKROACHDB.value:
        return config.sslmode != "disable"
    return None


@asynccontextmanager
async def postgres_connection(config: PostgresConfig) -> AsyncIterator[asyncpg.Connection]:
    """Connection to a PostgreSQL-compatible server (PostgreSQL, CockroachDB, TimescaleDB)."""
    try:
        conn = await asyncpg.connect(
            host=config.host,
            port=config.port,
            database=config.dbname,
            user=config.user,
            password=config.password,
            ssl=_postgres_ssl(config),
            timeout=settings.db_connect_timeout,
        )
    except (OSError, asyncpg.PostgresError) as e:
        logger.warning(f"Failed to connect to {config.db_type} at {config.host}:{config.port}: {e}")
        raise DatabaseConnectionError(str(e)) from e
    try:
        yield conn
    finally:
        await conn.close()


@asynccontextmanager
async def mysql_connection(config: MySQLConfig) -> AsyncIterator[aiomysql.Connection]:
    try:
        conn = await aiomysql.connect(
            host=config.host,
            port=config.port,
            db=config.dbname,
            user=config.user,
            password=config.password or "",
            connect_timeout=settings.db_connect_timeout,
            autocommit=True,
        )
    except (OSError, aiomysql.Error) as e:
        logger.warning(f"Failed to connect to mysql at {config.host}:{config.port}: {e}")
        raise DatabaseConnectionError(str(e)) from e
    try:
        yield conn
    finally:
        conn.close()


@asynccontextmanager
async def sqlite_connection(config: SQLiteConfig) -> AsyncIterator[aiosqlite.Connection]:
    path = check_sqlite_path(Path(config.dbname), sqlite_root())
    # mode=rw: never create a new empty file for a mistyped path
    uri = f"file:{quote(str(path))}?mode=rw"
    try:
        conn = await aiosqlite.connect(uri, uri=True)
    except aiosqlite.Error as e:
        raise DatabaseConnectionError(f"Cannot open SQLite database {config.dbname}: {e}") from e
    try:
        yield conn
    finally:
        await conn.close()
