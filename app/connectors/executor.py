"""
Run SQL against a user's database.

The statement is executed exactly as received, with the privileges of the
stored credential. Each call opens and closes its own connection.
"""

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

import aiomysql
import aiosqlite
import asyncpg

from app.exceptions import QueryExecutionError, SchemaNotSupportedError
from .clients import mysql_connection, postgres_connection, sqlite_connection
from .types import DatabaseConfig, MySQLConfig, PostgresConfig, SQLiteConfig

logger = logging.getLogger(__name__)


def normalize_value(value: Any) -> Any:
    """Normalize database values for JSON serialization."""
    if value is None:
        return None
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, bytes):
        # Try to decode as UTF-8, otherwise return hex representation
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return value.hex()
    if isinstance(value, memoryview):
        return bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [normalize_value(v) for v in value]
    return value


def _rows_to_dicts(fields: list[str], rows) -> list[dict]:
    return [
        {name: normalize_value(value) for name, value in zip(fields, row)}
        for row in rows
    ]


async def _execute_postgres(config: PostgresConfig, sql: str) -> tuple[list[str], list[dict]]:
    async with postgres_connection(config) as conn:
        try:
            stmt = await conn.prepare(sql)
            records = await stmt.fetch()
            fields = [attr.name for attr in stmt.get_attributes()]
        except asyncpg.PostgresError as e:
            raise QueryExecutionError(str(e)) from e
    return fields, _rows_to_dicts(fields, [tuple(r.values()) for r in records])


async def _execute_mysql(config: MySQLConfig, sql: str) -> tuple[list[str], list[dict]]:
    async with mysql_connection(config) as conn:
        async with conn.cursor() as cur:
            try:
                await cur.execute(sql)
                rows = await cur.fetchall()
            except aiomysql.Error as e:
                raise QueryExecutionError(str(e)) from e
            fields = [col[0] for col in cur.description] if cur.description else []
    return fields, _rows_to_dicts(fields, rows or [])


async def _execute_sqlite(config: SQLiteConfig, sql: str) -> tuple[list[str], list[dict]]:
    async with sqlite_connection(config) as conn:
        try:
            async with conn.execute(sql) as cur:
                rows = await cur.fetchall()
                fields = [col[0] for col in cur.description] if cur.description else []
            await conn.commit()
        except aiosqlite.Error as e:
            raise QueryExecutionError(str(e)) from e
    return fields, _rows_to_dicts(fields, rows)


async def execute_query(config: DatabaseConfig, sql: str) -> tuple[list[str], list[dict]]:
    """
    Execute one statement and return (field names, rows).

    Rows are dicts keyed by field name with JSON-safe values. Statements that
    return nothing yield empty lists.
    """
    logger.info(f"Executing query on {config.db_type}: {sql[:200]}")

    if isinstance(config, PostgresConfig):
        fields, rows = await _execute_postgres(config, sql)
    elif isinstance(config, MySQLConfig):
        fields, rows = await _execute_mysql(config, sql)
    elif isinstance(config, SQLiteConfig):
        fields, rows = await _execute_sqlite(config, sql)
    else:
        raise SchemaNotSupportedError(
            f"Query execution not supported for database type: {config.db_type}"
        )

    logger.debug(f"Query returned {len(rows)} rows from {config.db_type}")
    return fields, rows
