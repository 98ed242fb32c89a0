"""
Schema introspection for relational databases.

Reads table names, column names and foreign keys from the catalog of a
user's database. Column lists are fetched one table at a time over the same
connection. There is no paging; large catalogs are returned whole.

Result shape:
    {"tables": [{"name": "users", "columns": ["id", "email"]}, ...],
     "relationships": {"orders": {"user_id": {"references": "users.id"}}}}
"""

import logging
from typing import Any, Iterable

import aiomysql

from app.exceptions import SchemaNotSupportedError
from .clients import mysql_connection, postgres_connection, sqlite_connection
from .types import DatabaseConfig, MySQLConfig, PostgresConfig, SQLiteConfig

logger = logging.getLogger(__name__)


# ============ PostgreSQL family ============

PG_TABLES_SQL = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = 'public' AND table_type = 'BASE TABLE'
    ORDER BY table_name
"""

PG_COLUMNS_SQL = """
    SELECT column_name
    FROM information_schema.columns
    WHERE table_schema = 'public' AND table_name = $1
    ORDER BY ordinal_position
"""

PG_FOREIGN_KEYS_SQL = """
    SELECT
        tc.table_name AS table_name,
        kcu.column_name AS column_name,
        ccu.table_name AS foreign_table_name,
        ccu.column_name AS foreign_column_name
    FROM information_schema.table_constraints AS tc
    JOIN information_schema.key_column_usage AS kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
    JOIN information_schema.constraint_column_usage AS ccu
        ON ccu.constraint_name = tc.constraint_name
        AND ccu.table_schema = tc.table_schema
    WHERE tc.constraint_type = 'FOREIGN KEY' AND tc.table_schema = 'public'
"""


async def _postgres_schema(config: PostgresConfig) -> dict:
    async with postgres_connection(config) as conn:
        table_rows = await conn.fetch(PG_TABLES_SQL)
        tables = []
        for row in table_rows:
            name = row["table_name"]
            column_rows = await conn.fetch(PG_COLUMNS_SQL, name)
            tables.append({"name": name, "columns": [c["column_name"] for c in column_rows]})

        fk_rows = await conn.fetch(PG_FOREIGN_KEYS_SQL)

    return {"tables": tables, "relationships": build_relationships(fk_rows)}


# ============ MySQL ============

MYSQL_TABLES_SQL = """
    SELECT table_name AS table_name
    FROM information_schema.tables
    WHERE table_schema = %s AND table_type = 'BASE TABLE'
    ORDER BY table_name
"""

MYSQL_COLUMNS_SQL = """
    SELECT column_name AS column_name
    FROM information_schema.columns
    WHERE table_schema = %s AND table_name = %s
    ORDER BY ordinal_position
"""

MYSQL_FOREIGN_KEYS_SQL = """
    SELECT
        table_name AS table_name,
        column_name AS column_name,
        referenced_table_name AS foreign_table_name,
        referenced_column_name AS foreign_column_name
    FROM information_schema.key_column_usage
    WHERE table_schema = %s AND referenced_table_name IS NOT NULL
"""


async def _mysql_schema(config: MySQLConfig) -> dict:
    async with mysql_connection(config) as conn:
        async with conn.cursor(aiomysql.DictCursor) as cur:
            await cur.execute(MYSQL_TABLES_SQL, (config.dbname,))
            table_rows = await cur.fetchall()
            tables = []
            for row in table_rows:
                name = row["table_name"]
                await cur.execute(MYSQL_COLUMNS_SQL, (config.dbname, name))
                column_rows = await cur.fetchall()
                tables.append({"name": name, "columns": [c["column_name"] for c in column_rows]})

            await cur.execute(MYSQL_FOREIGN_KEYS_SQL, (config.dbname,))
            fk_rows = await cur.fetchall()

    return {"tables": tables, "relationships": build_relationships(fk_rows)}


# ============ SQLite ============

SQLITE_TABLES_SQL = """
    SELECT name FROM sqlite_master
    WHERE type = 'table' AND name NOT LIKE 'sqlite_%'
    ORDER BY name
"""


def _quote_sqlite(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


async def _sqlite_schema(config: SQLiteConfig) -> dict:
    async with sqlite_connection(config) as conn:
        async with conn.execute(SQLITE_TABLES_SQL) as cur:
            names = [row[0] for row in await cur.fetchall()]

        tables = []
        fk_rows = []
        for name in names:
            # PRAGMA table_info: (cid, name, type, notnull, dflt_value, pk)
            async with conn.execute(f"PRAGMA table_info({_quote_sqlite(name)})") as cur:
                columns = [row[1] for row in await cur.fetchall()]
            tables.append({"name": name, "columns": columns})

            # PRAGMA foreign_key_list: (id, seq, table, from, to, on_update, on_delete, match)
            async with conn.execute(f"PRAGMA foreign_key_list({_quote_sqlite(name)})") as cur:
                for row in await cur.fetchall():
                    fk_rows.append({
                        "table_name": name,
                        "column_name": row[3],
                        "foreign_table_name": row[2],
                        "foreign_column_name": row[4],
                    })

    return {"tables": tables, "relationships": build_relationships(fk_rows)}


# ============ Shared ============

def build_relationships(fk_rows: Iterable[Any]) -> dict:
    """Fold foreign-key rows into {table: {column: {"references": "other.col"}}}."""
    relationships: dict[str, dict[str, dict[str, str]]] = {}
    for row in fk_rows:
        foreign_column = row["foreign_column_name"]
        if foreign_column is None:
            # SQLite leaves "to" empty when the key targets the primary key implicitly
            foreign_column = "id"
        relationships.setdefault(row["table_name"], {})[row["column_name"]] = {
            "references": f"{row['foreign_table_name']}.{foreign_column}"
        }
    return relationships


async def fetch_schema(config: DatabaseConfig) -> dict:
    """Introspect a database. Raises SchemaNotSupportedError for non-relational types."""
    if isinstance(config, PostgresConfig):
        schema = await _postgres_schema(config)
    elif isinstance(config, MySQLConfig):
        schema = await _mysql_schema(config)
    elif isinstance(config, SQLiteConfig):
        schema = await _sqlite_schema(config)
    else:
        raise SchemaNotSupportedError(
            f"Schema fetching not supported for database type: {config.db_type}"
        )

    logger.info(
        f"Introspected {config.db_type}: {len(schema['tables'])} tables, "
        f"{sum(len(cols) for cols in schema['relationships'].values())} foreign keys"
    )
    return schema
