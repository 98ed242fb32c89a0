"""External database connectors: config types, connection tests, introspection, execution."""

from .types import (
    DATABASE_TYPES,
    DatabaseConfig,
    DatabaseMeta,
    DatabaseType,
    dump_db_config,
    get_database_meta,
    parse_db_config,
    parse_user_db_config,
)
from .dispatch import check_connection, connect_to_database
from .introspection import fetch_schema
from .executor import execute_query, normalize_value

__all__ = [
    "DATABASE_TYPES",
    "DatabaseConfig",
    "DatabaseMeta",
    "DatabaseType",
    "dump_db_config",
    "get_database_meta",
    "parse_db_config",
    "parse_user_db_config",
    "check_connection",
    "connect_to_database",
    "fetch_schema",
    "execute_query",
    "normalize_value",
]
