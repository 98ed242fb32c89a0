"""Supported external database types and their connection parameters.

A project's ``db_credential`` is stored as one of the config models below,
tagged by ``db_type``. Stored blobs are parsed again on every read so a
malformed row fails loudly instead of reaching a vendor client.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from sqlalchemy.engine import make_url

from app.config import settings
from app.exceptions import InvalidConfigError


class DatabaseType(str, Enum):
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLITE = "sqlite"
    MONGODB = "mongodb"
    REDIS = "redis"
    COCKROACHDB = "cockroachdb"
    TIMESCALEDB = "timescaledb"
    FIRESTORE = "firestore"
    DYNAMODB = "dynamodb"


# Types that speak the PostgreSQL wire protocol
POSTGRES_FAMILY = {DatabaseType.POSTGRESQL, DatabaseType.COCKROACHDB, DatabaseType.TIMESCALEDB}

# Types whose catalog we can introspect and run SQL against
SCHEMA_SUPPORTED = POSTGRES_FAMILY | {DatabaseType.MYSQL, DatabaseType.SQLITE}


@dataclass(frozen=True)
class DatabaseMeta:
    id: DatabaseType
    name: str
    description: str
    default_port: str
    success_message: str

    @property
    def supports_schema(self) -> bool:
        return self.id in SCHEMA_SUPPORTED

    def to_dict(self) -> dict:
        return {
            "id": self.id.value,
            "name": self.name,
            "description": self.description,
            "default_port": self.default_port,
            "success_message": self.success_message,
            "supports_schema": self.supports_schema,
        }


_SCHEMA_LOADED = "Connection successful! Database schema loaded."

DATABASE_TYPES: list[DatabaseMeta] = [
    DatabaseMeta(DatabaseType.POSTGRESQL, "PostgreSQL", "Powerful open-source relational database", "5432", _SCHEMA_LOADED),
    DatabaseMeta(DatabaseType.MYSQL, "MySQL", "Popular open-source relational database", "3306", _SCHEMA_LOADED),
    DatabaseMeta(DatabaseType.MONGODB, "MongoDB", "Document-oriented NoSQL database", "27017",
                 "Connection successful! MongoDB collections available."),
    DatabaseMeta(DatabaseType.REDIS, "Redis", "In-memory key-value data store", "6379", "Connection to Redis successful!"),
    DatabaseMeta(DatabaseType.SQLITE, "SQLite", "Lightweight file-based database", "", "SQLite database loaded successfully!"),
    DatabaseMeta(DatabaseType.COCKROACHDB, "CockroachDB", "Distributed SQL database", "26257", _SCHEMA_LOADED),
    DatabaseMeta(DatabaseType.TIMESCALEDB, "TimescaleDB", "Time-series database built on PostgreSQL", "5432", _SCHEMA_LOADED),
    DatabaseMeta(DatabaseType.FIRESTORE, "Firestore", "Google Cloud NoSQL document database", "", "Firestore connection successful!"),
    DatabaseMeta(DatabaseType.DYNAMODB, "DynamoDB", "AWS NoSQL key-value database", "", "DynamoDB connection successful!"),
]


def get_database_meta(db_type: str) -> Optional[DatabaseMeta]:
    for meta in DATABASE_TYPES:
        if meta.id.value == db_type:
            return meta
    return None


# ============ Connection configs ============

class _ConfigBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PostgresConfig(_ConfigBase):
    db_type: Literal["postgresql", "cockroachdb", "timescaledb"] = "postgresql"
    host: str
    port: int = 5432
    dbname: str
    user: str
    password: Optional[str] = None
    sslmode: Optional[str] = None  # CockroachDB only; "disable" turns SSL off


class MySQLConfig(_ConfigBase):
    db_type: Literal["mysql"]
    host: str
    port: int = 3306
    dbname: str
    user: str
    password: Optional[str] = None


class SQLiteConfig(_ConfigBase):
    db_type: Literal["sqlite"]
    dbname: str  # file path, relative to the owner's SQLite data directory


class MongoConfig(_ConfigBase):
    db_type: Literal["mongodb"]
    host: str
    port: int = 27017
    dbname: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None


class RedisConfig(_ConfigBase):
    db_type: Literal["redis"]
    host: str
    port: int = 6379
    password: Optional[str] = None


class FirestoreConfig(_ConfigBase):
    db_type: Literal["firestore"]
    service_account_key: str = Field(alias="serviceAccountKey")  # service-account JSON document


class DynamoDBConfig(_ConfigBase):
    db_type: Literal["dynamodb"]
    region: str
    access_key_id: Optional[str] = Field(None, alias="accessKeyId")
    secret_access_key: Optional[str] = Field(None, alias="secretAccessKey")


DatabaseConfig = Annotated[
    Union[
        PostgresConfig, MySQLConfig, SQLiteConfig, MongoConfig,
        RedisConfig, FirestoreConfig, DynamoDBConfig,
    ],
    Field(discriminator="db_type"),
]

_config_adapter = TypeAdapter(DatabaseConfig)


def parse_db_config(db_type: Optional[str], config: Any) -> DatabaseConfig:
    """Validate loosely-typed connection parameters into a typed config.

    ``db_type`` wins over any tag already present in ``config``. Blobs saved
    before the tag existed carry no ``db_type`` and are read as PostgreSQL.
    """
    if not isinstance(config, dict):
        raise InvalidConfigError("Database config must be an object")
    data = dict(config)
    if db_type:
        data["db_type"] = db_type
    data.setdefault("db_type", DatabaseType.POSTGRESQL.value)
    if get_database_meta(data["db_type"]) is None:
        raise InvalidConfigError(f"Unsupported database type: {data['db_type']}")
    try:
        return _config_adapter.validate_python(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise InvalidConfigError(f"Invalid {data['db_type']} config: check {fields}") from e


def dump_db_config(config: DatabaseConfig) -> dict:
    """Serialize a typed config for storage in a JSON column."""
    return config.model_dump(by_alias=True, exclude_none=True)


# ============ SQLite confinement ============

def sqlite_root() -> Path:
    return Path(settings.sqlite_data_dir).resolve()


def app_store_path() -> Optional[Path]:
    """File backing the application's own database, when that is SQLite."""
    url = make_url(settings.database_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return None
    return Path(url.database).resolve()


def check_sqlite_path(path: Path, root: Path) -> Path:
    """Resolved database file. Refused unless it lies under root and is not the application store."""
    resolved = path.resolve()
    if not resolved.is_relative_to(root.resolve()) or resolved == app_store_path():
        raise InvalidConfigError("SQLite database must be a file inside your data directory")
    return resolved


def parse_user_db_config(db_type: Optional[str], config: Any, user_id: int) -> DatabaseConfig:
    """parse_db_config() for a caller's own connection.

    SQLite paths are resolved inside ``<sqlite_data_dir>/<user_id>``; absolute
    paths and ``..`` segments that lead elsewhere are rejected.
    """
    parsed = parse_db_config(db_type, config)
    if isinstance(parsed, SQLiteConfig):
        root = sqlite_root() / str(user_id)
        path = check_sqlite_path(root / parsed.dbname, root)
        parsed = parsed.model_copy(update={"dbname": str(path)})
    return parsed
