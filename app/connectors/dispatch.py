"""
Connection testing for every supported database type.

connect_to_database() opens a client for the declared type, performs one
cheap liveness action and releases the client again. It reports the outcome
as a dict and never raises.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Optional

import boto3
import firebase_admin
from firebase_admin import credentials as firebase_credentials
from firebase_admin import firestore
from motor.motor_asyncio import AsyncIOMotorClient
import redis.asyncio as aioredis

from app.config import settings
from app.exceptions import AskDBError
from .clients import mysql_connection, postgres_connection
from .types import (
    DatabaseConfig, DynamoDBConfig, FirestoreConfig, MongoConfig, MySQLConfig,
    PostgresConfig, RedisConfig, SQLiteConfig, parse_db_config,
)

logger = logging.getLogger(__name__)


async def _check_postgres(config: PostgresConfig) -> None:
    async with postgres_connection(config) as conn:
        await conn.execute("SELECT 1")


async def _check_mysql(config: MySQLConfig) -> None:
    async with mysql_connection(config) as conn:
        await conn.ping(reconnect=False)


def _mongo_uri(config: MongoConfig) -> str:
    auth = f"{config.user}:{config.password or ''}@" if config.user else ""
    return f"mongodb://{auth}{config.host}:{config.port}"


async def _check_mongodb(config: MongoConfig) -> None:
    timeout_ms = int(settings.db_connect_timeout * 1000)
    client = AsyncIOMotorClient(_mongo_uri(config), serverSelectionTimeoutMS=timeout_ms)
    try:
        await client.admin.command("ping")
    finally:
        client.close()


async def _check_redis(config: RedisConfig) -> None:
    client = aioredis.Redis(
        host=config.host,
        port=config.port,
        password=config.password or None,
        socket_connect_timeout=settings.db_connect_timeout,
    )
    try:
        await client.ping()
    finally:
        await client.aclose()


def _firestore_probe(service_account_key: str) -> None:
    cert = firebase_credentials.Certificate(json.loads(service_account_key))
    # A uniquely named app so concurrent checks never collide with each other
    app = firebase_admin.initialize_app(cert, name=f"askdb-check-{uuid.uuid4().hex}")
    try:
        client = firestore.client(app=app)
        next(iter(client.collections()), None)
    finally:
        firebase_admin.delete_app(app)


async def _check_firestore(config: FirestoreConfig) -> None:
    await asyncio.to_thread(_firestore_probe, config.service_account_key)


def _dynamodb_probe(config: DynamoDBConfig) -> None:
    client = boto3.client(
        "dynamodb",
        region_name=config.region,
        aws_access_key_id=config.access_key_id,
        aws_secret_access_key=config.secret_access_key,
    )
    try:
        client.list_tables(Limit=1)
    finally:
        client.close()


async def _check_dynamodb(config: DynamoDBConfig) -> None:
    await asyncio.to_thread(_dynamodb_probe, config)


async def _check_sqlite(config: SQLiteConfig) -> None:
    # File-based; nothing to reach over the network
    return None


_CHECKS: dict[type, Callable[[Any], Awaitable[None]]] = {
    PostgresConfig: _check_postgres,
    MySQLConfig: _check_mysql,
    MongoConfig: _check_mongodb,
    RedisConfig: _check_redis,
    FirestoreConfig: _check_firestore,
    DynamoDBConfig: _check_dynamodb,
    SQLiteConfig: _check_sqlite,
}


async def check_connection(config: DatabaseConfig) -> None:
    """Run the liveness check for an already-validated config. Raises on failure."""
    await _CHECKS[type(config)](config)


async def connect_to_database(db_type: Optional[str], config: Any) -> dict:
    """
    Test that a database is reachable.

    Returns {"success": True} or {"error": "<message>"}.
    """
    try:
        parsed = parse_db_config(db_type, config)
        await check_connection(parsed)
        return {"success": True}
    except AskDBError as e:
        return {"error": str(e)}
    except Exception as e:
        logger.info(f"Connection test for {db_type} failed: {type(e).__name__}: {e}")
        return {"error": str(e) or "Connection failed"}
