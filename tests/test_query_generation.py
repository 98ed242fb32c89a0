"""
Tests for prompt assembly and the generate/execute query endpoints
"""

import sqlite3
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient

from app.connectors import parse_user_db_config
from app.exceptions import InvalidConfigError
from app.services.query_generator import build_prompt, format_relationships, format_schema


def fake_openai(content):
    """Stand-in for AsyncOpenAI whose completion returns the given content"""
    client = MagicMock()
    choice = MagicMock()
    choice.message.content = content
    client.chat.completions.create = AsyncMock(return_value=MagicMock(choices=[choice]))
    client.close = AsyncMock()
    return MagicMock(return_value=client), client


async def store_openai_key(client: AsyncClient, headers: dict):
    response = await client.post(
        "/api/apikeys", headers=headers, json={"provider": "openai", "apiKey": "sk-test-abcdefghijklmnop"}
    )
    assert response.status_code == 201


# ============ Prompt ============

def test_format_schema_lists_tables_in_order():
    text = format_schema({"users": ["id", "email"], "orders": ["id", "user_id"]})
    assert text.startswith("Database Schema:\n")
    assert text.index("users (id, email)\n") < text.index("orders (id, user_id)\n")
    assert "**these table names and column names**" in text


def test_format_schema_skips_non_list_values():
    text = format_schema({"users": ["id"], "_meta": {"version": 2}})
    assert "_meta" not in text


def test_format_relationships():
    text = format_relationships({"orders": {"user_id": {"references": "users.id"}}})
    assert text == "\nTable Relationships:\norders.user_id -> users.id\n"


def test_build_prompt_is_deterministic():
    tables = {"users": ["id", "email"]}
    assert build_prompt("count users", tables) == build_prompt("count users", tables)


def test_build_prompt_ends_with_request():
    prompt = build_prompt("how many users?", {"users": ["id"]})
    assert prompt.endswith('User Request: "how many users?"\nSQL Query:\n')
    assert "PostgreSQL" in prompt


def test_build_prompt_follows_dialect():
    prompt = build_prompt("list users", {"users": ["id"]}, db_type="mysql")
    assert "You are a MySQL expert" in prompt
    assert "backticks" in prompt

    # Unknown types fall back to PostgreSQL
    assert "You are a PostgreSQL expert" in build_prompt("x", {}, db_type="oracle")


# ============ /generate-query ============

@pytest.mark.asyncio
async def test_generate_query_from_project(client: AsyncClient, auth_headers: dict):
    await store_openai_key(client, auth_headers)
    project = (await client.post(
        "/api/project",
        headers=auth_headers,
        json={
            "project_name": "Shop",
            "db_credential": {"host": "db", "dbname": "shop", "user": "u", "password": "p"},
            "selected_tables": {"users": ["id", "email"]},
            "table_relationships": {"orders": {"user_id": {"references": "users.id"}}},
        },
    )).json()

    factory, openai_client = fake_openai("  SELECT COUNT(*) FROM users;  ")
    with patch("app.services.query_generator.AsyncOpenAI", factory):
        response = await client.post(
            "/api/generate-query",
            headers=auth_headers,
            json={"userInput": "How many users?", "project_id": project["id"]},
        )

    assert response.status_code == 200
    assert response.json() == {"query": "SELECT COUNT(*) FROM users;"}

    factory.assert_called_once_with(api_key="sk-test-abcdefghijklmnop")
    kwargs = openai_client.chat.completions.create.call_args.kwargs
    prompt = kwargs["messages"][0]["content"]
    assert "users (id, email)\n" in prompt
    assert "orders.user_id -> users.id" in prompt
    assert kwargs["model"] == "gpt-3.5-turbo"
    openai_client.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_generate_query_inline_schema(client: AsyncClient, auth_headers: dict):
    await store_openai_key(client, auth_headers)
    factory, openai_client = fake_openai("SELECT `email` FROM `users`")
    with patch("app.services.query_generator.AsyncOpenAI", factory):
        response = await client.post(
            "/api/generate-query",
            headers=auth_headers,
            json={
                "userInput": "emails",
                "dbType": "mysql",
                "dbSchema": {"tables": {"users": ["id", "email"]}},
            },
        )

    assert response.status_code == 200
    prompt = openai_client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
    assert "You are a MySQL expert" in prompt


@pytest.mark.asyncio
async def test_generate_query_requires_input(client: AsyncClient, auth_headers: dict):
    response = await client.post("/api/generate-query", headers=auth_headers, json={"userInput": "   "})
    assert response.status_code == 400
    assert response.json()["detail"] == "User input is required"


@pytest.mark.asyncio
async def test_generate_query_without_api_key(client: AsyncClient, auth_headers: dict):
    response = await client.post(
        "/api/generate-query",
        headers=auth_headers,
        json={"userInput": "count users", "dbSchema": {"tables": {"users": ["id"]}}},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "No OpenAI API key found. Please add your API key first."


@pytest.mark.asyncio
async def test_generate_query_empty_completion(client: AsyncClient, auth_headers: dict):
    await store_openai_key(client, auth_headers)
    factory, _ = fake_openai("   ")
    with patch("app.services.query_generator.AsyncOpenAI", factory):
        response = await client.post(
            "/api/generate-query",
            headers=auth_headers,
            json={"userInput": "count users", "dbSchema": {"tables": {"users": ["id"]}}},
        )
    assert response.status_code == 500
    assert response.json()["detail"] == "No query generated"


@pytest.mark.asyncio
async def test_generate_query_other_users_project(client: AsyncClient, auth_headers: dict, other_auth_headers: dict):
    project = (await client.post(
        "/api/project",
        headers=other_auth_headers,
        json={"project_name": "Theirs", "db_credential": {"host": "db", "dbname": "x", "user": "u"}},
    )).json()

    response = await client.post(
        "/api/generate-query",
        headers=auth_headers,
        json={"userInput": "anything", "project_id": project["id"]},
    )
    assert response.status_code == 404


# ============ /execute-query ============

@pytest.mark.asyncio
async def test_execute_query_sqlite(client: AsyncClient, auth_headers: dict, user_data_dir):
    path = user_data_dir / "data.db"
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE events (id INTEGER PRIMARY KEY, big INTEGER, name TEXT);
        INSERT INTO events (big, name) VALUES (9007199254740993, 'launch');
        """
    )
    conn.commit()
    conn.close()

    response = await client.post(
        "/api/execute-query",
        headers=auth_headers,
        json={"query": "SELECT id, big, name FROM events", "dbType": "sqlite", "dbConfig": {"dbname": "data.db"}},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["fields"] == ["id", "big", "name"]
    assert data["rows"] == [{"id": 1, "big": "9007199254740993", "name": "launch"}]


@pytest.mark.asyncio
async def test_execute_query_requires_query(client: AsyncClient, auth_headers: dict):
    response = await client.post("/api/execute-query", headers=auth_headers, json={"dbConfig": {"dbname": "x"}})
    assert response.status_code == 400
    assert response.json()["detail"] == "Query is required"


@pytest.mark.asyncio
async def test_execute_query_requires_config(client: AsyncClient, auth_headers: dict):
    response = await client.post("/api/execute-query", headers=auth_headers, json={"query": "SELECT 1"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Database config is required"


@pytest.mark.asyncio
async def test_execute_query_bad_sql(client: AsyncClient, auth_headers: dict, user_data_dir):
    path = user_data_dir / "empty.db"
    sqlite3.connect(path).close()

    response = await client.post(
        "/api/execute-query",
        headers=auth_headers,
        json={"query": "SELECT * FROM missing_table", "dbType": "sqlite", "dbConfig": {"dbname": "empty.db"}},
    )
    assert response.status_code == 500
    assert "missing_table" in response.json()["detail"]


@pytest.mark.asyncio
async def test_execute_query_cannot_reach_another_users_database(
    client: AsyncClient, auth_headers: dict, other_auth_headers: dict, user_data_dir
):
    path = user_data_dir / "private.db"
    conn = sqlite3.connect(path)
    conn.executescript("CREATE TABLE secrets (value TEXT); INSERT INTO secrets VALUES ('hunter2');")
    conn.commit()
    conn.close()

    for dbname in (str(path), f"../{user_data_dir.name}/private.db"):
        response = await client.post(
            "/api/execute-query",
            headers=other_auth_headers,
            json={"query": "SELECT value FROM secrets", "dbType": "sqlite", "dbConfig": {"dbname": dbname}},
        )
        assert response.status_code == 400, dbname
        assert "rows" not in response.json()


@pytest.mark.asyncio
async def test_execute_query_refuses_application_store(
    client: AsyncClient, auth_headers: dict, user_data_dir
):
    store = user_data_dir / "askdb.db"
    sqlite3.connect(store).close()

    with patch("app.connectors.types.settings.database_url", f"sqlite+aiosqlite:///{store}"):
        with pytest.raises(InvalidConfigError):
            parse_user_db_config("sqlite", {"dbname": "askdb.db"}, int(user_data_dir.name))

        response = await client.post(
            "/api/execute-query",
            headers=auth_headers,
            json={"query": "SELECT * FROM users", "dbType": "sqlite", "dbConfig": {"dbname": "askdb.db"}},
        )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_execute_query_non_relational(client: AsyncClient, auth_headers: dict):
    response = await client.post(
        "/api/execute-query",
        headers=auth_headers,
        json={"query": "GET key", "dbType": "redis", "dbConfig": {"host": "localhost"}},
    )
    assert response.status_code == 400
