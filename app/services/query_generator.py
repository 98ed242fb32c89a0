"""
Query Generator - natural language to SQL through the OpenAI chat API

The prompt is built from a schema projection:
    tables:        {"users": ["id", "email"], ...}
    relationships: {"orders": {"user_id": {"references": "users.id"}}}

The completion is returned trimmed and otherwise untouched; nothing here
parses or validates the SQL it contains.
"""

import logging
from typing import Any, Optional

from openai import AsyncOpenAI, OpenAIError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.models import ApiKey
from app.exceptions import MissingApiKeyError, QueryGenerationError

logger = logging.getLogger(__name__)

OPENAI_PROVIDER = "openai"

# Dialect name and identifier quote style per database type
DIALECTS = {
    "postgresql": ("PostgreSQL", "double quotes", '"user", "project"'),
    "cockroachdb": ("CockroachDB (PostgreSQL-compatible)", "double quotes", '"user", "project"'),
    "timescaledb": ("TimescaleDB (PostgreSQL)", "double quotes", '"user", "project"'),
    "mysql": ("MySQL", "backticks", "`user`, `project`"),
    "sqlite": ("SQLite", "double quotes", '"user", "project"'),
}

RULES = """
🔹 **General {dialect} Rules**
- Use **{quote}** for table and column names (e.g., {example}).
- Use **COALESCE()** for NULL handling when necessary.
- Use **LEFT JOIN** instead of INNER JOIN when optional data might be missing.

🔹 **Handling Counts & Aggregations**
- Use `COUNT(DISTINCT column_name)` to prevent duplicate counts in joins.
- Always group by the primary key of the main entity.
- Use `HAVING COUNT(*) > X` only when necessary.

🔹 **Strict Table Relationships**
- Use only **defined relationships** from the database schema.
- **DO NOT assume relationships** between tables unless explicitly defined.
- If a relationship does not exist, return an error instead of making assumptions.

🔹 **Avoiding Data Type Errors**
- Always ensure JOIN conditions match column types.
- If necessary, use **CAST(column AS target_type)**.

🔹 **Optimizations**
- Use **WHERE** clauses instead of unnecessary HAVING filters.
- Use **EXISTS** instead of JOINs when filtering large datasets.
- Optimize performance with **LIMIT and OFFSET** when needed.
"""


def format_schema(tables: Optional[dict[str, Any]]) -> str:
    lines = ["Database Schema:\n"]
    for table, columns in (tables or {}).items():
        # Non-list values are stray metadata, not column lists
        if isinstance(columns, list):
            lines.append(f"{table} ({', '.join(str(c) for c in columns)})\n")
    lines.append("\nPlease generate SQL queries using **these table names and column names**.\n")
    return "".join(lines)


def format_relationships(relationships: Optional[dict[str, Any]]) -> str:
    lines = ["\nTable Relationships:\n"]
    for table, relations in (relationships or {}).items():
        if not isinstance(relations, dict):
            continue
        for column, ref in relations.items():
            if isinstance(ref, dict) and "references" in ref:
                lines.append(f"{table}.{column} -> {ref['references']}\n")
    return "".join(lines)


def build_prompt(
    user_input: str,
    tables: Optional[dict[str, Any]],
    relationships: Optional[dict[str, Any]] = None,
    db_type: Optional[str] = None,
) -> str:
    """Assemble the full prompt. Deterministic for identical inputs."""
    dialect, quote, example = DIALECTS.get(db_type or "postgresql", DIALECTS["postgresql"])
    return (
        f"You are a {dialect} expert. Convert the user request into a valid "
        f"{dialect} query following these rules:\n"
        f"{RULES.format(dialect=dialect, quote=quote, example=example)}\n"
        f"{format_schema(tables)}"
        f"{format_relationships(relationships)}\n"
        f'User Request: "{user_input}"\n'
        f"SQL Query:\n"
    )


async def get_api_key(db: AsyncSession, user_id: int, provider: str = OPENAI_PROVIDER) -> Optional[str]:
    result = await db.execute(
        select(ApiKey.api_key).where(ApiKey.user_id == user_id, ApiKey.provider == provider)
    )
    return result.scalars().first()


async def complete(api_key: str, prompt: str) -> str:
    """Send the prompt as a single user message and return the trimmed first choice"""
    client = AsyncOpenAI(api_key=api_key)
    try:
        response = await client.chat.completions.create(
            model=settings.query_model,
            messages=[{"role": "user", "content": prompt}],
            temperature=settings.query_temperature,
            max_tokens=settings.query_max_tokens,
        )
    except OpenAIError as e:
        logger.error(f"OpenAI API error: {e}")
        raise QueryGenerationError(str(e)) from e
    finally:
        await client.close()

    content = response.choices[0].message.content if response.choices else None
    query = (content or "").strip()
    if not query:
        raise QueryGenerationError("No query generated")
    return query


async def generate_query(
    db: AsyncSession,
    user_id: int,
    user_input: str,
    tables: Optional[dict[str, Any]],
    relationships: Optional[dict[str, Any]] = None,
    db_type: Optional[str] = None,
) -> str:
    """
    Turn a question into SQL using the caller's own OpenAI key.

    Raises MissingApiKeyError when the user has no key stored and
    QueryGenerationError when the provider fails or returns nothing.
    """
    api_key = await get_api_key(db, user_id)
    if not api_key:
        raise MissingApiKeyError("No OpenAI API key found. Please add your API key first.")

    prompt = build_prompt(user_input, tables, relationships, db_type)
    query = await complete(api_key, prompt)
    logger.info(f"Generated query for user {user_id}: {query[:200]}")
    return query
