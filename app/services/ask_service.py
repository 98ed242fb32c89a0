"""
Ask pipeline - question in, rows out

Chains query generation (from the project's stored schema projection) and
query execution (against the project's stored credential). Both the HTTP
ask endpoint and the Telegram relay go through answer_question().
"""

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.connectors import execute_query, parse_user_db_config
from app.db.models import Project
from app.services.query_generator import generate_query

logger = logging.getLogger(__name__)

NO_RESULTS = "No results found"
EMPTY_RESULTS = "Query executed successfully but returned no results"


async def answer_question(
    db: AsyncSession,
    user_id: int,
    project: Project,
    question: str,
) -> tuple[str, list[str], list[dict]]:
    """Returns (generated SQL, field names, rows)."""
    config = parse_user_db_config(project.db_type, project.db_credential, user_id)
    query = await generate_query(
        db,
        user_id,
        question,
        project.selected_tables,
        project.table_relationships,
        config.db_type,
    )
    fields, rows = await execute_query(config, query)
    logger.info(f"Answered question on project {project.id}: {len(rows)} rows")
    return query, fields, rows


def format_query_result(fields: Optional[list[str]], rows: Optional[list[Any]]) -> str:
    """Plain-text table for chat surfaces."""
    if rows is None:
        return NO_RESULTS
    if len(rows) == 0:
        return EMPTY_RESULTS

    if not fields:
        fields = list(rows[0].keys()) if isinstance(rows[0], dict) else []

    header = " | ".join(fields)
    lines = [header, "-" * len(header)]
    for row in rows:
        values = [row.get(f) for f in fields] if isinstance(row, dict) else list(row)
        lines.append(" | ".join("" if v is None else str(v) for v in values))
    return "\n".join(lines)
