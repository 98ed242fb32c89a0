"""Natural-language query generation and SQL execution endpoints"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import get_current_user
from app.api.projects import get_owned_project
from app.connectors import execute_query as run_query, parse_user_db_config
from app.db import get_db
from app.exceptions import (
    DatabaseConnectionError, InvalidConfigError, MissingApiKeyError,
    QueryExecutionError, QueryGenerationError, SchemaNotSupportedError,
)
from app.schemas import (
    ExecuteQueryRequest, ExecuteQueryResponse, GenerateQueryRequest, GenerateQueryResponse,
)
from app.services import generate_query as generate_sql
from app.utils.serialization import serialize_bigint

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Queries"])


@router.post("/generate-query", response_model=GenerateQueryResponse)
async def generate_query(
    body: GenerateQueryRequest,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Turn a question into SQL.

    The schema context is the stored projection of an owned project when
    project_id is given, otherwise the inline dbSchema.
    """
    if not body.user_input or not body.user_input.strip():
        raise HTTPException(status_code=400, detail="User input is required")

    if body.project_id is not None:
        project = await get_owned_project(db, body.project_id, current_user.id)
        tables, relationships, db_type = project.selected_tables, project.table_relationships, project.db_type
    else:
        schema = body.db_schema
        tables = schema.tables if schema else None
        relationships = schema.relationships if schema else None
        db_type = body.db_type

    try:
        query = await generate_sql(db, current_user.id, body.user_input, tables, relationships, db_type)
    except MissingApiKeyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except QueryGenerationError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return GenerateQueryResponse(query=query)


@router.post("/execute-query", response_model=ExecuteQueryResponse)
async def execute_query(
    body: ExecuteQueryRequest,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Run SQL against a project's database (or an inline config) exactly as sent.

    The statement runs with the stored credential's privileges. There is no
    allow-listing here; restrict the credential itself if that matters.
    """
    if not body.query or not body.query.strip():
        raise HTTPException(status_code=400, detail="Query is required")

    try:
        if body.project_id is not None:
            project = await get_owned_project(db, body.project_id, current_user.id)
            config = parse_user_db_config(project.db_type, project.db_credential, current_user.id)
        elif body.db_config:
            config = parse_user_db_config(body.db_type, body.db_config, current_user.id)
        else:
            raise HTTPException(status_code=400, detail="Database config is required")

        fields, rows = await run_query(config, body.query)
    except (InvalidConfigError, SchemaNotSupportedError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (DatabaseConnectionError, QueryExecutionError) as e:
        logger.warning(f"Error executing query for user {current_user.id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return ExecuteQueryResponse(rows=serialize_bigint(rows), fields=fields)
