"""External database connection endpoints: type catalogue, connection test, schema fetch"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from app.api.auth import get_current_user
from app.connectors import DATABASE_TYPES, connect_to_database, fetch_schema, parse_user_db_config
from app.exceptions import DatabaseConnectionError, InvalidConfigError, SchemaNotSupportedError
from app.schemas import (
    DatabaseTypeResponse, GetSchemaRequest, SchemaResponse,
    TestConnectionRequest, TestConnectionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/db-connection", tags=["Database Connections"])


@router.get("/types", response_model=List[DatabaseTypeResponse])
async def list_database_types():
    """Supported database types and how each is presented"""
    return [meta.to_dict() for meta in DATABASE_TYPES]


@router.post("/test-connection", response_model=TestConnectionResponse)
async def test_connection(
    body: TestConnectionRequest,
    current_user = Depends(get_current_user),
):
    if not body.db_type or not body.db_config:
        raise HTTPException(status_code=400, detail="Missing required parameters")

    try:
        result = await connect_to_database(body.db_type, body.db_config)
    except Exception as e:
        logger.exception("Connection test failed")
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": str(e) or "Connection failed"},
        )

    if result.get("error"):
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": result["error"]},
        )
    return TestConnectionResponse(success=True, message="Connection successful")


@router.post("/get-schema", response_model=SchemaResponse)
async def get_schema(
    body: GetSchemaRequest,
    current_user = Depends(get_current_user),
):
    """Introspect tables, columns and foreign keys. db_type defaults to postgresql."""
    if not body.db_config:
        raise HTTPException(status_code=400, detail="Missing required parameters")

    try:
        config = parse_user_db_config(body.db_type, body.db_config, current_user.id)
        return await fetch_schema(config)
    except (InvalidConfigError, SchemaNotSupportedError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DatabaseConnectionError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except Exception as e:
        logger.exception("Schema fetch error")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to fetch schema")
