"""Project endpoints - registered external databases and their schema projections"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import get_current_user
from app.connectors import check_connection, dump_db_config, get_database_meta, parse_db_config, parse_user_db_config
from app.db import get_db, ConnectionStatus, Project
from app.exceptions import (
    AskDBError, InvalidConfigError, MissingApiKeyError, SchemaNotSupportedError,
)
from app.schemas import (
    AskRequest, AskResponse, CheckConnectionResponse, ProjectCreate,
    ProjectListResponse, ProjectResponse,
)
from app.services import answer_question, format_query_result
from app.utils.serialization import serialize_bigint

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/project", tags=["Projects"])


async def get_owned_project(db: AsyncSession, project_id: int, user_id: int) -> Project:
    """Project by id, 404 unless the caller owns it"""
    project = await db.get(Project, project_id)
    if not project or project.user_id != user_id:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.get("", response_model=ProjectListResponse)
async def list_projects(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(Project)
        .where(Project.user_id == current_user.id)
        .order_by(Project.created_at.desc())
    )
    projects = result.scalars().all()

    count = await db.scalar(
        select(func.count()).select_from(Project).where(Project.user_id == current_user.id)
    )
    return ProjectListResponse(
        count=count or 0,
        projects=[ProjectResponse.from_project(p) for p in projects],
    )


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    body: ProjectCreate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Save a project. The schema projection is stored as sent; it is not checked
    against the live database.
    """
    if not body.project_name or not body.db_credential:
        raise HTTPException(status_code=400, detail="Missing required fields")

    try:
        config = parse_db_config(body.db_type, body.db_credential)
        # Reject paths outside the caller's data directory; the relative form is stored
        parse_user_db_config(config.db_type, body.db_credential, current_user.id)
    except InvalidConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))

    project = Project(
        user_id=current_user.id,
        project_name=body.project_name,
        db_type=config.db_type,
        db_credential=dump_db_config(config),
        selected_tables=body.selected_tables,
        table_relationships=body.table_relationships,
        connection_status=(
            ConnectionStatus.CONNECTED.value if body.connection_test_successful
            else ConnectionStatus.DISCONNECTED.value
        ),
        created_by=current_user.email,
        modified_by=current_user.email,
    )
    db.add(project)
    await db.commit()
    await db.refresh(project)
    logger.info(f"User {current_user.id} created project {project.id} ({project.db_type})")
    return ProjectResponse.from_project(project)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: int,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    project = await get_owned_project(db, project_id, current_user.id)
    return ProjectResponse.from_project(project)


@router.post("/{project_id}/check-connection", response_model=CheckConnectionResponse)
async def check_project_connection(
    project_id: int,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Re-test the stored credential and record the outcome on the project"""
    project = await get_owned_project(db, project_id, current_user.id)

    try:
        config = parse_user_db_config(project.db_type, project.db_credential, current_user.id)
        await check_connection(config)
    except InvalidConfigError as e:
        project.connection_status = ConnectionStatus.ERROR.value
        success, message = False, str(e)
    except Exception as e:
        logger.info(f"Project {project.id} connection check failed: {type(e).__name__}: {e}")
        project.connection_status = ConnectionStatus.DISCONNECTED.value
        success, message = False, str(e) or "Connection failed"
    else:
        project.connection_status = ConnectionStatus.CONNECTED.value
        meta = get_database_meta(config.db_type)
        success, message = True, meta.success_message if meta else "Connection successful"

    project.modified_by = current_user.email
    await db.commit()
    return CheckConnectionResponse(
        success=success,
        message=message,
        connection_status=project.connection_status,
    )


@router.post("/{project_id}/ask", response_model=AskResponse)
async def ask_project(
    project_id: int,
    body: AskRequest,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Generate SQL for a question, run it on the project's database and return the rows"""
    if not body.question or not body.question.strip():
        raise HTTPException(status_code=400, detail="User input is required")

    project = await get_owned_project(db, project_id, current_user.id)

    try:
        query, fields, rows = await answer_question(db, current_user.id, project, body.question.strip())
    except (MissingApiKeyError, InvalidConfigError, SchemaNotSupportedError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AskDBError as e:
        logger.warning(f"Ask failed on project {project.id}: {type(e).__name__}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return AskResponse(
        query=query,
        fields=fields,
        rows=serialize_bigint(rows),
        answer=format_query_result(fields, rows),
    )
