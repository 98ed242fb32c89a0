"""Agent endpoints - bindings of a project to a notification credential"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.agent.relay_manager import get_relay_manager
from app.api.auth import get_current_user
from app.db import get_db, Agent, Project, UserCredential
from app.schemas import AgentCreate, AgentDeleteResponse, AgentResponse, AgentUpdate, IdRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agent", tags=["Agents"])

INVALID_INPUT = "Invalid input data"
AGENT_NOT_FOUND = "Agent not found"


def _agent_query(user_id: int):
    return (
        select(Agent)
        .where(Agent.user_id == user_id)
        .options(selectinload(Agent.project), selectinload(Agent.credential))
    )


async def _get_owned_agent(db: AsyncSession, agent_id: int, user_id: int) -> Optional[Agent]:
    result = await db.execute(_agent_query(user_id).where(Agent.id == agent_id))
    return result.scalar_one_or_none()


@router.get("", response_model=List[AgentResponse])
async def list_agents(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        _agent_query(current_user.id).order_by(Agent.updated_at.desc())
    )
    return result.scalars().all()


@router.post("", response_model=AgentResponse, status_code=status.HTTP_201_CREATED)
async def create_agent(
    body: AgentCreate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if not body.agent_name or not body.project_id or not body.credential_id:
        raise HTTPException(status_code=400, detail=INVALID_INPUT)

    project = await db.get(Project, body.project_id)
    if not project or project.user_id != current_user.id:
        raise HTTPException(status_code=400, detail="Project not found")
    credential = await db.get(UserCredential, body.credential_id)
    if not credential or credential.user_id != current_user.id:
        raise HTTPException(status_code=400, detail="Credential not found")

    agent = Agent(
        user_id=current_user.id,
        agent_name=body.agent_name,
        project_id=project.id,
        credential_id=credential.id,
        is_active=body.is_active,
        created_by=current_user.email,
        modified_by=current_user.email,
    )
    db.add(agent)
    await db.commit()

    agent = await _get_owned_agent(db, agent.id, current_user.id)
    await get_relay_manager().sync_agent(agent)
    logger.info(f"User {current_user.id} created agent {agent.id}")
    return agent


@router.put("", response_model=AgentResponse)
async def update_agent(
    body: AgentUpdate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Turn an agent on or off"""
    if body.id is None or body.is_active is None:
        raise HTTPException(status_code=400, detail=INVALID_INPUT)

    agent = await _get_owned_agent(db, body.id, current_user.id)
    if not agent:
        raise HTTPException(status_code=404, detail=AGENT_NOT_FOUND)

    agent.is_active = body.is_active
    agent.modified_by = current_user.email
    await db.commit()

    agent = await _get_owned_agent(db, agent.id, current_user.id)
    await get_relay_manager().sync_agent(agent)
    return agent


@router.delete("", response_model=AgentDeleteResponse)
async def delete_agent(
    body: IdRequest = Body(...),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if not body.id:
        raise HTTPException(status_code=400, detail=INVALID_INPUT)

    agent = await _get_owned_agent(db, body.id, current_user.id)
    if not agent:
        raise HTTPException(status_code=404, detail=AGENT_NOT_FOUND)

    await db.delete(agent)
    await db.commit()
    await get_relay_manager().stop_agent(body.id)
    return AgentDeleteResponse(success=True, message="Agent deleted")
