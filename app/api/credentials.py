"""Notification credential endpoints (Telegram bots, email accounts)"""

from typing import List

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.agent.relay_manager import get_relay_manager
from app.agent.telegram_relay import verify_telegram_connection
from app.api.auth import get_current_user
from app.db import get_db, Agent, UserCredential
from app.exceptions import InvalidConfigError
from app.schemas import (
    CredentialCreate, CredentialResponse, CredentialVerifyResponse, IdRequest,
    MessageResponse, TelegramCredentials, dump_credentials, parse_credentials,
)

router = APIRouter(prefix="/credentials", tags=["Credentials"])


@router.get("", response_model=List[CredentialResponse])
async def list_credentials(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List the caller's credentials, most recently modified first. Secrets are masked."""
    result = await db.execute(
        select(UserCredential)
        .where(UserCredential.user_id == current_user.id)
        .order_by(UserCredential.updated_at.desc())
    )
    return [CredentialResponse.from_credential(c) for c in result.scalars().all()]


@router.post("", response_model=CredentialResponse, status_code=status.HTTP_201_CREATED)
async def create_credential(
    body: CredentialCreate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if not body.credentials:
        raise HTTPException(status_code=400, detail="Missing credentials data")

    try:
        creds = parse_credentials(body.credentials)
    except InvalidConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))

    credential = UserCredential(
        user_id=current_user.id,
        credential_type=creds.type,
        credentials=dump_credentials(creds),
        created_by=current_user.email,
        modified_by=current_user.email,
    )
    db.add(credential)
    await db.commit()
    await db.refresh(credential)
    return CredentialResponse.from_credential(credential)


@router.delete("", response_model=MessageResponse)
async def delete_credential(
    body: IdRequest = Body(...),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delete one of the caller's credentials. Agents bound to it go with it."""
    if not body.id:
        raise HTTPException(status_code=400, detail="Missing credential ID")

    credential = await db.get(UserCredential, body.id)
    if not credential or credential.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="Not authorized to delete this credential")

    bound = await db.execute(select(Agent.id).where(Agent.credential_id == credential.id))
    agent_ids = bound.scalars().all()

    await db.delete(credential)
    await db.commit()

    relays = get_relay_manager()
    for agent_id in agent_ids:
        await relays.stop_agent(agent_id)
    return MessageResponse(message="Deleted successfully")


@router.post("/{credential_id}/verify", response_model=CredentialVerifyResponse)
async def verify_credential(
    credential_id: int,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Check a Telegram credential's bot token with getMe"""
    credential = await db.get(UserCredential, credential_id)
    if not credential or credential.user_id != current_user.id:
        raise HTTPException(status_code=404, detail="Credential not found")

    try:
        creds = parse_credentials(credential.credentials)
    except InvalidConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not isinstance(creds, TelegramCredentials):
        raise HTTPException(status_code=400, detail="Only Telegram credentials can be verified")

    return CredentialVerifyResponse(**await verify_telegram_connection(creds.bot_token))
