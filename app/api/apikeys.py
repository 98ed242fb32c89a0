"""LLM provider API key endpoints"""

from typing import List

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import get_current_user
from app.db import get_db, ApiKey
from app.schemas import (
    ApiKeyCreate, ApiKeyResponse, ApiKeyValidate, ApiKeyValidateResponse,
    IdRequest, MessageResponse,
)
from app.services import validate_key

router = APIRouter(prefix="/apikeys", tags=["API Keys"])


@router.get("", response_model=List[ApiKeyResponse])
async def list_api_keys(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List the caller's keys, most recently modified first. Keys are masked."""
    result = await db.execute(
        select(ApiKey)
        .where(ApiKey.user_id == current_user.id)
        .order_by(ApiKey.updated_at.desc())
    )
    return [ApiKeyResponse.from_key(key) for key in result.scalars().all()]


@router.post("", response_model=ApiKeyResponse, status_code=status.HTTP_201_CREATED)
async def create_api_key(
    body: ApiKeyCreate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Store a key. One key per provider per user."""
    if not body.provider or not body.api_key:
        raise HTTPException(status_code=400, detail="Missing provider or API key")

    existing = await db.execute(
        select(ApiKey.id).where(
            ApiKey.user_id == current_user.id,
            ApiKey.provider == body.provider,
        )
    )
    if existing.first():
        raise HTTPException(status_code=400, detail="API key already exists for this provider")

    key = ApiKey(
        user_id=current_user.id,
        provider=body.provider,
        api_key=body.api_key.strip(),
        created_by=current_user.email,
        modified_by=current_user.email,
    )
    db.add(key)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent insert for the same provider
        await db.rollback()
        raise HTTPException(status_code=400, detail="API key already exists for this provider")
    await db.refresh(key)
    return ApiKeyResponse.from_key(key)


@router.delete("", response_model=MessageResponse)
async def delete_api_key(
    body: IdRequest = Body(...),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delete one of the caller's keys"""
    if not body.id:
        raise HTTPException(status_code=400, detail="Missing API key ID")

    key = await db.get(ApiKey, body.id)
    if not key or key.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="Not authorized to delete this API key")

    await db.delete(key)
    await db.commit()
    return MessageResponse(message="Deleted successfully")


@router.post("/validate", response_model=ApiKeyValidateResponse)
async def validate_api_key(
    body: ApiKeyValidate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Check a key against the provider's API. Without a key, checks the stored one."""
    api_key = body.api_key
    if not api_key:
        result = await db.execute(
            select(ApiKey.api_key).where(
                ApiKey.user_id == current_user.id,
                ApiKey.provider == body.provider,
            )
        )
        api_key = result.scalars().first()
        if not api_key:
            return ApiKeyValidateResponse(valid=False, error=f"No {body.provider} API key stored")

    return ApiKeyValidateResponse(**await validate_key(body.provider, api_key))
