"""Authentication endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status, Request, Response
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_db
from app.schemas import SignupRequest, UserLogin, GoogleLogin, UserResponse, Token, MessageResponse
from app.services import (
    authenticate_user, create_user, get_user_by_email, get_user_by_id,
    decode_token_claims, verify_email_token, start_session, get_active_session,
    end_session, verify_google_id_token, get_or_create_google_user,
    send_verification_email,
)
from app.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])
security = HTTPBearer(auto_error=False)  # Don't auto-reject, we also check the session cookie

SESSION_COOKIE_MAX_AGE = settings.access_token_expire_minutes * 60


def _request_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """Bearer token first, then the session cookie"""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.session_cookie_name)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
):
    """Dependency to get the current authenticated user.
    Checks Bearer token first, then falls back to the session cookie."""
    token = _request_token(request, credentials)
    claims = decode_token_claims(token) if token else None

    # A token outlives its session row only if the user logged out
    if claims and claims.get("jti"):
        if not await get_active_session(db, claims["jti"]):
            claims = None

    if not claims:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await get_user_by_id(db, claims["sub"])
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    return user


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=SESSION_COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )


@router.post("/signup", response_model=MessageResponse)
async def signup(
    user_data: SignupRequest,
    db: AsyncSession = Depends(get_db)
):
    """Register a new user. The account stays inactive until the email is verified."""
    existing = await get_user_by_email(db, user_data.email)
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already exists"
        )

    user = await create_user(
        db,
        email=user_data.email,
        password=user_data.password,
        first_name=user_data.fname,
        last_name=user_data.lname,
    )
    await send_verification_email(user.email, user.verification_token)
    logger.info(f"User {user.id} signed up")
    return MessageResponse(message="User created. Verification email sent!")


@router.get("/verify-email", response_model=MessageResponse)
async def verify_email(
    token: str = Query(...),
    db: AsyncSession = Depends(get_db)
):
    """Activate the account holding this verification token"""
    user = await verify_email_token(db, token)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired verification token"
        )
    return MessageResponse(message="Email verified. You can now sign in.")


@router.post("/login", response_model=Token)
async def login(
    credentials: UserLogin,
    response: Response,
    db: AsyncSession = Depends(get_db)
):
    """Login and get access token. Also sets the session cookie."""
    user = await authenticate_user(db, credentials.email.strip(), credentials.password)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Please verify your email before signing in",
        )

    token = await start_session(db, user)
    _set_session_cookie(response, token)
    return Token(access_token=token, user=UserResponse.model_validate(user))


@router.post("/google", response_model=Token)
async def google_login(
    body: GoogleLogin,
    response: Response,
    db: AsyncSession = Depends(get_db)
):
    """Sign in with a Google ID token, creating the account on first use"""
    claims = await verify_google_id_token(body.id_token)
    if not claims:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Google token",
        )

    user = await get_or_create_google_user(db, claims)
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    token = await start_session(db, user)
    _set_session_cookie(response, token)
    return Token(access_token=token, user=UserResponse.model_validate(user))


@router.get("/me", response_model=UserResponse)
async def get_me(
    current_user = Depends(get_current_user)
):
    """Get current user info"""
    return current_user


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """End the current session and clear the cookie"""
    token = _request_token(request, credentials)
    claims = decode_token_claims(token) if token else None
    if claims and claims.get("jti"):
        await end_session(db, claims["jti"])

    response.delete_cookie(key=settings.session_cookie_name, path="/")
    return MessageResponse(message="Logged out")
