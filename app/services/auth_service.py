"""Authentication service - JWT token handling, password hashing and login sessions"""

from datetime import datetime, timedelta
from typing import Optional
import logging
import secrets
import uuid

from jose import JWTError, jwt
import bcrypt
import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete, select

from app.config import settings
from app.db.models import User, UserSession

logger = logging.getLogger(__name__)

GOOGLE_TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash using bcrypt directly."""
    return bcrypt.checkpw(
        plain_password.encode("utf-8"),
        hashed_password.encode("utf-8"),
    )


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt directly."""
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(),
    ).decode("utf-8")


def create_access_token(user_id: str, jti: Optional[str] = None) -> str:
    """Create a JWT access token"""
    expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode = {
        "sub": user_id,
        "exp": expire,
        "iat": datetime.utcnow(),
        "jti": jti or uuid.uuid4().hex,  # Unique token ID, doubles as the session token
    }
    encoded_jwt = jwt.encode(
        to_encode,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm
    )
    return encoded_jwt


def decode_token_claims(token: str) -> Optional[dict]:
    """Decode a JWT token and return its claims, or None if invalid or expired"""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm]
        )
    except JWTError:
        return None
    if payload.get("sub") is None:
        return None
    return payload


async def authenticate_user(
    db: AsyncSession,
    email: str,
    password: str
) -> Optional[User]:
    """Authenticate a user by email and password"""
    user = await get_user_by_email(db, email)

    if not user or not user.hashed_password:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


async def create_user(
    db: AsyncSession,
    email: str,
    password: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> User:
    """Create a new, inactive user holding a fresh email verification token"""
    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        first_name=first_name,
        last_name=last_name,
        is_active=False,
        verification_token=secrets.token_hex(32),
        login_ts=datetime.utcnow(),
        created_by=email,
        modified_by=email,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def verify_email_token(db: AsyncSession, token: str) -> Optional[User]:
    """Activate the user holding this verification token. Tokens are single-use."""
    if not token:
        return None
    result = await db.execute(
        select(User).where(User.verification_token == token)
    )
    user = result.scalar_one_or_none()
    if not user:
        return None

    user.is_active = True
    user.verification_token = None
    user.modified_by = user.email
    await db.commit()
    await db.refresh(user)
    return user


async def start_session(db: AsyncSession, user: User) -> str:
    """Issue a token for the user and upsert its session row"""
    jti = uuid.uuid4().hex
    token = create_access_token(str(user.id), jti)
    expires = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)

    result = await db.execute(
        select(UserSession).where(UserSession.session_token == jti)
    )
    session = result.scalar_one_or_none()
    if session:
        session.expires = expires
    else:
        db.add(UserSession(user_id=user.id, session_token=jti, expires=expires))

    user.login_ts = datetime.utcnow()
    await db.commit()
    return token


async def get_active_session(db: AsyncSession, jti: str) -> Optional[UserSession]:
    """Session row for a token id, if it exists and has not expired"""
    result = await db.execute(
        select(UserSession).where(
            UserSession.session_token == jti,
            UserSession.expires > datetime.utcnow(),
        )
    )
    return result.scalar_one_or_none()


async def end_session(db: AsyncSession, jti: str) -> None:
    await db.execute(delete(UserSession).where(UserSession.session_token == jti))
    await db.commit()


async def verify_google_id_token(id_token: str) -> Optional[dict]:
    """
    Check a Google ID token against Google's tokeninfo endpoint.

    Returns the token claims when the token is valid, issued for our client id
    and carries a verified email. Returns None otherwise.
    """
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            r = await client.get(GOOGLE_TOKENINFO_URL, params={"id_token": id_token})
    except httpx.HTTPError as e:
        logger.warning(f"Google tokeninfo request failed: {e}")
        return None

    if r.status_code != 200:
        return None

    claims = r.json()
    if settings.google_client_id and claims.get("aud") != settings.google_client_id:
        logger.warning("Google ID token issued for a different client")
        return None
    if str(claims.get("email_verified", "")).lower() != "true" or not claims.get("email"):
        return None
    return claims


async def get_or_create_google_user(db: AsyncSession, claims: dict) -> User:
    """Find the user for a verified Google identity, creating an active one on first sign-in"""
    email = claims["email"]
    user = await get_user_by_email(db, email)
    if user:
        return user

    user = User(
        email=email,
        first_name=claims.get("given_name") or "",
        last_name=claims.get("family_name") or "",
        image=claims.get("picture") or "",
        is_active=True,
        login_ts=datetime.utcnow(),
        created_by=email,
        modified_by=email,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info(f"Created user {user.id} from Google sign-in")
    return user


async def get_user_by_id(db: AsyncSession, user_id) -> Optional[User]:
    """Get a user by ID"""
    result = await db.execute(
        select(User).where(User.id == int(user_id))
    )
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """Get a user by email"""
    result = await db.execute(
        select(User).where(User.email == email)
    )
    return result.scalar_one_or_none()
