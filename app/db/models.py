"""
Database models for AskDB

Every row is owned by exactly one user. Primary keys are 64-bit integers;
they are rendered as strings at the API boundary (see app/utils/serialization.py).
JSON columns hold the connection parameters, schema projections and
notification credentials; their shape is validated by the pydantic unions in
app/connectors/types.py and app/schemas.py, not by the database.
"""

from datetime import datetime
from typing import Optional, List, Any
from enum import Enum

from sqlalchemy import (
    String, Text, DateTime, Integer, BigInteger, Boolean,
    ForeignKey, JSON, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column, declarative_base

Base = declarative_base()

# BIGINT on PostgreSQL, INTEGER on SQLite so ROWID autoincrement still works
BigIntId = BigInteger().with_variant(Integer(), "sqlite")


class ConnectionStatus(str, Enum):
    """Last known reachability of a project's external database"""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    CHECKING = "checking"


class CredentialType(str, Enum):
    """Kinds of notification credentials"""
    TELEGRAM = "telegram"
    EMAIL = "email"


class User(Base):
    """User model for multi-tenant isolation"""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    hashed_password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # None for Google users
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Email verification
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    verification_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    login_ts: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    modified_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    projects: Mapped[List["Project"]] = relationship("Project", back_populates="user", cascade="all, delete-orphan")
    api_keys: Mapped[List["ApiKey"]] = relationship("ApiKey", back_populates="user", cascade="all, delete-orphan")
    credentials: Mapped[List["UserCredential"]] = relationship("UserCredential", back_populates="user", cascade="all, delete-orphan")
    agents: Mapped[List["Agent"]] = relationship("Agent", back_populates="user", cascade="all, delete-orphan")
    sessions: Mapped[List["UserSession"]] = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")

    @property
    def name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class UserSession(Base):
    """Login session record, upserted on every login and removed on logout."""
    __tablename__ = "user_sessions"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    session_token: Mapped[str] = mapped_column(String(64), unique=True)  # JWT "jti"
    expires: Mapped[datetime] = mapped_column(DateTime)

    user: Mapped["User"] = relationship("User", back_populates="sessions")


class Project(Base):
    """
    A registered external database plus the user's selected slice of its schema.

    selected_tables:     {"users": ["id", "email"], ...}
    table_relationships: {"orders": {"user_id": {"references": "users.id"}}}

    Both are snapshots taken when the project was created; they are never
    re-checked against the live database.
    """
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    project_name: Mapped[str] = mapped_column(String(255))

    db_type: Mapped[str] = mapped_column(String(30), default="postgresql")
    db_credential: Mapped[dict[str, Any]] = mapped_column(JSON)
    selected_tables: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    table_relationships: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    connection_status: Mapped[str] = mapped_column(String(20), default=ConnectionStatus.DISCONNECTED.value)

    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    modified_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user: Mapped["User"] = relationship("User", back_populates="projects")
    agents: Mapped[List["Agent"]] = relationship("Agent", back_populates="project", cascade="all, delete-orphan")


class ApiKey(Base):
    """LLM provider API key. One per (user, provider)."""
    __tablename__ = "api_keys"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)  # openai | anthropic | ...
    api_key: Mapped[str] = mapped_column(Text, nullable=False)

    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    modified_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user: Mapped["User"] = relationship("User", back_populates="api_keys")

    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_api_keys_user_provider"),
    )


class UserCredential(Base):
    """Notification credential (Telegram bot or email account)."""
    __tablename__ = "user_credentials"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    credential_type: Mapped[str] = mapped_column(String(20), default=CredentialType.EMAIL.value)
    credentials: Mapped[dict[str, Any]] = mapped_column(JSON)

    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    modified_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user: Mapped["User"] = relationship("User", back_populates="credentials")
    agents: Mapped[List["Agent"]] = relationship("Agent", back_populates="credential", cascade="all, delete-orphan")


class Agent(Base):
    """Named binding of a project to a notification credential."""
    __tablename__ = "agents"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    agent_name: Mapped[str] = mapped_column(String(255))
    project_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    credential_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("user_credentials.id", ondelete="CASCADE"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    modified_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user: Mapped["User"] = relationship("User", back_populates="agents")
    project: Mapped["Project"] = relationship("Project", back_populates="agents", lazy="selectin")
    credential: Mapped["UserCredential"] = relationship("UserCredential", back_populates="agents", lazy="selectin")

    __table_args__ = (
        Index("ix_agents_user_id", "user_id"),
    )
