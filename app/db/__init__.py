from app.db.models import (
    Base, User, UserSession, Project, ApiKey, UserCredential, Agent,
    ConnectionStatus, CredentialType,
)
from app.db.database import get_db, init_db, drop_db, async_session_maker, engine

__all__ = [
    "Base",
    "User",
    "UserSession",
    "Project",
    "ApiKey",
    "UserCredential",
    "Agent",
    "ConnectionStatus",
    "CredentialType",
    # Database
    "get_db",
    "init_db",
    "drop_db",
    "async_session_maker",
    "engine",
]
