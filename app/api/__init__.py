from app.api.auth import router as auth_router, get_current_user
from app.api.apikeys import router as apikeys_router
from app.api.credentials import router as credentials_router
from app.api.db_connection import router as db_connection_router
from app.api.queries import router as queries_router
from app.api.projects import router as projects_router
from app.api.agents import router as agents_router

__all__ = [
    "auth_router",
    "apikeys_router",
    "credentials_router",
    "db_connection_router",
    "queries_router",
    "projects_router",
    "agents_router",
    "get_current_user",
]
