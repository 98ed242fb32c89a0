"""
AskDB - Main Application Entry Point
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.config import settings
from app.db import init_db, async_session_maker
from app.agent.relay_manager import get_relay_manager
from app.api import (
    auth_router,
    apikeys_router,
    credentials_router,
    db_connection_router,
    queries_router,
    projects_router,
    agents_router,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

# Global start time for uptime tracking
_app_start_time = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler - runs on startup and shutdown"""
    global _app_start_time
    _app_start_time = time.time()

    # Startup
    print("🗄️ AskDB starting up...")
    await init_db()
    print("✅ Database initialized")

    relays = get_relay_manager()
    if relays.enabled:
        count = await relays.start_all()
        print(f"🤖 Started {count} Telegram relay(s)")
    else:
        print("⏸️ Telegram relays disabled")

    yield

    # Shutdown
    print("🛑 AskDB shutting down...")
    await relays.stop_all()
    print("✅ Telegram relays stopped")


app = FastAPI(
    title=settings.app_name,
    description="Ask questions of your own databases in plain language",
    version=VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": str(exc) or "Internal server error"})


# Include routers
app.include_router(auth_router, prefix=settings.api_prefix)
app.include_router(apikeys_router, prefix=settings.api_prefix)
app.include_router(credentials_router, prefix=settings.api_prefix)
app.include_router(db_connection_router, prefix=settings.api_prefix)
app.include_router(queries_router, prefix=settings.api_prefix)  # generate-query, execute-query
app.include_router(projects_router, prefix=settings.api_prefix)
app.include_router(agents_router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "status": "healthy",
        "version": VERSION,
    }


@app.get("/health")
async def health():
    """Health check with a database probe and uptime."""
    db_status = "connected"
    try:
        async with async_session_maker() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"error: {e}"

    uptime = time.time() - _app_start_time if _app_start_time else 0

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "version": VERSION,
        "uptime_seconds": round(uptime, 1),
        "database": db_status,
        "telegram_relays": get_relay_manager().running_count,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
