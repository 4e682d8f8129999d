"""
Curator - FastAPI Backend
Remote store for saved items and settings profiles, with health checks.
"""

import asyncio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from config import settings, validate_security_settings
from database import async_session_maker, engine, Base
import models  # noqa: F401
from routers import (
    health,
    auth,
    items,
    profile,
)
from services.items import purge_expired_items_service


async def _periodic_trash_purge() -> None:
    interval_minutes = max(int(settings.TRASH_PURGE_INTERVAL_MINUTES), 0)
    if interval_minutes <= 0:
        return
    while True:
        await asyncio.sleep(interval_minutes * 60)
        try:
            async with async_session_maker() as db:
                purged = await purge_expired_items_service(db)
            if purged:
                print(f"🗑️ Trash purge tick: purged={purged}")
        except Exception as exc:
            print(f"⚠️ Trash purge tick failed: {exc}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Curator API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    purge_task = None
    if int(settings.TRASH_PURGE_INTERVAL_MINUTES) > 0:
        purge_task = asyncio.create_task(_periodic_trash_purge())
        print(
            "📅 Trash purge loop enabled "
            f"(every {int(settings.TRASH_PURGE_INTERVAL_MINUTES)} min)."
        )
    yield
    # Shutdown
    if purge_task is not None:
        purge_task.cancel()
        try:
            await purge_task
        except asyncio.CancelledError:
            pass
    print("👋 Shutting down API...")


app = FastAPI(
    title="Curator API",
    description="Save links, triage them, and keep a recoverable trash",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(items.router, prefix="/items", tags=["Items"])
app.include_router(profile.router, prefix="/profile", tags=["Profile"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Curator API",
        "version": "0.1.0",
        "status": "running"
    }
