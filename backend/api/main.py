"""
Main FastAPI application entry point.

Responsibilities:
- Initialize FastAPI app
- Include the Slack events router
- Setup startup/shutdown events
"""
from __future__ import annotations

import logging
import sys

from fastapi import FastAPI

from api.routes import slack_events
from config import log_missing_env_vars
from models.database import close_db, get_pool_status

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    stream=sys.stdout,
)

app = FastAPI(title="Support Inbox Slack API", version="1.0.0")

# Routes
app.include_router(slack_events.router, prefix="/api/slack", tags=["slack"])


@app.on_event("startup")
async def startup() -> None:
    """Report missing configuration; schema is managed by Alembic."""
    log_missing_env_vars(logging.getLogger("config"))


@app.on_event("shutdown")
async def shutdown() -> None:
    """Clean up database connections on shutdown."""
    logging.info("Shutting down, closing database connections...")
    await close_db()
    logging.info("Database connections closed")


@app.get("/")
async def root_health_check() -> dict[str, str]:
    """Root endpoint exposing the health check payload."""
    return await health_check()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/health/db")
async def db_health_check() -> dict[str, object]:
    """Database health check with pool status."""
    try:
        return {
            "status": "ok",
            "pool": get_pool_status(),
        }
    except Exception as e:
        return {
            "status": "error",
            "error": str(e),
        }
