"""Circle Governance API: FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map CircleGovernanceError -> structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database initialized on startup via lifespan context manager
    - Outstanding vote notifications are drained before the engine is disposed

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Error handlers live in api/error_handlers.py and are registered once here
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from circle_governance.api.error_handlers import register_error_handlers
from circle_governance.api.routes import circles, health, invites, votes
from circle_governance.config import get_settings
from circle_governance.infrastructure import database
from circle_governance.infrastructure.database import init_db
from circle_governance.infrastructure.notifier import drain_notifications
from circle_governance.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    logger.info("Circle Governance API started")
    yield
    await drain_notifications()
    if database.db_manager is not None:
        await database.db_manager.dispose()
    logger.info("Circle Governance API shutting down")


app = FastAPI(
    title="Circle Governance API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(circles.router)
app.include_router(invites.router)
app.include_router(votes.router)

register_error_handlers(app)
