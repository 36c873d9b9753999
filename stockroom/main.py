"""Stockroom API - FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map StockroomError -> structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Startup fails fast on a missing or malformed encryption key
    - Reconciliation scheduler started after the database, stopped before dispose

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stockroom.api.error_handlers import register_error_handlers
from stockroom.api.routes import admin_inventory, admin_stock_sync, fulfillment, health
from stockroom.config import get_settings
from stockroom.infrastructure.database import init_db
from stockroom.infrastructure.observability import setup_logging
from stockroom.infrastructure.payload_codec import init_codec
from stockroom.services.scheduler import ReconciliationScheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    init_codec(settings.inventory_encryption_key)
    manager = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = ReconciliationScheduler(manager.session_factory, settings)
        scheduler.start()
    app.state.scheduler = scheduler
    logger.info("Stockroom API started")
    yield
    logger.info("Stockroom API shutting down")
    if scheduler:
        scheduler.shutdown()
    await manager.dispose()


app = FastAPI(
    title="Stockroom API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes - explicit registration
app.include_router(health.router)
app.include_router(admin_inventory.router)
app.include_router(admin_stock_sync.router)
app.include_router(fulfillment.router)

register_error_handlers(app)
