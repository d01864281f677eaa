"""
AlertBridge Trade Automation - FastAPI Application
Main entry point with proper lifecycle management.

Service Architecture:
    Webhook (screener alert)
        ↓
    ExecutionOrchestrator (strategies, risk gating, order submission)
        ↓
    BrokerClient (Fyers REST or paper)
        ↑
    ReconciliationScheduler → OrderReconciler (fills, trades, positions)
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from alertbridge.api import api_router
from alertbridge.core.config import settings
from alertbridge.core.logging import setup_logging
from alertbridge.db.session import close_db, health_check, init_db
from alertbridge.services.registry import ServiceRegistry


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # -------------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------------
    setup_logging()
    logger.info("=" * 60)
    logger.info(f"Starting {settings.PROJECT_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Trading mode: {settings.trading.mode}")
    logger.info("=" * 60)

    await init_db()
    if await health_check():
        logger.info("✓ Database connection established")
    else:
        logger.warning("⚠ Database connection failed - alerts cannot be stored")

    services = ServiceRegistry(settings)
    app.state.services = services
    await services.start_all()

    logger.info("-" * 60)
    logger.info(f"{settings.PROJECT_NAME} API ready to accept requests")
    logger.info("-" * 60)

    yield

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------
    logger.info("=" * 60)
    logger.info(f"Shutting down {settings.PROJECT_NAME}...")

    try:
        await services.stop_all()
    except Exception as e:
        logger.error(f"Error stopping pipeline services: {e}")

    await close_db()
    logger.info("✓ Database connections closed")
    logger.info("=" * 60)


# =============================================================================
# Application Factory
# =============================================================================

def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """
    application = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(api_router, prefix=settings.API_V1_STR)

    return application


# Create application instance
app = create_application()
