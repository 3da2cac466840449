"""
TATAME FastAPI Service - Main Application.

Platform API for the Tatame learning platform: feature flags, courses and
lesson progress, email templates, the WordPress catalog, and WordPress/VPS
provisioning over SSH.

Usage:
    # Development
    uvicorn tatame.api.main:app --reload --host 0.0.0.0 --port 8000

    # Production
    uvicorn tatame.api.main:app --host 0.0.0.0 --port 8000

Endpoints:
    GET  /v1/health - Health check
    POST /v1/auth/login - Exchange email and password for an access token
    GET  /v1/features - Tools visible to the caller
    POST /v1/sites/create - Start a WordPress site provisioning job
    GET  /v1/provisioning/jobs/{id} - Poll a provisioning job
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tatame import __version__
from tatame.accounts import UserStore
from tatame.api import auth_routes, catalog_routes, email_routes, feature_routes, progress_routes, site_routes
from tatame.api.routes import app_state, router, tatame_error_handler
from tatame.cache import CacheService, close_redis_client, get_redis_client, redis_health
from tatame.catalog import CatalogStore
from tatame.db import init_db
from tatame.email import EmailService, EmailTemplateStore
from tatame.events import EventBus
from tatame.features import FeatureCatalogSync, FeatureRegistry
from tatame.lms import CourseCatalog, ProgressTracker
from tatame.provisioning import BlogCreator, ProvisioningJobStore, SiteCreationService, VpsSetup
from tatame.shared.errors import TatameError
from tatame.shared.logging import DATE_FORMAT, LOG_FORMAT, PROVISIONING_LOGGER, configure_file_logging
from tatame.shared.settings import CORS_ORIGINS, DB_PATH
from tatame.sites import VpsConfigStore, WordPressClient, WordPressSiteStore

# Configure logging
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=DATE_FORMAT)

logger = logging.getLogger("tatame.api")


# ============================================================================
# Lifespan Management
# ============================================================================


async def _start_cache() -> CacheService | None:
    if os.getenv("TATAME_CACHE_ENABLED", "true").lower() != "true":
        logger.info("Redis cache disabled")
        return None
    client = get_redis_client(os.getenv("REDIS_URL") or None)
    status = await redis_health(client)
    if status["status"] != "healthy":
        logger.warning(f"Redis unavailable, continuing without cache: {status.get('error')}")
        await close_redis_client()
        return None
    logger.info("Redis cache connected")
    return CacheService(client)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown of components.
    """
    # ---- Startup ----
    logger.info("TATAME API starting...")

    log_file = os.getenv("TATAME_LOG_FILE")
    if log_file:
        configure_file_logging(logging.getLogger(PROVISIONING_LOGGER), log_file)

    db_path = os.getenv("TATAME_DB_PATH", DB_PATH)
    app_state.db = await init_db(db_path)
    logger.info(f"Database ready at {db_path}")

    # Event bus + provisioning job recorder
    app_state.event_bus = EventBus()
    app_state.jobs = ProvisioningJobStore(app_state.db)
    await app_state.jobs.fail_interrupted_jobs()
    app_state.event_bus.subscribe("*", app_state.jobs.record_event)
    await app_state.event_bus.start()

    # Stores and services
    app_state.feature_registry = FeatureRegistry(
        app_state.db, emit=app_state.event_bus.emitter("tatame.features")
    )
    app_state.feature_sync = FeatureCatalogSync(app_state.feature_registry)
    app_state.site_store = WordPressSiteStore(app_state.db)
    app_state.vps_store = VpsConfigStore(app_state.db)
    app_state.wordpress_client = WordPressClient()
    app_state.site_creator = SiteCreationService(app_state.site_store, app_state.vps_store)
    app_state.vps_setup = VpsSetup(app_state.vps_store)
    app_state.blog_creator = BlogCreator(app_state.site_store)
    app_state.course_catalog = CourseCatalog(app_state.db)
    app_state.progress_tracker = ProgressTracker(app_state.db, app_state.course_catalog)
    app_state.email_templates = EmailTemplateStore(app_state.db)
    app_state.email_service = EmailService.from_settings(app_state.email_templates)
    app_state.catalog_store = CatalogStore(app_state.db)
    app_state.user_store = UserStore(app_state.db)

    # Seed data
    try:
        added = await app_state.feature_sync.initialize_defaults()
        if added:
            logger.info(f"Default features initialized: {', '.join(added)}")
        await app_state.email_templates.initialize_defaults()
        await app_state.catalog_store.seed()
    except TatameError as e:
        logger.error(f"Failed to seed defaults: {e}")

    try:
        app_state.cache = await _start_cache()
    except Exception as e:
        logger.warning(f"Failed to initialize cache: {e}")
        app_state.cache = None

    logger.info(
        f"""
  TATAME Platform API v{__version__}

  Status    : ONLINE
  Database  : {db_path}
  Cache     : {"redis" if app_state.cache else "disabled"}
  Email     : {"brevo" if app_state.email_service.is_configured else "not configured"}
  Docs      : http://localhost:8000/docs
"""
    )

    yield

    # ---- Shutdown ----
    logger.info("TATAME API shutting down...")

    try:
        cancelled = await site_routes.cancel_background_jobs()
        if cancelled:
            logger.info(f"Cancelled {cancelled} provisioning job(s)")
        if app_state.jobs:
            await app_state.jobs.fail_interrupted_jobs("Interrupted by shutdown")
    except Exception as e:
        logger.error(f"Error stopping provisioning jobs: {e}")

    if app_state.event_bus:
        try:
            await app_state.event_bus.stop()
            logger.info("Event bus stopped")
        except Exception as e:
            logger.error(f"Error stopping event bus: {e}")

    if app_state.cache:
        try:
            await close_redis_client()
        except Exception as e:
            logger.error(f"Error closing Redis client: {e}")

    app_state.event_bus = None
    app_state.jobs = None
    app_state.feature_registry = None
    app_state.feature_sync = None
    app_state.site_store = None
    app_state.vps_store = None
    app_state.wordpress_client = None
    app_state.site_creator = None
    app_state.vps_setup = None
    app_state.blog_creator = None
    app_state.course_catalog = None
    app_state.progress_tracker = None
    app_state.email_templates = None
    app_state.email_service = None
    app_state.catalog_store = None
    app_state.user_store = None
    app_state.cache = None
    if app_state.db:
        try:
            await app_state.db.close()
        except Exception as e:
            logger.error(f"Error closing database: {e}")
    app_state.db = None
    logger.info("Shutdown complete")


# ============================================================================
# FastAPI Application
# ============================================================================


app = FastAPI(
    title="TATAME Platform API",
    description=(
        "Tatame platform API. "
        "Feature flags, lesson progress, email templates and WordPress provisioning."
    ),
    version=__version__,
    lifespan=lifespan,
)

# Add CORS middleware (for the admin dashboard)
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", CORS_ORIGINS).split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(TatameError, tatame_error_handler)

# Include routes
app.include_router(router)
app.include_router(auth_routes.router)
app.include_router(feature_routes.router)
app.include_router(site_routes.router)
app.include_router(progress_routes.router)
app.include_router(email_routes.router)
app.include_router(catalog_routes.router)


# ============================================================================
# Root Endpoint
# ============================================================================


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "service": "TATAME Platform API",
        "version": __version__,
        "status": "online",
        "docs": "/docs",
        "endpoints": {
            "health": "GET /v1/health",
            "login": "POST /v1/auth/login",
            "features": "GET /v1/features",
            "create_site": "POST /v1/sites/create",
            "jobs": "GET /v1/provisioning/jobs/{id}",
        },
    }


# ============================================================================
# Run (for development)
# ============================================================================


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tatame.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
