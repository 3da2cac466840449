"""
TATAME API Routes - shared state, dependencies and the health endpoint.

Feature, provisioning, site, progress, email and catalog handlers live in
their own router modules and share ``app_state`` from here.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from tatame import __version__
from tatame.accounts import UserStore
from tatame.api import schemas
from tatame.cache import CacheService, redis_health
from tatame.catalog import CatalogStore
from tatame.email import EmailService, EmailTemplateStore
from tatame.events import EventBus
from tatame.features import Actor, FeatureCatalogSync, FeatureRegistry
from tatame.lms import CourseCatalog, ProgressTracker
from tatame.provisioning import BlogCreator, ProvisioningJobStore, SiteCreationService, VpsSetup
from tatame.security import TokenPayload, extract_bearer_token, verify_token
from tatame.shared.errors import (
    AccountLockedError,
    AuthenticationError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ProvisioningBusyError,
    RemoteCommandError,
    SSHConnectionError,
    TatameError,
    ValidationError,
)
from tatame.shared.settings import ADMIN_RATE_LIMIT_PER_MINUTE
from tatame.sites import VpsConfigStore, WordPressClient, WordPressSiteStore

logger = logging.getLogger("tatame.api")

router = APIRouter(prefix="/v1", tags=["tatame"])


@dataclass
class AppState:
    """Application state container."""

    db: Any | None = None
    event_bus: EventBus | None = None
    jobs: ProvisioningJobStore | None = None
    feature_registry: FeatureRegistry | None = None
    feature_sync: FeatureCatalogSync | None = None
    site_store: WordPressSiteStore | None = None
    vps_store: VpsConfigStore | None = None
    wordpress_client: WordPressClient | None = None
    site_creator: SiteCreationService | None = None
    vps_setup: VpsSetup | None = None
    blog_creator: BlogCreator | None = None
    course_catalog: CourseCatalog | None = None
    progress_tracker: ProgressTracker | None = None
    email_templates: EmailTemplateStore | None = None
    email_service: EmailService | None = None
    catalog_store: CatalogStore | None = None
    user_store: UserStore | None = None
    cache: CacheService | None = None


app_state = AppState()
_rate_limit_buckets: dict[str, tuple[float, int]] = {}


# ============================================================================
# Component dependencies
# ============================================================================


def _require(name: str, label: str) -> Callable[[], Any]:
    def dependency() -> Any:
        component = getattr(app_state, name)
        if component is None:
            raise HTTPException(status_code=503, detail=f"{label} not initialized")
        return component

    dependency.__name__ = f"get_{name}"
    return dependency


get_feature_registry = _require("feature_registry", "Feature registry")
get_feature_sync = _require("feature_sync", "Feature catalog sync")
get_jobs = _require("jobs", "Provisioning job store")
get_event_bus = _require("event_bus", "Event bus")
get_site_store = _require("site_store", "Site store")
get_wordpress_client = _require("wordpress_client", "WordPress client")
get_site_creator = _require("site_creator", "Site creation service")
get_vps_setup = _require("vps_setup", "VPS setup service")
get_blog_creator = _require("blog_creator", "Blog creator")
get_course_catalog = _require("course_catalog", "Course catalog")
get_progress_tracker = _require("progress_tracker", "Progress tracker")
get_email_templates = _require("email_templates", "Email template store")
get_email_service = _require("email_service", "Email service")
get_catalog_store = _require("catalog_store", "Catalog store")
get_user_store = _require("user_store", "User store")


# ============================================================================
# Authentication
# ============================================================================


def get_current_user(
    authorization: str | None = Header(default=None),
    token: str | None = Query(default=None),
) -> TokenPayload:
    """Bearer token from the Authorization header, or the ``token`` query parameter."""
    raw = extract_bearer_token(authorization) or token
    if not raw:
        raise HTTPException(status_code=401, detail="No token provided")
    try:
        return verify_token(raw)
    except AuthenticationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def require_roles(*roles: str) -> Callable[..., TokenPayload]:
    def dependency(user: TokenPayload = Depends(get_current_user)) -> TokenPayload:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


def _enforce_rate_limit(request: Request) -> None:
    limit = int(os.getenv("TATAME_ADMIN_RATE_LIMIT", str(ADMIN_RATE_LIMIT_PER_MINUTE)))
    if limit <= 0:
        return

    client_ip = request.client.host if request.client else "unknown"
    now = time.time()

    stale = [ip for ip, (ws, _) in _rate_limit_buckets.items() if now - ws >= 60]
    for ip in stale:
        del _rate_limit_buckets[ip]

    window_start, count = _rate_limit_buckets.get(client_ip, (now, 0))
    if now - window_start >= 60:
        window_start, count = now, 0

    count += 1
    _rate_limit_buckets[client_ip] = (window_start, count)

    if count > limit:
        raise HTTPException(status_code=429, detail="Rate limit exceeded")


def require_admin(request: Request, user: TokenPayload = Depends(get_current_user)) -> TokenPayload:
    """Admin-only guard with a per-client request limit."""
    _enforce_rate_limit(request)
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def actor_from(request: Request, user: TokenPayload) -> Actor:
    return Actor(
        id=user.user_id,
        email=user.email,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


# ============================================================================
# Error mapping
# ============================================================================


_STATUS_BY_ERROR: list[tuple[type[TatameError], int]] = [
    (NotFoundError, 404),
    (ValidationError, 400),
    (AccountLockedError, 423),
    (AuthenticationError, 401),
    (PermissionDeniedError, 403),
    (ConflictError, 409),
    (ProvisioningBusyError, 409),
    (SSHConnectionError, 502),
    (RemoteCommandError, 502),
    (ConfigurationError, 500),
]


def status_for(exc: TatameError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


async def tatame_error_handler(request: Request, exc: TatameError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status, content={"detail": str(exc)})


# ============================================================================
# Health
# ============================================================================


@router.get("/health", response_model=schemas.HealthResponse)
async def health() -> schemas.HealthResponse:
    components = {
        "database": "ok" if app_state.db is not None else "unavailable",
        "event_bus": "ok" if app_state.event_bus and app_state.event_bus.is_running else "stopped",
        "email": "configured" if app_state.email_service and app_state.email_service.is_configured else "not_configured",
    }
    if app_state.cache is not None:
        cache_status = await redis_health(app_state.cache.client)
        components["cache"] = cache_status["status"]
    else:
        components["cache"] = "disabled"

    status = "healthy" if components["database"] == "ok" else "degraded"
    return schemas.HealthResponse(status=status, version=__version__, components=components)
