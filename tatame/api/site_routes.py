"""
TATAME API - provisioning and WordPress site endpoints.

Provisioning calls take minutes, so the handlers create a job, start the
service call as a background task bound to the event bus, and return the
job id straight away. Clients poll ``GET /v1/provisioning/jobs/{id}``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable

from fastapi import APIRouter, Depends, HTTPException, Query

from tatame.api import schemas
from tatame.api.routes import (
    get_blog_creator,
    get_current_user,
    get_event_bus,
    get_jobs,
    get_site_creator,
    get_site_store,
    get_vps_setup,
    get_wordpress_client,
)
from tatame.events import EventBus
from tatame.provisioning import (
    BlogCreator,
    ProvisioningJobStore,
    SiteCreationService,
    VpsSetup,
    run_provisioning_job,
)
from tatame.security import TokenPayload
from tatame.shared.errors import JobNotFoundError, SiteNotFoundError
from tatame.sites import WordPressClient, WordPressSiteStore

logger = logging.getLogger("tatame.api.provisioning")

router = APIRouter(prefix="/v1", tags=["provisioning"])

EVENT_SOURCE = "tatame.provisioning"

_background_tasks: set[asyncio.Task] = set()
_claimed_kinds: set[str] = set()


def _claim(kind: str, service: Any, message: str) -> None:
    """
    Reserve a provisioning service for one job.

    Runs before the first await of the handler, so of two concurrent
    requests only one gets past it. The claim is released when the job
    task finishes.
    """
    if service.is_running or kind in _claimed_kinds:
        raise HTTPException(status_code=409, detail=message)
    _claimed_kinds.add(kind)


async def _start_job(
    jobs: ProvisioningJobStore,
    bus: EventBus,
    user_id: str,
    kind: str,
    target: str,
    start: Any,
) -> schemas.JobAcceptedResponse:
    """Create the job row and run ``start(emit)`` in the background."""
    try:
        job = await jobs.create_job(user_id, kind, target)
    except BaseException:
        _claimed_kinds.discard(kind)
        raise
    emit = bus.emitter(EVENT_SOURCE, correlation_id=job["id"])
    operation: Awaitable[Any] = start(emit)
    task = asyncio.create_task(run_provisioning_job(jobs, job["id"], operation))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    task.add_done_callback(lambda _task: _claimed_kinds.discard(kind))
    return schemas.JobAcceptedResponse(
        job_id=job["id"], kind=kind, message=f"{kind} started for {target}"
    )


async def cancel_background_jobs() -> int:
    """Cancel in-flight provisioning tasks and wait for them to record the outcome."""
    tasks = list(_background_tasks)
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
    _background_tasks.clear()
    _claimed_kinds.clear()
    return len(tasks)


# ============================================================================
# Provisioning
# ============================================================================


@router.post("/sites/check-vps")
async def check_vps(
    body: schemas.CheckVpsRequest,
    _user: TokenPayload = Depends(get_current_user),
    creator: SiteCreationService = Depends(get_site_creator),
) -> dict[str, Any]:
    readiness = await creator.check_vps_readiness(body.credentials.to_credentials())
    if not readiness.has_wordops:
        detail = readiness.error or "WordOps is not installed. Please run VPS setup first."
        raise HTTPException(status_code=400, detail=detail)
    if not readiness.is_ready:
        raise HTTPException(status_code=400, detail="WordOps is installed but not functioning properly")
    return {"success": True, "readiness": readiness.to_dict()}


@router.post("/sites/create", status_code=202, response_model=schemas.JobAcceptedResponse)
async def create_site(
    body: schemas.CreateSiteRequest,
    user: TokenPayload = Depends(get_current_user),
    creator: SiteCreationService = Depends(get_site_creator),
    jobs: ProvisioningJobStore = Depends(get_jobs),
    bus: EventBus = Depends(get_event_bus),
) -> schemas.JobAcceptedResponse:
    options = body.to_options(user.user_id)
    _claim("site", creator, "Site creation is already running")
    return await _start_job(
        jobs, bus, user.user_id, "site", options.domain,
        lambda emit: creator.create_site(options, emit=emit),
    )


@router.post("/vps/setup", status_code=202, response_model=schemas.JobAcceptedResponse)
async def setup_vps(
    body: schemas.VpsSetupRequest,
    user: TokenPayload = Depends(get_current_user),
    setup: VpsSetup = Depends(get_vps_setup),
    jobs: ProvisioningJobStore = Depends(get_jobs),
    bus: EventBus = Depends(get_event_bus),
) -> schemas.JobAcceptedResponse:
    options = body.to_options(user.user_id)
    _claim("vps_setup", setup, "VPS setup is already running")
    return await _start_job(
        jobs, bus, user.user_id, "vps_setup", options.credentials.host,
        lambda emit: setup.setup_vps(options, emit=emit),
    )


@router.post("/blogs/create", status_code=202, response_model=schemas.JobAcceptedResponse)
async def create_blog(
    body: schemas.CreateBlogRequest,
    user: TokenPayload = Depends(get_current_user),
    creator: BlogCreator = Depends(get_blog_creator),
    jobs: ProvisioningJobStore = Depends(get_jobs),
    bus: EventBus = Depends(get_event_bus),
) -> schemas.JobAcceptedResponse:
    options = body.to_options(user.user_id)
    _claim("blog", creator, "Blog creation is already running")
    return await _start_job(
        jobs, bus, user.user_id, "blog", options.domain,
        lambda emit: creator.create_blog(options, emit=emit),
    )


@router.get("/provisioning/jobs")
async def list_jobs(
    limit: int = Query(50, ge=1, le=200),
    user: TokenPayload = Depends(get_current_user),
    jobs: ProvisioningJobStore = Depends(get_jobs),
) -> dict[str, Any]:
    return {"jobs": await jobs.list_jobs(user.user_id, limit)}


@router.get("/provisioning/jobs/{job_id}")
async def get_job(
    job_id: str,
    user: TokenPayload = Depends(get_current_user),
    jobs: ProvisioningJobStore = Depends(get_jobs),
) -> dict[str, Any]:
    job = await jobs.get_job(job_id, user.user_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return {"job": job}


# ============================================================================
# WordPress sites
# ============================================================================


@router.get("/wordpress/sites")
async def list_sites(
    user: TokenPayload = Depends(get_current_user),
    store: WordPressSiteStore = Depends(get_site_store),
) -> dict[str, Any]:
    return {"sites": await store.list_sites(user.user_id)}


@router.post("/wordpress/sites", status_code=201)
async def add_site(
    body: schemas.AddSiteRequest,
    user: TokenPayload = Depends(get_current_user),
    store: WordPressSiteStore = Depends(get_site_store),
    client: WordPressClient = Depends(get_wordpress_client),
) -> dict[str, Any]:
    """Register an existing WordPress site and test its application password."""
    site = await store.create_site(
        user.user_id,
        body.name,
        body.url,
        body.username,
        body.application_password,
        is_default=body.is_default,
    )
    connection = await store.test_site_connection(site["id"], user.user_id, client)
    return {"site": await store.get_site(site["id"], user.user_id), "connection": connection}


@router.delete("/wordpress/sites/{site_id}")
async def delete_site(
    site_id: str,
    user: TokenPayload = Depends(get_current_user),
    store: WordPressSiteStore = Depends(get_site_store),
) -> dict[str, Any]:
    if not await store.delete_site(site_id, user.user_id):
        raise SiteNotFoundError(site_id)
    return {"message": "Site removed successfully"}


@router.post("/wordpress/sites/{site_id}/test")
async def test_site(
    site_id: str,
    user: TokenPayload = Depends(get_current_user),
    store: WordPressSiteStore = Depends(get_site_store),
    client: WordPressClient = Depends(get_wordpress_client),
) -> dict[str, Any]:
    return await store.test_site_connection(site_id, user.user_id, client)


@router.post("/wordpress/sites/{site_id}/default")
async def set_default_site(
    site_id: str,
    user: TokenPayload = Depends(get_current_user),
    store: WordPressSiteStore = Depends(get_site_store),
) -> dict[str, Any]:
    return {"site": await store.set_default(site_id, user.user_id)}
