"""
TATAME API - email template administration.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from tatame.api import schemas
from tatame.api.routes import get_email_service, get_email_templates, require_admin
from tatame.email import EmailService, EmailTemplateStore
from tatame.security import TokenPayload

logger = logging.getLogger("tatame.api.email")

router = APIRouter(prefix="/v1", tags=["email"])


@router.get("/admin/email-templates")
async def list_templates(
    _admin: TokenPayload = Depends(require_admin),
    store: EmailTemplateStore = Depends(get_email_templates),
) -> dict[str, Any]:
    templates = await store.list_templates()
    return {"templates": [t.to_dict() for t in templates]}


@router.post("/admin/email-templates/initialize")
async def initialize_templates(
    _admin: TokenPayload = Depends(require_admin),
    store: EmailTemplateStore = Depends(get_email_templates),
) -> dict[str, Any]:
    return {"results": await store.initialize_defaults()}


@router.post("/admin/email-templates/{slug}/preview")
async def preview_template(
    slug: str,
    body: schemas.TemplatePreviewRequest | None = None,
    _admin: TokenPayload = Depends(require_admin),
    store: EmailTemplateStore = Depends(get_email_templates),
) -> dict[str, Any]:
    return await store.preview(slug, body.data if body else None)


@router.post("/admin/email-templates/{slug}/test")
async def send_test_email(
    slug: str,
    body: schemas.TemplateTestRequest,
    admin: TokenPayload = Depends(require_admin),
    service: EmailService = Depends(get_email_service),
) -> dict[str, Any]:
    """Send the rendered template to ``to`` through the configured provider."""
    result = await service.send_template(slug, body.to, body.data)
    if not result["success"]:
        raise HTTPException(status_code=502, detail=result.get("error") or "Failed to send email")
    logger.info(f"Test email {slug} sent to {body.to} by {admin.email}")
    return result
