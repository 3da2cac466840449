"""
TATAME API - feature flag endpoints.

Users see the tools their role may open; admins manage every flag and read
its audit trail.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request

from tatame.api import schemas
from tatame.api.routes import (
    actor_from,
    get_current_user,
    get_feature_registry,
    get_feature_sync,
    require_admin,
)
from tatame.features import FeatureCatalogSync, FeatureRegistry
from tatame.security import TokenPayload

logger = logging.getLogger("tatame.api.features")

router = APIRouter(prefix="/v1", tags=["features"])


# ============================================================================
# User-facing
# ============================================================================


@router.get("/features")
async def list_my_features(
    user: TokenPayload = Depends(get_current_user),
    registry: FeatureRegistry = Depends(get_feature_registry),
) -> dict[str, Any]:
    features = await registry.list_visible_features(user.role)
    return {"features": [f.public_dict() for f in features]}


@router.get("/features/{code}")
async def get_my_feature(
    code: str,
    user: TokenPayload = Depends(get_current_user),
    registry: FeatureRegistry = Depends(get_feature_registry),
) -> dict[str, Any]:
    feature = await registry.get_visible_feature(code, user.role)
    return {"feature": feature.public_dict()}


@router.post("/features/{code}/usage")
async def track_feature_usage(
    code: str,
    _user: TokenPayload = Depends(get_current_user),
    registry: FeatureRegistry = Depends(get_feature_registry),
) -> dict[str, Any]:
    return {"tracked": await registry.track_usage(code)}


# ============================================================================
# Admin
# ============================================================================


@router.get("/admin/features")
async def admin_list_features(
    status: schemas.FeatureStatusValue | None = None,
    category: str | None = None,
    include_deleted: bool = False,
    _admin: TokenPayload = Depends(require_admin),
    registry: FeatureRegistry = Depends(get_feature_registry),
) -> dict[str, Any]:
    features, stats = await registry.list_features(
        status=status.value if status else None,
        category=category,
        include_deleted=include_deleted,
    )
    return {"features": [f.to_dict() for f in features], "stats": stats}


@router.post("/admin/features", status_code=201)
async def admin_create_feature(
    body: schemas.FeatureCreateRequest,
    request: Request,
    admin: TokenPayload = Depends(require_admin),
    registry: FeatureRegistry = Depends(get_feature_registry),
) -> dict[str, Any]:
    feature = await registry.create_feature(body.model_dump(), actor_from(request, admin))
    return {"feature": feature.to_dict()}


@router.post("/admin/features/initialize")
async def admin_initialize_features(
    sync: bool = Query(False, description="Also reconcile with feature manifests"),
    _admin: TokenPayload = Depends(require_admin),
    feature_sync: FeatureCatalogSync = Depends(get_feature_sync),
) -> dict[str, Any]:
    initialized = await feature_sync.initialize_defaults()
    response: dict[str, Any] = {"initialized": initialized}
    if sync:
        response["sync"] = await feature_sync.sync_features()
    return response


@router.post("/admin/features/bulk")
async def admin_bulk_update(
    body: schemas.FeatureBulkRequest,
    request: Request,
    admin: TokenPayload = Depends(require_admin),
    registry: FeatureRegistry = Depends(get_feature_registry),
) -> dict[str, Any]:
    return await registry.bulk_update(
        body.feature_ids, body.action.value, actor_from(request, admin), body.reason
    )


@router.get("/admin/features/{feature_id}")
async def admin_get_feature(
    feature_id: str,
    _admin: TokenPayload = Depends(require_admin),
    registry: FeatureRegistry = Depends(get_feature_registry),
) -> dict[str, Any]:
    feature = await registry.get_feature(feature_id)
    return {"feature": feature.to_dict()}


@router.put("/admin/features/{feature_id}")
async def admin_update_feature(
    feature_id: str,
    body: schemas.FeatureUpdateRequest,
    request: Request,
    admin: TokenPayload = Depends(require_admin),
    registry: FeatureRegistry = Depends(get_feature_registry),
) -> dict[str, Any]:
    feature = await registry.update_feature(
        feature_id, body.updates(), actor_from(request, admin), body.reason
    )
    return {"feature": feature.to_dict()}


@router.delete("/admin/features/{feature_id}")
async def admin_delete_feature(
    feature_id: str,
    body: schemas.FeatureDeleteRequest,
    request: Request,
    admin: TokenPayload = Depends(require_admin),
    registry: FeatureRegistry = Depends(get_feature_registry),
) -> dict[str, Any]:
    feature = await registry.delete_feature(
        feature_id, body.confirmation_code, actor_from(request, admin), body.reason
    )
    return {"message": "Feature deleted successfully", "feature": feature.to_dict()}


@router.put("/admin/features/{feature_id}/status")
async def admin_update_status(
    feature_id: str,
    body: schemas.FeatureStatusRequest,
    request: Request,
    admin: TokenPayload = Depends(require_admin),
    registry: FeatureRegistry = Depends(get_feature_registry),
) -> dict[str, Any]:
    feature = await registry.update_status(
        feature_id, body.status.value, body.message, actor_from(request, admin)
    )
    return {"feature": feature.to_dict()}


@router.post("/admin/features/{feature_id}/toggle")
async def admin_toggle_feature(
    feature_id: str,
    request: Request,
    body: schemas.FeatureToggleRequest | None = None,
    admin: TokenPayload = Depends(require_admin),
    registry: FeatureRegistry = Depends(get_feature_registry),
) -> dict[str, Any]:
    feature = await registry.toggle_status(
        feature_id, actor_from(request, admin), body.reason if body else None
    )
    return {"feature": feature.to_dict()}


@router.post("/admin/features/{feature_id}/maintenance")
async def admin_set_maintenance(
    feature_id: str,
    request: Request,
    body: schemas.FeatureMaintenanceRequest | None = None,
    admin: TokenPayload = Depends(require_admin),
    registry: FeatureRegistry = Depends(get_feature_registry),
) -> dict[str, Any]:
    feature = await registry.set_maintenance(
        feature_id, body.message if body else None, actor_from(request, admin)
    )
    return {"feature": feature.to_dict()}


@router.post("/admin/features/{feature_id}/restore")
async def admin_restore_feature(
    feature_id: str,
    request: Request,
    admin: TokenPayload = Depends(require_admin),
    registry: FeatureRegistry = Depends(get_feature_registry),
) -> dict[str, Any]:
    feature = await registry.restore_feature(feature_id, actor_from(request, admin))
    return {"feature": feature.to_dict()}


@router.get("/admin/features/{feature_id}/audit")
async def admin_feature_audit(
    feature_id: str,
    limit: int = Query(50, ge=1, le=500),
    _admin: TokenPayload = Depends(require_admin),
    registry: FeatureRegistry = Depends(get_feature_registry),
) -> dict[str, Any]:
    feature = await registry.get_feature(feature_id)
    logs = await registry.get_audit_logs(feature.id, limit)
    return {"feature_code": feature.code, "logs": logs}
