"""
TATAME API - WordPress plugin/theme catalog.

Listings are cached in Redis when a cache is configured.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from tatame.api import schemas
from tatame.api.routes import app_state, get_catalog_store, get_current_user
from tatame.catalog import CatalogStore
from tatame.security import TokenPayload

router = APIRouter(prefix="/v1", tags=["catalog"])

CATALOG_TTL = 600


async def _cached(key: str, load: Any) -> Any:
    if app_state.cache is None:
        return await load()
    return await app_state.cache.get_or_set(key, load, CATALOG_TTL)


@router.get("/catalog/plugins")
async def list_plugins(
    category: str | None = None,
    _user: TokenPayload = Depends(get_current_user),
    store: CatalogStore = Depends(get_catalog_store),
) -> dict[str, Any]:
    plugins = await _cached(
        f"catalog:plugins:{category or 'all'}",
        lambda: store.list_plugins(category=category),
    )
    return {"plugins": plugins}


@router.get("/catalog/themes")
async def list_themes(
    category: str | None = None,
    _user: TokenPayload = Depends(get_current_user),
    store: CatalogStore = Depends(get_catalog_store),
) -> dict[str, Any]:
    themes = await _cached(
        f"catalog:themes:{category or 'all'}",
        lambda: store.list_themes(category=category),
    )
    return {"themes": themes}


@router.post("/catalog/plugins/validate")
async def validate_plugins(
    body: schemas.PluginValidationRequest,
    _user: TokenPayload = Depends(get_current_user),
    store: CatalogStore = Depends(get_catalog_store),
) -> dict[str, Any]:
    return await store.validate_plugin_selection(body.slugs)
