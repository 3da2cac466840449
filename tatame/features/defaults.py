"""
TATAME Features - Default catalog and manifest sync

The platform ships a fixed set of tool features. Extra tools can be
described by ``feature.json`` manifests, one per sub-directory of the
manifest directory.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from tatame.features.models import Actor, AuditAction, FeatureStatus
from tatame.features.registry import FeatureRegistry
from tatame.shared.errors import TatameError
from tatame.shared.settings import FEATURES_MANIFEST_DIR

logger = logging.getLogger("tatame.features.sync")

ALL_ROLES = ["aluno", "mentor", "moderador", "admin"]
STAFF_ROLES = ["mentor", "moderador", "admin"]

# Starts active on first initialization; everything else starts disabled.
ACTIVE_ON_INIT = frozenset({"wp-installer"})

REQUIRED_MANIFEST_FIELDS = ("code", "name", "description", "category")

SYSTEM_ACTOR = Actor(id="system", email="")

DEFAULT_FEATURES: list[dict[str, Any]] = [
    {
        "code": "wp-installer",
        "name": "WordPress Installer",
        "description": "Instale WordPress otimizado para SEO com 1 clique",
        "category": "automation",
        "icon": "Globe",
        "route": "/tools",
        "permissions": ALL_ROLES,
        "config": {"maxInstallations": 10, "templatesEnabled": True},
        "version": "1.0.0",
        "deletable": False,
    },
    {
        "code": "site-monitor",
        "name": "Monitor de Sites",
        "description": "Acompanhe a performance e uptime dos seus sites",
        "category": "monitoring",
        "icon": "Server",
        "route": "/tools",
        "permissions": ALL_ROLES,
        "config": {"checkInterval": 300, "maxSites": 20},
        "version": "1.0.0",
        "deletable": True,
    },
    {
        "code": "keyword-research",
        "name": "Pesquisa de Keywords",
        "description": "Encontre as melhores palavras-chave para seu nicho",
        "category": "seo",
        "icon": "Search",
        "route": "/tools",
        "permissions": STAFF_ROLES,
        "config": {"apiProvider": "semrush", "maxQueries": 100},
        "version": "1.0.0",
        "deletable": True,
    },
    {
        "code": "rank-tracker",
        "name": "Rank Tracker",
        "description": "Monitore suas posições no Google em tempo real",
        "category": "monitoring",
        "icon": "BarChart",
        "route": "/tools",
        "permissions": ALL_ROLES,
        "config": {"updateFrequency": "daily", "maxKeywords": 50},
        "version": "1.0.0",
        "deletable": True,
    },
    {
        "code": "speed-optimizer",
        "name": "Speed Optimizer",
        "description": "Otimize a velocidade do seu WordPress",
        "category": "optimization",
        "icon": "Zap",
        "route": "/tools",
        "permissions": STAFF_ROLES,
        "config": {"cacheEnabled": True, "cdnIntegration": False},
        "version": "1.0.0",
        "deletable": True,
    },
    {
        "code": "security-scanner",
        "name": "Security Scanner",
        "description": "Verifique vulnerabilidades em seus sites",
        "category": "security",
        "icon": "Shield",
        "route": "/tools",
        "permissions": ["moderador", "admin"],
        "config": {"scanDepth": "medium", "autoFix": False},
        "version": "1.0.0",
        "deletable": True,
    },
    {
        "code": "silo-organizer",
        "name": "Silo Organizer",
        "description": "Organize a estrutura de conteúdo do seu site",
        "category": "seo",
        "icon": "Folder",
        "route": "/tools/seo/silo-organizer",
        "permissions": ALL_ROLES,
        "config": {"maxProjects": 10, "exportFormats": ["csv", "json", "xml"]},
        "version": "1.0.0",
        "deletable": True,
    },
    {
        "code": "outline-generator",
        "name": "Gerador de Outlines",
        "description": "Crie estruturas de artigos otimizadas para SEO",
        "category": "content",
        "icon": "FileText",
        "route": "/tools/seo/outline-generator",
        "permissions": ALL_ROLES,
        "config": {"aiEnabled": True, "templates": ["blog", "pillar", "guide"]},
        "version": "1.0.0",
        "deletable": True,
    },
    {
        "code": "article-writer",
        "name": "Escritor de Artigos",
        "description": "Escreva artigos otimizados com IA",
        "category": "content",
        "icon": "Edit",
        "route": "/tools/seo/article-writer",
        "permissions": STAFF_ROLES,
        "config": {"aiProvider": "openai", "maxLength": 5000, "languages": ["pt-BR", "en-US"]},
        "version": "1.0.0",
        "deletable": True,
    },
    {
        "code": "revenue-calculator",
        "name": "Calculadora de Rendimento",
        "description": "Calcule o potencial de receita do seu site",
        "category": "analytics",
        "icon": "DollarSign",
        "route": "/tools/seo/revenue-calculator",
        "permissions": ALL_ROLES,
        "config": {"currency": "BRL", "metrics": ["adsense", "affiliate", "products"]},
        "version": "1.0.0",
        "deletable": True,
    },
    {
        "code": "review-generator",
        "name": "Gerador de Reviews",
        "description": "Crie reviews profissionais de produtos com IA para aumentar suas conversões",
        "category": "content",
        "icon": "Sparkles",
        "route": "/ferramentas/gerador-reviews",
        "permissions": ALL_ROLES,
        "config": {
            "aiEnabled": True,
            "contentTypes": ["bbr", "spr", "informational"],
            "maxProducts": 10,
            "enabledTypes": {"bbr": True, "spr": False, "informational": False},
        },
        "version": "1.0.0",
        "deletable": False,
    },
]


def scan_manifests(manifest_dir: str | Path | None) -> list[dict[str, Any]]:
    """Read ``<manifest_dir>/*/feature.json``. Invalid manifests are skipped."""
    if not manifest_dir:
        return []
    root = Path(manifest_dir)
    if not root.is_dir():
        logger.warning(f"Features directory not found: {root}")
        return []

    manifests: list[dict[str, Any]] = []
    for path in sorted(root.glob("*/feature.json")):
        try:
            manifest = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error(f"Failed to parse feature manifest {path}: {exc}")
            continue
        if not isinstance(manifest, dict) or not all(manifest.get(k) for k in REQUIRED_MANIFEST_FIELDS):
            logger.warning(f"Invalid manifest in {path.parent.name}: missing required fields")
            continue
        logger.info(f"Found feature manifest: {manifest['code']}")
        manifests.append(manifest)
    return manifests


class FeatureCatalogSync:
    """Keeps the features table in line with the defaults and manifests."""

    def __init__(self, registry: FeatureRegistry, manifest_dir: str | Path | None = FEATURES_MANIFEST_DIR) -> None:
        self.registry = registry
        self.manifest_dir = manifest_dir

    async def initialize_defaults(self) -> list[str]:
        """Insert default features that are missing. Returns the codes added."""
        added = []
        for manifest in DEFAULT_FEATURES:
            if await self.registry.get_by_code(manifest["code"]) is not None:
                continue
            status = (
                FeatureStatus.ACTIVE.value
                if manifest["code"] in ACTIVE_ON_INIT
                else FeatureStatus.DISABLED.value
            )
            await self.registry.create_feature(manifest, SYSTEM_ACTOR, status=status)
            logger.info(f"Initialized default feature: {manifest['code']}")
            added.append(manifest["code"])
        return added

    async def sync_features(self, manifest_dir: str | Path | None = None) -> dict[str, list[str]]:
        """
        Reconcile the database with defaults plus manifests.

        New codes are added disabled, deleted ones are restored, a changed
        version refreshes description and merges config, and live features
        missing from every manifest become deprecated.
        """
        result: dict[str, list[str]] = {"added": [], "updated": [], "deprecated": [], "errors": []}
        manifests = DEFAULT_FEATURES + scan_manifests(manifest_dir or self.manifest_dir)
        existing, _ = await self.registry.list_features()

        for manifest in manifests:
            code = str(manifest["code"]).strip().lower()
            try:
                feature = await self.registry.get_by_code(code)
                if feature is None:
                    await self.registry.create_feature(manifest, SYSTEM_ACTOR)
                    result["added"].append(code)
                    logger.info(f"Added new feature: {code}")
                elif feature.deleted:
                    feature.deleted = False
                    feature.deleted_at = None
                    feature.version = manifest.get("version") or feature.version
                    await self.registry.save(feature)
                    result["updated"].append(code)
                    logger.info(f"Restored feature: {code}")
                elif manifest.get("version") and manifest["version"] != feature.version:
                    feature.version = manifest["version"]
                    feature.description = manifest.get("description") or feature.description
                    feature.config = {**feature.config, **(manifest.get("config") or {})}
                    await self.registry.save(feature)
                    result["updated"].append(code)
                    logger.info(f"Updated feature version: {code}")
            except TatameError as exc:
                logger.error(f"Error processing feature {code}: {exc}")
                result["errors"].append(code)

        manifest_codes = {str(m["code"]).strip().lower() for m in manifests}
        for feature in existing:
            if feature.code not in manifest_codes and feature.status != FeatureStatus.DEPRECATED.value:
                feature.status = FeatureStatus.DEPRECATED.value
                await self.registry.save(feature)
                result["deprecated"].append(feature.code)
                logger.warning(f"Marked feature as deprecated: {feature.code}")

        if result["added"] or result["updated"] or result["deprecated"]:
            await self.registry.record_audit(
                "system",
                "Feature Scanner",
                AuditAction.UPDATED,
                SYSTEM_ACTOR,
                new_state={"config": result},
                reason="Automatic feature scan",
            )
        return result
