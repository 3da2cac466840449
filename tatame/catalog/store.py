"""
TATAME Catalog - WordPress plugins and themes

Read-mostly catalog offered in the site builder. ``validate_plugin_selection``
checks a user's plugin picks before they are sent to a VPS.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import aiosqlite

from tatame.catalog.seed_data import PLUGINS, THEMES

logger = logging.getLogger("tatame.catalog")

_PLUGIN_JSON = ("features", "tags", "dependencies", "conflicts")
_THEME_JSON = ("features",)
_BOOLS = ("is_default", "is_active", "is_premium")


def _decode(row: aiosqlite.Row, json_columns: tuple[str, ...]) -> dict[str, Any]:
    item = dict(row)
    for key in json_columns:
        item[key] = json.loads(item[key]) if item.get(key) else []
    for key in _BOOLS:
        item[key] = bool(item[key])
    return item


class CatalogStore:
    """Plugin and theme catalog backed by wordpress_plugins / wordpress_themes."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    # =========================================================================
    # Seeding
    # =========================================================================

    async def seed(self) -> dict[str, int]:
        """Insert bundled entries that are not present yet. Existing rows are left alone."""
        plugins = 0
        for p in PLUGINS:
            cur = await self.db.execute(
                """
                INSERT OR IGNORE INTO wordpress_plugins
                    (slug, name, description, category, version, author, rating,
                     is_default, is_active, is_premium, features, tags, dependencies, conflicts)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    p["slug"], p["name"], p["description"], p["category"], p["version"],
                    p["author"], p["rating"], int(p["is_default"]), int(p["is_active"]),
                    int(p["is_premium"]), json.dumps(p["features"]), json.dumps(p["tags"]),
                    json.dumps(p["dependencies"]), json.dumps(p["conflicts"]),
                ),
            )
            plugins += cur.rowcount

        themes = 0
        for t in THEMES:
            cur = await self.db.execute(
                """
                INSERT OR IGNORE INTO wordpress_themes
                    (slug, name, description, category, version, author, rating,
                     is_default, is_active, is_premium, features, demo_url)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    t["slug"], t["name"], t["description"], t["category"], t["version"],
                    t["author"], t["rating"], int(t["is_default"]), int(t["is_active"]),
                    int(t["is_premium"]), json.dumps(t["features"]), t["demo_url"],
                ),
            )
            themes += cur.rowcount
        await self.db.commit()

        if plugins or themes:
            logger.info(f"Catalog seeded: {plugins} plugins, {themes} themes")
        return {"plugins": plugins, "themes": themes}

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_plugins(self, category: str | None = None, active_only: bool = True) -> list[dict[str, Any]]:
        return await self._list("wordpress_plugins", _PLUGIN_JSON, category, active_only)

    async def list_themes(self, category: str | None = None, active_only: bool = True) -> list[dict[str, Any]]:
        return await self._list("wordpress_themes", _THEME_JSON, category, active_only)

    async def get_plugin(self, slug: str) -> dict[str, Any] | None:
        async with self.db.execute("SELECT * FROM wordpress_plugins WHERE slug = ?", (slug,)) as cur:
            row = await cur.fetchone()
        return _decode(row, _PLUGIN_JSON) if row else None

    async def get_theme(self, slug: str) -> dict[str, Any] | None:
        async with self.db.execute("SELECT * FROM wordpress_themes WHERE slug = ?", (slug,)) as cur:
            row = await cur.fetchone()
        return _decode(row, _THEME_JSON) if row else None

    async def validate_plugin_selection(self, slugs: list[str]) -> dict[str, Any]:
        """
        Check a set of plugin slugs against the catalog.

        Returns ``unknown`` slugs, ``conflicts`` as ``[slug, other]`` pairs
        (each pair reported once) and ``missing_dependencies`` mapping a slug
        to the dependencies not in the selection.
        """
        selected = list(dict.fromkeys(slugs))
        chosen = set(selected)
        unknown: list[str] = []
        conflicts: list[list[str]] = []
        missing: dict[str, list[str]] = {}
        seen_pairs: set[frozenset[str]] = set()

        for slug in selected:
            plugin = await self.get_plugin(slug)
            if plugin is None or not plugin["is_active"]:
                unknown.append(slug)
                continue
            for other in plugin["conflicts"]:
                pair = frozenset((slug, other))
                if other in chosen and pair not in seen_pairs:
                    seen_pairs.add(pair)
                    conflicts.append([slug, other])
            absent = [d for d in plugin["dependencies"] if d not in chosen]
            if absent:
                missing[slug] = absent

        return {
            "valid": not (unknown or conflicts or missing),
            "unknown": unknown,
            "conflicts": conflicts,
            "missing_dependencies": missing,
        }

    async def _list(
        self,
        table: str,
        json_columns: tuple[str, ...],
        category: str | None,
        active_only: bool,
    ) -> list[dict[str, Any]]:
        query = f"SELECT * FROM {table} WHERE 1=1"
        params: list[Any] = []
        if category:
            query += " AND category = ?"
            params.append(category)
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY is_default DESC, rating DESC, name"
        async with self.db.execute(query, params) as cur:
            rows = await cur.fetchall()
        return [_decode(r, json_columns) for r in rows]
