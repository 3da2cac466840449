"""
TATAME Sites - VPS configurations

One row per (user, host): whether WordOps is installed, which stack
features are present, which sites live there, plus a bounded setup log.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import aiosqlite

from tatame.shared.errors import ValidationError
from tatame.shared.utils import generate_id, iso_now

logger = logging.getLogger("tatame.sites.vps")

LOG_LEVELS = ("info", "warning", "error")
MAX_SETUP_LOGS = 100

DEFAULT_FEATURES: dict[str, bool] = {
    "has_wordops": False,
    "has_nginx": False,
    "has_mysql": False,
    "has_php": False,
    "has_ssl": False,
    "has_firewall": False,
    "has_redis": False,
}


def _row_to_config(row: aiosqlite.Row) -> dict[str, Any]:
    config = dict(row)
    config["is_configured"] = bool(config["is_configured"])
    config["features"] = {**DEFAULT_FEATURES, **json.loads(config["features"] or "{}")}
    config["sites"] = json.loads(config["sites"] or "[]")
    return config


class VpsConfigStore:
    """Database-backed VPS configuration records."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    async def upsert_config(
        self,
        user_id: str,
        host: str,
        username: str,
        port: int = 22,
    ) -> dict[str, Any]:
        """Create the (user, host) record or refresh its connection details."""
        if not 1 <= int(port) <= 65535:
            raise ValidationError(f"Invalid port: {port}")
        now = iso_now()
        await self.db.execute(
            """
            INSERT INTO vps_configurations (id, user_id, host, port, username, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id, host) DO UPDATE SET
                port = excluded.port,
                username = excluded.username,
                updated_at = excluded.updated_at
            """,
            (generate_id("vps"), user_id, host.strip(), int(port), username.strip(), now, now),
        )
        await self.db.commit()
        return await self.get_config_by_host(user_id, host)

    async def get_config(self, vps_id: str, user_id: str | None = None) -> dict[str, Any] | None:
        query = "SELECT * FROM vps_configurations WHERE id = ?"
        params: list[Any] = [vps_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        async with self.db.execute(query, params) as cur:
            row = await cur.fetchone()
        return _row_to_config(row) if row else None

    async def get_config_by_host(self, user_id: str, host: str) -> dict[str, Any] | None:
        async with self.db.execute(
            "SELECT * FROM vps_configurations WHERE user_id = ? AND host = ?",
            (user_id, host.strip()),
        ) as cur:
            row = await cur.fetchone()
        return _row_to_config(row) if row else None

    async def list_configs(self, user_id: str) -> list[dict[str, Any]]:
        async with self.db.execute(
            "SELECT * FROM vps_configurations WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
        ) as cur:
            rows = await cur.fetchall()
        return [_row_to_config(r) for r in rows]

    async def mark_configured(
        self,
        vps_id: str,
        wordops_version: str | None = None,
        features: dict[str, bool] | None = None,
    ) -> bool:
        now = iso_now()
        merged = {**DEFAULT_FEATURES, **(features or {})}
        cur = await self.db.execute(
            """
            UPDATE vps_configurations
            SET is_configured = 1, configured_at = ?, wordops_version = COALESCE(?, wordops_version),
                features = ?, updated_at = ?
            WHERE id = ?
            """,
            (now, wordops_version, json.dumps(merged), now, vps_id),
        )
        await self.db.commit()
        return cur.rowcount > 0

    async def add_log(self, vps_id: str, level: str, message: str) -> None:
        """Append a setup log line, keeping only the newest MAX_SETUP_LOGS."""
        if level not in LOG_LEVELS:
            raise ValidationError(f"Invalid log level: {level}")
        await self.db.execute(
            "INSERT INTO vps_setup_logs (vps_id, level, message, timestamp) VALUES (?, ?, ?, ?)",
            (vps_id, level, message, iso_now()),
        )
        await self.db.execute(
            """
            DELETE FROM vps_setup_logs
            WHERE vps_id = ? AND id NOT IN (
                SELECT id FROM vps_setup_logs WHERE vps_id = ? ORDER BY id DESC LIMIT ?
            )
            """,
            (vps_id, vps_id, MAX_SETUP_LOGS),
        )
        await self.db.commit()

    async def get_logs(self, vps_id: str) -> list[dict[str, Any]]:
        async with self.db.execute(
            "SELECT level, message, timestamp FROM vps_setup_logs WHERE vps_id = ? ORDER BY id",
            (vps_id,),
        ) as cur:
            rows = await cur.fetchall()
        return [dict(r) for r in rows]

    async def add_site(self, vps_id: str, domain: str, site_type: str = "wordpress") -> bool:
        config = await self.get_config(vps_id)
        if config is None:
            return False
        sites = [s for s in config["sites"] if s["domain"] != domain.lower()]
        sites.append(
            {"domain": domain.lower(), "type": site_type, "status": "active", "created_at": iso_now()}
        )
        return await self._save_sites(vps_id, sites)

    async def remove_site(self, vps_id: str, domain: str) -> bool:
        """Mark a site deleted; the entry stays for history."""
        config = await self.get_config(vps_id)
        if config is None:
            return False
        changed = False
        for site in config["sites"]:
            if site["domain"] == domain.lower():
                site["status"] = "deleted"
                changed = True
        return changed and await self._save_sites(vps_id, config["sites"])

    async def find_site_host(self, user_id: str, domain: str) -> dict[str, Any] | None:
        """Return the user's VPS already hosting an active site for domain."""
        for config in await self.list_configs(user_id):
            for site in config["sites"]:
                if site["domain"] == domain.lower() and site["status"] == "active":
                    return config
        return None

    async def delete_config(self, vps_id: str, user_id: str) -> bool:
        cur = await self.db.execute(
            "DELETE FROM vps_configurations WHERE id = ? AND user_id = ?",
            (vps_id, user_id),
        )
        if cur.rowcount > 0:
            await self.db.execute("DELETE FROM vps_setup_logs WHERE vps_id = ?", (vps_id,))
        await self.db.commit()
        return cur.rowcount > 0

    async def _save_sites(self, vps_id: str, sites: list[dict[str, Any]]) -> bool:
        cur = await self.db.execute(
            "UPDATE vps_configurations SET sites = ?, updated_at = ? WHERE id = ?",
            (json.dumps(sites), iso_now(), vps_id),
        )
        await self.db.commit()
        return cur.rowcount > 0
