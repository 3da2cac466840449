"""
TATAME Sites - WordPress site registry

Sites are owned by a user. Application passwords are encrypted before they
touch the database and never leave this module in plaintext except through
get_decrypted_password().
"""

from __future__ import annotations

import json
import logging
from typing import Any

import aiosqlite

from tatame.security.crypto import decrypt, encrypt, get_encryption_key
from tatame.shared.errors import CryptoError, SiteNotFoundError, ValidationError
from tatame.shared.utils import generate_id, is_valid_url, iso_now

logger = logging.getLogger("tatame.sites.store")

SITE_TYPES = ("managed", "external")
CONNECTION_STATUSES = ("connected", "failed", "pending")

_UPDATABLE_COLUMNS = frozenset(
    {
        "name",
        "url",
        "domain",
        "username",
        "application_password",
        "is_active",
        "ip_address",
        "vps_config",
        "wordpress_version",
        "php_version",
        "ssl_enabled",
        "cache_enabled",
        "redis_enabled",
        "installed_plugins",
        "active_theme",
        "connection_status",
        "connection_error",
        "last_connection_test",
    }
)
_JSON_COLUMNS = ("vps_config", "installed_plugins")
_BOOL_COLUMNS = ("is_active", "is_default", "ssl_enabled", "cache_enabled", "redis_enabled")


def _row_to_site(row: aiosqlite.Row) -> dict[str, Any]:
    site = dict(row)
    for key in _JSON_COLUMNS:
        site[key] = json.loads(site[key]) if site.get(key) else ({} if key == "vps_config" else [])
    for key in _BOOL_COLUMNS:
        site[key] = bool(site[key])
    # Callers get a flag, never the ciphertext.
    site["has_application_password"] = bool(site.pop("application_password", ""))
    return site


class WordPressSiteStore:
    """Database-backed registry of a user's WordPress sites."""

    def __init__(self, db: aiosqlite.Connection, encryption_key: str | None = None) -> None:
        self.db = db
        self._encryption_key = encryption_key

    @property
    def encryption_key(self) -> str:
        if self._encryption_key is None:
            self._encryption_key = get_encryption_key()
        return self._encryption_key

    async def create_site(
        self,
        user_id: str,
        name: str,
        url: str,
        username: str,
        application_password: str,
        *,
        domain: str | None = None,
        site_type: str = "external",
        ip_address: str | None = None,
        vps_config: dict[str, Any] | None = None,
        wordpress_version: str | None = None,
        php_version: str | None = None,
        ssl_enabled: bool = False,
        cache_enabled: bool = False,
        redis_enabled: bool = False,
        is_default: bool = False,
        connection_status: str = "pending",
    ) -> dict[str, Any]:
        """Insert a site. Making it default clears the user's other default."""
        url = url.strip().rstrip("/")
        if not is_valid_url(url):
            raise ValidationError("Please enter a valid URL")
        if not username or not application_password:
            raise ValidationError("Username and application password are required")
        if site_type not in SITE_TYPES:
            raise ValidationError(f"Invalid site type: {site_type}")
        if connection_status not in CONNECTION_STATUSES:
            raise ValidationError(f"Invalid connection status: {connection_status}")

        site_id = generate_id("site")
        now = iso_now()
        tested_at = now if connection_status != "pending" else None

        if is_default:
            await self._clear_default(user_id)

        await self.db.execute(
            """
            INSERT INTO wordpress_sites (
                id, user_id, name, url, domain, username, application_password,
                is_default, ip_address, site_type, vps_config, wordpress_version,
                php_version, ssl_enabled, cache_enabled, redis_enabled,
                connection_status, last_connection_test, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                site_id,
                user_id,
                name.strip(),
                url,
                domain,
                username.strip(),
                encrypt(application_password, self.encryption_key),
                int(is_default),
                ip_address,
                site_type,
                json.dumps(vps_config or {}),
                wordpress_version,
                php_version,
                int(ssl_enabled),
                int(cache_enabled),
                int(redis_enabled),
                connection_status,
                tested_at,
                now,
                now,
            ),
        )
        await self.db.commit()
        logger.info(f"Site {site_id} ({url}) registered for {user_id}")
        return await self.get_site(site_id)

    async def get_site(self, site_id: str, user_id: str | None = None) -> dict[str, Any] | None:
        query = "SELECT * FROM wordpress_sites WHERE id = ?"
        params: list[Any] = [site_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        async with self.db.execute(query, params) as cur:
            row = await cur.fetchone()
        return _row_to_site(row) if row else None

    async def find_site(
        self,
        user_id: str,
        url: str | None = None,
        domain: str | None = None,
    ) -> dict[str, Any] | None:
        """Find a user's site matching either the URL or the domain."""
        if not url and not domain:
            return None
        async with self.db.execute(
            """
            SELECT * FROM wordpress_sites
            WHERE user_id = ? AND (url = ? OR domain = ?)
            ORDER BY created_at
            LIMIT 1
            """,
            (user_id, (url or "").rstrip("/"), domain or ""),
        ) as cur:
            row = await cur.fetchone()
        return _row_to_site(row) if row else None

    async def list_sites(self, user_id: str, active_only: bool = False) -> list[dict[str, Any]]:
        query = "SELECT * FROM wordpress_sites WHERE user_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY is_default DESC, created_at DESC"
        async with self.db.execute(query, (user_id,)) as cur:
            rows = await cur.fetchall()
        return [_row_to_site(r) for r in rows]

    async def update_site(self, site_id: str, user_id: str, /, **updates: Any) -> dict[str, Any]:
        """Update whitelisted columns; a new application password is re-encrypted."""
        bad = set(updates) - _UPDATABLE_COLUMNS
        if bad:
            raise ValidationError(f"Disallowed column(s): {bad}")
        if "url" in updates:
            updates["url"] = str(updates["url"]).strip().rstrip("/")
            if not is_valid_url(updates["url"]):
                raise ValidationError("Please enter a valid URL")
        if "application_password" in updates:
            updates["application_password"] = encrypt(
                updates["application_password"], self.encryption_key
            )
        for key in _JSON_COLUMNS:
            if key in updates:
                updates[key] = json.dumps(updates[key])
        for key in _BOOL_COLUMNS:
            if key in updates:
                updates[key] = int(bool(updates[key]))

        if updates:
            updates["updated_at"] = iso_now()
            set_clause = ", ".join(f"{k} = ?" for k in updates)
            cur = await self.db.execute(
                f"UPDATE wordpress_sites SET {set_clause} WHERE id = ? AND user_id = ?",
                (*updates.values(), site_id, user_id),
            )
            await self.db.commit()
            if cur.rowcount == 0:
                raise SiteNotFoundError(site_id)

        site = await self.get_site(site_id, user_id)
        if site is None:
            raise SiteNotFoundError(site_id)
        return site

    async def delete_site(self, site_id: str, user_id: str) -> bool:
        cur = await self.db.execute(
            "DELETE FROM wordpress_sites WHERE id = ? AND user_id = ?",
            (site_id, user_id),
        )
        await self.db.commit()
        return cur.rowcount > 0

    async def set_default(self, site_id: str, user_id: str) -> dict[str, Any]:
        """Make one site the user's default; every other site loses the flag."""
        if await self.get_site(site_id, user_id) is None:
            raise SiteNotFoundError(site_id)
        await self._clear_default(user_id)
        await self.db.execute(
            "UPDATE wordpress_sites SET is_default = 1, updated_at = ? WHERE id = ?",
            (iso_now(), site_id),
        )
        await self.db.commit()
        return await self.get_site(site_id, user_id)

    async def get_default_site(self, user_id: str) -> dict[str, Any] | None:
        async with self.db.execute(
            "SELECT * FROM wordpress_sites WHERE user_id = ? AND is_default = 1 LIMIT 1",
            (user_id,),
        ) as cur:
            row = await cur.fetchone()
        return _row_to_site(row) if row else None

    async def get_decrypted_password(self, site_id: str, user_id: str | None = None) -> str:
        query = "SELECT application_password FROM wordpress_sites WHERE id = ?"
        params: list[Any] = [site_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        async with self.db.execute(query, params) as cur:
            row = await cur.fetchone()
        if row is None:
            raise SiteNotFoundError(site_id)
        return decrypt(row["application_password"], self.encryption_key)

    async def record_connection_test(
        self,
        site_id: str,
        status: str,
        error: str | None = None,
        wordpress_version: str | None = None,
    ) -> bool:
        if status not in CONNECTION_STATUSES:
            raise ValidationError(f"Invalid connection status: {status}")
        now = iso_now()
        cur = await self.db.execute(
            """
            UPDATE wordpress_sites
            SET connection_status = ?, connection_error = ?, last_connection_test = ?,
                wordpress_version = COALESCE(?, wordpress_version), updated_at = ?
            WHERE id = ?
            """,
            (status, error, now, wordpress_version, now, site_id),
        )
        await self.db.commit()
        return cur.rowcount > 0

    async def test_site_connection(self, site_id: str, user_id: str, client: Any) -> dict[str, Any]:
        """
        Run a connection test through a WordPressClient and store the outcome.

        A password that no longer decrypts (rotated ENCRYPTION_KEY) is
        recorded as a failed test rather than raised.
        """
        site = await self.get_site(site_id, user_id)
        if site is None:
            raise SiteNotFoundError(site_id)

        try:
            password = await self.get_decrypted_password(site_id, user_id)
        except CryptoError:
            error = "Password decryption failed - please re-enter your password"
            await self.record_connection_test(site_id, "failed", error)
            return {"success": False, "error": error}

        result = await client.test_connection(site["url"], site["username"], password)
        version = (result.get("site_info") or {}).get("version")
        await self.record_connection_test(
            site_id,
            "connected" if result["success"] else "failed",
            result.get("error"),
            wordpress_version=version if version and version != "Unknown" else None,
        )
        return result

    async def _clear_default(self, user_id: str) -> None:
        await self.db.execute(
            "UPDATE wordpress_sites SET is_default = 0 WHERE user_id = ? AND is_default = 1",
            (user_id,),
        )
