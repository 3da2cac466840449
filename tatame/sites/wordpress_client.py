"""
TATAME Sites - WordPress REST client

Detects WordPress installs and verifies application-password credentials
against the REST API.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import re
from typing import Any

import httpx

from tatame.shared.settings import WORDPRESS_TIMEOUT_SECONDS, WORDPRESS_USER_AGENT

logger = logging.getLogger("tatame.sites.wordpress")

_WP_INDICATORS = (
    re.compile(r"wp-content", re.IGNORECASE),
    re.compile(r"wp-includes", re.IGNORECASE),
    re.compile(r"generator.*wordpress", re.IGNORECASE),
    re.compile(r"wp-json", re.IGNORECASE),
)
_TITLE_RE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)
_VERSION_RE = re.compile(r"generator.*wordpress\s+(\d+\.\d+(?:\.\d+)?)", re.IGNORECASE)
_ADMIN_RE = re.compile(r"href=[\"']([^\"']*wp-admin[^\"']*)", re.IGNORECASE)


def normalize_url(url: str) -> str:
    """Add a scheme when missing and strip trailing slashes."""
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url.rstrip("/")


def _basic_auth(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


class WordPressClient:
    """Async WordPress REST client. ``transport`` is injectable for tests."""

    def __init__(
        self,
        timeout: float = WORDPRESS_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": WORDPRESS_USER_AGENT},
            follow_redirects=True,
            transport=self._transport,
        )

    async def detect_wordpress(self, url: str) -> dict[str, Any]:
        """Probe the home page HTML and the REST root in parallel."""
        base = normalize_url(url)
        logger.info(f"Detecting WordPress at: {base}")

        async with self._client() as client:
            html_check, rest_check = await asyncio.gather(
                self._detect_from_html(client, base),
                self._detect_from_rest(client, base),
                return_exceptions=True,
            )

        is_wordpress = False
        title = version = admin_url = ""
        rest_enabled = False

        if isinstance(html_check, dict) and html_check["is_wordpress"]:
            is_wordpress = True
            title = html_check["title"]
            version = html_check["version"]
            admin_url = html_check["admin_url"]
        elif isinstance(html_check, Exception):
            logger.debug(f"HTML detection failed for {base}: {html_check}")

        if isinstance(rest_check, dict) and rest_check["rest_api_enabled"]:
            rest_enabled = True
            if not is_wordpress:
                is_wordpress = True
                title = rest_check["title"] or title

        if isinstance(html_check, Exception) and not rest_enabled:
            return {
                "is_wordpress": False,
                "rest_api_enabled": False,
                "error": str(html_check) or "Failed to detect WordPress",
            }

        return {
            "is_wordpress": is_wordpress,
            "title": title or "WordPress Site",
            "version": version or "Unknown",
            "rest_api_enabled": rest_enabled,
            "admin_url": admin_url or f"{base}/wp-admin",
        }

    async def _detect_from_html(self, client: httpx.AsyncClient, base: str) -> dict[str, Any]:
        resp = await client.get(base)
        html = resp.text
        title_match = _TITLE_RE.search(html)
        version_match = _VERSION_RE.search(html)
        admin_match = _ADMIN_RE.search(html)
        return {
            "is_wordpress": any(p.search(html) for p in _WP_INDICATORS),
            "title": title_match.group(1).strip() if title_match else "",
            "version": version_match.group(1) if version_match else "",
            "admin_url": admin_match.group(1) if admin_match else "",
        }

    async def _detect_from_rest(self, client: httpx.AsyncClient, base: str) -> dict[str, Any]:
        try:
            resp = await client.get(f"{base}/wp-json/wp/v2")
        except httpx.HTTPError:
            return {"rest_api_enabled": False, "title": ""}
        if resp.status_code != 200:
            return {"rest_api_enabled": False, "title": ""}

        title = ""
        try:
            settings = await client.get(f"{base}/wp-json/wp/v2/settings")
            if settings.status_code == 200:
                title = settings.json().get("title", "") or ""
        except (httpx.HTTPError, ValueError):
            # settings usually needs auth
            pass
        return {"rest_api_enabled": True, "title": title}

    async def test_connection(
        self,
        url: str,
        username: str,
        application_password: str,
    ) -> dict[str, Any]:
        """
        Authenticate against ``/wp-json/wp/v2/users/me``.

        On success, site title/version, plugins and themes are fetched on a
        best-effort basis. Returns ``{success, site_info}`` or
        ``{success: False, error}``; never raises for HTTP failures.
        """
        base = normalize_url(url)
        api = f"{base}/wp-json/wp/v2"
        auth = {"Authorization": _basic_auth(username, application_password)}

        async with self._client() as client:
            try:
                resp = await client.get(f"{api}/users/me", headers=auth)
            except httpx.ConnectError as exc:
                logger.error(f"WordPress connection test failed for {base}: {exc}")
                return {"success": False, "error": "Site not reachable or URL incorrect"}
            except httpx.HTTPError as exc:
                logger.error(f"WordPress connection test failed for {base}: {exc}")
                return {"success": False, "error": "Connection failed"}

            if resp.status_code != 200:
                logger.error(f"WordPress connection test for {base} returned {resp.status_code}")
                if resp.status_code == 401:
                    error = "Invalid username or application password"
                elif resp.status_code == 403:
                    error = "User does not have sufficient permissions"
                else:
                    error = "Connection failed"
                return {"success": False, "error": error}

            settings, plugins, themes = await asyncio.gather(
                self._get_json(client, f"{api}/settings", auth, {}),
                self._get_json(client, f"{api}/plugins", auth, []),
                self._get_json(client, f"{api}/themes", auth, []),
            )

        return {
            "success": True,
            "site_info": {
                "title": settings.get("title") or "WordPress Site",
                "url": base,
                "admin_url": f"{base}/wp-admin",
                "version": settings.get("wp_version") or "Unknown",
                "plugins": [
                    {"name": p.get("name"), "version": p.get("version"), "active": p.get("status") == "active"}
                    for p in plugins
                    if isinstance(p, dict)
                ],
                "themes": [
                    {"name": _rendered(t.get("name")), "version": t.get("version"), "active": t.get("status") == "active"}
                    for t in themes
                    if isinstance(t, dict)
                ],
            },
        }

    @staticmethod
    async def _get_json(client: httpx.AsyncClient, url: str, headers: dict[str, str], default: Any) -> Any:
        try:
            resp = await client.get(url, headers=headers)
            if resp.status_code != 200:
                return default
            data = resp.json()
        except (httpx.HTTPError, ValueError):
            return default
        return data if isinstance(data, type(default)) else default


def _rendered(value: Any) -> Any:
    # /themes returns {"raw": ..., "rendered": ...} for name
    if isinstance(value, dict):
        return value.get("rendered") or value.get("raw")
    return value
