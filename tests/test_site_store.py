"""Tests for the WordPress site registry."""

from __future__ import annotations

import pytest

from tatame.security import encrypt
from tatame.shared.errors import SiteNotFoundError, ValidationError
from tatame.sites import WordPressSiteStore


class StubClient:
    def __init__(self, result: dict) -> None:
        self.result = result
        self.calls: list[tuple] = []

    async def test_connection(self, url, username, application_password):
        self.calls.append((url, username, application_password))
        return self.result


async def _add(store: WordPressSiteStore, user_id: str = "user-1", **kwargs) -> dict:
    defaults = {
        "name": "My Blog",
        "url": "https://blog.example.com/",
        "username": "editor",
        "application_password": "xxxx yyyy zzzz",
    }
    defaults.update(kwargs)
    return await store.create_site(user_id, **defaults)


@pytest.mark.asyncio
async def test_create_site_encrypts_password(db) -> None:
    store = WordPressSiteStore(db)
    site = await _add(store)

    assert site["url"] == "https://blog.example.com"
    assert site["site_type"] == "external"
    assert site["connection_status"] == "pending"
    assert site["last_connection_test"] is None
    assert site["has_application_password"] is True
    assert "application_password" not in site

    async with db.execute("SELECT application_password FROM wordpress_sites") as cur:
        stored = (await cur.fetchone())[0]
    assert stored != "xxxx yyyy zzzz"
    assert await store.get_decrypted_password(site["id"]) == "xxxx yyyy zzzz"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"url": "not a url"}, "valid URL"),
        ({"username": ""}, "required"),
        ({"site_type": "hosted"}, "Invalid site type"),
        ({"connection_status": "unknown"}, "Invalid connection status"),
    ],
)
async def test_create_site_validation(db, overrides, message) -> None:
    with pytest.raises(ValidationError, match=message):
        await _add(WordPressSiteStore(db), **overrides)


@pytest.mark.asyncio
async def test_single_default_per_user(db) -> None:
    store = WordPressSiteStore(db)
    first = await _add(store, url="https://one.example.com", is_default=True)
    second = await _add(store, url="https://two.example.com", is_default=True)
    other_user = await _add(store, "user-2", url="https://three.example.com", is_default=True)

    assert (await store.get_default_site("user-1"))["id"] == second["id"]
    await store.set_default(first["id"], "user-1")
    assert (await store.get_default_site("user-1"))["id"] == first["id"]
    assert (await store.get_default_site("user-2"))["id"] == other_user["id"]

    sites = await store.list_sites("user-1")
    assert sites[0]["id"] == first["id"]
    assert [s["is_default"] for s in sites] == [True, False]

    with pytest.raises(SiteNotFoundError):
        await store.set_default(other_user["id"], "user-1")


@pytest.mark.asyncio
async def test_update_and_find_site(db) -> None:
    store = WordPressSiteStore(db)
    site = await _add(store, domain="blog.example.com")

    found = await store.find_site("user-1", domain="blog.example.com")
    assert found["id"] == site["id"]
    assert (await store.find_site("user-1", url="https://blog.example.com/"))["id"] == site["id"]
    assert await store.find_site("user-1") is None

    updated = await store.update_site(site["id"], "user-1", name="Renamed", application_password="new pass")
    assert updated["name"] == "Renamed"
    assert await store.get_decrypted_password(site["id"]) == "new pass"

    with pytest.raises(ValidationError, match="Disallowed"):
        await store.update_site(site["id"], "user-1", user_id="user-2")
    with pytest.raises(ValidationError):
        await store.update_site(site["id"], "user-1", url="ftp//broken")


@pytest.mark.asyncio
async def test_delete_is_scoped_to_owner(db) -> None:
    store = WordPressSiteStore(db)
    site = await _add(store)

    assert await store.delete_site(site["id"], "user-2") is False
    assert await store.delete_site(site["id"], "user-1") is True
    assert await store.get_site(site["id"]) is None
    with pytest.raises(SiteNotFoundError):
        await store.get_decrypted_password(site["id"])


@pytest.mark.asyncio
async def test_connection_test_records_outcome(db) -> None:
    store = WordPressSiteStore(db)
    site = await _add(store)

    client = StubClient({"success": True, "site_info": {"title": "Blog", "version": "6.5.2"}})
    result = await store.test_site_connection(site["id"], "user-1", client)
    assert result["success"] is True
    assert client.calls == [("https://blog.example.com", "editor", "xxxx yyyy zzzz")]
    site = await store.get_site(site["id"])
    assert site["connection_status"] == "connected"
    assert site["last_connection_test"]
    assert site["wordpress_version"] == "6.5.2"

    await store.test_site_connection(site["id"], "user-1", StubClient({"success": False, "error": "Invalid"}))
    site = await store.get_site(site["id"])
    assert site["connection_status"] == "failed"
    assert site["connection_error"] == "Invalid"
    assert site["wordpress_version"] == "6.5.2"


@pytest.mark.asyncio
async def test_connection_test_with_rotated_key(db) -> None:
    store = WordPressSiteStore(db)
    site = await _add(store)
    await db.execute(
        "UPDATE wordpress_sites SET application_password = ? WHERE id = ?",
        (encrypt("xxxx", "f" * 64), site["id"]),
    )
    await db.commit()

    client = StubClient({"success": True})
    result = await store.test_site_connection(site["id"], "user-1", client)

    assert result == {"success": False, "error": "Password decryption failed - please re-enter your password"}
    assert client.calls == []
    assert (await store.get_site(site["id"]))["connection_status"] == "failed"

