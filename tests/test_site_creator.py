"""Tests for WordPress site creation over SSH (scripted sessions)."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeSession, credentials_output
from tatame.provisioning import SiteCreationOptions, SiteCreationService, VPSCredentials
from tatame.provisioning.ssh import CommandResult
from tatame.shared.errors import (
    CredentialsParseError,
    ProvisioningBusyError,
    ProvisioningError,
    RemoteCommandError,
    SSHConnectionError,
)
from tatame.sites import VpsConfigStore, WordPressSiteStore

VPS = VPSCredentials(host="203.0.113.10", username="root", password="pw")


def _options(**kwargs) -> SiteCreationOptions:
    return SiteCreationOptions(user_id="user-1", credentials=VPS, domain="example.com",
                               admin_email="admin@example.com", **kwargs)


def _service(session: FakeSession, site_store, vps_store=None, emit=None) -> SiteCreationService:
    return SiteCreationService(site_store, vps_store, emit=emit, session_factory=lambda: session,
                               script_url="https://scripts.test/add-site.sh")


def _ok_script(output: str | None = None) -> list:
    return [("'/tmp/add-site.sh'", CommandResult(0, output or credentials_output(), ""))]


def test_script_args_defaults_and_flags() -> None:
    assert _options().script_args() == [
        "example.com", "admin@example.com", "admin", "", "8.1", "true", "true", "true",
    ]
    args = _options(admin_user="", php_version="8.2", enable_redis=False).script_args()
    assert args[2] == "admin"
    assert args[4:] == ["8.2", "true", "true", "false"]


@pytest.mark.asyncio
async def test_create_site_happy_path(db, event_log) -> None:
    session = FakeSession(_ok_script())
    site_store = WordPressSiteStore(db)
    vps_store = VpsConfigStore(db)
    service = _service(session, site_store, vps_store, emit=event_log)

    creds = await service.create_site(_options())

    assert creds.domain == "example.com"
    assert session.disposed is True
    assert service.is_running is False

    assert session.commands[0] == "wget 'https://scripts.test/add-site.sh' -O '/tmp/add-site.sh'"
    assert session.commands[1] == "chmod +x '/tmp/add-site.sh'"
    assert session.commands[2] == (
        "'/tmp/add-site.sh' 'example.com' 'admin@example.com' 'admin' '' '8.1' 'true' 'true' 'true'"
    )
    assert session.commands[-1] == "rm -f '/tmp/add-site.sh'"

    types = event_log.types()
    assert types[0] == "vps.connected"
    assert types[-1] == "site.created"
    starts = event_log.payloads("provision.step_start")
    assert [s["progress"] for s in starts] == [10, 30, 40, 70, 98]
    completes = event_log.payloads("provision.step_complete")
    assert [c["progress"] for c in completes] == [20, 100]
    assert event_log.payloads("site.created")[0]["url"] == "https://example.com"

    sites = await site_store.list_sites("user-1")
    assert len(sites) == 1
    site = sites[0]
    assert site["site_type"] == "managed"
    assert site["connection_status"] == "connected"
    assert site["vps_config"]["host"] == "203.0.113.10"
    assert site["has_application_password"] is True
    assert await site_store.get_decrypted_password(site["id"]) == "abcd efgh ijkl mnop"

    config = await vps_store.get_config_by_host("user-1", "203.0.113.10")
    assert [s["domain"] for s in config["sites"]] == ["example.com"]


@pytest.mark.asyncio
async def test_existing_site_is_updated(db) -> None:
    site_store = WordPressSiteStore(db)
    existing = await site_store.create_site(
        "user-1", "Old", "https://example.com", "olduser", "old pass", domain="example.com",
    )
    service = _service(FakeSession(_ok_script()), site_store)

    await service.create_site(_options())

    sites = await site_store.list_sites("user-1")
    assert len(sites) == 1
    assert sites[0]["id"] == existing["id"]
    assert sites[0]["username"] == "admin"
    assert sites[0]["connection_status"] == "connected"
    assert await site_store.get_decrypted_password(existing["id"]) == "abcd efgh ijkl mnop"


@pytest.mark.asyncio
async def test_curl_fallback_when_wget_fails(db) -> None:
    session = FakeSession([("wget", CommandResult(8, "", "wget: not found"))] + _ok_script())
    await _service(session, WordPressSiteStore(db)).create_site(_options())
    assert session.commands[1].startswith("curl -fsSL 'https://scripts.test/add-site.sh'")


@pytest.mark.asyncio
async def test_remote_path_is_quoted_everywhere(db) -> None:
    session = FakeSession([("'/tmp/my scripts/add-site.sh'", CommandResult(0, credentials_output(), ""))])
    service = SiteCreationService(WordPressSiteStore(db), session_factory=lambda: session,
                                  remote_path="/tmp/my scripts/add-site.sh")

    await service.create_site(_options())

    assert session.commands[0].endswith("-O '/tmp/my scripts/add-site.sh'")
    assert session.commands[1] == "chmod +x '/tmp/my scripts/add-site.sh'"
    assert session.commands[2].startswith("'/tmp/my scripts/add-site.sh' 'example.com'")
    assert session.commands[-1] == "rm -f '/tmp/my scripts/add-site.sh'"


@pytest.mark.asyncio
async def test_download_failure_reports_both_tools(db, event_log) -> None:
    session = FakeSession([
        ("wget", CommandResult(8, "", "404")),
        ("curl", CommandResult(22, "", "curl: (22)")),
    ])
    service = _service(session, WordPressSiteStore(db), emit=event_log)

    with pytest.raises(RemoteCommandError, match="Failed to download script: wget: 404, curl: curl: \\(22\\)"):
        await service.create_site(_options())

    error = event_log.payloads("site.error")[0]
    assert error["host"] == "203.0.113.10"
    assert error["domain"] == "example.com"
    assert service.is_running is False
    assert session.disposed is True


@pytest.mark.asyncio
async def test_chmod_failure(db) -> None:
    session = FakeSession([("chmod", CommandResult(1, "", "read-only"))])
    with pytest.raises(RemoteCommandError, match="Failed to make script executable: read-only"):
        await _service(session, WordPressSiteStore(db)).create_site(_options())


@pytest.mark.asyncio
async def test_script_failure_streams_stderr(db, event_log) -> None:
    session = FakeSession([("'/tmp/add-site.sh'", CommandResult(3, "PHASE 1: checks\n", "domain exists"))])
    service = _service(session, WordPressSiteStore(db), emit=event_log)

    with pytest.raises(RemoteCommandError) as exc_info:
        await service.create_site(_options())

    assert str(exc_info.value) == "Site creation script failed with exit code 3: domain exists"
    assert exc_info.value.exit_code == 3
    outputs = event_log.payloads("provision.output")
    assert {"stream": "stderr", "text": "[ERROR] domain exists"} in outputs
    assert "rm -f '/tmp/add-site.sh'" not in session.commands


@pytest.mark.asyncio
async def test_missing_credentials_block(db) -> None:
    session = FakeSession(_ok_script("PHASE 9: Final Verification\nall done\n"))
    with pytest.raises(CredentialsParseError):
        await _service(session, WordPressSiteStore(db)).create_site(_options())


@pytest.mark.asyncio
async def test_persistence_failure_is_wrapped(db) -> None:
    class BrokenStore:
        async def find_site(self, *args, **kwargs):
            raise RuntimeError("database is locked")

    with pytest.raises(ProvisioningError, match="Failed to save site to database"):
        await _service(FakeSession(_ok_script()), BrokenStore()).create_site(_options())


@pytest.mark.asyncio
async def test_connection_failure_emits_error(db, event_log) -> None:
    session = FakeSession(connect_error=SSHConnectionError("203.0.113.10", "timed out"))
    service = _service(session, WordPressSiteStore(db), emit=event_log)

    with pytest.raises(SSHConnectionError):
        await service.create_site(_options())
    assert event_log.types() == ["site.error"]
    assert service.is_running is False


@pytest.mark.asyncio
async def test_second_creation_is_refused_while_running(db) -> None:
    release = asyncio.Event()

    class SlowSession(FakeSession):
        async def exec_command(self, command, on_stdout=None, on_stderr=None):
            if command.startswith("'/tmp/add-site.sh'"):
                await release.wait()
            return await super().exec_command(command, on_stdout, on_stderr)

    service = _service(SlowSession(_ok_script()), WordPressSiteStore(db))
    first = asyncio.create_task(service.create_site(_options()))
    await asyncio.sleep(0.01)
    assert service.is_running is True

    with pytest.raises(ProvisioningBusyError, match="Site creation is already running"):
        await service.create_site(_options())

    release.set()
    await first
    assert service.is_running is False


@pytest.mark.asyncio
async def test_check_vps_readiness(db) -> None:
    session = FakeSession([
        ("which wo", CommandResult(0, "/usr/local/bin/wo\n", "")),
        ("wo --version", CommandResult(0, "WordOps v3.20.0\n", "")),
    ])
    readiness = await _service(session, WordPressSiteStore(db)).check_vps_readiness(VPS)
    assert readiness.to_dict() == {
        "is_ready": True,
        "has_wordops": True,
        "wordops_version": "WordOps v3.20.0",
        "error": None,
    }
    assert session.disposed is True


@pytest.mark.asyncio
async def test_check_vps_readiness_without_wordops(db) -> None:
    session = FakeSession([
        ("which wo", CommandResult(0, "not_found\n", "")),
        ("wo --version", CommandResult(0, "not_found\n", "")),
    ])
    readiness = await _service(session, WordPressSiteStore(db)).check_vps_readiness(VPS)
    assert readiness.has_wordops is False
    assert readiness.wordops_version is None


@pytest.mark.asyncio
async def test_check_vps_readiness_never_raises(db) -> None:
    session = FakeSession(connect_error=SSHConnectionError("203.0.113.10", "refused"))
    readiness = await _service(session, WordPressSiteStore(db)).check_vps_readiness(VPS)
    assert readiness.is_ready is False
    assert "refused" in readiness.error
