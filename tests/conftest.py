"""Shared fixtures: in-memory database, secrets and a scripted SSH session."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest
import pytest_asyncio

sys.path.insert(0, str(Path(__file__).parent.parent))

from tatame.db import init_db
from tatame.provisioning.ssh import CommandResult

TEST_ENCRYPTION_KEY = "0123456789abcdef" * 4
TEST_JWT_SECRET = "test-jwt-secret"


@pytest.fixture(autouse=True)
def secrets_env(monkeypatch):
    monkeypatch.setenv("ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)


@pytest_asyncio.fixture
async def db():
    conn = await init_db(":memory:")
    yield conn
    await conn.close()


class FakeSession:
    """
    Stand-in for SSHSession.

    ``responses`` is a list of ``(command_prefix, CommandResult)``; the first
    prefix matching a command answers it, anything else succeeds silently.
    Output is streamed to the callbacks one line per chunk.
    """

    def __init__(self, responses=None, connect_error: Exception | None = None) -> None:
        self.responses = list(responses or [])
        self.connect_error = connect_error
        self.commands: list[str] = []
        self.host = None
        self.connected = False
        self.disposed = False

    async def connect(self, credentials) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.host = credentials.host
        self.connected = True

    def is_connected(self) -> bool:
        return self.connected

    async def exec_command(self, command, on_stdout=None, on_stderr=None) -> CommandResult:
        self.commands.append(command)
        for prefix, result in self.responses:
            if command.startswith(prefix):
                if on_stdout is not None:
                    for line in result.stdout.splitlines(keepends=True):
                        on_stdout(line)
                if on_stderr is not None and result.stderr:
                    on_stderr(result.stderr)
                return result
        return CommandResult(code=0, stdout="", stderr="")

    async def dispose(self) -> None:
        self.connected = False
        self.disposed = True


class EventLog:
    """Collects ``emit(type, payload)`` calls."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def __call__(self, event_type, payload) -> None:
        self.events.append((getattr(event_type, "value", event_type), payload))

    def types(self) -> list[str]:
        return [t for t, _ in self.events]

    def payloads(self, event_type: str) -> list[dict]:
        return [p for t, p in self.events if t == event_type]


def credentials_output(domain: str = "example.com", **overrides) -> str:
    """stdout of a successful add-site.sh run."""
    data = {
        "success": True,
        "domain": domain,
        "url": f"https://{domain}",
        "admin_url": f"https://{domain}/wp-admin",
        "username": "admin",
        "password": "Adm1nPass!",
        "application_password": "abcd efgh ijkl mnop",
        "email": f"admin@{domain}",
        "db_name": "wp_example",
        "db_user": "wp_user",
        "db_pass": "dbsecret",
        "php_version": "8.1",
        "ssl_enabled": True,
        "cache_enabled": True,
        "redis_enabled": False,
        "created_at": "2024-05-01T10:00:00Z",
    }
    data.update(overrides)
    return (
        "PHASE 1: Pre-installation Checks\n"
        "PHASE 4: Creating WordPress Site\n"
        "PHASE 9: Final Verification\n"
        "===CREDENTIALS_START===\n"
        f"{json.dumps(data)}\n"
        "===CREDENTIALS_END===\n"
    )


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()
