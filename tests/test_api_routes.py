"""HTTP tests for the platform routes, run through the real app lifespan."""

from __future__ import annotations

import asyncio
import sqlite3
import time
from types import SimpleNamespace

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import FakeSession, credentials_output
from tatame.api.main import app, lifespan
from tatame.api.routes import _rate_limit_buckets, app_state
from tatame.catalog import THEMES
from tatame.email import EmailService
from tatame.provisioning import BlogCreator, SiteCreationService
from tatame.provisioning.ssh import CommandResult
from tatame.security import generate_token
from tatame.sites import WordPressClient

VPS = {"host": "203.0.113.10", "username": "root", "password": "pw"}


def _auth(role: str = "aluno", user_id: str = "user-1") -> dict[str, str]:
    token = generate_token(user_id, f"{user_id}@tatame.test", role)
    return {"Authorization": f"Bearer {token}"}


ADMIN = "admin"


@pytest.fixture
def client(monkeypatch, tmp_path):
    monkeypatch.setenv("TATAME_DB_PATH", str(tmp_path / "tatame.db"))
    monkeypatch.setenv("TATAME_CACHE_ENABLED", "false")
    monkeypatch.setenv("TATAME_ADMIN_RATE_LIMIT", "0")
    _rate_limit_buckets.clear()
    with TestClient(app) as test_client:
        yield test_client


def _wait_for_job(client: TestClient, job_id: str, headers: dict[str, str], timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        job = client.get(f"/v1/provisioning/jobs/{job_id}", headers=headers).json()["job"]
        if job["status"] != "running" or time.monotonic() > deadline:
            return job
        time.sleep(0.05)


# ============================================================================
# Auth
# ============================================================================


def test_requests_without_token_are_rejected(client) -> None:
    response = client.get("/v1/features")
    assert response.status_code == 401
    assert response.json()["detail"] == "No token provided"

    response = client.get("/v1/features", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_token_query_parameter(client) -> None:
    token = generate_token("user-1", "u@tatame.test", "aluno")
    assert client.get(f"/v1/features?token={token}").status_code == 200


def test_admin_routes_require_admin(client) -> None:
    response = client.get("/v1/admin/features", headers=_auth("mentor"))
    assert response.status_code == 403
    assert response.json()["detail"] == "Admin access required"


def test_admin_rate_limit(client, monkeypatch) -> None:
    monkeypatch.setenv("TATAME_ADMIN_RATE_LIMIT", "2")
    _rate_limit_buckets.clear()
    headers = _auth(ADMIN)
    assert client.get("/v1/admin/features", headers=headers).status_code == 200
    assert client.get("/v1/admin/features", headers=headers).status_code == 200
    response = client.get("/v1/admin/features", headers=headers)
    assert response.status_code == 429
    assert response.json()["detail"] == "Rate limit exceeded"


def test_register_login_and_me(client) -> None:
    body = {"email": "ana@example.com", "password": "Faixa#Preta9", "name": "Ana"}
    registered = client.post("/v1/auth/register", json=body)
    assert registered.status_code == 201
    session = registered.json()
    assert session["user"]["role"] == "aluno"

    headers = {"Authorization": f"Bearer {session['access_token']}"}
    me = client.get("/v1/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["user"]["email"] == "ana@example.com"
    assert client.get("/v1/features", headers=headers).status_code == 200

    repeat = client.post("/v1/auth/register", json=body)
    assert repeat.status_code == 201
    assert "access_token" not in repeat.json()

    weak = client.post("/v1/auth/register", json={**body, "email": "bia@example.com", "password": "weak"})
    assert weak.status_code == 400

    login = client.post("/v1/auth/login", json={"email": "ana@example.com", "password": "Faixa#Preta9"})
    assert login.status_code == 200
    assert login.json()["user"]["id"] == session["user"]["id"]

    bad = client.post("/v1/auth/login", json={"email": "ana@example.com", "password": "Wrong#Pass1"})
    assert bad.status_code == 401
    assert bad.json()["detail"] == "Invalid email or password"

    assert client.get("/v1/auth/me", headers=_auth(user_id="user_gone")).status_code == 404


def test_locked_account_gets_423(client) -> None:
    body = {"email": "caio@example.com", "password": "Faixa#Preta9", "name": "Caio"}
    assert client.post("/v1/auth/register", json=body).status_code == 201
    wrong = {"email": "caio@example.com", "password": "Wrong#Pass1"}
    for _ in range(5):
        assert client.post("/v1/auth/login", json=wrong).status_code == 401

    locked = client.post("/v1/auth/login", json={"email": "caio@example.com", "password": "Faixa#Preta9"})
    assert locked.status_code == 423
    assert locked.json()["detail"] == "Too many failed login attempts. Please try again later."


# ============================================================================
# Features
# ============================================================================


def test_user_sees_only_active_permitted_features(client) -> None:
    response = client.get("/v1/features", headers=_auth("aluno"))
    assert response.status_code == 200
    codes = [f["code"] for f in response.json()["features"]]
    assert codes == ["wp-installer"]
    assert "metadata" not in response.json()["features"][0]

    assert client.get("/v1/features/wp-installer", headers=_auth()).json()["feature"]["code"] == "wp-installer"
    response = client.get("/v1/features/site-monitor", headers=_auth())
    assert response.status_code == 404
    assert response.json()["detail"] == "Feature not found: site-monitor"

    assert client.post("/v1/features/wp-installer/usage", headers=_auth()).json() == {"tracked": True}
    assert client.post("/v1/features/nope/usage", headers=_auth()).json() == {"tracked": False}


def test_admin_feature_lifecycle(client) -> None:
    headers = _auth(ADMIN)

    response = client.post(
        "/v1/admin/features",
        json={"code": "backlink-checker", "name": "Backlinks", "category": "seo", "permissions": ["aluno"]},
        headers=headers,
    )
    assert response.status_code == 201
    feature = response.json()["feature"]
    assert feature["status"] == "disabled"
    feature_id = feature["id"]

    duplicate = client.post(
        "/v1/admin/features",
        json={"code": "backlink-checker", "name": "Again", "category": "seo"},
        headers=headers,
    )
    assert duplicate.status_code == 409

    toggled = client.post(f"/v1/admin/features/{feature_id}/toggle", json={"reason": "launch"}, headers=headers)
    assert toggled.json()["feature"]["status"] == "active"
    codes = [f["code"] for f in client.get("/v1/features", headers=_auth()).json()["features"]]
    assert "backlink-checker" in codes

    maintenance = client.post(f"/v1/admin/features/{feature_id}/maintenance", headers=headers)
    assert maintenance.json()["feature"]["maintenance_message"] == "This feature is currently under maintenance"

    status = client.put(f"/v1/admin/features/{feature_id}/status", json={"status": "active"}, headers=headers)
    assert status.json()["feature"]["maintenance_message"] is None
    bad_status = client.put(f"/v1/admin/features/{feature_id}/status", json={"status": "gone"}, headers=headers)
    assert bad_status.status_code == 422

    updated = client.put(
        f"/v1/admin/features/{feature_id}", json={"description": "Find backlinks", "reason": "copy"}, headers=headers
    )
    assert updated.json()["feature"]["description"] == "Find backlinks"

    wrong = client.request(
        "DELETE", f"/v1/admin/features/{feature_id}", json={"confirmation_code": "nope"}, headers=headers
    )
    assert wrong.status_code == 400
    deleted = client.request(
        "DELETE", f"/v1/admin/features/{feature_id}", json={"confirmation_code": "backlink-checker"}, headers=headers
    )
    assert deleted.json()["message"] == "Feature deleted successfully"

    listing = client.get("/v1/admin/features", params={"include_deleted": "true"}, headers=headers).json()
    assert feature_id in [f["id"] for f in listing["features"]]
    assert listing["stats"]["total"] == len(listing["features"])

    restored = client.post(f"/v1/admin/features/{feature_id}/restore", headers=headers)
    assert restored.json()["feature"]["deleted"] is False

    audit = client.get(f"/v1/admin/features/{feature_id}/audit", params={"limit": 3}, headers=headers).json()
    assert audit["feature_code"] == "backlink-checker"
    assert [entry["action"] for entry in audit["logs"]] == ["restored", "deleted", "updated"]


def test_core_feature_delete_is_forbidden(client) -> None:
    headers = _auth(ADMIN)
    features = client.get("/v1/admin/features", headers=headers).json()["features"]
    installer = next(f for f in features if f["code"] == "wp-installer")
    response = client.request(
        "DELETE", f"/v1/admin/features/{installer['id']}", json={"confirmation_code": "wp-installer"}, headers=headers
    )
    assert response.status_code == 403


def test_admin_bulk_and_initialize(client) -> None:
    headers = _auth(ADMIN)
    features = client.get("/v1/admin/features", params={"status": "disabled"}, headers=headers).json()["features"]
    ids = [f["id"] for f in features[:2]]

    result = client.post(
        "/v1/admin/features/bulk", json={"feature_ids": ids + ["feat_missing"], "action": "enable"}, headers=headers
    ).json()
    assert [s["id"] for s in result["success"]] == ids
    assert result["failed"] == [{"id": "feat_missing", "reason": "Not found"}]

    empty = client.post("/v1/admin/features/bulk", json={"feature_ids": [], "action": "enable"}, headers=headers)
    assert empty.status_code == 400

    init = client.post("/v1/admin/features/initialize", params={"sync": "true"}, headers=headers).json()
    assert init["initialized"] == []
    assert init["sync"]["added"] == []

    assert client.get("/v1/admin/features/feat_missing", headers=headers).status_code == 404


# ============================================================================
# Provisioning
# ============================================================================


def test_site_creation_job(client) -> None:
    session = FakeSession([("'/tmp/add-site.sh'", CommandResult(0, credentials_output(), ""))])
    app_state.site_creator = SiteCreationService(
        app_state.site_store, app_state.vps_store, session_factory=lambda: session
    )
    headers = _auth()

    response = client.post(
        "/v1/sites/create",
        json={"credentials": VPS, "domain": "example.com", "admin_email": "admin@example.com"},
        headers=headers,
    )
    assert response.status_code == 202
    accepted = response.json()
    assert accepted["kind"] == "site"
    assert accepted["status"] == "running"

    job = _wait_for_job(client, accepted["job_id"], headers)
    assert job["status"] == "succeeded"
    assert job["result"]["domain"] == "example.com"
    assert "application_password" not in job["result"]

    sites = client.get("/v1/wordpress/sites", headers=headers).json()["sites"]
    assert [s["domain"] for s in sites] == ["example.com"]
    assert "application_password" not in sites[0]

    assert client.get(f"/v1/provisioning/jobs/{accepted['job_id']}", headers=_auth(user_id="user-2")).status_code == 404
    assert [j["id"] for j in client.get("/v1/provisioning/jobs", headers=headers).json()["jobs"]] == [accepted["job_id"]]


def test_failed_blog_job_records_error(client) -> None:
    session = FakeSession([("wo site create", CommandResult(1, "", "site exists"))])
    app_state.blog_creator = BlogCreator(app_state.site_store, session_factory=lambda: session)
    headers = _auth()

    response = client.post("/v1/blogs/create", json={"credentials": VPS, "domain": "blog.example.com"}, headers=headers)
    job = _wait_for_job(client, response.json()["job_id"], headers)
    assert job["status"] == "failed"
    assert job["error"] == "Blog creation failed: site exists"


def test_busy_service_is_refused_without_a_job(client) -> None:
    app_state.vps_setup = SimpleNamespace(is_running=True)
    headers = _auth()

    response = client.post("/v1/vps/setup", json={"credentials": VPS}, headers=headers)
    assert response.status_code == 409
    assert response.json()["detail"] == "VPS setup is already running"
    assert client.get("/v1/provisioning/jobs", headers=headers).json()["jobs"] == []


def test_site_request_validates_domain_and_email(client) -> None:
    body = {"credentials": VPS, "domain": "not a domain", "admin_email": "admin@example.com"}
    response = client.post("/v1/sites/create", json=body, headers=_auth())
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid domain: not a domain"

    body = {"credentials": VPS, "domain": "example.com", "admin_email": "nobody"}
    response = client.post("/v1/sites/create", json=body, headers=_auth())
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid admin email: nobody"


def test_invalid_credentials_are_rejected(client) -> None:
    body = {"credentials": {"host": "203.0.113.10", "username": "root", "auth_method": "privateKey"},
            "domain": "example.com", "admin_email": "admin@example.com"}
    response = client.post("/v1/sites/create", json=body, headers=_auth())
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid authentication method or missing credentials"


def test_check_vps(client) -> None:
    responses = [[
        ("which wo", CommandResult(0, "/usr/local/bin/wo\n", "")),
        ("wo --version", CommandResult(0, "WordOps v3.20.0\n", "")),
    ], [
        ("which wo", CommandResult(0, "not_found\n", "")),
    ]]
    sessions = iter(FakeSession(r) for r in responses)
    app_state.site_creator = SiteCreationService(app_state.site_store, session_factory=lambda: next(sessions))

    ready = client.post("/v1/sites/check-vps", json={"credentials": VPS}, headers=_auth())
    assert ready.status_code == 200
    assert ready.json()["readiness"]["wordops_version"] == "WordOps v3.20.0"

    missing = client.post("/v1/sites/check-vps", json={"credentials": VPS}, headers=_auth())
    assert missing.status_code == 400
    assert missing.json()["detail"] == "WordOps is not installed. Please run VPS setup first."


# ============================================================================
# Job lifecycle (async client over the real lifespan)
# ============================================================================


class HeldSession(FakeSession):
    """FakeSession whose connect() waits until ``release`` is set."""

    def __init__(self, release: asyncio.Event, responses=None) -> None:
        super().__init__(responses)
        self.release = release
        self.waiting = asyncio.Event()

    async def connect(self, credentials) -> None:
        self.waiting.set()
        await self.release.wait()
        await super().connect(credentials)


SITE_BODY = {"credentials": VPS, "domain": "example.com", "admin_email": "admin@example.com"}


@pytest.fixture
def async_env(monkeypatch, tmp_path):
    db_path = tmp_path / "tatame.db"
    monkeypatch.setenv("TATAME_DB_PATH", str(db_path))
    monkeypatch.setenv("TATAME_CACHE_ENABLED", "false")
    monkeypatch.setenv("TATAME_ADMIN_RATE_LIMIT", "0")
    _rate_limit_buckets.clear()
    return db_path


async def _poll_job(http: httpx.AsyncClient, job_id: str, headers: dict[str, str], timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        job = (await http.get(f"/v1/provisioning/jobs/{job_id}", headers=headers)).json()["job"]
        if job["status"] != "running" or time.monotonic() > deadline:
            return job
        await asyncio.sleep(0.05)


@pytest.mark.asyncio
async def test_concurrent_site_requests_start_one_job(async_env) -> None:
    headers = _auth()
    release = asyncio.Event()
    async with lifespan(app):
        session = HeldSession(release, [("'/tmp/add-site.sh'", CommandResult(0, credentials_output(), ""))])
        app_state.site_creator = SiteCreationService(
            app_state.site_store, app_state.vps_store, session_factory=lambda: session
        )
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://tatame.test") as http:
            first, second = await asyncio.gather(
                http.post("/v1/sites/create", json=SITE_BODY, headers=headers),
                http.post("/v1/sites/create", json=SITE_BODY, headers=headers),
            )
            assert sorted([first.status_code, second.status_code]) == [202, 409]
            refused = first if first.status_code == 409 else second
            assert refused.json()["detail"] == "Site creation is already running"

            jobs = (await http.get("/v1/provisioning/jobs", headers=headers)).json()["jobs"]
            assert len(jobs) == 1

            release.set()
            job = await _poll_job(http, jobs[0]["id"], headers)
            assert job["status"] == "succeeded"

            # the claim is released once the job finishes
            for _ in range(20):
                again = await http.post("/v1/sites/create", json=SITE_BODY, headers=headers)
                if again.status_code != 409:
                    break
                await asyncio.sleep(0.05)
            assert again.status_code == 202
            assert (await _poll_job(http, again.json()["job_id"], headers))["status"] == "succeeded"


@pytest.mark.asyncio
async def test_shutdown_fails_running_job(async_env) -> None:
    headers = _auth()
    session = HeldSession(asyncio.Event())
    async with lifespan(app):
        app_state.site_creator = SiteCreationService(
            app_state.site_store, app_state.vps_store, session_factory=lambda: session
        )
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://tatame.test") as http:
            accepted = await http.post("/v1/sites/create", json=SITE_BODY, headers=headers)
            assert accepted.status_code == 202
        await asyncio.wait_for(session.waiting.wait(), timeout=5)

    assert session.disposed is True
    conn = sqlite3.connect(async_env)
    try:
        rows = conn.execute("SELECT status, error FROM provisioning_jobs").fetchall()
    finally:
        conn.close()
    assert rows == [("failed", "Interrupted by shutdown")]


@pytest.mark.asyncio
async def test_startup_fails_jobs_left_running(async_env) -> None:
    async with lifespan(app):
        pass
    conn = sqlite3.connect(async_env)
    try:
        conn.execute(
            "INSERT INTO provisioning_jobs (id, user_id, kind, target, status, created_at, updated_at) "
            "VALUES ('job_stale', 'user-1', 'blog', 'blog.example.com', 'running', '2024-05-01', '2024-05-01')"
        )
        conn.commit()
    finally:
        conn.close()

    async with lifespan(app):
        stored = await app_state.jobs.get_job("job_stale")
    assert stored["status"] == "failed"
    assert stored["error"] == "Interrupted by restart"


# ============================================================================
# WordPress sites
# ============================================================================


def test_wordpress_site_management(client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/users/me"):
            return httpx.Response(401)
        return httpx.Response(404)

    app_state.wordpress_client = WordPressClient(transport=httpx.MockTransport(handler))
    headers = _auth()

    response = client.post(
        "/v1/wordpress/sites",
        json={"name": "Blog", "url": "https://blog.example.com", "username": "editor", "application_password": "x y z"},
        headers=headers,
    )
    assert response.status_code == 201
    payload = response.json()
    assert payload["connection"] == {"success": False, "error": "Invalid username or application password"}
    assert payload["site"]["connection_status"] == "failed"
    site_id = payload["site"]["id"]

    bad = client.post(
        "/v1/wordpress/sites",
        json={"name": "Bad", "url": "blog", "username": "editor", "application_password": "x"},
        headers=headers,
    )
    assert bad.status_code == 400

    assert client.post(f"/v1/wordpress/sites/{site_id}/default", headers=headers).json()["site"]["is_default"] is True
    assert client.post(f"/v1/wordpress/sites/{site_id}/test", headers=headers).json()["success"] is False

    assert client.delete(f"/v1/wordpress/sites/{site_id}", headers=_auth(user_id="user-2")).status_code == 404
    assert client.delete(f"/v1/wordpress/sites/{site_id}", headers=headers).json() == {
        "message": "Site removed successfully"
    }


# ============================================================================
# Courses and progress
# ============================================================================


def test_course_progress_flow(client) -> None:
    admin = _auth(ADMIN)
    user = _auth()

    course = client.post("/v1/admin/courses", json={"title": "SEO Básico", "is_published": True}, headers=admin)
    assert course.status_code == 201
    course_id = course.json()["course"]["id"]
    module_id = client.post(f"/v1/admin/courses/{course_id}/modules", json={"title": "M1"}, headers=admin).json()[
        "module"
    ]["id"]
    lesson_id = client.post(
        f"/v1/admin/modules/{module_id}/lessons", json={"title": "L1", "duration_minutes": 1}, headers=admin
    ).json()["lesson"]["id"]

    assert client.post("/v1/admin/courses", json={"title": "X"}, headers=user).status_code == 403
    assert [c["id"] for c in client.get("/v1/courses", headers=user).json()["courses"]] == [course_id]
    detail = client.get(f"/v1/courses/{course_id}", headers=user).json()
    assert detail["modules"][0]["lessons"][0]["id"] == lesson_id

    bad = client.put(f"/v1/progress/lessons/{lesson_id}", json={"position": "10", "duration": 5}, headers=user)
    assert bad.status_code == 400
    assert bad.json()["detail"] == "Position and duration must be numbers"

    watched = client.put(f"/v1/progress/lessons/{lesson_id}", json={"position": 55, "duration": 55}, headers=user)
    assert watched.json()["progress"]["status"] == "completed"

    summary = client.get(f"/v1/progress/courses/{course_id}", headers=user).json()
    assert summary["progress"]["percentage"] == 100
    assert client.get("/v1/progress/me", headers=user).json()["overall"]["lessons_completed"] == 1

    assert client.post("/v1/progress/lessons/lesson_missing/complete", headers=user).status_code == 404
    assert client.get("/v1/courses/course_missing", headers=user).status_code == 404


# ============================================================================
# Email templates and catalog
# ============================================================================


def test_email_template_routes(client) -> None:
    admin = _auth(ADMIN)
    app_state.email_service = EmailService(None, app_state.email_templates)

    templates = client.get("/v1/admin/email-templates", headers=admin).json()["templates"]
    assert {t["slug"] for t in templates} >= {"welcome-email", "password-reset"}

    results = client.post("/v1/admin/email-templates/initialize", headers=admin).json()["results"]
    assert {r["status"] for r in results} == {"exists"}

    preview = client.post("/v1/admin/email-templates/welcome-email/preview", headers=admin).json()
    assert preview["subject"] == "Bem-vindo ao Tatame!"
    preview = client.post(
        "/v1/admin/email-templates/welcome-email/preview", json={"data": {"siteName": "Dojo"}}, headers=admin
    ).json()
    assert preview["subject"] == "Bem-vindo ao Dojo!"
    assert client.post("/v1/admin/email-templates/nope/preview", headers=admin).status_code == 404

    sent = client.post("/v1/admin/email-templates/welcome-email/test", json={"to": "a@example.com"}, headers=admin)
    assert sent.status_code == 502
    assert sent.json()["detail"] == "Email service not configured"


def test_catalog_routes(client) -> None:
    headers = _auth()
    plugins = client.get("/v1/catalog/plugins", params={"category": "seo"}, headers=headers).json()["plugins"]
    assert [p["slug"] for p in plugins] == ["wordpress-seo", "seo-by-rank-math"]
    assert len(client.get("/v1/catalog/themes", headers=headers).json()["themes"]) == len(THEMES)

    result = client.post(
        "/v1/catalog/plugins/validate", json={"slugs": ["w3-total-cache", "wp-super-cache"]}, headers=headers
    ).json()
    assert result["valid"] is False
    assert result["conflicts"] == [["w3-total-cache", "wp-super-cache"]]
