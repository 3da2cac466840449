"""
TATAME database schema.

Platform persistence:
- users (accounts: password hash, role, login lockout)
- features / feature_audit_logs (tool feature flags and their history)
- wordpress_sites (managed + external sites, encrypted app passwords)
- vps_configurations / vps_setup_logs (per-user VPS state)
- provisioning_jobs (background site/VPS/blog runs polled by clients)
- courses / course_modules / lessons / lesson_progress (LMS)
- email_templates
- wordpress_plugins / wordpress_themes (install catalog)
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id                      TEXT PRIMARY KEY,
    email                   TEXT NOT NULL UNIQUE,
    name                    TEXT NOT NULL DEFAULT '',
    password_hash           TEXT,
    role                    TEXT NOT NULL DEFAULT 'aluno',
    is_active               INTEGER NOT NULL DEFAULT 1,
    failed_login_attempts   INTEGER NOT NULL DEFAULT 0,
    locked_until            TEXT,
    last_login_at           TEXT,
    created_at              TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at              TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS features (
    id                  TEXT PRIMARY KEY,
    code                TEXT NOT NULL UNIQUE,
    name                TEXT NOT NULL,
    description         TEXT NOT NULL DEFAULT '',
    category            TEXT NOT NULL,
    status              TEXT NOT NULL DEFAULT 'disabled',
    icon                TEXT NOT NULL DEFAULT 'Settings',
    route               TEXT,
    permissions         TEXT NOT NULL DEFAULT '["aluno"]',
    config              TEXT NOT NULL DEFAULT '{}',
    dependencies        TEXT NOT NULL DEFAULT '[]',
    version             TEXT NOT NULL DEFAULT '1.0.0',
    release_date        TEXT,
    deletable           INTEGER NOT NULL DEFAULT 1,
    deleted             INTEGER NOT NULL DEFAULT 0,
    deleted_at          TEXT,
    metadata            TEXT NOT NULL DEFAULT '{}',
    maintenance_message TEXT,
    modified_by         TEXT,
    last_modified       TEXT NOT NULL DEFAULT (datetime('now')),
    created_at          TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at          TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_features_status ON features(status);
CREATE INDEX IF NOT EXISTS idx_features_category ON features(category);
CREATE INDEX IF NOT EXISTS idx_features_deleted ON features(deleted);

CREATE TABLE IF NOT EXISTS feature_audit_logs (
    id                  TEXT PRIMARY KEY,
    feature_code        TEXT NOT NULL,
    feature_name        TEXT NOT NULL,
    action              TEXT NOT NULL,
    previous_state      TEXT,
    new_state           TEXT,
    performed_by        TEXT NOT NULL,
    performed_by_email  TEXT NOT NULL DEFAULT '',
    reason              TEXT,
    ip_address          TEXT,
    user_agent          TEXT,
    created_at          TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_feature_audit_code ON feature_audit_logs(feature_code, created_at);

CREATE TABLE IF NOT EXISTS wordpress_sites (
    id                      TEXT PRIMARY KEY,
    user_id                 TEXT NOT NULL,
    name                    TEXT NOT NULL,
    url                     TEXT NOT NULL,
    domain                  TEXT,
    username                TEXT NOT NULL,
    application_password    TEXT NOT NULL,
    is_active               INTEGER NOT NULL DEFAULT 1,
    is_default              INTEGER NOT NULL DEFAULT 0,
    ip_address              TEXT,
    site_type               TEXT NOT NULL DEFAULT 'external',
    vps_config              TEXT NOT NULL DEFAULT '{}',
    wordpress_version       TEXT,
    php_version             TEXT,
    ssl_enabled             INTEGER NOT NULL DEFAULT 0,
    cache_enabled           INTEGER NOT NULL DEFAULT 0,
    redis_enabled           INTEGER NOT NULL DEFAULT 0,
    installed_plugins       TEXT NOT NULL DEFAULT '[]',
    active_theme            TEXT,
    connection_status       TEXT NOT NULL DEFAULT 'pending',
    connection_error        TEXT,
    last_connection_test    TEXT,
    created_at              TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at              TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_wp_sites_user ON wordpress_sites(user_id);
CREATE INDEX IF NOT EXISTS idx_wp_sites_user_url ON wordpress_sites(user_id, url);

CREATE TABLE IF NOT EXISTS vps_configurations (
    id                  TEXT PRIMARY KEY,
    user_id             TEXT NOT NULL,
    host                TEXT NOT NULL,
    port                INTEGER NOT NULL DEFAULT 22,
    username            TEXT NOT NULL,
    is_configured       INTEGER NOT NULL DEFAULT 0,
    configured_at       TEXT,
    wordops_version     TEXT,
    features            TEXT NOT NULL DEFAULT '{}',
    sites               TEXT NOT NULL DEFAULT '[]',
    created_at          TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at          TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE(user_id, host)
);

CREATE TABLE IF NOT EXISTS vps_setup_logs (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    vps_id              TEXT NOT NULL,
    level               TEXT NOT NULL DEFAULT 'info',
    message             TEXT NOT NULL,
    timestamp           TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_vps_setup_logs_vps ON vps_setup_logs(vps_id);

CREATE TABLE IF NOT EXISTS provisioning_jobs (
    id                  TEXT PRIMARY KEY,
    user_id             TEXT NOT NULL,
    kind                TEXT NOT NULL,
    target              TEXT NOT NULL DEFAULT '',
    status              TEXT NOT NULL DEFAULT 'running',
    progress            INTEGER NOT NULL DEFAULT 0,
    step                TEXT,
    message             TEXT,
    output              TEXT NOT NULL DEFAULT '[]',
    result              TEXT NOT NULL DEFAULT '{}',
    error               TEXT NOT NULL DEFAULT '',
    created_at          TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at          TEXT NOT NULL DEFAULT (datetime('now')),
    completed_at        TEXT
);

CREATE INDEX IF NOT EXISTS idx_provisioning_jobs_user ON provisioning_jobs(user_id, created_at);

CREATE TABLE IF NOT EXISTS courses (
    id                  TEXT PRIMARY KEY,
    title               TEXT NOT NULL,
    slug                TEXT NOT NULL UNIQUE,
    description         TEXT NOT NULL DEFAULT '',
    thumbnail           TEXT,
    is_published        INTEGER NOT NULL DEFAULT 0,
    created_at          TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at          TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS course_modules (
    id                  TEXT PRIMARY KEY,
    course_id           TEXT NOT NULL,
    title               TEXT NOT NULL,
    position            INTEGER NOT NULL DEFAULT 0,
    created_at          TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS lessons (
    id                  TEXT PRIMARY KEY,
    course_id           TEXT NOT NULL,
    module_id           TEXT NOT NULL,
    title               TEXT NOT NULL,
    lesson_type         TEXT NOT NULL DEFAULT 'video',
    duration_minutes    REAL NOT NULL DEFAULT 0,
    position            INTEGER NOT NULL DEFAULT 0,
    is_published        INTEGER NOT NULL DEFAULT 1,
    created_at          TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_course_modules_course ON course_modules(course_id, position);
CREATE INDEX IF NOT EXISTS idx_lessons_module ON lessons(module_id, position);
CREATE INDEX IF NOT EXISTS idx_lessons_course ON lessons(course_id);

CREATE TABLE IF NOT EXISTS lesson_progress (
    id                  TEXT PRIMARY KEY,
    user_id             TEXT NOT NULL,
    course_id           TEXT NOT NULL,
    module_id           TEXT NOT NULL,
    lesson_id           TEXT NOT NULL,
    status              TEXT NOT NULL DEFAULT 'not_started',
    started_at          TEXT,
    completed_at        TEXT,
    watch_time          REAL NOT NULL DEFAULT 0,
    total_watch_time    REAL NOT NULL DEFAULT 0,
    last_position       REAL NOT NULL DEFAULT 0,
    quiz_score          REAL,
    quiz_attempts       INTEGER NOT NULL DEFAULT 0,
    created_at          TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at          TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE(user_id, lesson_id)
);

CREATE INDEX IF NOT EXISTS idx_lesson_progress_user_course ON lesson_progress(user_id, course_id);

CREATE TABLE IF NOT EXISTS email_templates (
    id                  TEXT PRIMARY KEY,
    name                TEXT NOT NULL,
    slug                TEXT NOT NULL UNIQUE,
    subject             TEXT NOT NULL,
    html_content        TEXT NOT NULL,
    text_content        TEXT,
    variables           TEXT NOT NULL DEFAULT '[]',
    category            TEXT NOT NULL DEFAULT 'transactional',
    is_active           INTEGER NOT NULL DEFAULT 1,
    description         TEXT,
    preview_data        TEXT NOT NULL DEFAULT '{}',
    created_at          TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at          TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS wordpress_plugins (
    slug                TEXT PRIMARY KEY,
    name                TEXT NOT NULL,
    description         TEXT NOT NULL,
    category            TEXT NOT NULL,
    version             TEXT NOT NULL,
    author              TEXT NOT NULL,
    rating              REAL,
    is_default          INTEGER NOT NULL DEFAULT 0,
    is_active           INTEGER NOT NULL DEFAULT 1,
    is_premium          INTEGER NOT NULL DEFAULT 0,
    features            TEXT NOT NULL DEFAULT '[]',
    tags                TEXT NOT NULL DEFAULT '[]',
    dependencies        TEXT NOT NULL DEFAULT '[]',
    conflicts           TEXT NOT NULL DEFAULT '[]',
    created_at          TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS wordpress_themes (
    slug                TEXT PRIMARY KEY,
    name                TEXT NOT NULL,
    description         TEXT NOT NULL,
    category            TEXT NOT NULL,
    version             TEXT NOT NULL,
    author              TEXT NOT NULL,
    rating              REAL,
    is_default          INTEGER NOT NULL DEFAULT 0,
    is_active           INTEGER NOT NULL DEFAULT 1,
    is_premium          INTEGER NOT NULL DEFAULT 0,
    features            TEXT NOT NULL DEFAULT '[]',
    demo_url            TEXT,
    created_at          TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


async def init_db(db_path: str) -> aiosqlite.Connection:
    """Open (or create) the database and ensure platform tables exist."""
    if db_path != ":memory:":
        Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)

    db = await aiosqlite.connect(db_path)
    db.row_factory = aiosqlite.Row
    await db.executescript(SCHEMA_SQL)
    await db.commit()
    return db
