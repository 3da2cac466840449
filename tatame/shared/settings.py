"""
TATAME - Shared Settings

Central configuration for the API, the provisioning services and the stores.
Load from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from typing import Optional


# =============================================================================
# Network Configuration
# =============================================================================
HTTP_HOST: str = os.environ.get("TATAME_HTTP_HOST", "0.0.0.0")
HTTP_PORT: int = int(os.environ.get("TATAME_HTTP_PORT", "8000"))
CORS_ORIGINS: str = os.environ.get("CORS_ORIGINS", "*")


# =============================================================================
# Security
# =============================================================================
# 64 hex characters (32 bytes); see tatame.security.crypto
ENCRYPTION_KEY: str = os.environ.get("ENCRYPTION_KEY", "")

JWT_SECRET: str = os.environ.get("JWT_SECRET", "")
JWT_ISSUER: str = os.environ.get("TATAME_JWT_ISSUER", "tatame-api")
JWT_EXPIRES_DAYS: int = int(os.environ.get("TATAME_JWT_EXPIRES_DAYS", "7"))

ADMIN_RATE_LIMIT_PER_MINUTE: int = int(os.environ.get("TATAME_ADMIN_RATE_LIMIT", "120"))

# Failed logins before an account is locked, and for how long
LOGIN_MAX_ATTEMPTS: int = int(os.environ.get("TATAME_LOGIN_MAX_ATTEMPTS", "5"))
LOGIN_LOCK_MINUTES: int = int(os.environ.get("TATAME_LOGIN_LOCK_MINUTES", "120"))


# =============================================================================
# Storage
# =============================================================================
DB_PATH: str = os.environ.get("TATAME_DB_PATH", "data/tatame.db")

REDIS_URL: str = os.environ.get("REDIS_URL", "redis://localhost:6379")
CACHE_DEFAULT_TTL: int = int(os.environ.get("TATAME_CACHE_TTL", "3600"))
CACHE_PREFIX: str = os.environ.get("TATAME_CACHE_PREFIX", "cache")


# =============================================================================
# Provisioning
# =============================================================================
ADD_SITE_SCRIPT_URL: str = os.environ.get(
    "TATAME_ADD_SITE_SCRIPT_URL",
    "https://raw.githubusercontent.com/medeirosjj123/vps/main/scripts/add-site.sh",
)
ADD_SITE_REMOTE_PATH: str = "/tmp/add-site.sh"

SSH_READY_TIMEOUT: int = int(os.environ.get("TATAME_SSH_READY_TIMEOUT", "30"))
VPS_SETUP_TICK_SECONDS: float = float(os.environ.get("TATAME_VPS_SETUP_TICK_SECONDS", "120"))

BLOG_ADMIN_USER: str = os.environ.get("TATAME_BLOG_ADMIN_USER", "admin")
BLOG_DEFAULT_PASSWORD: str = os.environ.get("TATAME_BLOG_DEFAULT_PASSWORD", "bloghouse123")

GIT_USER_NAME: str = os.environ.get("TATAME_GIT_USER_NAME", "Tatame Admin")
GIT_USER_EMAIL: str = os.environ.get("TATAME_GIT_USER_EMAIL", "admin@tatame.local")

# Lines of script output kept on a provisioning job
JOB_OUTPUT_TAIL: int = int(os.environ.get("TATAME_JOB_OUTPUT_TAIL", "200"))


# =============================================================================
# WordPress
# =============================================================================
WORDPRESS_TIMEOUT_SECONDS: float = float(os.environ.get("TATAME_WORDPRESS_TIMEOUT", "10"))
WORDPRESS_USER_AGENT: str = "Tatame WordPress Connector/1.0"


# =============================================================================
# Email
# =============================================================================
BREVO_API_KEY: str = os.environ.get("BREVO_API_KEY", "")
BREVO_API_URL: str = os.environ.get("BREVO_API_URL", "https://api.brevo.com/v3")
EMAIL_FROM_ADDRESS: str = os.environ.get("EMAIL_FROM_ADDRESS", "noreply@tatame.com.br")
EMAIL_FROM_NAME: str = os.environ.get("EMAIL_FROM_NAME", "Tatame")


# =============================================================================
# Features
# =============================================================================
FEATURES_MANIFEST_DIR: Optional[str] = os.environ.get("TATAME_FEATURES_DIR")


# =============================================================================
# Logging
# =============================================================================
LOG_LEVEL: str = os.environ.get("TATAME_LOG_LEVEL", "INFO")
LOG_DIR: str = os.environ.get("TATAME_LOG_DIR", "logs")


# =============================================================================
# Paths
# =============================================================================
def get_logs_dir() -> Path:
    """Get the logs directory, creating it if necessary."""
    logs_dir = Path(LOG_DIR)
    logs_dir.mkdir(exist_ok=True)
    return logs_dir
