"""
TATAME - Shared Utilities

Common utilities used across all TATAME components.
"""

from __future__ import annotations

import json
import re
import unicodedata
import uuid
from datetime import datetime, timezone
from typing import Any


# =============================================================================
# ID Generation
# =============================================================================
def generate_id(prefix: str) -> str:
    """Generate a unique prefixed ID, e.g. ``feat_1a2b3c4d5e6f``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


# =============================================================================
# Time Utilities
# =============================================================================
def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def iso_now() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return utc_now().isoformat()


def parse_datetime(dt_str: str) -> datetime:
    """Parse ISO datetime string to datetime object."""
    # Handle both timezone-aware and naive strings
    if dt_str.endswith("Z"):
        dt_str = dt_str[:-1] + "+00:00"
    return datetime.fromisoformat(dt_str)


# =============================================================================
# JSON Utilities
# =============================================================================
def safe_json_loads(json_str: str | None, default: Any = None) -> Any:
    """Safely parse JSON string, returning default on error."""
    try:
        return json.loads(json_str)
    except (json.JSONDecodeError, TypeError):
        return default


# =============================================================================
# String Utilities
# =============================================================================
def truncate(text: str, max_length: int = 200, suffix: str = "...") -> str:
    """Truncate text to max_length, adding suffix if truncated."""
    if len(text) <= max_length:
        return text
    return text[: max_length - len(suffix)] + suffix


def slugify(text: str) -> str:
    """Lowercase ASCII slug with hyphens, accents stripped."""
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower())
    return slug.strip("-")


# =============================================================================
# Validation
# =============================================================================
_DOMAIN_RE = re.compile(r"^([a-z0-9]+(-[a-z0-9]+)*\.)+[a-z]{2,}$", re.IGNORECASE)
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_URL_RE = re.compile(r"^https?://.+")


def is_valid_domain(domain: str) -> bool:
    """Strict hostname check used for site creation."""
    return bool(domain) and bool(_DOMAIN_RE.match(domain))


def is_valid_email(email: str) -> bool:
    return bool(email) and bool(_EMAIL_RE.match(email))


def is_valid_url(url: str) -> bool:
    return bool(url) and bool(_URL_RE.match(url))
