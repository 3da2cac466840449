"""
TATAME Provisioning - Script output conventions

The remote scripts report progress as free text. This module knows the
markers they print and turns them into structured values:
- ``PHASE n:`` lines of add-site.sh
- the JSON block between ``===CREDENTIALS_START===`` and ``===CREDENTIALS_END===``
- ``wo site info --admin`` credential lines
- ``wo site create`` progress lines
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass, fields
from typing import Any

from tatame.shared.errors import CredentialsParseError

logger = logging.getLogger("tatame.provisioning.output")

CREDENTIALS_START = "===CREDENTIALS_START==="
CREDENTIALS_END = "===CREDENTIALS_END==="
_CREDENTIALS_RE = re.compile(
    re.escape(CREDENTIALS_START) + r"([\s\S]*?)" + re.escape(CREDENTIALS_END)
)


@dataclass(frozen=True)
class PhaseStep:
    step: str
    name: str
    progress: int

    def as_payload(self) -> dict[str, Any]:
        return {"step": self.step, "name": self.name, "progress": self.progress}


# Order matters: the first marker present in a chunk wins.
SCRIPT_PHASES: tuple[tuple[str, PhaseStep], ...] = (
    ("PHASE 1:", PhaseStep("phase1", "Pre-installation Checks", 40)),
    ("PHASE 2:", PhaseStep("phase2", "Generating Credentials", 50)),
    ("PHASE 3:", PhaseStep("phase3", "Building WordOps Command", 60)),
    ("PHASE 4:", PhaseStep("phase4", "Creating WordPress Site", 70)),
    ("PHASE 5:", PhaseStep("phase5", "Configuring WordPress", 80)),
    ("PHASE 6:", PhaseStep("phase6", "Applying Template", 85)),
    ("PHASE 7:", PhaseStep("phase7", "Setting Security", 90)),
    ("PHASE 8:", PhaseStep("phase8", "Generating Passwords", 95)),
    ("PHASE 9:", PhaseStep("phase9", "Final Verification", 98)),
)


def detect_phase(chunk: str) -> PhaseStep | None:
    """Return the phase announced in a stdout chunk, if any."""
    for marker, phase in SCRIPT_PHASES:
        if marker in chunk:
            return phase
    return None


@dataclass
class SiteCredentials:
    """Everything add-site.sh reports about the site it created."""

    success: bool = False
    domain: str = ""
    url: str = ""
    admin_url: str = ""
    username: str = ""
    password: str = ""
    application_password: str = ""
    email: str = ""
    db_name: str = ""
    db_user: str = ""
    db_pass: str = ""
    php_version: str = ""
    ssl_enabled: bool = False
    cache_enabled: bool = False
    redis_enabled: bool = False
    created_at: str = ""

    _SECRET_FIELDS = ("password", "application_password", "db_pass")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SiteCredentials:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def public_dict(self) -> dict[str, Any]:
        """Same as to_dict() without passwords."""
        data = self.to_dict()
        for key in self._SECRET_FIELDS:
            data.pop(key, None)
        return data


def parse_credentials(output: str) -> SiteCredentials:
    """Extract the credentials block from add-site.sh stdout."""
    match = _CREDENTIALS_RE.search(output or "")
    if not match:
        logger.error(f"Credentials block missing from script output ({len(output or '')} chars)")
        raise CredentialsParseError()

    try:
        data = json.loads(match.group(1).strip())
    except json.JSONDecodeError as exc:
        logger.error(f"Credentials block is not valid JSON: {exc}")
        raise CredentialsParseError() from exc

    if not isinstance(data, dict):
        raise CredentialsParseError()

    credentials = SiteCredentials.from_dict(data)
    logger.info(f"Credentials parsed for {credentials.domain}")
    return credentials


# =============================================================================
# WordOps
# =============================================================================
_ADMIN_USER_RE = re.compile(r"WordPress Admin Username:\s*(\S+)")
_ADMIN_PASS_RE = re.compile(r"WordPress Admin Password:\s*(\S+)")

BLOG_PROGRESS_MARKERS: tuple[tuple[str, str, int, str], ...] = (
    ("Creating WordPress site", "wordpress", 60, "Configurando WordPress..."),
    ("WordPress Admin", "credentials", 80, "Gerando credenciais..."),
)


def parse_wordops_admin(output: str, default_user: str, default_password: str) -> tuple[str, str]:
    """Read admin credentials from ``wo site info <domain> --admin``."""
    user_match = _ADMIN_USER_RE.search(output or "")
    pass_match = _ADMIN_PASS_RE.search(output or "")
    username = user_match.group(1) if user_match else default_user
    password = pass_match.group(1) if pass_match else default_password
    return username, password


def detect_blog_progress(chunk: str) -> dict[str, Any] | None:
    """Map a ``wo site create`` stdout chunk to a progress payload."""
    for marker, step, progress, message in BLOG_PROGRESS_MARKERS:
        if marker in chunk:
            return {"step": step, "progress": progress, "message": message}
    return None
