"""
TATAME Features - Data Models

Feature flags gate the platform tools per role. A feature is visible to a
role only while it is active and not deleted; admins see everything that
is active.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tatame.security.auth import VALID_ROLES
from tatame.shared.errors import ValidationError


# =============================================================================
# Enums
# =============================================================================
class FeatureStatus(str, Enum):
    """Feature lifecycle states."""
    ACTIVE = "active"
    DISABLED = "disabled"
    MAINTENANCE = "maintenance"
    DEPRECATED = "deprecated"


class AuditAction(str, Enum):
    """What an audit log entry records."""
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    RESTORED = "restored"
    STATUS_CHANGED = "status_changed"
    CONFIG_CHANGED = "config_changed"


FEATURE_STATUSES = frozenset(s.value for s in FeatureStatus)

CODE_PATTERN = re.compile(r"^[a-z0-9-]+$")
MAX_DESCRIPTION_LENGTH = 500
MAX_MAINTENANCE_MESSAGE_LENGTH = 200
MAX_REASON_LENGTH = 500

DEFAULT_METADATA: dict[str, Any] = {
    "usage_count": 0,
    "last_used": None,
    "active_users": 0,
    "error_count": 0,
    "average_load_time": 0,
}


# =============================================================================
# Data Classes
# =============================================================================
@dataclass
class Feature:
    """A feature flag row."""
    id: str
    code: str
    name: str
    category: str
    description: str = ""
    status: str = FeatureStatus.DISABLED.value
    icon: str = "Settings"
    route: str | None = None
    permissions: list[str] = field(default_factory=lambda: ["aluno"])
    config: dict[str, Any] = field(default_factory=dict)
    dependencies: list[str] = field(default_factory=list)
    version: str = "1.0.0"
    release_date: str | None = None
    deletable: bool = True
    deleted: bool = False
    deleted_at: str | None = None
    metadata: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_METADATA))
    maintenance_message: str | None = None
    modified_by: str | None = None
    last_modified: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_available(self) -> bool:
        return self.status == FeatureStatus.ACTIVE.value and not self.deleted

    def can_access(self, role: str) -> bool:
        """Active, not deleted, and either admin or a permitted role."""
        if not self.is_available:
            return False
        if role == "admin":
            return True
        return role in self.permissions

    def audit_state(self) -> dict[str, Any]:
        return {"status": self.status, "config": self.config, "permissions": self.permissions}

    def validate(self) -> None:
        """Normalize code/category and enforce field constraints."""
        self.code = (self.code or "").strip().lower()
        self.category = (self.category or "").strip().lower()
        self.name = (self.name or "").strip()
        if not CODE_PATTERN.match(self.code):
            raise ValidationError("Feature code may only contain lowercase letters, digits and hyphens")
        if not self.name:
            raise ValidationError("Feature name is required")
        if not self.category:
            raise ValidationError("Feature category is required")
        if len(self.description or "") > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters")
        if self.status not in FEATURE_STATUSES:
            raise ValidationError(f"Invalid feature status: {self.status}")
        if self.maintenance_message and len(self.maintenance_message) > MAX_MAINTENANCE_MESSAGE_LENGTH:
            raise ValidationError(
                f"Maintenance message must be at most {MAX_MAINTENANCE_MESSAGE_LENGTH} characters"
            )
        bad_roles = [r for r in self.permissions if r not in VALID_ROLES]
        if bad_roles:
            raise ValidationError(f"Invalid role in permissions: {', '.join(bad_roles)}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "status": self.status,
            "icon": self.icon,
            "route": self.route,
            "permissions": list(self.permissions),
            "config": self.config,
            "dependencies": list(self.dependencies),
            "version": self.version,
            "release_date": self.release_date,
            "deletable": self.deletable,
            "deleted": self.deleted,
            "deleted_at": self.deleted_at,
            "metadata": self.metadata,
            "maintenance_message": self.maintenance_message,
            "modified_by": self.modified_by,
            "last_modified": self.last_modified,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "is_available": self.is_available,
        }

    def public_dict(self) -> dict[str, Any]:
        """What regular users see."""
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "icon": self.icon,
            "route": self.route,
            "status": self.status,
            "maintenance_message": self.maintenance_message,
            "config": self.config,
        }

    @classmethod
    def from_row(cls, row: Any) -> Feature:
        data = dict(row)
        return cls(
            id=data["id"],
            code=data["code"],
            name=data["name"],
            category=data["category"],
            description=data["description"] or "",
            status=data["status"],
            icon=data["icon"] or "Settings",
            route=data["route"],
            permissions=json.loads(data["permissions"] or "[]"),
            config=json.loads(data["config"] or "{}"),
            dependencies=json.loads(data["dependencies"] or "[]"),
            version=data["version"],
            release_date=data["release_date"],
            deletable=bool(data["deletable"]),
            deleted=bool(data["deleted"]),
            deleted_at=data["deleted_at"],
            metadata={**DEFAULT_METADATA, **json.loads(data["metadata"] or "{}")},
            maintenance_message=data["maintenance_message"],
            modified_by=data["modified_by"],
            last_modified=data["last_modified"],
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )


@dataclass
class Actor:
    """Who performed an admin action, as recorded in the audit log."""
    id: str | None = None
    email: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
