"""
TATAME Features - Registry

Database-backed feature flags. Every admin mutation writes an audit log
entry with the previous and new state; deletion is soft and reversible.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from typing import Any

import aiosqlite

from tatame.events import Emit, EventType
from tatame.features.models import (
    MAX_REASON_LENGTH,
    Actor,
    AuditAction,
    Feature,
    FeatureStatus,
)
from tatame.shared.errors import (
    ConflictError,
    FeatureNotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from tatame.shared.utils import generate_id, iso_now

logger = logging.getLogger("tatame.features")

DEFAULT_MAINTENANCE_MESSAGE = "This feature is currently under maintenance"
DEFAULT_STATUS_MAINTENANCE_MESSAGE = "Esta funcionalidade está em manutenção"

_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "category",
        "status",
        "icon",
        "route",
        "permissions",
        "config",
        "dependencies",
        "version",
        "deletable",
        "maintenance_message",
    }
)


class FeatureRegistry:
    """
    Feature flag storage and admin operations.

    Args:
        db: open aiosqlite connection with the platform schema
        emit: optional event sink; status changes publish ``feature.changed``
    """

    def __init__(self, db: aiosqlite.Connection, emit: Emit | None = None) -> None:
        self.db = db
        self.emit = emit

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_feature(self, feature_id: str) -> Feature:
        async with self.db.execute("SELECT * FROM features WHERE id = ?", (feature_id,)) as cur:
            row = await cur.fetchone()
        if row is None:
            raise FeatureNotFoundError(feature_id)
        return Feature.from_row(row)

    async def get_by_code(self, code: str) -> Feature | None:
        async with self.db.execute(
            "SELECT * FROM features WHERE code = ?", (code.strip().lower(),)
        ) as cur:
            row = await cur.fetchone()
        return Feature.from_row(row) if row else None

    async def list_features(
        self,
        status: str | None = None,
        category: str | None = None,
        include_deleted: bool = False,
    ) -> tuple[list[Feature], dict[str, int]]:
        """Admin listing plus a count per status of what was returned."""
        query = "SELECT * FROM features WHERE 1 = 1"
        params: list[Any] = []
        if not include_deleted:
            query += " AND deleted = 0"
        if status:
            query += " AND status = ?"
            params.append(status)
        if category:
            query += " AND category = ?"
            params.append(category.lower())
        query += " ORDER BY category, name"

        async with self.db.execute(query, params) as cur:
            rows = await cur.fetchall()
        features = [Feature.from_row(r) for r in rows]

        counts = Counter(f.status for f in features)
        stats = {"total": len(features)}
        stats.update({s.value: counts.get(s.value, 0) for s in FeatureStatus})
        return features, stats

    async def list_visible_features(self, role: str) -> list[Feature]:
        """Features shown in a user's tool list: active or in maintenance."""
        async with self.db.execute(
            """
            SELECT * FROM features
            WHERE deleted = 0 AND status IN ('active', 'maintenance')
            ORDER BY category, name
            """
        ) as cur:
            rows = await cur.fetchall()
        features = [Feature.from_row(r) for r in rows]
        if role == "admin":
            return features
        return [f for f in features if role in f.permissions]

    async def get_visible_feature(self, code: str, role: str) -> Feature:
        feature = await self.get_by_code(code)
        if (
            feature is None
            or feature.deleted
            or feature.status not in (FeatureStatus.ACTIVE.value, FeatureStatus.MAINTENANCE.value)
            or (role != "admin" and role not in feature.permissions)
        ):
            raise FeatureNotFoundError(code)
        return feature

    async def list_active_for_role(self, role: str) -> list[Feature]:
        return [f for f in await self.list_visible_features(role) if f.can_access(role)]

    async def list_by_category(self, category: str) -> list[Feature]:
        async with self.db.execute(
            "SELECT * FROM features WHERE category = ? AND deleted = 0 ORDER BY name",
            (category.lower(),),
        ) as cur:
            rows = await cur.fetchall()
        return [Feature.from_row(r) for r in rows]

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create_feature(
        self,
        data: dict[str, Any],
        actor: Actor | None = None,
        *,
        status: str = FeatureStatus.DISABLED.value,
    ) -> Feature:
        """Insert a new feature. Admin-created features always start disabled."""
        actor = actor or Actor()
        now = iso_now()
        feature = Feature(
            id=generate_id("feat"),
            code=str(data.get("code", "")),
            name=str(data.get("name", "")),
            category=str(data.get("category", "")),
            description=data.get("description") or "",
            status=status,
            icon=data.get("icon") or "Settings",
            route=data.get("route"),
            permissions=list(data.get("permissions") or ["aluno"]),
            config=dict(data.get("config") or {}),
            dependencies=list(data.get("dependencies") or []),
            version=data.get("version") or "1.0.0",
            deletable=data.get("deletable", True) is not False,
            modified_by=actor.id,
            release_date=now,
            last_modified=now,
            created_at=now,
            updated_at=now,
        )
        feature.validate()

        if await self.get_by_code(feature.code) is not None:
            raise ConflictError("Feature with this code already exists")

        await self._insert(feature)
        await self._audit(feature, AuditAction.CREATED, actor, new_state=feature.audit_state())
        logger.info(f"Feature created: {feature.code}")
        return feature

    async def update_feature(
        self,
        feature_id: str,
        updates: dict[str, Any],
        actor: Actor | None = None,
        reason: str | None = None,
    ) -> Feature:
        actor = actor or Actor()
        bad = set(updates) - _UPDATABLE_FIELDS
        if bad:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(bad))}")

        feature = await self.get_feature(feature_id)
        previous = feature.audit_state()
        for key, value in updates.items():
            setattr(feature, key, value)
        feature.validate()
        feature.modified_by = actor.id

        await self.save(feature)
        await self._audit(
            feature, AuditAction.UPDATED, actor,
            previous_state=previous, new_state=feature.audit_state(), reason=reason,
        )
        if previous["status"] != feature.status:
            self._notify(feature, AuditAction.UPDATED)
        return feature

    async def toggle_status(
        self,
        feature_id: str,
        actor: Actor | None = None,
        reason: str | None = None,
    ) -> Feature:
        """Flip active <-> disabled. Other states cannot be toggled."""
        feature = await self.get_feature(feature_id)
        if feature.status == FeatureStatus.ACTIVE.value:
            new_status = FeatureStatus.DISABLED.value
        elif feature.status == FeatureStatus.DISABLED.value:
            new_status = FeatureStatus.ACTIVE.value
        else:
            raise ValidationError(f"Cannot toggle feature in {feature.status} status")
        return await self._change_status(feature, new_status, actor or Actor(), reason)

    async def set_maintenance(
        self,
        feature_id: str,
        message: str | None = None,
        actor: Actor | None = None,
    ) -> Feature:
        feature = await self.get_feature(feature_id)
        feature.maintenance_message = message or DEFAULT_MAINTENANCE_MESSAGE
        return await self._change_status(
            feature, FeatureStatus.MAINTENANCE.value, actor or Actor(), f"Maintenance mode: {message}"
        )

    async def update_status(
        self,
        feature_id: str,
        status: str,
        message: str | None = None,
        actor: Actor | None = None,
    ) -> Feature:
        feature = await self.get_feature(feature_id)
        previous = feature.status
        if status == FeatureStatus.MAINTENANCE.value:
            feature.maintenance_message = message or DEFAULT_STATUS_MAINTENANCE_MESSAGE
        else:
            feature.maintenance_message = None
        return await self._change_status(
            feature, status, actor or Actor(), f"Status changed from {previous} to {status}"
        )

    async def delete_feature(
        self,
        feature_id: str,
        confirmation_code: str,
        actor: Actor | None = None,
        reason: str | None = None,
    ) -> Feature:
        """
        Soft delete. The caller must type the feature code to confirm, and
        nothing that is still live may depend on it.
        """
        actor = actor or Actor()
        feature = await self.get_feature(feature_id)
        if not feature.deletable:
            raise PermissionDeniedError("This feature cannot be deleted as it is a core system feature")
        if confirmation_code != feature.code:
            raise ValidationError(
                "Invalid confirmation code. Please type the feature code to confirm deletion."
            )

        dependents = await self._dependents_of(feature.code)
        if dependents:
            raise ConflictError(
                f"Cannot delete this feature. {len(dependents)} other features depend on it: "
                f"{', '.join(dependents)}"
            )

        previous = feature.status
        await self._soft_delete(feature, actor)
        await self._audit(
            feature, AuditAction.DELETED, actor,
            previous_state={"status": previous}, reason=reason,
        )
        self._notify(feature, AuditAction.DELETED)
        logger.info(f"Feature deleted: {feature.code}")
        return feature

    async def restore_feature(self, feature_id: str, actor: Actor | None = None) -> Feature:
        actor = actor or Actor()
        feature = await self.get_feature(feature_id)
        if not feature.deleted:
            raise ValidationError("Feature is not deleted")

        feature.deleted = False
        feature.deleted_at = None
        feature.status = FeatureStatus.DISABLED.value
        feature.modified_by = actor.id
        await self.save(feature)
        await self._audit(feature, AuditAction.RESTORED, actor, new_state={"status": feature.status})
        logger.info(f"Feature restored: {feature.code}")
        return feature

    async def bulk_update(
        self,
        feature_ids: list[str],
        action: str,
        actor: Actor | None = None,
        reason: str | None = None,
    ) -> dict[str, list[dict[str, Any]]]:
        """Apply enable/disable/delete to each id; failures do not stop the batch."""
        actor = actor or Actor()
        if not feature_ids:
            raise ValidationError("Please provide feature IDs")

        results: dict[str, list[dict[str, Any]]] = {"success": [], "failed": []}
        for feature_id in feature_ids:
            try:
                feature = await self.get_feature(feature_id)
            except FeatureNotFoundError:
                results["failed"].append({"id": feature_id, "reason": "Not found"})
                continue

            previous = feature.status
            if action == "enable":
                if feature.status != FeatureStatus.DISABLED.value:
                    results["failed"].append({"id": feature_id, "reason": "Cannot enable from current status"})
                    continue
                feature.status = FeatureStatus.ACTIVE.value
                feature.modified_by = actor.id
                await self.save(feature)
            elif action == "disable":
                if feature.status != FeatureStatus.ACTIVE.value:
                    results["failed"].append({"id": feature_id, "reason": "Cannot disable from current status"})
                    continue
                feature.status = FeatureStatus.DISABLED.value
                feature.modified_by = actor.id
                await self.save(feature)
            elif action == "delete":
                if not feature.deletable:
                    results["failed"].append({"id": feature_id, "reason": "Not deletable"})
                    continue
                await self._soft_delete(feature, actor)
            else:
                results["failed"].append({"id": feature_id, "reason": "Invalid action"})
                continue

            await self._audit(
                feature,
                AuditAction.DELETED if action == "delete" else AuditAction.STATUS_CHANGED,
                actor,
                previous_state={"status": previous},
                new_state={"status": feature.status},
                reason=f"Bulk {action}: {reason}",
            )
            self._notify(feature, AuditAction.STATUS_CHANGED)
            results["success"].append({"id": feature_id, "name": feature.name})

        logger.info(
            f"Bulk {action}: {len(results['success'])} succeeded, {len(results['failed'])} failed"
        )
        return results

    async def track_usage(self, code: str) -> bool:
        """Count a use of the feature. ``last_modified`` is left alone."""
        feature = await self.get_by_code(code)
        if feature is None:
            return False
        metadata = dict(feature.metadata)
        metadata["usage_count"] = int(metadata.get("usage_count") or 0) + 1
        metadata["last_used"] = iso_now()
        cur = await self.db.execute(
            "UPDATE features SET metadata = ? WHERE id = ?",
            (json.dumps(metadata), feature.id),
        )
        await self.db.commit()
        return cur.rowcount > 0

    # =========================================================================
    # Audit log
    # =========================================================================

    async def get_audit_logs(self, feature_id: str, limit: int = 50) -> list[dict[str, Any]]:
        feature = await self.get_feature(feature_id)
        return await self.get_audit_logs_by_code(feature.code, limit)

    async def get_audit_logs_by_code(self, code: str, limit: int = 50) -> list[dict[str, Any]]:
        async with self.db.execute(
            """
            SELECT * FROM feature_audit_logs
            WHERE feature_code = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
            """,
            (code, limit),
        ) as cur:
            rows = await cur.fetchall()
        logs = []
        for row in rows:
            entry = dict(row)
            for key in ("previous_state", "new_state"):
                entry[key] = json.loads(entry[key]) if entry[key] else None
            logs.append(entry)
        return logs

    async def record_audit(
        self,
        feature_code: str,
        feature_name: str,
        action: AuditAction,
        actor: Actor,
        previous_state: dict[str, Any] | None = None,
        new_state: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> None:
        await self.db.execute(
            """
            INSERT INTO feature_audit_logs (
                id, feature_code, feature_name, action, previous_state, new_state,
                performed_by, performed_by_email, reason, ip_address, user_agent, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                generate_id("audit"),
                feature_code,
                feature_name,
                action.value,
                json.dumps(previous_state) if previous_state is not None else None,
                json.dumps(new_state) if new_state is not None else None,
                actor.id or "system",
                actor.email or "",
                reason[:MAX_REASON_LENGTH] if reason else None,
                actor.ip_address,
                actor.user_agent,
                iso_now(),
            ),
        )
        await self.db.commit()

    # =========================================================================
    # Internals
    # =========================================================================

    async def _audit(self, feature: Feature, action: AuditAction, actor: Actor, **kwargs: Any) -> None:
        await self.record_audit(feature.code, feature.name, action, actor, **kwargs)

    async def _change_status(
        self,
        feature: Feature,
        status: str,
        actor: Actor,
        reason: str | None,
    ) -> Feature:
        previous = feature.status
        feature.status = status
        feature.validate()
        feature.modified_by = actor.id
        await self.save(feature)
        await self._audit(
            feature, AuditAction.STATUS_CHANGED, actor,
            previous_state={"status": previous}, new_state={"status": status}, reason=reason,
        )
        self._notify(feature, AuditAction.STATUS_CHANGED)
        logger.info(f"Feature {feature.code}: {previous} -> {status}")
        return feature

    async def _soft_delete(self, feature: Feature, actor: Actor) -> None:
        feature.deleted = True
        feature.deleted_at = iso_now()
        feature.status = FeatureStatus.DISABLED.value
        feature.modified_by = actor.id
        await self.save(feature)

    async def _dependents_of(self, code: str) -> list[str]:
        async with self.db.execute(
            "SELECT name, dependencies FROM features WHERE deleted = 0 AND code != ?",
            (code,),
        ) as cur:
            rows = await cur.fetchall()
        return [r["name"] for r in rows if code in json.loads(r["dependencies"] or "[]")]

    async def _insert(self, feature: Feature) -> None:
        await self.db.execute(
            """
            INSERT INTO features (
                id, code, name, description, category, status, icon, route,
                permissions, config, dependencies, version, release_date, deletable,
                deleted, deleted_at, metadata, maintenance_message, modified_by,
                last_modified, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                feature.id,
                feature.code,
                feature.name,
                feature.description,
                feature.category,
                feature.status,
                feature.icon,
                feature.route,
                json.dumps(feature.permissions),
                json.dumps(feature.config),
                json.dumps(feature.dependencies),
                feature.version,
                feature.release_date,
                int(feature.deletable),
                int(feature.deleted),
                feature.deleted_at,
                json.dumps(feature.metadata),
                feature.maintenance_message,
                feature.modified_by,
                feature.last_modified,
                feature.created_at,
                feature.updated_at,
            ),
        )
        await self.db.commit()

    async def save(self, feature: Feature) -> None:
        now = iso_now()
        feature.last_modified = now
        feature.updated_at = now
        await self.db.execute(
            """
            UPDATE features SET
                name = ?, description = ?, category = ?, status = ?, icon = ?, route = ?,
                permissions = ?, config = ?, dependencies = ?, version = ?, deletable = ?,
                deleted = ?, deleted_at = ?, metadata = ?, maintenance_message = ?,
                modified_by = ?, last_modified = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                feature.name,
                feature.description,
                feature.category,
                feature.status,
                feature.icon,
                feature.route,
                json.dumps(feature.permissions),
                json.dumps(feature.config),
                json.dumps(feature.dependencies),
                feature.version,
                int(feature.deletable),
                int(feature.deleted),
                feature.deleted_at,
                json.dumps(feature.metadata),
                feature.maintenance_message,
                feature.modified_by,
                feature.last_modified,
                feature.updated_at,
                feature.id,
            ),
        )
        await self.db.commit()

    def _notify(self, feature: Feature, action: AuditAction) -> None:
        if self.emit is None:
            return
        self.emit(
            EventType.FEATURE_CHANGED,
            {"code": feature.code, "status": feature.status, "deleted": feature.deleted, "action": action.value},
        )
