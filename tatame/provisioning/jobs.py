"""
TATAME Provisioning - Jobs

Provisioning runs for minutes, so the API starts it in the background and
hands back a job id. Progress reaches the job through the EventBus: every
event emitted for a run carries the job id as its correlation id and
record_event() folds it into the row. The outcome is written by
run_provisioning_job() once the service call returns or raises.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable

import aiosqlite

from tatame.events import Event, EventType
from tatame.shared.errors import TatameError, ValidationError
from tatame.shared.settings import JOB_OUTPUT_TAIL
from tatame.shared.utils import generate_id, iso_now, safe_json_loads

logger = logging.getLogger("tatame.provisioning.jobs")

JOB_KINDS = ("site", "vps_setup", "blog")

_PROGRESS_EVENTS = frozenset(
    {EventType.STEP_START.value, EventType.STEP_COMPLETE.value, EventType.PROGRESS.value}
)


def _row_to_job(row: aiosqlite.Row) -> dict[str, Any]:
    job = dict(row)
    job["output"] = safe_json_loads(job["output"], [])
    job["result"] = safe_json_loads(job["result"], {})
    return job


class ProvisioningJobStore:
    """Database-backed provisioning job records."""

    def __init__(self, db: aiosqlite.Connection, output_tail: int = JOB_OUTPUT_TAIL) -> None:
        self.db = db
        self.output_tail = output_tail

    async def create_job(self, user_id: str, kind: str, target: str = "") -> dict[str, Any]:
        if kind not in JOB_KINDS:
            raise ValidationError(f"Invalid job kind: {kind}")
        job_id = generate_id("job")
        now = iso_now()
        await self.db.execute(
            """
            INSERT INTO provisioning_jobs (id, user_id, kind, target, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, 'running', ?, ?)
            """,
            (job_id, user_id, kind, target, now, now),
        )
        await self.db.commit()
        logger.info(f"Provisioning job {job_id} ({kind} {target}) created for {user_id}")
        return await self.get_job(job_id)

    async def get_job(self, job_id: str, user_id: str | None = None) -> dict[str, Any] | None:
        query = "SELECT * FROM provisioning_jobs WHERE id = ?"
        params: list[Any] = [job_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        async with self.db.execute(query, params) as cur:
            row = await cur.fetchone()
        return _row_to_job(row) if row else None

    async def list_jobs(self, user_id: str, limit: int = 50) -> list[dict[str, Any]]:
        async with self.db.execute(
            "SELECT * FROM provisioning_jobs WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
            (user_id, limit),
        ) as cur:
            rows = await cur.fetchall()
        return [_row_to_job(r) for r in rows]

    async def record_event(self, event: Event) -> None:
        """
        EventBus handler. Progress only moves while the job is running and
        never backwards; output lines are appended to a bounded tail.
        """
        job_id = event.correlation_id
        if not job_id:
            return
        payload = event.payload or {}

        if event.type in _PROGRESS_EVENTS:
            await self.db.execute(
                """
                UPDATE provisioning_jobs
                SET progress = MAX(progress, ?), step = COALESCE(?, step),
                    message = COALESCE(?, message), updated_at = ?
                WHERE id = ? AND status = 'running'
                """,
                (
                    int(payload.get("progress") or 0),
                    payload.get("step"),
                    payload.get("message") or payload.get("name"),
                    iso_now(),
                    job_id,
                ),
            )
            await self.db.commit()
        elif event.type == EventType.OUTPUT.value:
            await self._append_output(job_id, str(payload.get("text", "")))
        elif event.type == EventType.VPS_CONNECTED.value:
            await self.db.execute(
                "UPDATE provisioning_jobs SET message = ?, updated_at = ? WHERE id = ? AND status = 'running'",
                (f"Connected to {payload.get('host', '')}", iso_now(), job_id),
            )
            await self.db.commit()

    async def complete_job(self, job_id: str, result: dict[str, Any]) -> bool:
        now = iso_now()
        cur = await self.db.execute(
            """
            UPDATE provisioning_jobs
            SET status = 'succeeded', progress = 100, result = ?, error = '',
                updated_at = ?, completed_at = ?
            WHERE id = ?
            """,
            (json.dumps(result, default=str), now, now, job_id),
        )
        await self.db.commit()
        logger.info(f"Provisioning job {job_id} succeeded")
        return cur.rowcount > 0

    async def fail_job(self, job_id: str, error: str) -> bool:
        now = iso_now()
        cur = await self.db.execute(
            """
            UPDATE provisioning_jobs
            SET status = 'failed', error = ?, updated_at = ?, completed_at = ?
            WHERE id = ?
            """,
            (error, now, now, job_id),
        )
        await self.db.commit()
        logger.warning(f"Provisioning job {job_id} failed: {error}")
        return cur.rowcount > 0

    async def fail_interrupted_jobs(self, error: str = "Interrupted by restart") -> int:
        """Fail rows still marked running; no task survives a process restart."""
        now = iso_now()
        cur = await self.db.execute(
            """
            UPDATE provisioning_jobs
            SET status = 'failed', error = ?, updated_at = ?, completed_at = ?
            WHERE status = 'running'
            """,
            (error, now, now),
        )
        await self.db.commit()
        if cur.rowcount:
            logger.warning(f"Marked {cur.rowcount} interrupted provisioning job(s) as failed")
        return cur.rowcount

    async def _append_output(self, job_id: str, text: str) -> None:
        lines = [line for line in text.splitlines() if line.strip()]
        if not lines:
            return
        async with self.db.execute(
            "SELECT output FROM provisioning_jobs WHERE id = ?", (job_id,)
        ) as cur:
            row = await cur.fetchone()
        if row is None:
            return
        output = json.loads(row["output"] or "[]") + lines
        await self.db.execute(
            "UPDATE provisioning_jobs SET output = ?, updated_at = ? WHERE id = ?",
            (json.dumps(output[-self.output_tail:]), iso_now(), job_id),
        )
        await self.db.commit()


def public_result(result: Any) -> dict[str, Any]:
    """Job result without passwords."""
    if hasattr(result, "public_dict"):
        return result.public_dict()
    if isinstance(result, dict):
        return {k: v for k, v in result.items() if "password" not in k and k != "db_pass"}
    return {}


async def run_provisioning_job(
    jobs: ProvisioningJobStore,
    job_id: str,
    operation: Awaitable[Any],
) -> None:
    """Await a provisioning call and write its outcome to the job."""
    try:
        result = await operation
    except asyncio.CancelledError:
        await jobs.fail_job(job_id, "Interrupted by shutdown")
        raise
    except TatameError as exc:
        await jobs.fail_job(job_id, str(exc))
        return
    except Exception as exc:
        # background task: nothing above us would see this
        logger.exception(f"Provisioning job {job_id} crashed")
        await jobs.fail_job(job_id, f"Unexpected error: {exc}")
        return
    await jobs.complete_job(job_id, public_result(result))
