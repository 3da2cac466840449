"""
TATAME LMS - Lesson progress

One progress row per (user, lesson):

    not_started -> in_progress -> completed

Video players report the playback position periodically; watching 90% of
a lesson's duration completes it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

import aiosqlite

from tatame.lms.catalog import CourseCatalog
from tatame.shared.errors import ValidationError
from tatame.shared.utils import generate_id, iso_now

logger = logging.getLogger("tatame.lms.progress")

AUTO_COMPLETE_PERCENT = 90


class ProgressStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def _percentage(done: int, total: int) -> int:
    return round(done / total * 100) if total > 0 else 0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ProgressTracker:
    """Reads and writes lesson_progress rows."""

    def __init__(self, db: aiosqlite.Connection, catalog: CourseCatalog | None = None) -> None:
        self.db = db
        self.catalog = catalog or CourseCatalog(db)

    async def complete_lesson(self, user_id: str, lesson_id: str) -> dict[str, Any]:
        lesson = await self.catalog.get_lesson(lesson_id)
        progress = await self._get_or_create(user_id, lesson)
        now = iso_now()
        await self.db.execute(
            """
            UPDATE lesson_progress
            SET status = 'completed', completed_at = ?, started_at = COALESCE(started_at, ?), updated_at = ?
            WHERE id = ?
            """,
            (now, now, now, progress["id"]),
        )
        await self.db.commit()
        logger.info(f"Lesson {lesson_id} completed by {user_id}")
        return await self._get(progress["id"])

    async def update_watch_time(
        self,
        user_id: str,
        lesson_id: str,
        position: Any,
        duration: Any,
    ) -> dict[str, Any]:
        """
        Record playback. ``position`` is where the player is (seconds) and
        ``duration`` how long was watched since the last report.
        """
        if not _is_number(position) or not _is_number(duration):
            raise ValidationError("Position and duration must be numbers")

        lesson = await self.catalog.get_lesson(lesson_id)
        progress = await self._get_or_create(user_id, lesson)
        now = iso_now()

        status = progress["status"]
        completed_at = progress["completed_at"]
        started_at = progress["started_at"]

        lesson_seconds = float(lesson["duration_minutes"] or 0) * 60
        watched_percent = position / lesson_seconds * 100 if lesson_seconds > 0 else 0
        if watched_percent >= AUTO_COMPLETE_PERCENT and status != ProgressStatus.COMPLETED.value:
            status = ProgressStatus.COMPLETED.value
            completed_at = now
            started_at = started_at or now
        elif status == ProgressStatus.NOT_STARTED.value:
            status = ProgressStatus.IN_PROGRESS.value
            started_at = now

        await self.db.execute(
            """
            UPDATE lesson_progress
            SET last_position = ?, watch_time = ?, total_watch_time = total_watch_time + ?,
                status = ?, started_at = ?, completed_at = ?, updated_at = ?
            WHERE id = ?
            """,
            (float(position), float(duration), float(duration), status, started_at, completed_at, now, progress["id"]),
        )
        await self.db.commit()
        return await self._get(progress["id"])

    async def get_course_progress(self, user_id: str, course_id: str) -> dict[str, Any]:
        course = await self.catalog.get_course(course_id)
        modules = await self.catalog.list_modules(course_id)
        rows = await self._rows(user_id, course_id=course_id)
        by_lesson = {r["lesson_id"]: r for r in rows}

        total = sum(len(m["lessons"]) for m in modules)
        completed = sum(1 for r in rows if r["status"] == ProgressStatus.COMPLETED.value)
        in_progress = sum(1 for r in rows if r["status"] == ProgressStatus.IN_PROGRESS.value)

        module_progress = []
        for module in modules:
            module_done = sum(
                1
                for lesson in module["lessons"]
                if by_lesson.get(lesson["id"], {}).get("status") == ProgressStatus.COMPLETED.value
            )
            module_total = len(module["lessons"])
            module_progress.append(
                {
                    "module_id": module["id"],
                    "module_title": module["title"],
                    "completed": module_done,
                    "total": module_total,
                    "percentage": _percentage(module_done, module_total),
                }
            )

        return {
            "course_id": course_id,
            "course_title": course["title"],
            "progress": {
                "total_lessons": total,
                "completed_lessons": completed,
                "in_progress_lessons": in_progress,
                "not_started_lessons": max(total - completed - in_progress, 0),
                "percentage": _percentage(completed, total),
            },
            "module_progress": module_progress,
            "lesson_progress": [
                {
                    "lesson_id": r["lesson_id"],
                    "status": r["status"],
                    "completed_at": r["completed_at"],
                    "last_position": r["last_position"],
                    "watch_time": r["watch_time"],
                }
                for r in rows
            ],
        }

    async def get_user_progress(self, user_id: str) -> dict[str, Any]:
        rows = await self._rows(user_id)

        course_ids: list[str] = []
        for r in rows:
            if r["course_id"] not in course_ids:
                course_ids.append(r["course_id"])

        courses = []
        for course_id in course_ids:
            course_rows = [r for r in rows if r["course_id"] == course_id]
            async with self.db.execute(
                "SELECT title, slug, thumbnail FROM courses WHERE id = ?", (course_id,)
            ) as cur:
                course = await cur.fetchone()
            async with self.db.execute(
                "SELECT COUNT(*) FROM lessons WHERE course_id = ?", (course_id,)
            ) as cur:
                total = (await cur.fetchone())[0]
            completed = sum(1 for r in course_rows if r["status"] == ProgressStatus.COMPLETED.value)
            courses.append(
                {
                    "course_id": course_id,
                    "course_title": course["title"] if course else None,
                    "course_slug": course["slug"] if course else None,
                    "course_thumbnail": course["thumbnail"] if course else None,
                    "completed_lessons": completed,
                    "in_progress_lessons": sum(
                        1 for r in course_rows if r["status"] == ProgressStatus.IN_PROGRESS.value
                    ),
                    "total_lessons": total,
                    "percentage": _percentage(completed, total),
                    "last_accessed_at": max(r["updated_at"] for r in course_rows),
                }
            )
        courses.sort(key=lambda c: c["last_accessed_at"], reverse=True)

        total_watch_seconds = sum(float(r["total_watch_time"] or 0) for r in rows)
        return {
            "overall": {
                "courses_enrolled": len(course_ids),
                "lessons_completed": sum(1 for r in rows if r["status"] == ProgressStatus.COMPLETED.value),
                "lessons_in_progress": sum(1 for r in rows if r["status"] == ProgressStatus.IN_PROGRESS.value),
                "total_watch_time": round(total_watch_seconds / 60),
            },
            "courses": courses,
        }

    # =========================================================================
    # Internals
    # =========================================================================

    async def _get(self, progress_id: str) -> dict[str, Any]:
        async with self.db.execute("SELECT * FROM lesson_progress WHERE id = ?", (progress_id,)) as cur:
            row = await cur.fetchone()
        return dict(row)

    async def _get_or_create(self, user_id: str, lesson: dict[str, Any]) -> dict[str, Any]:
        now = iso_now()
        await self.db.execute(
            """
            INSERT OR IGNORE INTO lesson_progress
                (id, user_id, course_id, module_id, lesson_id, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, 'not_started', ?, ?)
            """,
            (generate_id("prog"), user_id, lesson["course_id"], lesson["module_id"], lesson["id"], now, now),
        )
        await self.db.commit()
        async with self.db.execute(
            "SELECT * FROM lesson_progress WHERE user_id = ? AND lesson_id = ?",
            (user_id, lesson["id"]),
        ) as cur:
            row = await cur.fetchone()
        return dict(row)

    async def _rows(self, user_id: str, course_id: str | None = None) -> list[dict[str, Any]]:
        query = "SELECT * FROM lesson_progress WHERE user_id = ?"
        params: list[Any] = [user_id]
        if course_id is not None:
            query += " AND course_id = ?"
            params.append(course_id)
        query += " ORDER BY created_at"
        async with self.db.execute(query, params) as cur:
            rows = await cur.fetchall()
        return [dict(r) for r in rows]
