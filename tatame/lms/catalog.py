"""
TATAME LMS - Course catalog

Courses contain ordered modules, modules contain ordered lessons. Only the
parts progress tracking needs are modelled here.
"""

from __future__ import annotations

import logging
from typing import Any

import aiosqlite

from tatame.shared.errors import ConflictError, CourseNotFoundError, LessonNotFoundError, ValidationError
from tatame.shared.utils import generate_id, iso_now, slugify

logger = logging.getLogger("tatame.lms.catalog")

LESSON_TYPES = ("video", "text", "quiz")


class CourseCatalog:
    """Database-backed courses, modules and lessons."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    async def create_course(
        self,
        title: str,
        description: str = "",
        slug: str | None = None,
        thumbnail: str | None = None,
        is_published: bool = False,
    ) -> dict[str, Any]:
        title = title.strip()
        if not title:
            raise ValidationError("Course title is required")
        slug = slug or slugify(title)
        async with self.db.execute("SELECT 1 FROM courses WHERE slug = ?", (slug,)) as cur:
            if await cur.fetchone():
                raise ConflictError(f"Course slug already exists: {slug}")

        course_id = generate_id("course")
        now = iso_now()
        await self.db.execute(
            """
            INSERT INTO courses (id, title, slug, description, thumbnail, is_published, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (course_id, title, slug, description, thumbnail, int(is_published), now, now),
        )
        await self.db.commit()
        logger.info(f"Course created: {slug}")
        return await self.get_course(course_id)

    async def add_module(self, course_id: str, title: str, position: int | None = None) -> dict[str, Any]:
        await self.get_course(course_id)
        if position is None:
            async with self.db.execute(
                "SELECT COALESCE(MAX(position), -1) + 1 FROM course_modules WHERE course_id = ?",
                (course_id,),
            ) as cur:
                position = (await cur.fetchone())[0]
        module_id = generate_id("mod")
        await self.db.execute(
            "INSERT INTO course_modules (id, course_id, title, position, created_at) VALUES (?, ?, ?, ?, ?)",
            (module_id, course_id, title.strip(), position, iso_now()),
        )
        await self.db.commit()
        return {"id": module_id, "course_id": course_id, "title": title.strip(), "position": position}

    async def add_lesson(
        self,
        module_id: str,
        title: str,
        duration_minutes: float = 0,
        lesson_type: str = "video",
        position: int | None = None,
    ) -> dict[str, Any]:
        if lesson_type not in LESSON_TYPES:
            raise ValidationError(f"Invalid lesson type: {lesson_type}")
        if duration_minutes < 0:
            raise ValidationError("Lesson duration cannot be negative")
        async with self.db.execute("SELECT course_id FROM course_modules WHERE id = ?", (module_id,)) as cur:
            row = await cur.fetchone()
        if row is None:
            raise ValidationError(f"Module not found: {module_id}")
        course_id = row["course_id"]

        if position is None:
            async with self.db.execute(
                "SELECT COALESCE(MAX(position), -1) + 1 FROM lessons WHERE module_id = ?",
                (module_id,),
            ) as cur:
                position = (await cur.fetchone())[0]

        lesson_id = generate_id("lesson")
        await self.db.execute(
            """
            INSERT INTO lessons (id, course_id, module_id, title, lesson_type, duration_minutes, position, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (lesson_id, course_id, module_id, title.strip(), lesson_type, float(duration_minutes), position, iso_now()),
        )
        await self.db.commit()
        return await self.get_lesson(lesson_id)

    async def get_course(self, course_id: str) -> dict[str, Any]:
        async with self.db.execute("SELECT * FROM courses WHERE id = ?", (course_id,)) as cur:
            row = await cur.fetchone()
        if row is None:
            raise CourseNotFoundError(course_id)
        course = dict(row)
        course["is_published"] = bool(course["is_published"])
        return course

    async def list_courses(self, published_only: bool = False) -> list[dict[str, Any]]:
        query = "SELECT * FROM courses"
        if published_only:
            query += " WHERE is_published = 1"
        query += " ORDER BY created_at DESC"
        async with self.db.execute(query) as cur:
            rows = await cur.fetchall()
        return [{**dict(r), "is_published": bool(r["is_published"])} for r in rows]

    async def get_lesson(self, lesson_id: str) -> dict[str, Any]:
        async with self.db.execute("SELECT * FROM lessons WHERE id = ?", (lesson_id,)) as cur:
            row = await cur.fetchone()
        if row is None:
            raise LessonNotFoundError(lesson_id)
        lesson = dict(row)
        lesson["is_published"] = bool(lesson["is_published"])
        return lesson

    async def list_modules(self, course_id: str) -> list[dict[str, Any]]:
        """Modules in order, each with its ordered lessons."""
        async with self.db.execute(
            "SELECT * FROM course_modules WHERE course_id = ? ORDER BY position",
            (course_id,),
        ) as cur:
            modules = [dict(r) for r in await cur.fetchall()]
        async with self.db.execute(
            "SELECT * FROM lessons WHERE course_id = ? ORDER BY position",
            (course_id,),
        ) as cur:
            lessons = [dict(r) for r in await cur.fetchall()]
        for module in modules:
            module["lessons"] = [lesson for lesson in lessons if lesson["module_id"] == module["id"]]
        return modules
