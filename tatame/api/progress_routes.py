"""
TATAME API - courses and lesson progress endpoints.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from tatame.api import schemas
from tatame.api.routes import get_course_catalog, get_current_user, get_progress_tracker, require_admin
from tatame.lms import CourseCatalog, ProgressTracker
from tatame.security import TokenPayload

router = APIRouter(prefix="/v1", tags=["lms"])


# ============================================================================
# Courses
# ============================================================================


@router.get("/courses")
async def list_courses(
    _user: TokenPayload = Depends(get_current_user),
    catalog: CourseCatalog = Depends(get_course_catalog),
) -> dict[str, Any]:
    return {"courses": await catalog.list_courses(published_only=True)}


@router.get("/courses/{course_id}")
async def get_course(
    course_id: str,
    _user: TokenPayload = Depends(get_current_user),
    catalog: CourseCatalog = Depends(get_course_catalog),
) -> dict[str, Any]:
    course = await catalog.get_course(course_id)
    return {"course": course, "modules": await catalog.list_modules(course_id)}


@router.post("/admin/courses", status_code=201)
async def create_course(
    body: schemas.CourseCreateRequest,
    _admin: TokenPayload = Depends(require_admin),
    catalog: CourseCatalog = Depends(get_course_catalog),
) -> dict[str, Any]:
    course = await catalog.create_course(
        body.title, body.description, body.slug, body.thumbnail, body.is_published
    )
    return {"course": course}


@router.post("/admin/courses/{course_id}/modules", status_code=201)
async def add_module(
    course_id: str,
    body: schemas.ModuleCreateRequest,
    _admin: TokenPayload = Depends(require_admin),
    catalog: CourseCatalog = Depends(get_course_catalog),
) -> dict[str, Any]:
    return {"module": await catalog.add_module(course_id, body.title, body.position)}


@router.post("/admin/modules/{module_id}/lessons", status_code=201)
async def add_lesson(
    module_id: str,
    body: schemas.LessonCreateRequest,
    _admin: TokenPayload = Depends(require_admin),
    catalog: CourseCatalog = Depends(get_course_catalog),
) -> dict[str, Any]:
    lesson = await catalog.add_lesson(
        module_id, body.title, body.duration_minutes, body.lesson_type, body.position
    )
    return {"lesson": lesson}


# ============================================================================
# Progress
# ============================================================================


@router.post("/progress/lessons/{lesson_id}/complete")
async def complete_lesson(
    lesson_id: str,
    user: TokenPayload = Depends(get_current_user),
    tracker: ProgressTracker = Depends(get_progress_tracker),
) -> dict[str, Any]:
    return {"progress": await tracker.complete_lesson(user.user_id, lesson_id)}


@router.put("/progress/lessons/{lesson_id}")
async def update_watch_time(
    lesson_id: str,
    body: schemas.WatchTimeRequest,
    user: TokenPayload = Depends(get_current_user),
    tracker: ProgressTracker = Depends(get_progress_tracker),
) -> dict[str, Any]:
    progress = await tracker.update_watch_time(user.user_id, lesson_id, body.position, body.duration)
    return {"progress": progress}


@router.get("/progress/courses/{course_id}")
async def course_progress(
    course_id: str,
    user: TokenPayload = Depends(get_current_user),
    tracker: ProgressTracker = Depends(get_progress_tracker),
) -> dict[str, Any]:
    return await tracker.get_course_progress(user.user_id, course_id)


@router.get("/progress/me")
async def my_progress(
    user: TokenPayload = Depends(get_current_user),
    tracker: ProgressTracker = Depends(get_progress_tracker),
) -> dict[str, Any]:
    return await tracker.get_user_progress(user.user_id)
