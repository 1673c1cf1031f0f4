from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.cache_config import CACHE_KEYS, CACHE_TTL
from app.core.decorators import cache_endpoint
from app.models.user import User
from app.schemas.response import APIResponse
from app.schemas.lesson_progress import (
    Certificate,
    CourseProgressReport,
    LearningStats,
    LessonCompletionResult,
    UserCourseProgress,
    VideoProgressRequest,
    VideoProgressResult,
)
from app.services.cache_service import cache_service
from app.services.course_progress import course_progress_service
from app.utils import deps

router = APIRouter()

@router.post("/lessons/{lesson_id}/progress", response_model=APIResponse[VideoProgressResult])
async def update_video_progress(
    *,
    db: Session = Depends(deps.get_transactional_db),
    lesson_id: int,
    progress_in: VideoProgressRequest,
    current_user: User = Depends(deps.get_current_user)
):
    result = course_progress_service.report_video_progress(
        db, user_id=current_user.id, lesson_id=lesson_id, watched_seconds=progress_in.watched_seconds
    )
    await cache_service.invalidate_progress_cache(current_user.id)
    return APIResponse(message="Progress updated successfully", data=result)


@router.post("/lessons/{lesson_id}/complete", response_model=APIResponse[LessonCompletionResult])
async def complete_lesson(
    *,
    db: Session = Depends(deps.get_transactional_db),
    lesson_id: int,
    current_user: User = Depends(deps.get_current_user)
):
    result = course_progress_service.mark_lesson_complete(db, user_id=current_user.id, lesson_id=lesson_id)
    await cache_service.invalidate_progress_cache(current_user.id)
    return APIResponse(message="Lesson completed successfully", data=result)


@router.get("/courses/{course_id}/progress", response_model=APIResponse[CourseProgressReport])
@cache_endpoint(ttl=CACHE_TTL["course_progress"], key_prefix=CACHE_KEYS["course_progress"])
async def get_course_progress(
    *,
    db: Session = Depends(deps.get_db),
    course_id: int,
    current_user: User = Depends(deps.get_current_user)
):
    report = course_progress_service.get_course_progress(db, user_id=current_user.id, course_id=course_id)
    return APIResponse(message="Course progress retrieved successfully", data=report)


@router.get("/courses/{course_id}/certificate", response_model=APIResponse[Certificate])
def get_certificate(
    *,
    db: Session = Depends(deps.get_db),
    course_id: int,
    current_user: User = Depends(deps.get_current_user)
):
    certificate = course_progress_service.generate_certificate(db, user=current_user, course_id=course_id)
    return APIResponse(message="Certificate generated successfully", data=certificate)


@router.get("/users/me/courses", response_model=APIResponse[List[UserCourseProgress]])
@cache_endpoint(ttl=CACHE_TTL["user_courses"], key_prefix=CACHE_KEYS["user_courses"])
async def get_my_courses(
    *,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user)
):
    courses = course_progress_service.get_user_courses(db, user_id=current_user.id)
    return APIResponse(message="Courses retrieved successfully", data=courses)


@router.get("/users/me/stats", response_model=APIResponse[LearningStats])
@cache_endpoint(ttl=CACHE_TTL["learning_stats"], key_prefix=CACHE_KEYS["learning_stats"])
async def get_my_learning_stats(
    *,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user)
):
    stats = course_progress_service.get_user_learning_stats(db, user_id=current_user.id)
    return APIResponse(message="Learning statistics retrieved successfully", data=stats)
