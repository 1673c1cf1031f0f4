import logging
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.constants import LEARNING_STREAK_WINDOW_DAYS
from app.core.exceptions import CertificateUnavailableError, InvalidCourseError, InvalidLessonError
from app.crud.course import course as crud_course
from app.crud.lesson_progress import (
    LeaveCompletedUnchanged,
    SetCompleted,
    lesson_progress as crud_lesson_progress,
)
from app.models.course import Course
from app.models.lesson import Lesson
from app.models.user import User
from app.schemas.lesson_progress import (
    Certificate,
    ChapterProgress,
    CourseProgressReport,
    LearningStats,
    LessonCompletionResult,
    LessonProgressSummary,
    UserCourseProgress,
    VideoProgressResult,
)
from app.services.access import AccessGateService, access_gate

logger = logging.getLogger(__name__)


class CourseProgressService:

    def __init__(self, access: AccessGateService = access_gate, completion_threshold: Optional[float] = None):
        self.access = access
        threshold = settings.COMPLETION_THRESHOLD if completion_threshold is None else completion_threshold
        self.completion_threshold = Decimal(str(threshold))

    def _get_lesson_or_raise(self, db: Session, lesson_id: int) -> Lesson:
        lesson = crud_course.get_lesson(db, lesson_id)
        if not lesson or not lesson.chapter:
            raise InvalidLessonError()
        return lesson

    def _reaches_threshold(self, watched_seconds: int, duration: int) -> bool:
        # Zero-length lessons only complete through an explicit mark.
        if duration <= 0:
            return False
        return Decimal(watched_seconds) >= self.completion_threshold * duration

    def report_video_progress(self, db: Session, user_id: int, lesson_id: int, watched_seconds: int) -> VideoProgressResult:
        lesson = self._get_lesson_or_raise(db, lesson_id)
        course_id = lesson.chapter.course_id
        self.access.require_access(db, user_id, course_id)

        watched_seconds = max(0, int(watched_seconds))
        duration = max(0, lesson.duration or 0)
        completion = (
            SetCompleted(True) if self._reaches_threshold(watched_seconds, duration) else LeaveCompletedUnchanged()
        )

        record = crud_lesson_progress.upsert(
            db,
            user_id=user_id,
            course_id=course_id,
            lesson_id=lesson_id,
            video_progress=watched_seconds,
            completion=completion,
            now=datetime.now(timezone.utc),
        )
        db.commit()

        return VideoProgressResult(
            completed=record.completed,
            video_progress=record.video_progress,
            lesson_duration=duration,
        )

    def mark_lesson_complete(self, db: Session, user_id: int, lesson_id: int) -> LessonCompletionResult:
        lesson = self._get_lesson_or_raise(db, lesson_id)
        course_id = lesson.chapter.course_id
        self.access.require_access(db, user_id, course_id)

        crud_lesson_progress.upsert(
            db,
            user_id=user_id,
            course_id=course_id,
            lesson_id=lesson_id,
            video_progress=None,
            completion=SetCompleted(True),
            now=datetime.now(timezone.utc),
        )
        db.commit()
        logger.info(f"User {user_id} completed lesson {lesson_id} of course {course_id}")

        course = crud_course.get_with_structure(db, course_id)
        report = self._build_report(db, user_id, course)
        return LessonCompletionResult(completed=True, course_completion_percentage=report.completion_percentage)

    def get_course_progress(self, db: Session, user_id: int, course_id: int) -> CourseProgressReport:
        course = crud_course.get_with_structure(db, course_id)
        if not course:
            raise InvalidCourseError()
        self.access.require_access(db, user_id, course_id)
        return self._build_report(db, user_id, course)

    def _build_report(self, db: Session, user_id: int, course: Course) -> CourseProgressReport:
        progress = crud_lesson_progress.get_map_for_lessons(
            db, user_id=user_id, lesson_ids=[lesson.id for lesson in course.lessons]
        )

        chapters = []
        total_lessons = completed_lessons = total_seconds = watched_seconds = 0
        for chapter in course.chapters:
            summaries = []
            for lesson in chapter.lessons:
                duration = max(0, lesson.duration or 0)
                row = progress.get(lesson.id)
                video_progress = max(0, row.video_progress) if row else 0
                completed = bool(row and row.completed)

                total_lessons += 1
                total_seconds += duration
                watched_seconds += min(video_progress, duration)
                if completed:
                    completed_lessons += 1

                summaries.append(LessonProgressSummary(
                    id=lesson.id,
                    title=lesson.title,
                    order=lesson.order,
                    duration=duration,
                    video_url=lesson.video_url,
                    video_progress=video_progress,
                    completed=completed,
                    completed_at=row.completed_at if row else None,
                ))
            chapters.append(ChapterProgress(id=chapter.id, title=chapter.title, order=chapter.order, lessons=summaries))

        percentage = (watched_seconds * 100 / total_seconds) if total_seconds > 0 else 0.0

        return CourseProgressReport(
            course_id=course.id,
            chapters=chapters,
            total_lessons=total_lessons,
            completed_lessons=completed_lessons,
            total_video_seconds=total_seconds,
            watched_video_seconds=watched_seconds,
            completion_percentage=percentage,
            estimated_minutes_remaining=max(0, (total_seconds - watched_seconds) / 60),
        )

    def get_user_courses(self, db: Session, user_id: int) -> List[UserCourseProgress]:
        purchases = self.access.get_user_purchased_courses(db, user_id)
        courses = {c.id: c for c in crud_course.get_many_with_structure(db, [p.course_id for p in purchases])}

        results = []
        for purchase in purchases:
            course = courses.get(purchase.course_id)
            if not course:
                continue
            report = self._build_report(db, user_id, course)
            results.append(UserCourseProgress(
                course_id=course.id,
                title=course.title,
                purchased_at=purchase.purchased_at,
                is_premium=purchase.is_premium,
                completion_percentage=report.completion_percentage,
            ))
        return results

    def _current_streak(self, db: Session, user_id: int) -> int:
        today = datetime.now(timezone.utc).date()
        since = datetime.now(timezone.utc) - timedelta(days=LEARNING_STREAK_WINDOW_DAYS)
        active_days = {
            accessed.date()
            for accessed in crud_lesson_progress.get_access_times_since(db, user_id=user_id, since=since)
            if accessed
        }

        # A streak still counts if the last activity was yesterday.
        day = today if today in active_days else today - timedelta(days=1)
        streak = 0
        while day in active_days:
            streak += 1
            day -= timedelta(days=1)
        return streak

    def get_user_learning_stats(self, db: Session, user_id: int) -> LearningStats:
        courses = self.get_user_courses(db, user_id)
        seconds_watched = crud_lesson_progress.sum_video_progress_by_user(db, user_id=user_id)

        return LearningStats(
            total_courses=len(courses),
            completed_lessons=crud_lesson_progress.count_completed_by_user(db, user_id=user_id),
            total_minutes_watched=round(seconds_watched / 60, 1),
            completed_courses=sum(1 for c in courses if c.completion_percentage >= 100),
            current_streak=self._current_streak(db, user_id),
        )

    def generate_certificate(self, db: Session, user: User, course_id: int) -> Certificate:
        report = self.get_course_progress(db, user.id, course_id)
        if report.completion_percentage < 100:
            raise CertificateUnavailableError(
                f"Course is {report.completion_percentage:.1f}% complete; certificates require 100%."
            )

        course = crud_course.get(db, course_id)
        return Certificate(
            certificate_id=f"CERT-{course_id}-{user.id}-{int(time.time())}",
            user_name=user.full_name or user.username,
            course_title=course.title,
            completion_date=datetime.now(timezone.utc).date(),
        )


course_progress_service = CourseProgressService()
