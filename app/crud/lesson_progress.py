from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Union
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models.lesson_progress import LessonProgress
from app.schemas.lesson_progress import LessonProgressCreate, LessonProgressUpdate


@dataclass(frozen=True)
class SetCompleted:
    value: bool


@dataclass(frozen=True)
class LeaveCompletedUnchanged:
    pass


CompletionUpdate = Union[SetCompleted, LeaveCompletedUnchanged]


class CRUDLessonProgress(CRUDBase[LessonProgress, LessonProgressCreate, LessonProgressUpdate]):

    def get_by_user_and_lesson(
        self, db: Session, *, user_id: int, lesson_id: int, for_update: bool = False
    ) -> Optional[LessonProgress]:
        query = (
            db.query(LessonProgress)
            .filter(LessonProgress.user_id == user_id)
            .filter(LessonProgress.lesson_id == lesson_id)
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_by_user_and_course(self, db: Session, *, user_id: int, course_id: int) -> List[LessonProgress]:
        return (
            db.query(LessonProgress)
            .filter(LessonProgress.user_id == user_id)
            .filter(LessonProgress.course_id == course_id)
            .order_by(LessonProgress.last_accessed.desc())
            .all()
        )

    def get_map_for_lessons(self, db: Session, *, user_id: int, lesson_ids: List[int]) -> Dict[int, LessonProgress]:
        if not lesson_ids:
            return {}
        rows = (
            db.query(LessonProgress)
            .filter(LessonProgress.user_id == user_id)
            .filter(LessonProgress.lesson_id.in_(lesson_ids))
            .all()
        )
        return {row.lesson_id: row for row in rows}

    def count_completed_by_user(self, db: Session, *, user_id: int) -> int:
        return (
            db.query(func.count(LessonProgress.id))
            .filter(LessonProgress.user_id == user_id)
            .filter(LessonProgress.completed.is_(True))
            .scalar()
        ) or 0

    def sum_video_progress_by_user(self, db: Session, *, user_id: int) -> int:
        return (
            db.query(func.coalesce(func.sum(LessonProgress.video_progress), 0))
            .filter(LessonProgress.user_id == user_id)
            .scalar()
        ) or 0

    def get_access_times_since(self, db: Session, *, user_id: int, since: datetime) -> List[datetime]:
        rows = (
            db.query(LessonProgress.last_accessed)
            .filter(LessonProgress.user_id == user_id)
            .filter(LessonProgress.last_accessed >= since)
            .all()
        )
        return [row[0] for row in rows]

    def upsert(
        self,
        db: Session,
        *,
        user_id: int,
        course_id: int,
        lesson_id: int,
        video_progress: Optional[int],
        completion: CompletionUpdate,
        now: datetime
    ) -> LessonProgress:
        """
        Insert or update the (user, lesson) row under a row lock.

        ``video_progress=None`` keeps the stored position. Completion only moves
        forward: ``SetCompleted(True)`` is a conditional update so a row that is
        already completed keeps its first timestamp, and ``SetCompleted(False)``
        is rejected.
        """
        if isinstance(completion, SetCompleted) and not completion.value:
            raise ValueError("Lesson completion cannot be cleared")

        existing = self.get_by_user_and_lesson(db, user_id=user_id, lesson_id=lesson_id, for_update=True)

        if existing is None:
            mark = isinstance(completion, SetCompleted)
            record = LessonProgress(
                user_id=user_id,
                course_id=course_id,
                lesson_id=lesson_id,
                video_progress=video_progress or 0,
                completed=mark,
                completed_at=now if mark else None,
                last_accessed=now,
            )
            db.add(record)
            try:
                db.flush()
                return record
            except IntegrityError:
                # A concurrent writer inserted the row first; continue as an update.
                db.rollback()
                existing = self.get_by_user_and_lesson(db, user_id=user_id, lesson_id=lesson_id, for_update=True)

        values = {LessonProgress.last_accessed: now}
        if video_progress is not None:
            values[LessonProgress.video_progress] = video_progress
        db.query(LessonProgress).filter(LessonProgress.id == existing.id).update(
            values, synchronize_session=False
        )

        if isinstance(completion, SetCompleted):
            (
                db.query(LessonProgress)
                .filter(LessonProgress.id == existing.id)
                .filter(LessonProgress.completed.is_(False))
                .update(
                    {LessonProgress.completed: True, LessonProgress.completed_at: now},
                    synchronize_session=False,
                )
            )

        db.flush()
        db.refresh(existing)
        return existing


lesson_progress = CRUDLessonProgress(LessonProgress)
