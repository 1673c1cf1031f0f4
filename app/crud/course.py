from sqlalchemy.orm import Session, selectinload, joinedload
from typing import List, Optional

from app.crud.base import CRUDBase
from app.models.course import Course
from app.models.chapter import Chapter
from app.models.lesson import Lesson
from app.schemas.course import CourseCreate, CourseUpdate


class CRUDCourse(CRUDBase[Course, CourseCreate, CourseUpdate]):
    """Read access to the course → chapters → lessons tree owned by content management."""

    def _query_with_structure(self, db: Session):
        return db.query(Course).options(
            selectinload(Course.chapters).selectinload(Chapter.lessons)
        )

    def get(self, db: Session, id: int) -> Optional[Course]:
        return db.query(Course).filter(Course.id == id).first()

    def get_active(self, db: Session, id: int) -> Optional[Course]:
        return (
            db.query(Course)
            .filter(Course.id == id)
            .filter(Course.is_active.is_(True))
            .first()
        )

    def get_with_structure(self, db: Session, id: int) -> Optional[Course]:
        return self._query_with_structure(db).filter(Course.id == id).first()

    def get_many_with_structure(self, db: Session, ids: List[int]) -> List[Course]:
        if not ids:
            return []
        return self._query_with_structure(db).filter(Course.id.in_(ids)).all()

    def get_lesson(self, db: Session, lesson_id: int) -> Optional[Lesson]:
        return (
            db.query(Lesson)
            .options(joinedload(Lesson.chapter))
            .filter(Lesson.id == lesson_id)
            .first()
        )


course = CRUDCourse(Course)
