from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base

class Lesson(Base):
    __tablename__ = "lessons"
    __table_args__ = (
        CheckConstraint("duration >= 0", name="ck_lessons_duration_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, index=True, nullable=False)
    order = Column(Integer, nullable=False, default=0)
    duration = Column(Integer, nullable=False, default=0) # Duration in seconds
    video_url = Column(String, nullable=True)
    chapter_id = Column(Integer, ForeignKey("chapters.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    chapter = relationship("Chapter", back_populates="lessons")
    progress_records = relationship("LessonProgress", back_populates="lesson")

    @property
    def course_id(self):
        return self.chapter.course_id if self.chapter else None
