from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime, date


class LessonProgressBase(BaseModel):
    user_id: int
    course_id: int
    lesson_id: int


class LessonProgressCreate(LessonProgressBase):
    video_progress: int = 0
    completed: bool = False


class LessonProgressUpdate(BaseModel):
    video_progress: Optional[int] = None
    last_accessed: Optional[datetime] = None


class VideoProgressRequest(BaseModel):
    watched_seconds: int = Field(..., ge=0)


class VideoProgressResult(BaseModel):
    completed: bool
    video_progress: int
    lesson_duration: int


class LessonCompletionResult(BaseModel):
    completed: bool = True
    course_completion_percentage: float


class LessonProgressSummary(BaseModel):
    id: int
    title: str
    order: int
    duration: int
    video_url: Optional[str] = None
    video_progress: int = 0
    completed: bool = False
    completed_at: Optional[datetime] = None


class ChapterProgress(BaseModel):
    id: int
    title: str
    order: int
    lessons: List[LessonProgressSummary] = Field(default_factory=list)


class CourseProgressReport(BaseModel):
    course_id: int
    chapters: List[ChapterProgress] = Field(default_factory=list)
    total_lessons: int = 0
    completed_lessons: int = 0
    total_video_seconds: int = 0
    watched_video_seconds: int = 0
    completion_percentage: float = 0.0
    estimated_minutes_remaining: float = 0.0


class UserCourseProgress(BaseModel):
    course_id: int
    title: str
    purchased_at: Optional[datetime] = None
    is_premium: bool = False
    completion_percentage: float = 0.0


class LearningStats(BaseModel):
    total_courses: int = 0
    completed_lessons: int = 0
    total_minutes_watched: float = 0.0
    completed_courses: int = 0
    current_streak: int = 0


class Certificate(BaseModel):
    certificate_id: str
    user_name: str
    course_title: str
    completion_date: date
