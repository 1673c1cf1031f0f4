from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.models.user import User
from app.schemas.purchase import CourseAccess
from app.schemas.response import APIResponse
from app.services.access import access_gate
from app.utils import deps

router = APIRouter()

@router.get("/courses/{course_id}/access", response_model=APIResponse[CourseAccess])
def get_course_access(
    *,
    db: Session = Depends(deps.get_db),
    course_id: int,
    current_user: User = Depends(deps.get_current_user)
):
    access = CourseAccess(
        course_id=course_id,
        has_access=access_gate.has_completed_access(db, current_user.id, course_id),
        has_premium_access=access_gate.has_premium_access(db, current_user.id, course_id),
    )
    return APIResponse(message="Course access retrieved successfully", data=access)
