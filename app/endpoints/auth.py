from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.schemas.response import APIResponse
from app.schemas.token import LoginRequest, LoginResponse
from app.schemas.user import User
from app.services.auth import auth_service
from app.utils import deps

router = APIRouter()

@router.post("/login", response_model=APIResponse[LoginResponse])
def login_for_access_token(
    request: LoginRequest,
    db: Session = Depends(deps.get_db)
):
    login_response = auth_service.login(db, email=request.email, password=request.password)
    return APIResponse(message="Login successful", data=login_response)


@router.get("/me", response_model=APIResponse[User])
def read_current_user(current_user=Depends(deps.get_current_user)):
    return APIResponse(message="Current user retrieved successfully", data=User.model_validate(current_user))
