import logging

from sqlalchemy.orm import Session
from fastapi import HTTPException, status

from app.crud.user import user as crud_user
from app.core.security import verify_password, create_access_token
from app.schemas.token import LoginResponse, Token

logger = logging.getLogger(__name__)


class AuthService:
    def login(self, db: Session, *, email: str, password: str) -> LoginResponse:
        user = crud_user.get_by_email(db, email=email)
        if not user or not verify_password(password, user.hashed_password):
            logger.info(f"Failed login attempt for {email}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password",
            )

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User is not verified or inactive",
            )

        access_token = create_access_token(data={"user_id": user.id}, email=user.email)

        return LoginResponse(
            token=Token(access_token=access_token, token_type="bearer"),
            user=user,
        )


auth_service = AuthService()
