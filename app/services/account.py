import logging
import re
import secrets
import string
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from app.core.constants import RoleEnum
from app.core.security import get_password_hash
from app.crud.user import user as user_crud
from app.models.user import User

logger = logging.getLogger(__name__)

GENERATED_PASSWORD_LENGTH = 12
_USERNAME_STRIP = re.compile(r"[^a-z0-9._-]")


@dataclass
class ProvisionedAccount:
    user: User
    created: bool
    password: Optional[str] = None


class AccountService:
    """Resolves a guest buyer's email to a user, creating the account on first purchase."""

    def generate_password(self, length: int = GENERATED_PASSWORD_LENGTH) -> str:
        alphabet = string.ascii_letters + string.digits
        return "".join(secrets.choice(alphabet) for _ in range(length))

    def generate_username(self, db: Session, email: str) -> str:
        base = _USERNAME_STRIP.sub("", email.split("@", 1)[0].lower()) or "user"
        username = base
        counter = 1
        while user_crud.username_exists(db, username=username):
            username = f"{base}{counter}"
            counter += 1
        return username

    def resolve_or_create(self, db: Session, email: str) -> ProvisionedAccount:
        email = email.strip().lower()
        existing = user_crud.get_by_email(db, email=email)
        if existing:
            return ProvisionedAccount(user=existing, created=False)

        password = self.generate_password()
        new_user = User(
            username=self.generate_username(db, email),
            email=email,
            hashed_password=get_password_hash(password),
            role=RoleEnum.STUDENT,
            is_active=True,
        )
        db.add(new_user)
        db.flush()
        logger.info(f"Created account {new_user.username} (id={new_user.id}) for guest buyer {email}")
        return ProvisionedAccount(user=new_user, created=True, password=password)


account_service = AccountService()
