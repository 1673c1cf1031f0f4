import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.constants import FREE_ACCESS_PREFIX, PurchaseStatusEnum
from app.core.exceptions import (
    AccessDeniedError,
    AlreadyPurchasedError,
    InvalidCourseError,
    UnknownPaymentError,
)
from app.crud.course import course as course_crud
from app.crud.purchase import purchase as purchase_crud
from app.crud.user import user as user_crud
from app.models.course import Course
from app.models.purchase import Purchase
from app.schemas.purchase import PurchaseCreate, PurchaseStatistics
from app.services.account import AccountService, ProvisionedAccount, account_service

logger = logging.getLogger(__name__)


@dataclass
class PurchaseConfirmation:
    purchase: Purchase
    changed: bool
    account: Optional[ProvisionedAccount] = None


class AccessGateService:
    """Owns the purchase ledger and answers whether a user may access a course."""

    def __init__(self, provisioner: AccountService = account_service):
        self.provisioner = provisioner

    def has_completed_access(self, db: Session, user_id: Optional[int], course_id: int) -> bool:
        if not user_id:
            return False
        return purchase_crud.has_completed(db, user_id=user_id, course_id=course_id)

    def has_premium_access(self, db: Session, user_id: Optional[int], course_id: int) -> bool:
        if not user_id:
            return False
        return purchase_crud.has_completed(db, user_id=user_id, course_id=course_id, premium_only=True)

    def require_access(self, db: Session, user_id: Optional[int], course_id: int):
        if not self.has_completed_access(db, user_id, course_id):
            raise AccessDeniedError("You do not have access to this course.")

    def get_purchasable_course(self, db: Session, course_id: int) -> Course:
        course = course_crud.get_active(db, course_id)
        if not course:
            raise InvalidCourseError()
        return course

    def resolve_price(self, course: Course, is_premium: bool) -> Decimal:
        if is_premium:
            if not course.premium_enabled or course.premium_price is None or course.premium_price <= 0:
                raise InvalidCourseError("Premium price not set for this course.")
            return Decimal(course.premium_price)
        if course.price is None or course.price <= 0:
            raise InvalidCourseError("Course price not set.")
        return Decimal(course.price)

    def check_can_purchase(
        self,
        db: Session,
        *,
        course_id: int,
        is_premium: bool,
        user_id: Optional[int] = None,
        customer_email: Optional[str] = None
    ) -> Tuple[Course, Decimal]:
        """Validate course and tier, returning the course and the price to charge."""
        course = self.get_purchasable_course(db, course_id)
        amount = self.resolve_price(course, is_premium)

        owner_id = user_id
        if owner_id is None and customer_email:
            existing_user = user_crud.get_by_email(db, email=customer_email)
            owner_id = existing_user.id if existing_user else None

        if self.has_completed_access(db, owner_id, course_id):
            raise AlreadyPurchasedError()
        return course, amount

    def record_purchase_attempt(
        self,
        db: Session,
        *,
        course_id: int,
        is_premium: bool,
        payment_intent_id: str,
        user_id: Optional[int] = None,
        customer_email: Optional[str] = None
    ) -> Purchase:
        if user_id is None and not customer_email:
            raise ValueError("A purchase needs a user or a customer email")
        if customer_email:
            customer_email = customer_email.strip().lower()

        course, amount = self.check_can_purchase(
            db, course_id=course_id, is_premium=is_premium, user_id=user_id, customer_email=customer_email
        )

        removed = purchase_crud.delete_pending(
            db, course_id=course_id, user_id=user_id, customer_email=customer_email
        )
        if removed:
            logger.info(f"Replaced {removed} pending purchase(s) for course {course_id}")

        purchase = purchase_crud.create(db, obj_in=PurchaseCreate(
            user_id=user_id,
            customer_email=customer_email,
            course_id=course_id,
            payment_intent_id=payment_intent_id,
            amount=amount,
            currency=course.currency,
            is_premium=is_premium,
            status=PurchaseStatusEnum.PENDING,
            is_guest_checkout=user_id is None,
        ))
        logger.info(
            f"Recorded pending purchase {purchase.id} for course {course_id} "
            f"(user={user_id}, email={customer_email}, intent={payment_intent_id})"
        )
        return purchase

    def confirm_purchase(self, db: Session, payment_intent_id: str) -> PurchaseConfirmation:
        """
        Move a purchase to completed. Safe to call any number of times for the same intent.

        A guest purchase is bound to the account for its customer email; the
        account is created when none exists yet.
        """
        purchase = purchase_crud.get_by_payment_intent(db, payment_intent_id, for_update=True)
        if not purchase:
            raise UnknownPaymentError(payment_intent_id)

        if purchase.status == PurchaseStatusEnum.COMPLETED:
            return PurchaseConfirmation(purchase=purchase, changed=False)

        account = None
        if purchase.user_id is None:
            account = self.provisioner.resolve_or_create(db, purchase.customer_email)
            purchase.user_id = account.user.id
            db.flush()

        existing_grant = purchase_crud.get_completed(db, user_id=purchase.user_id, course_id=purchase.course_id)
        if existing_grant:
            logger.error(
                f"Payment {payment_intent_id} succeeded but user {purchase.user_id} already owns "
                f"course {purchase.course_id} via {existing_grant.payment_intent_id}; needs manual refund"
            )
            db.commit()
            return PurchaseConfirmation(purchase=existing_grant, changed=False, account=account)

        try:
            updated = purchase_crud.mark_completed(db, payment_intent_id=payment_intent_id)
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.error(f"Concurrent grant while confirming {payment_intent_id}; keeping the existing one")
            purchase = purchase_crud.get_by_payment_intent(db, payment_intent_id)
            return PurchaseConfirmation(purchase=purchase, changed=False)

        db.refresh(purchase)
        if updated:
            logger.info(
                f"Purchase {purchase.id} completed for user {purchase.user_id}, course {purchase.course_id}"
            )
        return PurchaseConfirmation(purchase=purchase, changed=bool(updated), account=account)

    def fail_purchase(self, db: Session, payment_intent_id: str) -> Purchase:
        purchase = purchase_crud.get_by_payment_intent(db, payment_intent_id, for_update=True)
        if not purchase:
            raise UnknownPaymentError(payment_intent_id)

        if purchase_crud.mark_failed(db, payment_intent_id=payment_intent_id):
            logger.info(f"Purchase {purchase.id} marked failed (intent={payment_intent_id})")
        db.commit()
        db.refresh(purchase)
        return purchase

    def grant_free_access(self, db: Session, user_id: int, course_id: int) -> Purchase:
        course = course_crud.get(db, course_id)
        if not course:
            raise InvalidCourseError()
        if not user_crud.get(db, user_id):
            raise AccessDeniedError("User not found.")

        existing = purchase_crud.get_completed(db, user_id=user_id, course_id=course_id)
        if existing:
            return existing

        try:
            grant = purchase_crud.create(db, obj_in=PurchaseCreate(
                user_id=user_id,
                course_id=course_id,
                payment_intent_id=f"{FREE_ACCESS_PREFIX}{uuid.uuid4().hex}",
                amount=Decimal("0"),
                currency=course.currency,
                is_premium=False,
                status=PurchaseStatusEnum.COMPLETED,
            ))
        except IntegrityError:
            db.rollback()
            return purchase_crud.get_completed(db, user_id=user_id, course_id=course_id)

        logger.info(f"Granted free access to course {course_id} for user {user_id}")
        return grant

    def revoke_access(self, db: Session, user_id: int, course_id: int) -> int:
        removed = purchase_crud.delete_completed(db, user_id=user_id, course_id=course_id)
        db.commit()
        logger.info(f"Revoked access to course {course_id} for user {user_id} ({removed} grant(s) removed)")
        return removed

    def get_user_purchased_courses(self, db: Session, user_id: int) -> List[Purchase]:
        return purchase_crud.get_completed_by_user(db, user_id=user_id)

    def get_course_purchases(
        self,
        db: Session,
        *,
        email: Optional[str] = None,
        is_premium: Optional[bool] = None,
        course_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Purchase]:
        return purchase_crud.search_completed(
            db, email=email, is_premium=is_premium, course_id=course_id, skip=skip, limit=limit
        )

    def get_purchase_statistics(self, db: Session) -> PurchaseStatistics:
        total, revenue = purchase_crud.completed_totals(db)
        premium, premium_revenue = purchase_crud.completed_totals(db, premium_only=True)
        return PurchaseStatistics(
            total_purchases=total,
            premium_purchases=premium,
            standard_purchases=total - premium,
            total_revenue=revenue,
            premium_revenue=premium_revenue,
            standard_revenue=revenue - premium_revenue,
        )


access_gate = AccessGateService()
