from decimal import Decimal
from typing import List, Optional
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from app.core.constants import PurchaseStatusEnum
from app.crud.base import CRUDBase
from app.models.purchase import Purchase
from app.models.user import User
from app.schemas.purchase import PurchaseCreate, PurchaseUpdate


class CRUDPurchase(CRUDBase[Purchase, PurchaseCreate, PurchaseUpdate]):

    def _principal_filter(self, query, *, user_id: Optional[int], customer_email: Optional[str]):
        if user_id is not None:
            return query.filter(Purchase.user_id == user_id)
        return query.filter(Purchase.user_id.is_(None), Purchase.customer_email == customer_email)

    def get_by_payment_intent(self, db: Session, payment_intent_id: str, *, for_update: bool = False) -> Optional[Purchase]:
        query = db.query(Purchase).filter(Purchase.payment_intent_id == payment_intent_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_completed(self, db: Session, *, user_id: int, course_id: int) -> Optional[Purchase]:
        return (
            db.query(Purchase)
            .filter(Purchase.user_id == user_id)
            .filter(Purchase.course_id == course_id)
            .filter(Purchase.status == PurchaseStatusEnum.COMPLETED)
            .order_by(Purchase.purchased_at.desc())
            .first()
        )

    def has_completed(self, db: Session, *, user_id: int, course_id: int, premium_only: bool = False) -> bool:
        query = (
            db.query(Purchase.id)
            .filter(Purchase.user_id == user_id)
            .filter(Purchase.course_id == course_id)
            .filter(Purchase.status == PurchaseStatusEnum.COMPLETED)
        )
        if premium_only:
            query = query.filter(Purchase.is_premium.is_(True))
        return query.first() is not None

    def delete_pending(
        self, db: Session, *, course_id: int, user_id: Optional[int] = None, customer_email: Optional[str] = None
    ) -> int:
        query = (
            db.query(Purchase)
            .filter(Purchase.course_id == course_id)
            .filter(Purchase.status == PurchaseStatusEnum.PENDING)
        )
        query = self._principal_filter(query, user_id=user_id, customer_email=customer_email)
        return query.delete(synchronize_session=False)

    def mark_completed(self, db: Session, *, payment_intent_id: str) -> int:
        """Compare-and-swap to completed. Returns 0 when the row was already completed."""
        return (
            db.query(Purchase)
            .filter(Purchase.payment_intent_id == payment_intent_id)
            .filter(Purchase.status != PurchaseStatusEnum.COMPLETED)
            .update({Purchase.status: PurchaseStatusEnum.COMPLETED}, synchronize_session=False)
        )

    def mark_failed(self, db: Session, *, payment_intent_id: str) -> int:
        return (
            db.query(Purchase)
            .filter(Purchase.payment_intent_id == payment_intent_id)
            .filter(Purchase.status == PurchaseStatusEnum.PENDING)
            .update({Purchase.status: PurchaseStatusEnum.FAILED}, synchronize_session=False)
        )

    def delete_completed(self, db: Session, *, user_id: int, course_id: int) -> int:
        return (
            db.query(Purchase)
            .filter(Purchase.user_id == user_id)
            .filter(Purchase.course_id == course_id)
            .filter(Purchase.status == PurchaseStatusEnum.COMPLETED)
            .delete(synchronize_session=False)
        )

    def get_completed_by_user(self, db: Session, *, user_id: int) -> List[Purchase]:
        return (
            db.query(Purchase)
            .filter(Purchase.user_id == user_id)
            .filter(Purchase.status == PurchaseStatusEnum.COMPLETED)
            .order_by(Purchase.purchased_at.desc())
            .all()
        )

    def search_completed(
        self,
        db: Session,
        *,
        email: Optional[str] = None,
        is_premium: Optional[bool] = None,
        course_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Purchase]:
        query = (
            db.query(Purchase)
            .outerjoin(User, User.id == Purchase.user_id)
            .options(joinedload(Purchase.user))
            .filter(Purchase.status == PurchaseStatusEnum.COMPLETED)
        )
        if email:
            term = f"%{email}%"
            query = query.filter(or_(Purchase.customer_email.ilike(term), User.email.ilike(term)))
        if is_premium is not None:
            query = query.filter(Purchase.is_premium.is_(is_premium))
        if course_id:
            query = query.filter(Purchase.course_id == course_id)
        return query.order_by(Purchase.purchased_at.desc()).offset(skip).limit(limit).all()

    def completed_totals(self, db: Session, *, premium_only: bool = False) -> tuple[int, Decimal]:
        query = db.query(func.count(Purchase.id), func.coalesce(func.sum(Purchase.amount), 0)).filter(
            Purchase.status == PurchaseStatusEnum.COMPLETED
        )
        if premium_only:
            query = query.filter(Purchase.is_premium.is_(True))
        count, revenue = query.one()
        return int(count or 0), Decimal(str(revenue or 0))


purchase = CRUDPurchase(Purchase)
