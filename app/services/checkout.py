import logging
from typing import Any, Dict, Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.core.constants import PaymentIntentStatusEnum, PurchaseStatusEnum, PurchaseTierEnum, WebhookEventEnum
from app.core.exceptions import AccessDeniedError, AlreadyPurchasedError, UnknownPaymentError
from app.core.security import create_access_token
from app.crud.purchase import purchase as purchase_crud
from app.models.purchase import Purchase as PurchaseModel
from app.models.user import User
from app.schemas.purchase import CheckoutSession, PaymentConfirmation, Purchase
from app.services.access import AccessGateService, PurchaseConfirmation, access_gate
from app.services.cache_service import cache_service
from app.services.email import EmailService
from app.services.payment import PaymentProcessor

logger = logging.getLogger(__name__)


class CheckoutService:
    """Drives a purchase through the payment processor and the access ledger."""

    def __init__(self, access: AccessGateService = access_gate):
        self.access = access

    async def _start(
        self,
        db: Session,
        processor: PaymentProcessor,
        *,
        course_id: int,
        is_premium: bool,
        user_id: Optional[int] = None,
        customer_email: Optional[str] = None
    ) -> CheckoutSession:
        try:
            course, amount = self.access.check_can_purchase(
                db, course_id=course_id, is_premium=is_premium, user_id=user_id, customer_email=customer_email
            )
            tier = PurchaseTierEnum.PREMIUM if is_premium else PurchaseTierEnum.STANDARD
            metadata = {"course_id": str(course_id), "tier": tier.value}
            if user_id is not None:
                metadata["user_id"] = str(user_id)
            if customer_email:
                metadata["customer_email"] = customer_email

            intent = await run_in_threadpool(
                processor.create_intent, amount=amount, currency=course.currency, metadata=metadata
            )

            purchase = self.access.record_purchase_attempt(
                db,
                course_id=course_id,
                is_premium=is_premium,
                payment_intent_id=intent.id,
                user_id=user_id,
                customer_email=customer_email,
            )
        except AlreadyPurchasedError:
            logger.info(f"Checkout skipped, course {course_id} already owned (user={user_id}, email={customer_email})")
            return CheckoutSession(already_purchased=True)

        return CheckoutSession(
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            purchase=Purchase.model_validate(purchase),
        )

    async def start_purchase(
        self, db: Session, processor: PaymentProcessor, *, user: User, course_id: int, is_premium: bool
    ) -> CheckoutSession:
        return await self._start(
            db, processor, course_id=course_id, is_premium=is_premium, user_id=user.id, customer_email=user.email
        )

    async def start_guest_purchase(
        self, db: Session, processor: PaymentProcessor, *, customer_email: str, course_id: int, is_premium: bool
    ) -> CheckoutSession:
        return await self._start(
            db, processor, course_id=course_id, is_premium=is_premium, customer_email=customer_email.strip().lower()
        )

    def _check_owner(self, purchase: PurchaseModel, user: Optional[User], customer_email: Optional[str]):
        if user is not None:
            if purchase.user_id != user.id:
                raise AccessDeniedError("This payment does not belong to you.")
            return
        if not purchase.is_guest_checkout:
            raise AccessDeniedError("This payment must be confirmed by the signed-in buyer.")
        if not customer_email or (purchase.customer_email or "") != customer_email.strip().lower():
            raise AccessDeniedError("Email address does not match this purchase.")

    async def _after_confirmation(self, result: PurchaseConfirmation):
        if result.changed:
            await cache_service.invalidate_user_cache(result.purchase.user_id)

        account = result.account
        if account and account.created:
            await EmailService.send_welcome_email(
                to_email=account.user.email,
                username=account.user.username,
                password=account.password,
                course_title=result.purchase.course.title,
            )

    async def confirm_payment(
        self,
        db: Session,
        processor: PaymentProcessor,
        *,
        payment_intent_id: str,
        user: Optional[User] = None,
        customer_email: Optional[str] = None
    ) -> PaymentConfirmation:
        purchase = purchase_crud.get_by_payment_intent(db, payment_intent_id)
        if not purchase:
            logger.warning(f"Confirmation requested for untracked payment intent {payment_intent_id}")
            return PaymentConfirmation(status="processing")

        self._check_owner(purchase, user, customer_email)

        if purchase.status == PurchaseStatusEnum.COMPLETED:
            return PaymentConfirmation(status="completed", purchase=Purchase.model_validate(purchase))

        intent = await run_in_threadpool(processor.retrieve_intent, payment_intent_id)

        if intent.status == PaymentIntentStatusEnum.SUCCEEDED:
            try:
                result = self.access.confirm_purchase(db, payment_intent_id)
            except UnknownPaymentError:
                logger.warning(f"Purchase for {payment_intent_id} disappeared before confirmation")
                return PaymentConfirmation(status="processing")
            await self._after_confirmation(result)

            confirmation = PaymentConfirmation(
                status="completed",
                purchase=Purchase.model_validate(result.purchase),
                user_created=bool(result.account and result.account.created),
            )
            # Auto-login only for an account this confirmation created.
            if user is None and result.account is not None and result.account.created:
                confirmation.access_token = create_access_token(
                    data={"user_id": result.account.user.id}, email=result.account.user.email
                )
            return confirmation

        if intent.status == PaymentIntentStatusEnum.FAILED:
            failed = self.access.fail_purchase(db, payment_intent_id)
            return PaymentConfirmation(status="failed", purchase=Purchase.model_validate(failed))

        return PaymentConfirmation(status="pending", purchase=Purchase.model_validate(purchase))

    async def handle_webhook_event(self, db: Session, event: Dict[str, Any]):
        event_type = event.get("type")
        intent = (event.get("data") or {}).get("object") or {}
        payment_intent_id = intent.get("id")

        if event_type == WebhookEventEnum.PAYMENT_SUCCEEDED.value:
            try:
                result = self.access.confirm_purchase(db, payment_intent_id)
            except UnknownPaymentError:
                logger.warning(f"Webhook for unknown payment intent {payment_intent_id}, ignoring")
                return
            await self._after_confirmation(result)
        elif event_type == WebhookEventEnum.PAYMENT_FAILED.value:
            try:
                self.access.fail_purchase(db, payment_intent_id)
            except UnknownPaymentError:
                logger.warning(f"Webhook for unknown payment intent {payment_intent_id}, ignoring")
        else:
            logger.info(f"Unhandled webhook event type: {event_type}")


checkout_service = CheckoutService()
