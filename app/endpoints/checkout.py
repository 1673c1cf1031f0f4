from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.models.user import User
from app.schemas.purchase import (
    CheckoutSession,
    ConfirmPaymentRequest,
    GuestConfirmPaymentRequest,
    GuestPurchaseRequest,
    PaymentConfirmation,
    PurchaseRequest,
)
from app.schemas.response import APIResponse
from app.services.checkout import checkout_service
from app.services.payment import PaymentProcessor
from app.utils import deps

router = APIRouter()

def _session_message(session: CheckoutSession) -> str:
    if session.already_purchased:
        return "You already have access to this course."
    return "Payment intent created successfully"

@router.post("/purchase", response_model=APIResponse[CheckoutSession])
async def start_purchase(
    *,
    db: Session = Depends(deps.get_transactional_db),
    purchase_in: PurchaseRequest,
    current_user: User = Depends(deps.get_current_user),
    processor: PaymentProcessor = Depends(deps.get_payment_processor)
):
    session = await checkout_service.start_purchase(
        db, processor, user=current_user, course_id=purchase_in.course_id, is_premium=purchase_in.is_premium
    )
    return APIResponse(message=_session_message(session), data=session)


@router.post("/guest-purchase", response_model=APIResponse[CheckoutSession])
async def start_guest_purchase(
    *,
    db: Session = Depends(deps.get_transactional_db),
    purchase_in: GuestPurchaseRequest,
    processor: PaymentProcessor = Depends(deps.get_payment_processor)
):
    session = await checkout_service.start_guest_purchase(
        db,
        processor,
        customer_email=purchase_in.customer_email,
        course_id=purchase_in.course_id,
        is_premium=purchase_in.is_premium,
    )
    return APIResponse(message=_session_message(session), data=session)


@router.post("/confirm", response_model=APIResponse[PaymentConfirmation])
async def confirm_purchase(
    *,
    db: Session = Depends(deps.get_transactional_db),
    confirm_in: ConfirmPaymentRequest,
    current_user: User = Depends(deps.get_current_user),
    processor: PaymentProcessor = Depends(deps.get_payment_processor)
):
    confirmation = await checkout_service.confirm_payment(
        db, processor, payment_intent_id=confirm_in.payment_intent_id, user=current_user
    )
    return APIResponse(message=f"Payment {confirmation.status}", data=confirmation)


@router.post("/guest-confirm", response_model=APIResponse[PaymentConfirmation])
async def confirm_guest_purchase(
    *,
    db: Session = Depends(deps.get_transactional_db),
    confirm_in: GuestConfirmPaymentRequest,
    processor: PaymentProcessor = Depends(deps.get_payment_processor)
):
    confirmation = await checkout_service.confirm_payment(
        db, processor, payment_intent_id=confirm_in.payment_intent_id, customer_email=confirm_in.customer_email
    )
    return APIResponse(message=f"Payment {confirmation.status}", data=confirmation)
