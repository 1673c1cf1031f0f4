import logging

from fastapi import APIRouter, Request, Depends, HTTPException
from sqlalchemy.orm import Session

from app.services.checkout import checkout_service
from app.services.payment import PaymentProcessor
from app.utils import deps

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(deps.get_db),
    processor: PaymentProcessor = Depends(deps.get_payment_processor)
):
    payload = await request.body()
    sig_header = request.headers.get('stripe-signature')

    try:
        event = processor.construct_event(payload, sig_header)
    except ValueError as e:
        logger.warning(f"Rejected webhook payload: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    await checkout_service.handle_webhook_event(db, event)
    return {"status": "success"}
