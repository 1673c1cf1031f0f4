from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional
from decimal import Decimal
from datetime import datetime

from app.core.constants import PurchaseStatusEnum, PurchaseTierEnum


class PurchaseBase(BaseModel):
    course_id: int
    amount: Decimal
    currency: str
    is_premium: bool = False
    payment_intent_id: str


class PurchaseCreate(PurchaseBase):
    user_id: Optional[int] = None
    customer_email: Optional[str] = None
    status: PurchaseStatusEnum = PurchaseStatusEnum.PENDING
    is_guest_checkout: bool = False


class PurchaseUpdate(BaseModel):
    user_id: Optional[int] = None
    status: Optional[PurchaseStatusEnum] = None


class Purchase(PurchaseBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[int] = None
    customer_email: Optional[str] = None
    status: PurchaseStatusEnum
    purchased_at: Optional[datetime] = None


class CourseAccess(BaseModel):
    course_id: int
    has_access: bool
    has_premium_access: bool


class PurchaseStatistics(BaseModel):
    total_purchases: int
    premium_purchases: int
    standard_purchases: int
    total_revenue: Decimal
    premium_revenue: Decimal
    standard_revenue: Decimal


class PurchaseRequest(BaseModel):
    course_id: int
    tier: PurchaseTierEnum = PurchaseTierEnum.STANDARD

    @property
    def is_premium(self) -> bool:
        return self.tier == PurchaseTierEnum.PREMIUM


class GuestPurchaseRequest(PurchaseRequest):
    customer_email: EmailStr


class ConfirmPaymentRequest(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)


class GuestConfirmPaymentRequest(ConfirmPaymentRequest):
    customer_email: EmailStr


class CheckoutSession(BaseModel):
    already_purchased: bool = False
    payment_intent_id: Optional[str] = None
    client_secret: Optional[str] = None
    purchase: Optional[Purchase] = None


class PaymentConfirmation(BaseModel):
    status: str
    purchase: Optional[Purchase] = None
    user_created: bool = False
    access_token: Optional[str] = None
