from enum import Enum


FREE_ACCESS_PREFIX = "free_access_"
SIMULATED_INTENT_PREFIX = "pi_test_"
LEARNING_STREAK_WINDOW_DAYS = 30

class RoleEnum(str, Enum):
    ADMIN = "admin"
    STUDENT = "student"

class PurchaseStatusEnum(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

class PaymentIntentStatusEnum(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

class PurchaseTierEnum(str, Enum):
    STANDARD = "standard"
    PREMIUM = "premium"

class WebhookEventEnum(str, Enum):
    PAYMENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_FAILED = "payment_intent.payment_failed"
