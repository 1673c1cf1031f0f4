import json
import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import stripe

from app.core.config import Settings, settings
from app.core.constants import PaymentIntentStatusEnum, SIMULATED_INTENT_PREFIX
from app.core.exceptions import ExternalPaymentError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    status: PaymentIntentStatusEnum
    client_secret: Optional[str] = None


@dataclass(frozen=True)
class StripeConfig:
    secret_key: str
    webhook_secret: str
    timeout_seconds: int = 30
    test_mode: bool = True

    @classmethod
    def from_settings(cls, config: Settings) -> "StripeConfig":
        if config.STRIPE_TEST_MODE:
            return cls(
                secret_key=config.STRIPE_TEST_SECRET_KEY,
                webhook_secret=config.STRIPE_TEST_WEBHOOK_SECRET,
                timeout_seconds=config.STRIPE_TIMEOUT_SECONDS,
                test_mode=True,
            )
        return cls(
            secret_key=config.STRIPE_LIVE_SECRET_KEY,
            webhook_secret=config.STRIPE_LIVE_WEBHOOK_SECRET,
            timeout_seconds=config.STRIPE_TIMEOUT_SECONDS,
            test_mode=False,
        )


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentProcessor(ABC):
    @abstractmethod
    def create_intent(self, *, amount: Decimal, currency: str, metadata: Dict[str, str]) -> PaymentIntent:
        pass

    @abstractmethod
    def retrieve_intent(self, payment_intent_id: str) -> PaymentIntent:
        pass

    @abstractmethod
    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify and decode a webhook payload. Raises ValueError on a malformed or unsigned payload."""


class StripePaymentProcessor(PaymentProcessor):
    _STATUS_MAP = {
        "succeeded": PaymentIntentStatusEnum.SUCCEEDED,
        "canceled": PaymentIntentStatusEnum.FAILED,
    }

    def __init__(self, config: StripeConfig):
        if not config.secret_key:
            logger.warning("Stripe secret key is not configured (test_mode=%s)", config.test_mode)
        self.config = config
        self.client = stripe.StripeClient(
            config.secret_key,
            http_client=stripe.RequestsClient(timeout=config.timeout_seconds),
            max_network_retries=0,
        )

    def _make_request(self, stripe_api_call, *args, **kwargs):
        try:
            return stripe_api_call(*args, **kwargs)
        except (stripe.APIConnectionError, stripe.RateLimitError) as e:
            logger.error(f"Stripe unavailable: {e}")
            raise ExternalPaymentError("Payment provider is temporarily unavailable. Please retry.", retryable=True)
        except stripe.StripeError as e:
            logger.error(f"Stripe error: {e}")
            raise ExternalPaymentError(f"Stripe error: {e.user_message or e}")

    @staticmethod
    def _as_dict(obj) -> Dict[str, Any]:
        return obj.to_dict() if isinstance(obj, stripe.StripeObject) else obj

    def _to_intent(self, intent) -> PaymentIntent:
        intent = self._as_dict(intent)
        status = self._STATUS_MAP.get(intent["status"])
        if status is None:
            status = PaymentIntentStatusEnum.PENDING
            if intent["status"] == "requires_payment_method" and intent.get("last_payment_error"):
                status = PaymentIntentStatusEnum.FAILED
        return PaymentIntent(id=intent["id"], status=status, client_secret=intent.get("client_secret"))

    def create_intent(self, *, amount: Decimal, currency: str, metadata: Dict[str, str]) -> PaymentIntent:
        intent = self._make_request(
            self.client.v1.payment_intents.create,
            params={
                "amount": to_minor_units(amount),
                "currency": currency.lower(),
                "metadata": metadata,
                "automatic_payment_methods": {"enabled": True},
            },
        )
        return self._to_intent(intent)

    def retrieve_intent(self, payment_intent_id: str) -> PaymentIntent:
        intent = self._make_request(self.client.v1.payment_intents.retrieve, payment_intent_id)
        return self._to_intent(intent)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        try:
            event = self.client.construct_event(payload, signature or "", self.config.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise ValueError(f"Invalid signature: {e}")
        return self._as_dict(event)


class SimulatedPaymentProcessor(PaymentProcessor):
    """Local stand-in for the payment provider: every intent it created succeeds on retrieval."""

    def create_intent(self, *, amount: Decimal, currency: str, metadata: Dict[str, str]) -> PaymentIntent:
        intent_id = f"{SIMULATED_INTENT_PREFIX}{int(time.time())}_{metadata.get('course_id', '0')}_{secrets.token_hex(4)}"
        logger.info(f"Simulated payment intent {intent_id} for {amount} {currency}")
        return PaymentIntent(
            id=intent_id,
            status=PaymentIntentStatusEnum.PENDING,
            client_secret=f"{intent_id}_secret_{secrets.token_hex(8)}",
        )

    def retrieve_intent(self, payment_intent_id: str) -> PaymentIntent:
        if not payment_intent_id.startswith(SIMULATED_INTENT_PREFIX):
            raise ExternalPaymentError(f"No such payment_intent: '{payment_intent_id}'")
        return PaymentIntent(id=payment_intent_id, status=PaymentIntentStatusEnum.SUCCEEDED)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        return json.loads(payload)


def build_payment_processor(config: Settings = settings) -> PaymentProcessor:
    if config.PAYMENT_PROCESSOR == "simulated":
        logger.info("Using simulated payment processor")
        return SimulatedPaymentProcessor()
    stripe_config = StripeConfig.from_settings(config)
    logger.info(f"Using Stripe payment processor (test_mode={stripe_config.test_mode})")
    return StripePaymentProcessor(stripe_config)
