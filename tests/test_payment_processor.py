import json
from decimal import Decimal

import pytest
import stripe

from app.core.config import Settings
from app.core.constants import PaymentIntentStatusEnum, SIMULATED_INTENT_PREFIX
from app.core.exceptions import ExternalPaymentError
from app.services.payment import (
    SimulatedPaymentProcessor,
    StripeConfig,
    StripePaymentProcessor,
    build_payment_processor,
    to_minor_units,
)


@pytest.fixture
def stripe_processor():
    return StripePaymentProcessor(StripeConfig(secret_key="sk_test_123", webhook_secret="whsec_123", timeout_seconds=5))


@pytest.mark.parametrize("amount,expected", [
    (Decimal("49.00"), 4900),
    (Decimal("0.10"), 10),
    (Decimal("19.995"), 2000),
])
def test_to_minor_units(amount, expected):
    assert to_minor_units(amount) == expected


def test_create_intent_sends_minor_units(stripe_processor, monkeypatch):
    calls = []

    def fake_create(params, options=None):
        calls.append(params)
        return {"id": "pi_123", "status": "requires_payment_method", "client_secret": "pi_123_secret"}

    monkeypatch.setattr(stripe_processor.client.v1.payment_intents, "create", fake_create)

    intent = stripe_processor.create_intent(amount=Decimal("129.00"), currency="EUR", metadata={"course_id": "3"})
    assert intent.id == "pi_123"
    assert intent.status == PaymentIntentStatusEnum.PENDING
    assert intent.client_secret == "pi_123_secret"
    assert calls[0]["amount"] == 12900
    assert calls[0]["currency"] == "eur"
    assert calls[0]["metadata"] == {"course_id": "3"}
    assert calls[0]["automatic_payment_methods"] == {"enabled": True}


@pytest.mark.parametrize("raw,expected", [
    ({"status": "succeeded"}, PaymentIntentStatusEnum.SUCCEEDED),
    ({"status": "canceled"}, PaymentIntentStatusEnum.FAILED),
    ({"status": "processing"}, PaymentIntentStatusEnum.PENDING),
    ({"status": "requires_payment_method"}, PaymentIntentStatusEnum.PENDING),
    ({"status": "requires_payment_method", "last_payment_error": {"code": "card_declined"}}, PaymentIntentStatusEnum.FAILED),
])
def test_retrieve_intent_status_mapping(stripe_processor, monkeypatch, raw, expected):
    monkeypatch.setattr(
        stripe_processor.client.v1.payment_intents, "retrieve", lambda intent_id, **kwargs: {"id": intent_id, **raw}
    )
    assert stripe_processor.retrieve_intent("pi_abc").status == expected


def test_retrieve_intent_accepts_stripe_objects(stripe_processor, monkeypatch):
    intent = stripe.StripeObject.construct_from(
        {"id": "pi_obj", "status": "succeeded", "client_secret": "pi_obj_secret"}, "sk_test_123"
    )
    monkeypatch.setattr(stripe_processor.client.v1.payment_intents, "retrieve", lambda intent_id, **kwargs: intent)

    result = stripe_processor.retrieve_intent("pi_obj")
    assert result.status == PaymentIntentStatusEnum.SUCCEEDED
    assert result.client_secret == "pi_obj_secret"


def test_stripe_client_is_per_processor(monkeypatch):
    built = []

    class RecordingClient:
        def __init__(self, api_key, **kwargs):
            built.append((api_key, kwargs))

    monkeypatch.setattr(stripe, "StripeClient", RecordingClient)
    http_client_before = stripe.default_http_client
    retries_before = stripe.max_network_retries

    StripePaymentProcessor(StripeConfig(secret_key="sk_test_a", webhook_secret="whsec_a", timeout_seconds=5))
    StripePaymentProcessor(StripeConfig(secret_key="sk_live_b", webhook_secret="whsec_b", timeout_seconds=9))

    assert [api_key for api_key, _ in built] == ["sk_test_a", "sk_live_b"]
    assert all(kwargs["max_network_retries"] == 0 for _, kwargs in built)
    assert all(isinstance(kwargs["http_client"], stripe.RequestsClient) for _, kwargs in built)
    assert built[0][1]["http_client"] is not built[1][1]["http_client"]
    assert stripe.default_http_client is http_client_before
    assert stripe.max_network_retries == retries_before


@pytest.mark.parametrize("error,retryable", [
    (stripe.APIConnectionError("connection reset"), True),
    (stripe.RateLimitError("slow down"), True),
    (stripe.InvalidRequestError("No such payment_intent", "id"), False),
])
def test_provider_errors_are_classified(stripe_processor, monkeypatch, error, retryable):
    def boom(*args, **kwargs):
        raise error

    monkeypatch.setattr(stripe_processor.client.v1.payment_intents, "retrieve", boom)
    with pytest.raises(ExternalPaymentError) as exc_info:
        stripe_processor.retrieve_intent("pi_abc")
    assert exc_info.value.retryable is retryable
    assert exc_info.value.status_code == (503 if retryable else 502)


def test_bad_webhook_signature_raises_value_error(stripe_processor):
    payload = json.dumps({"type": "payment_intent.succeeded"}).encode()
    with pytest.raises(ValueError):
        stripe_processor.construct_event(payload, "t=1,v1=forged")


def test_simulated_processor_round_trip():
    processor = SimulatedPaymentProcessor()
    intent = processor.create_intent(amount=Decimal("10.00"), currency="EUR", metadata={"course_id": "7"})
    assert intent.id.startswith(f"{SIMULATED_INTENT_PREFIX}")
    assert "_7_" in intent.id
    assert intent.status == PaymentIntentStatusEnum.PENDING
    assert processor.retrieve_intent(intent.id).status == PaymentIntentStatusEnum.SUCCEEDED

    with pytest.raises(ExternalPaymentError):
        processor.retrieve_intent("pi_real_one")
    with pytest.raises(ValueError):
        processor.construct_event(b"not json", None)


def test_build_payment_processor_selects_implementation():
    assert isinstance(build_payment_processor(Settings(PAYMENT_PROCESSOR="simulated")), SimulatedPaymentProcessor)

    live = build_payment_processor(Settings(
        PAYMENT_PROCESSOR="stripe",
        STRIPE_TEST_MODE=False,
        STRIPE_LIVE_SECRET_KEY="sk_live_x",
        STRIPE_LIVE_WEBHOOK_SECRET="whsec_live",
    ))
    assert isinstance(live, StripePaymentProcessor)
    assert live.config.secret_key == "sk_live_x"
    assert live.config.test_mode is False
