from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from app.core.constants import FREE_ACCESS_PREFIX, PurchaseStatusEnum
from app.core.exceptions import (
    AccessDeniedError,
    AlreadyPurchasedError,
    InvalidCourseError,
    UnknownPaymentError,
)
from app.crud.lesson_progress import lesson_progress as crud_lesson_progress
from app.crud.purchase import purchase as crud_purchase
from app.crud.user import user as crud_user
from app.models.purchase import Purchase
from app.services.access import access_gate
from app.services.course_progress import course_progress_service
from tests.helpers.asserts import lesson_ids


def _pending_count(db: Session, course_id: int) -> int:
    return (
        db.query(Purchase)
        .filter(Purchase.course_id == course_id, Purchase.status == PurchaseStatusEnum.PENDING)
        .count()
    )


def test_has_completed_access_requires_completed_purchase(db_session: Session, student, course):
    print("\n[TEST] Access requires a completed purchase")
    assert access_gate.has_completed_access(db_session, student.id, course.id) is False

    access_gate.record_purchase_attempt(
        db_session, course_id=course.id, is_premium=False, payment_intent_id="pi_a", user_id=student.id
    )
    assert access_gate.has_completed_access(db_session, student.id, course.id) is False
    print("[OK] Pending purchase does not grant access")

    access_gate.confirm_purchase(db_session, "pi_a")
    assert access_gate.has_completed_access(db_session, student.id, course.id) is True
    assert access_gate.has_completed_access(db_session, None, course.id) is False
    print("[SUCCESS] Completed purchase grants access")


def test_record_purchase_attempt_locks_tier_price(db_session: Session, student, course_factory):
    course = course_factory(price="49.00", premium_price="99.50", premium_enabled=True)

    standard = access_gate.record_purchase_attempt(
        db_session, course_id=course.id, is_premium=False, payment_intent_id="pi_std", user_id=student.id
    )
    assert standard.amount == Decimal("49.00")
    assert standard.currency == "EUR"
    assert standard.status == PurchaseStatusEnum.PENDING

    premium = access_gate.record_purchase_attempt(
        db_session, course_id=course.id, is_premium=True, payment_intent_id="pi_prem", user_id=student.id
    )
    assert premium.amount == Decimal("99.50")
    assert premium.is_premium is True


def test_record_purchase_attempt_replaces_stale_pending_rows(db_session: Session, student, course):
    for intent_id in ("pi_1", "pi_2", "pi_3"):
        access_gate.record_purchase_attempt(
            db_session, course_id=course.id, is_premium=False, payment_intent_id=intent_id, user_id=student.id
        )

    assert _pending_count(db_session, course.id) == 1
    assert crud_purchase.get_by_payment_intent(db_session, "pi_3") is not None
    assert crud_purchase.get_by_payment_intent(db_session, "pi_1") is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"price": None},
        {"price": "0"},
    ],
)
def test_record_purchase_attempt_rejects_unpriced_standard_tier(db_session: Session, student, course_factory, kwargs):
    course = course_factory(**kwargs)
    with pytest.raises(InvalidCourseError):
        access_gate.record_purchase_attempt(
            db_session, course_id=course.id, is_premium=False, payment_intent_id="pi_x", user_id=student.id
        )
    assert _pending_count(db_session, course.id) == 0


def test_record_purchase_attempt_rejects_disabled_premium_tier(db_session: Session, student, course_factory):
    course = course_factory(premium_price="99.00", premium_enabled=False)
    with pytest.raises(InvalidCourseError):
        access_gate.record_purchase_attempt(
            db_session, course_id=course.id, is_premium=True, payment_intent_id="pi_x", user_id=student.id
        )


def test_record_purchase_attempt_rejects_unknown_or_inactive_course(db_session: Session, student, course_factory):
    inactive = course_factory(is_active=False)
    for course_id in (inactive.id, 9999):
        with pytest.raises(InvalidCourseError):
            access_gate.record_purchase_attempt(
                db_session, course_id=course_id, is_premium=False, payment_intent_id=f"pi_{course_id}", user_id=student.id
            )


def test_record_purchase_attempt_when_already_owned(db_session: Session, student, course, grant_access):
    grant_access(student, course)
    with pytest.raises(AlreadyPurchasedError):
        access_gate.record_purchase_attempt(
            db_session, course_id=course.id, is_premium=False, payment_intent_id="pi_again", user_id=student.id
        )


def test_guest_attempt_rejected_when_registered_email_owns_course(db_session: Session, student, course, grant_access):
    grant_access(student, course)
    with pytest.raises(AlreadyPurchasedError):
        access_gate.record_purchase_attempt(
            db_session,
            course_id=course.id,
            is_premium=False,
            payment_intent_id="pi_guest",
            customer_email=student.email.upper(),
        )


def test_confirm_purchase_is_idempotent(db_session: Session, student, course):
    print("\n[TEST] Confirming twice")
    access_gate.record_purchase_attempt(
        db_session, course_id=course.id, is_premium=False, payment_intent_id="pi_twice", user_id=student.id
    )

    first = access_gate.confirm_purchase(db_session, "pi_twice")
    assert first.changed is True
    assert first.purchase.status == PurchaseStatusEnum.COMPLETED
    print("[1] First confirmation completed the purchase")

    second = access_gate.confirm_purchase(db_session, "pi_twice")
    assert second.changed is False
    assert second.purchase.status == PurchaseStatusEnum.COMPLETED
    assert access_gate.has_completed_access(db_session, student.id, course.id) is True
    print("[SUCCESS] Second confirmation was a no-op")


def test_confirm_purchase_unknown_payment(db_session: Session):
    with pytest.raises(UnknownPaymentError) as exc_info:
        access_gate.confirm_purchase(db_session, "pi_missing")
    assert exc_info.value.payment_intent_id == "pi_missing"


def test_confirm_failed_purchase_completes_it(db_session: Session, student, course):
    access_gate.record_purchase_attempt(
        db_session, course_id=course.id, is_premium=False, payment_intent_id="pi_retry", user_id=student.id
    )
    access_gate.fail_purchase(db_session, "pi_retry")

    result = access_gate.confirm_purchase(db_session, "pi_retry")
    assert result.changed is True
    assert result.purchase.status == PurchaseStatusEnum.COMPLETED


def test_fail_purchase_never_demotes_completed(db_session: Session, student, course):
    access_gate.record_purchase_attempt(
        db_session, course_id=course.id, is_premium=False, payment_intent_id="pi_done", user_id=student.id
    )
    access_gate.confirm_purchase(db_session, "pi_done")

    purchase = access_gate.fail_purchase(db_session, "pi_done")
    assert purchase.status == PurchaseStatusEnum.COMPLETED

    with pytest.raises(UnknownPaymentError):
        access_gate.fail_purchase(db_session, "pi_nope")


def test_guest_confirmation_provisions_account(db_session: Session, course):
    print("\n[TEST] Guest confirmation creates the buyer's account")
    access_gate.record_purchase_attempt(
        db_session,
        course_id=course.id,
        is_premium=False,
        payment_intent_id="pi_guest",
        customer_email="New.Buyer@Example.com",
    )
    pending = crud_purchase.get_by_payment_intent(db_session, "pi_guest")
    assert pending.user_id is None
    assert pending.customer_email == "new.buyer@example.com"

    result = access_gate.confirm_purchase(db_session, "pi_guest")
    assert result.account is not None and result.account.created is True
    assert len(result.account.password) == 12

    buyer = crud_user.get_by_email(db_session, email="new.buyer@example.com")
    assert buyer.username == "new.buyer"
    assert result.purchase.user_id == buyer.id
    assert access_gate.has_completed_access(db_session, buyer.id, course.id) is True
    print("[SUCCESS] Purchase backfilled to the new account")


def test_guest_confirmation_reuses_existing_account(db_session: Session, user_factory, course):
    existing = user_factory("returning@example.com")
    access_gate.record_purchase_attempt(
        db_session, course_id=course.id, is_premium=False, payment_intent_id="pi_ret", customer_email="returning@example.com"
    )

    result = access_gate.confirm_purchase(db_session, "pi_ret")
    assert result.account.created is False
    assert result.account.password is None
    assert result.purchase.user_id == existing.id


def test_generated_username_gets_numeric_suffix(db_session: Session, user_factory, course):
    user_factory("taken@example.com")
    access_gate.record_purchase_attempt(
        db_session, course_id=course.id, is_premium=False, payment_intent_id="pi_sfx", customer_email="taken@other.org"
    )

    result = access_gate.confirm_purchase(db_session, "pi_sfx")
    assert result.account.created is True
    assert result.account.user.username == "taken1"


def test_grant_free_access_is_idempotent(db_session: Session, student, course):
    print("\n[TEST] Free grants are idempotent")
    first = access_gate.grant_free_access(db_session, student.id, course.id)
    second = access_gate.grant_free_access(db_session, student.id, course.id)

    assert first.id == second.id
    assert first.payment_intent_id.startswith(FREE_ACCESS_PREFIX)
    assert first.amount == Decimal("0")
    assert access_gate.has_completed_access(db_session, student.id, course.id) is True

    completed = crud_purchase.get_completed_by_user(db_session, user_id=student.id)
    assert len(completed) == 1
    print("[SUCCESS] Exactly one completed grant")


def test_grant_free_access_unknown_course_or_user(db_session: Session, student, course):
    with pytest.raises(InvalidCourseError):
        access_gate.grant_free_access(db_session, student.id, 9999)
    with pytest.raises(AccessDeniedError):
        access_gate.grant_free_access(db_session, 9999, course.id)


def test_revoke_then_recheck(db_session: Session, student, course):
    print("\n[TEST] Revoke keeps progress but removes access")
    access_gate.grant_free_access(db_session, student.id, course.id)
    first_lesson = lesson_ids(course)[0]
    course_progress_service.report_video_progress(db_session, student.id, first_lesson, 50)
    print("[1] Progress recorded while access existed")

    removed = access_gate.revoke_access(db_session, student.id, course.id)
    assert removed == 1
    assert access_gate.has_completed_access(db_session, student.id, course.id) is False
    print("[2] Access revoked")

    with pytest.raises(AccessDeniedError):
        course_progress_service.report_video_progress(db_session, student.id, first_lesson, 60)
    with pytest.raises(AccessDeniedError):
        course_progress_service.mark_lesson_complete(db_session, student.id, first_lesson)

    rows = crud_lesson_progress.get_by_user_and_course(db_session, user_id=student.id, course_id=course.id)
    assert len(rows) == 1 and rows[0].video_progress == 50
    print("[SUCCESS] Progress rows untouched, writes rejected")


def test_revoke_leaves_pending_history(db_session: Session, student, course_factory):
    course = course_factory()
    access_gate.record_purchase_attempt(
        db_session, course_id=course.id, is_premium=False, payment_intent_id="pi_hist", user_id=student.id
    )
    assert access_gate.revoke_access(db_session, student.id, course.id) == 0
    assert crud_purchase.get_by_payment_intent(db_session, "pi_hist") is not None


def test_purchase_statistics_and_search(db_session: Session, user_factory, course_factory):
    course = course_factory(price="40.00", premium_price="100.00", premium_enabled=True)
    alice = user_factory("alice@example.com")
    bob = user_factory("bob@example.com")

    access_gate.record_purchase_attempt(
        db_session, course_id=course.id, is_premium=False, payment_intent_id="pi_alice", user_id=alice.id, customer_email=alice.email
    )
    access_gate.confirm_purchase(db_session, "pi_alice")
    access_gate.record_purchase_attempt(
        db_session, course_id=course.id, is_premium=True, payment_intent_id="pi_bob", user_id=bob.id, customer_email=bob.email
    )
    access_gate.confirm_purchase(db_session, "pi_bob")

    stats = access_gate.get_purchase_statistics(db_session)
    assert stats.total_purchases == 2
    assert stats.premium_purchases == 1
    assert stats.standard_purchases == 1
    assert stats.total_revenue == Decimal("140.00")
    assert stats.premium_revenue == Decimal("100.00")
    assert stats.standard_revenue == Decimal("40.00")

    found = access_gate.get_course_purchases(db_session, email="alice")
    assert [p.payment_intent_id for p in found] == ["pi_alice"]
    premium_only = access_gate.get_course_purchases(db_session, is_premium=True)
    assert [p.payment_intent_id for p in premium_only] == ["pi_bob"]
    assert access_gate.has_premium_access(db_session, bob.id, course.id) is True
    assert access_gate.has_premium_access(db_session, alice.id, course.id) is False
