import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PAYMENT_PROCESSOR", "simulated")
os.environ["EMAILS_ENABLED"] = "false"
os.environ["CACHE_ENABLED"] = "false"

import json
import uuid
from decimal import Decimal
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import main
from app.core.config import settings
from app.core.constants import PaymentIntentStatusEnum, PurchaseStatusEnum, RoleEnum
from app.core.database import Base
from app.core.security import create_access_token, get_password_hash
from app.models.chapter import Chapter
from app.models.course import Course
from app.models.lesson import Lesson
from app.models.purchase import Purchase
from app.models.user import User
from app.services.payment import PaymentIntent, PaymentProcessor
from app.utils import deps as deps_utils

test_db_url = settings.TEST_DATABASE_URL or "sqlite://"

WEBHOOK_SIGNATURE = "t=1,v1=test-signature"


class FakePaymentProcessor(PaymentProcessor):
    """Scripted processor: intents stay pending until a test moves them."""

    def __init__(self):
        self.statuses: Dict[str, PaymentIntentStatusEnum] = {}
        self.created: List[dict] = []
        self.error: Optional[Exception] = None

    def create_intent(self, *, amount, currency, metadata):
        if self.error:
            raise self.error
        intent_id = f"pi_fake_{uuid.uuid4().hex[:12]}"
        self.statuses[intent_id] = PaymentIntentStatusEnum.PENDING
        self.created.append({"id": intent_id, "amount": amount, "currency": currency, "metadata": metadata})
        return PaymentIntent(id=intent_id, status=PaymentIntentStatusEnum.PENDING, client_secret=f"{intent_id}_secret")

    def retrieve_intent(self, payment_intent_id):
        if self.error:
            raise self.error
        status = self.statuses.get(payment_intent_id, PaymentIntentStatusEnum.PENDING)
        return PaymentIntent(id=payment_intent_id, status=status)

    def construct_event(self, payload, signature):
        if signature != WEBHOOK_SIGNATURE:
            raise ValueError("Invalid signature")
        return json.loads(payload)

    def succeed(self, payment_intent_id: str):
        self.statuses[payment_intent_id] = PaymentIntentStatusEnum.SUCCEEDED

    def fail(self, payment_intent_id: str):
        self.statuses[payment_intent_id] = PaymentIntentStatusEnum.FAILED


@pytest.fixture(scope="function")
def database_engine():
    if test_db_url.startswith("sqlite"):
        engine = create_engine(test_db_url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    else:
        engine = create_engine(test_db_url)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

@pytest.fixture(scope="function")
def db_session(database_engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=database_engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()

@pytest.fixture(scope="function")
def payment_processor():
    return FakePaymentProcessor()

@pytest.fixture(scope="function")
def client(db_session, payment_processor):
    main.app.dependency_overrides[deps_utils.get_db] = lambda: db_session
    main.app.dependency_overrides[deps_utils.get_transactional_db] = lambda: db_session
    main.app.dependency_overrides[deps_utils.get_payment_processor] = lambda: payment_processor
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()

@pytest.fixture
def user_factory(db_session):
    def _create(email: Optional[str] = None, *, role: RoleEnum = RoleEnum.STUDENT, password: str = "testpass123") -> User:
        email = email or f"student-{uuid.uuid4().hex[:8]}@example.com"
        user = User(
            full_name=f"Test {role.value.title()}",
            username=email.split("@")[0],
            email=email,
            hashed_password=get_password_hash(password),
            role=role,
            is_active=True,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _create

@pytest.fixture
def auth_headers():
    def _headers(user: User) -> Dict[str, str]:
        token = create_access_token(data={"user_id": user.id}, email=user.email)
        return {"Authorization": f"Bearer {token}"}
    return _headers

@pytest.fixture
def student(user_factory):
    return user_factory()

@pytest.fixture
def admin(user_factory):
    return user_factory(f"admin-{uuid.uuid4().hex[:8]}@example.com", role=RoleEnum.ADMIN)

@pytest.fixture
def course_factory(db_session):
    """Build a course from lesson durations grouped per chapter, e.g. [[100, 200], [100]]."""
    def _create(
        chapters: Optional[List[List[int]]] = None,
        *,
        price: Optional[str] = "49.00",
        premium_price: Optional[str] = None,
        premium_enabled: bool = False,
        is_active: bool = True,
    ) -> Course:
        course = Course(
            title=f"Course {uuid.uuid4().hex[:6]}",
            price=Decimal(price) if price is not None else None,
            premium_price=Decimal(premium_price) if premium_price is not None else None,
            premium_enabled=premium_enabled,
            currency="EUR",
            is_active=is_active,
        )
        db_session.add(course)
        db_session.flush()
        for chapter_order, durations in enumerate(chapters or [[100, 200, 100]]):
            chapter = Chapter(title=f"Chapter {chapter_order + 1}", order=chapter_order, course_id=course.id)
            db_session.add(chapter)
            db_session.flush()
            for lesson_order, duration in enumerate(durations):
                db_session.add(Lesson(
                    title=f"Lesson {chapter_order + 1}.{lesson_order + 1}",
                    order=lesson_order,
                    duration=duration,
                    chapter_id=chapter.id,
                ))
        db_session.commit()
        db_session.refresh(course)
        return course
    return _create

@pytest.fixture
def course(course_factory):
    return course_factory()

@pytest.fixture
def grant_access(db_session):
    def _grant(user: User, course: Course, *, is_premium: bool = False) -> Purchase:
        purchase = Purchase(
            user_id=user.id,
            customer_email=user.email,
            course_id=course.id,
            payment_intent_id=f"pi_granted_{uuid.uuid4().hex[:12]}",
            amount=course.price or Decimal("0"),
            currency=course.currency,
            status=PurchaseStatusEnum.COMPLETED,
            is_premium=is_premium,
        )
        db_session.add(purchase)
        db_session.commit()
        db_session.refresh(purchase)
        return purchase
    return _grant

