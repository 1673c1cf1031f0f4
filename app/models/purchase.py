from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, Numeric, Enum, Index, false, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.config import settings
from app.core.database import Base
from app.core.constants import PurchaseStatusEnum

class Purchase(Base):
    __tablename__ = "purchases"
    __table_args__ = (
        Index("ix_purchases_user_course", "user_id", "course_id"),
        # One completed grant per (user, course); pending and failed attempts may pile up.
        Index(
            "uq_purchases_user_course_completed",
            "user_id",
            "course_id",
            unique=True,
            postgresql_where=text("status = 'COMPLETED'"),
            sqlite_where=text("status = 'COMPLETED'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)  # NULL until a guest purchase is confirmed
    customer_email = Column(String, nullable=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    payment_intent_id = Column(String, unique=True, index=True, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default=settings.DEFAULT_CURRENCY)
    status = Column(Enum(PurchaseStatusEnum), nullable=False, default=PurchaseStatusEnum.PENDING)
    is_premium = Column(Boolean, nullable=False, default=False)
    # Started without a login; only such rows may be confirmed by email alone.
    is_guest_checkout = Column(Boolean, nullable=False, default=False, server_default=false())
    purchased_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="purchases")
    course = relationship("Course", back_populates="purchases")
