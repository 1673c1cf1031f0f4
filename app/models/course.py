from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.config import settings
from app.core.database import Base

class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, index=True, nullable=False)
    description = Column(String, nullable=True)
    price = Column(Numeric(10, 2), nullable=True)
    premium_price = Column(Numeric(10, 2), nullable=True)
    premium_enabled = Column(Boolean, default=False, nullable=False)
    currency = Column(String(3), nullable=False, default=settings.DEFAULT_CURRENCY)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    chapters = relationship("Chapter", back_populates="course", order_by="Chapter.order", cascade="all, delete-orphan")
    purchases = relationship("Purchase", back_populates="course")

    @property
    def lessons(self):
        return [lesson for chapter in self.chapters for lesson in chapter.lessons]
