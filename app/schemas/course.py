from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal

class CourseBase(BaseModel):
    title: str
    description: Optional[str] = None
    price: Optional[Decimal] = None
    premium_price: Optional[Decimal] = None
    premium_enabled: bool = False
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    is_active: bool = True

class CourseCreate(CourseBase):
    pass

class CourseUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    premium_price: Optional[Decimal] = None
    premium_enabled: Optional[bool] = None
    currency: Optional[str] = None
    is_active: Optional[bool] = None
