from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from uuid import UUID

from pydantic import BaseModel, Field


class CustomerCreate(BaseModel):
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str = Field(min_length=1, max_length=255)

    total_spent: Decimal = Field(default=Decimal("0"), ge=0)
    visit_count: int = Field(default=0, ge=0)
    last_visit: Optional[datetime] = None

    status: Literal["active", "inactive", "vip"] = "active"
    location: Optional[str] = None
    email_verified: bool = False


class CustomerOut(BaseModel):
    id: UUID
    email: str
    name: str

    total_spent: Decimal
    visit_count: int
    last_visit: Optional[datetime] = None
    registration_date: Optional[datetime] = None

    status: str
    location: Optional[str] = None
    email_verified: bool

    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
