from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from uuid import UUID

from pydantic import BaseModel, Field


class OrderCreate(BaseModel):
    customer_id: UUID
    amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    status: Literal["pending", "completed", "cancelled"] = "completed"


class OrderOut(BaseModel):
    id: UUID
    customer_id: UUID
    amount: Decimal
    status: str

    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
