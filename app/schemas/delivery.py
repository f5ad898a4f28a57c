from typing import Literal, Optional

from uuid import UUID

from pydantic import BaseModel


class VendorSendRequest(BaseModel):
    messageId: UUID
    customerId: UUID
    message: str


class VendorSendAccepted(BaseModel):
    status: Literal["accepted"] = "accepted"
    messageId: UUID
    estimatedDelivery: str = "1-5 seconds"


class DeliveryReceipt(BaseModel):
    messageId: UUID
    status: Literal["sent", "failed"]
    failureReason: Optional[str] = None
