from datetime import datetime
from typing import Any, Dict, Optional

from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.segment_rule import SegmentRule


class CampaignCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None

    rules: list[SegmentRule]
    message: str = Field(min_length=1)

    scheduled_at: Optional[datetime] = None


class CampaignOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None

    rules: list[Dict[str, Any]]
    message: str
    audience_size: int
    status: str

    scheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_by: UUID

    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CampaignWithStatsOut(CampaignOut):
    sent_count: int = 0
    failed_count: int = 0
    pending_count: int = 0


class CommunicationLogOut(BaseModel):
    id: UUID
    campaign_id: UUID
    customer_id: UUID
    message: str

    status: str
    sent_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AudienceSizeRequest(BaseModel):
    rules: list[SegmentRule]
