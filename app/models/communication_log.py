import uuid
from sqlalchemy import Column, ForeignKey, String, Text, TIMESTAMP
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db import Base


class CommunicationLog(Base):
    __tablename__ = "communication_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    campaign_id = Column(UUID(as_uuid=True), ForeignKey("campaigns.id"), nullable=False, index=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False)

    message = Column(Text, nullable=False)

    status = Column(String(20), nullable=False, default="pending")     # pending / sent / failed
    sent_at = Column(TIMESTAMP)
    failure_reason = Column(String(500))

    created_at = Column(TIMESTAMP, server_default=func.now())
