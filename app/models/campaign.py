import uuid
from sqlalchemy import Column, ForeignKey, String, Integer, Text, TIMESTAMP, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db import Base


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    name = Column(String(200), nullable=False)
    description = Column(Text)

    rules = Column(JSON, nullable=False, default=list)
    # ex: [{"field": "totalSpent", "operator": "gt", "value": "10000"}]

    message = Column(Text, nullable=False)

    # snapshot taken at creation, never re-validated
    audience_size = Column(Integer, nullable=False, default=0)

    # draft / scheduled / sending / completed / completed_with_pending / cancelled / failed
    status = Column(String(30), nullable=False, default="draft")

    scheduled_at = Column(TIMESTAMP)
    completed_at = Column(TIMESTAMP)

    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)

    created_at = Column(TIMESTAMP, server_default=func.now())
