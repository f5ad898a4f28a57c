import uuid
from sqlalchemy import Column, ForeignKey, Numeric, String, TIMESTAMP
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)

    status = Column(String(20), nullable=False, default="completed")   # pending / completed / cancelled

    created_at = Column(TIMESTAMP, server_default=func.now())
