import uuid
from sqlalchemy import Column, String, TIMESTAMP, Integer, Boolean, Numeric
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=False)

    total_spent = Column(Numeric(10, 2), nullable=False, default=0)
    visit_count = Column(Integer, nullable=False, default=0)
    last_visit = Column(TIMESTAMP)
    registration_date = Column(TIMESTAMP, server_default=func.now())

    status = Column(String(20), nullable=False, default="active")      # active / inactive / vip
    location = Column(String(100))
    email_verified = Column(Boolean, nullable=False, default=False)

    created_at = Column(TIMESTAMP, server_default=func.now())
