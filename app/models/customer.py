import uuid
from sqlalchemy import Column, String, TIMESTAMP, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db import Base


class Customer(Base):
    __tablename__ = "customers"

    __table_args__ = (UniqueConstraint("organization_id", "client_id", name="uq_customers_organization_client_id"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    organization_id = Column(String(100), nullable=False)
    client_id = Column(String(100), nullable=False)

    country = Column(String(2))
    last_order_at = Column(TIMESTAMP)  # last paid or completed order

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
