import uuid
from sqlalchemy import Column, String, Integer, Boolean, JSON, TIMESTAMP
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db import Base


class Rule(Base):
    __tablename__ = "automation_rules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    organization_id = Column(String(100), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(String(2000), nullable=False, default="")

    event = Column(String(50), nullable=False)
    priority = Column(Integer, nullable=False, default=100)
    enabled = Column(Boolean, nullable=False, default=True)

    countries = Column(JSON, nullable=False, default=list)
    order_currency_in = Column(JSON, nullable=False, default=list)

    conditions = Column(JSON)  # {"op": "AND"|"OR", "items": [...]}
    actions = Column(JSON)     # [{"type": ..., "channels": [...], "payload": {...}}]

    scope = Column(String(20))  # per_order / per_customer
    cooldown_days = Column(Integer)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
