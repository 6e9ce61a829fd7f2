import uuid
from sqlalchemy import Column, JSON, String, TIMESTAMP, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db import Base


class AutomationEvent(Base):
    __tablename__ = "automation_events"

    __table_args__ = (
        UniqueConstraint("organization_id", "event_id", name="uq_automation_events_organization_event_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    organization_id = Column(String(100), nullable=False)
    event_id = Column(String(150), nullable=False)
    event = Column(String(50), nullable=False)

    source = Column(String(20))
    context = Column(JSON)

    status = Column(String(30), nullable=False, default="PENDING")

    error_code = Column(String(50))
    error_message = Column(String)

    created_at = Column(TIMESTAMP, server_default=func.now())
    processed_at = Column(TIMESTAMP)
