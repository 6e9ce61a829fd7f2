import uuid
from sqlalchemy import Column, Integer, JSON, String, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db import Base


class DeliveryRequest(Base):
    """One outbound message per (rule, action, channel), consumed by the channel workers."""

    __tablename__ = "notification_outbox"

    __table_args__ = (UniqueConstraint("dedupe_key", name="uq_notification_outbox_dedupe_key"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    organization_id = Column(String(100), nullable=False)
    event_id = Column(UUID(as_uuid=True), ForeignKey("automation_events.id"), nullable=True)
    rule_id = Column(UUID(as_uuid=True), ForeignKey("automation_rules.id", ondelete="SET NULL"), nullable=True)

    action_index = Column(Integer, nullable=False)
    action_type = Column(String(50), nullable=False)
    channel = Column(String(20), nullable=False)

    status = Column(String(20), nullable=False)  # queued / skipped / failed
    reason = Column(String(200))

    subject = Column(String(500))
    message = Column(String)
    url = Column(String(2000))
    variables = Column(JSON)

    coupon_id = Column(String(100))
    client_id = Column(String(100))
    dedupe_key = Column(String(64), nullable=False)

    created_at = Column(TIMESTAMP, server_default=func.now())
