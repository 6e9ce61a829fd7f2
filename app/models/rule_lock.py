import uuid
from sqlalchemy import Column, String, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db import Base


class RuleLock(Base):
    __tablename__ = "rule_locks"

    __table_args__ = (UniqueConstraint("rule_id", "dedupe_key", name="uq_rule_locks_rule_id_dedupe_key"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    organization_id = Column(String(100), nullable=False)
    rule_id = Column(UUID(as_uuid=True), ForeignKey("automation_rules.id", ondelete="CASCADE"), nullable=False)

    # "order:<orderId>" / "customer:<clientId>"
    dedupe_key = Column(String(200), nullable=False)
    client_id = Column(String(100))
    order_id = Column(String(100))

    # NULL = permanent (scope locks); set for cooldown locks from the inactivity sweep
    lock_until = Column(TIMESTAMP)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
