import uuid
from sqlalchemy import Column, String, TIMESTAMP, JSON, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db import Base


class RuleExecution(Base):
    __tablename__ = "rule_executions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    event_id = Column(UUID(as_uuid=True), ForeignKey("automation_events.id"), nullable=False)
    rule_id = Column(UUID(as_uuid=True), ForeignKey("automation_rules.id", ondelete="SET NULL"), nullable=True)

    result = Column(String(20))  # SUCCESS / SKIPPED / FAILED
    details = Column(JSON)

    executed_at = Column(TIMESTAMP, server_default=func.now())
