from datetime import datetime
from typing import Any, Dict, Optional

from uuid import UUID

from pydantic import BaseModel


class DeliveryRequestOut(BaseModel):
    id: UUID
    event_id: Optional[UUID] = None
    rule_id: Optional[UUID] = None

    action_index: int
    action_type: str
    channel: str

    status: str
    reason: Optional[str] = None

    subject: Optional[str] = None
    message: Optional[str] = None
    url: Optional[str] = None
    variables: Optional[Dict[str, Any]] = None

    coupon_id: Optional[str] = None
    client_id: Optional[str] = None

    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
