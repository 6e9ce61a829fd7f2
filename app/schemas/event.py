from datetime import datetime
from typing import Any, Dict, Optional

from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.schemas.rule import EventName


class EventContext(BaseModel):
    """Everything the evaluator and dispatcher may look at for one event."""

    event: EventName

    country: Optional[str] = None
    currency: Optional[str] = None

    clientId: Optional[str] = None
    orderId: Optional[str] = None

    orderProductIds: list[str] = Field(default_factory=list)
    orderTotalEur: Optional[float] = None
    customerLastOrderAt: Optional[datetime] = None

    url: Optional[str] = None
    variables: Dict[str, str] = Field(default_factory=dict)

    @field_validator("country", "currency", mode="before")
    @classmethod
    def _upper(cls, value):
        if value is None:
            return None
        value = str(value).strip().upper()
        return value or None

    @field_validator("variables", mode="before")
    @classmethod
    def _stringify(cls, value):
        if not value:
            return {}
        return {str(k): "" if v is None else str(v) for k, v in dict(value).items()}


class EventCreate(EventContext):
    eventId: str = Field(min_length=1)
    source: Optional[str] = "API"


class EventOut(BaseModel):
    id: UUID
    organization_id: str
    event_id: str
    event: str

    source: Optional[str] = None
    context: Optional[Dict[str, Any]] = None

    status: str

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True
