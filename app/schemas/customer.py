from datetime import datetime
from typing import Optional

from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class CustomerUpsert(BaseModel):
    clientId: str = Field(min_length=1)
    country: Optional[str] = None
    lastOrderAt: Optional[datetime] = None

    @field_validator("country", mode="before")
    @classmethod
    def _country(cls, value):
        if value is None:
            return None
        value = str(value).strip().upper()
        return value or None


class CustomerOut(BaseModel):
    id: UUID
    organization_id: str
    client_id: str

    country: Optional[str] = None
    last_order_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
