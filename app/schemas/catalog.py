import json
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def parse_countries(value) -> list[str]:
    """Coupon countries arrive either as a list or as a JSON-encoded string."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            value = [part for part in value.split(",")]
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set)):
        return []
    out = []
    for c in value:
        code = str(c).strip().upper()
        if code and code not in out:
            out.append(code)
    return out


class CouponUpsert(BaseModel):
    name: str = ""
    code: str = Field(min_length=1)
    countries: list[str] = Field(default_factory=list)

    @field_validator("countries", mode="before")
    @classmethod
    def _countries(cls, value):
        return parse_countries(value)


class CouponOut(BaseModel):
    id: str
    name: str
    code: str
    countries: list[str] = Field(default_factory=list)

    updated_at: Optional[datetime] = None

    @field_validator("countries", mode="before")
    @classmethod
    def _countries(cls, value):
        return parse_countries(value)

    class Config:
        from_attributes = True


class ProductUpsert(BaseModel):
    title: str = Field(min_length=1)


class ProductOut(BaseModel):
    id: str
    title: str

    class Config:
        from_attributes = True
