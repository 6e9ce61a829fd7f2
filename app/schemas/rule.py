from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from app.config import DEFAULT_RULE_PRIORITY


EventName = Literal[
    "order_placed",
    "order_pending_payment",
    "order_paid",
    "order_partially_paid",
    "order_completed",
    "order_cancelled",
    "order_refunded",
    "order_shipped",
    "order_message",
    "ticket_created",
    "ticket_replied",
    "manual",
    "customer_inactive",
]

Channel = Literal["email", "telegram", "in_app", "webhook"]
Currency = Literal["USD", "EUR", "GBP"]
Scope = Literal["per_order", "per_customer"]


def _normalize_countries(value):
    if value is None:
        return []
    out = []
    for c in value:
        code = str(c).strip().upper()
        if code and code not in out:
            out.append(code)
    return out


# ─── Conditions ──────────────────────────────────────────────────


class ContainsProductCondition(BaseModel):
    kind: Literal["contains_product"] = "contains_product"
    productIds: list[str] = Field(min_length=1)


class OrderTotalGteCondition(BaseModel):
    # "order_total_gte" is the legacy spelling; both compare the EUR total
    kind: Literal["order_total_gte_eur", "order_total_gte"] = "order_total_gte_eur"
    amount: float = Field(ge=0)


class NoOrderDaysGteCondition(BaseModel):
    kind: Literal["no_order_days_gte"] = "no_order_days_gte"
    days: int = Field(ge=1)


class NestedConditionGroup(BaseModel):
    kind: Literal["group"] = "group"
    op: Literal["AND", "OR"] = "AND"
    items: list["ConditionItem"] = Field(default_factory=list)


ConditionItem = Annotated[
    Union[ContainsProductCondition, OrderTotalGteCondition, NoOrderDaysGteCondition, NestedConditionGroup],
    Field(discriminator="kind"),
]


class ConditionGroup(BaseModel):
    op: Literal["AND", "OR"] = "AND"
    items: list[ConditionItem] = Field(default_factory=list)


NestedConditionGroup.model_rebuild()
ConditionGroup.model_rebuild()


# ─── Actions ─────────────────────────────────────────────────────


class TemplateFields(BaseModel):
    templateSubject: Optional[str] = None
    templateMessage: Optional[str] = None
    url: Optional[str] = None


class SendCouponPayload(TemplateFields):
    couponId: Optional[str] = None
    code: Optional[str] = None

    @model_validator(mode="after")
    def _coupon_or_code(self):
        if not self.couponId and not self.code:
            raise ValueError("send_coupon requires couponId or a fallback code")
        return self


class ProductRecommendationPayload(TemplateFields):
    productIds: list[str] = Field(default_factory=list)
    collectionId: Optional[str] = None

    @model_validator(mode="after")
    def _products_or_collection(self):
        if not self.productIds and not self.collectionId:
            raise ValueError("product_recommendation requires productIds or collectionId")
        return self


def _unique_channels(value):
    out = []
    for ch in value or []:
        if ch not in out:
            out.append(ch)
    return out


class SendCouponAction(BaseModel):
    type: Literal["send_coupon"] = "send_coupon"
    channels: list[Channel] = Field(min_length=1)
    payload: SendCouponPayload

    @field_validator("channels")
    @classmethod
    def _channels(cls, value):
        return _unique_channels(value)


class ProductRecommendationAction(BaseModel):
    type: Literal["product_recommendation"] = "product_recommendation"
    channels: list[Channel] = Field(min_length=1)
    payload: ProductRecommendationPayload

    @field_validator("channels")
    @classmethod
    def _channels(cls, value):
        return _unique_channels(value)


Action = Annotated[
    Union[SendCouponAction, ProductRecommendationAction],
    Field(discriminator="type"),
]


# ─── Rule documents ──────────────────────────────────────────────


class RuleBase(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    enabled: bool = True
    priority: int = Field(default=DEFAULT_RULE_PRIORITY, ge=0)
    event: EventName

    countries: list[str] = Field(default_factory=list)
    orderCurrencyIn: list[Currency] = Field(
        default_factory=list,
        validation_alias=AliasChoices("orderCurrencyIn", "order_currency_in"),
    )

    conditions: ConditionGroup = Field(default_factory=ConditionGroup)
    actions: list[Action] = Field(min_length=1)

    scope: Optional[Scope] = None
    cooldownDays: Optional[int] = Field(
        default=None,
        ge=1,
        validation_alias=AliasChoices("cooldownDays", "cooldown_days"),
    )

    @field_validator("countries", mode="before")
    @classmethod
    def _countries(cls, value):
        return _normalize_countries(value)

    @field_validator("orderCurrencyIn", mode="before")
    @classmethod
    def _currencies(cls, value):
        if value is None:
            return []
        out = []
        for c in value:
            code = str(c).strip().upper()
            if code not in out:
                out.append(code)
        return out

    @field_validator("conditions", mode="before")
    @classmethod
    def _conditions(cls, value):
        return value if value is not None else {}

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, value):
        return value if value is not None else ""


class RuleCreate(RuleBase):
    @model_validator(mode="before")
    @classmethod
    def _legacy_single_action(cls, data: Any):
        """
        Older clients send one action per rule:
        {"action": "send_coupon", "channels": [...], "payload": {..., "conditions": {...}}}
        """
        if not isinstance(data, dict) or "actions" in data or "action" not in data:
            return data

        data = dict(data)
        action_type = data.pop("action")
        channels = data.pop("channels", None) or []
        payload = dict(data.pop("payload", None) or {})

        conditions = payload.pop("conditions", None)
        if conditions is not None and "conditions" not in data:
            data["conditions"] = conditions
        scope = payload.pop("scope", None)
        if scope is not None and "scope" not in data:
            data["scope"] = scope
        cooldown = payload.pop("cooldownDays", None)
        if cooldown is not None and "cooldownDays" not in data:
            data["cooldownDays"] = cooldown

        data["actions"] = [{"type": action_type, "channels": channels, "payload": payload}]
        return data


class RuleBatchCreate(BaseModel):
    """One stored rule per (event, action)."""

    name: str = Field(min_length=1)
    description: str = ""
    enabled: bool = True
    priority: int = Field(default=DEFAULT_RULE_PRIORITY, ge=0)
    events: list[EventName] = Field(min_length=1)
    countries: list[str] = Field(default_factory=list)
    orderCurrencyIn: list[Currency] = Field(default_factory=list)
    conditions: Optional[dict[str, Any]] = None
    actions: list[dict[str, Any]] = Field(min_length=1)
    scope: Optional[Scope] = None
    cooldownDays: Optional[int] = None


class RuleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    enabled: Optional[bool] = None
    priority: Optional[int] = Field(default=None, ge=0)
    event: Optional[EventName] = None

    countries: Optional[list[str]] = None
    orderCurrencyIn: Optional[list[str]] = None

    conditions: Optional[dict[str, Any]] = None
    actions: Optional[list[dict[str, Any]]] = None

    scope: Optional[Scope] = None
    cooldownDays: Optional[int] = None


class RuleOut(RuleBase):
    id: UUID
    organizationId: str = Field(validation_alias=AliasChoices("organizationId", "organization_id"))

    createdAt: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("createdAt", "created_at"))
    updatedAt: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("updatedAt", "updated_at"))

    class Config:
        from_attributes = True
