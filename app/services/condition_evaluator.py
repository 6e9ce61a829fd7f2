"""
Decides whether a rule matches an event context.

Evaluation is pure: it only reads the rule document and the context, so the
same rule snapshot can be evaluated for independent events concurrently.
"""

import math
from datetime import datetime, timezone

from app.schemas.event import EventContext
from app.schemas.rule import (
    ConditionGroup,
    ContainsProductCondition,
    NestedConditionGroup,
    NoOrderDaysGteCondition,
    OrderTotalGteCondition,
)


MATCHED = "matched"
DISABLED = "disabled"
EVENT_MISMATCH = "event_mismatch"
COUNTRY_MISMATCH = "country_mismatch"
CURRENCY_MISMATCH = "currency_mismatch"
CONDITIONS_NOT_MET = "conditions_not_met"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def days_since(last: datetime | None, now: datetime) -> float:
    """Whole days since `last`; a customer who never ordered is infinitely inactive."""
    if last is None:
        return math.inf
    delta = _to_utc_naive(now) - _to_utc_naive(last)
    return math.floor(delta.total_seconds() / 86400)


def evaluate_item(item, ctx: EventContext, now: datetime) -> bool:
    if isinstance(item, ContainsProductCondition):
        in_order = set(ctx.orderProductIds)
        return any(pid in in_order for pid in item.productIds)

    if isinstance(item, OrderTotalGteCondition):
        if ctx.orderTotalEur is None:
            return False
        return ctx.orderTotalEur >= item.amount

    if isinstance(item, NoOrderDaysGteCondition):
        # without a customer there is no order history to measure
        if ctx.clientId is None and ctx.customerLastOrderAt is None:
            return False
        return days_since(ctx.customerLastOrderAt, now) >= item.days

    if isinstance(item, NestedConditionGroup):
        return evaluate_group(item, ctx, now)

    raise ValueError(f"Unknown condition kind: {getattr(item, 'kind', type(item).__name__)}")


def evaluate_group(group: ConditionGroup | NestedConditionGroup | None, ctx: EventContext, now: datetime) -> bool:
    # An empty group carries no restriction, for AND as well as OR.
    if group is None or not group.items:
        return True
    results = (evaluate_item(item, ctx, now) for item in group.items)
    if group.op == "OR":
        return any(results)
    return all(results)


def explain(rule, ctx: EventContext, now: datetime | None = None) -> tuple[bool, str]:
    if now is None:
        now = _utcnow()

    if not rule.enabled:
        return False, DISABLED
    if ctx.event != rule.event:
        return False, EVENT_MISMATCH

    if rule.countries and ctx.country not in rule.countries:
        return False, COUNTRY_MISMATCH
    if rule.orderCurrencyIn and ctx.currency not in rule.orderCurrencyIn:
        return False, CURRENCY_MISMATCH

    if not evaluate_group(rule.conditions, ctx, now):
        return False, CONDITIONS_NOT_MET

    return True, MATCHED


def evaluate(rule, ctx: EventContext, now: datetime | None = None) -> bool:
    matched, _ = explain(rule, ctx, now=now)
    return matched
