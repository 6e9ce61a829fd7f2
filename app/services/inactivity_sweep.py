from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError
from sqlalchemy import asc, desc, or_, select
from sqlalchemy.orm import Session

from app.config import INACTIVE_DEFAULT_COOLDOWN_DAYS, INACTIVE_SWEEP_BATCH_SIZE
from app.models.customer import Customer
from app.models.rule import Rule
from app.models.rule_lock import RuleLock
from app.schemas.event import EventCreate
from app.schemas.rule import RuleOut
from app.services.event_service import create_event
from app.services.rule_engine import acquire_lock, cooldown_until
from app.services.rule_validation import iter_condition_items


logger = logging.getLogger(__name__)


@dataclass
class SweepStats:
    rules: int
    checked: int
    triggered: int
    failed: int

    def as_dict(self) -> dict:
        return {
            "rules": self.rules,
            "checked": self.checked,
            "triggered": self.triggered,
            "failed": self.failed,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def inactivity_threshold_days(document) -> int | None:
    days = [item.days for item in iter_condition_items(document.conditions) if item.kind == "no_order_days_gte"]
    if not days:
        return None
    return max(1, min(days))


def _cooldown_key(client_id: str) -> str:
    return f"inactive:{client_id}"


def _inactive_customers(db: Session, rule: Rule, *, cutoff: datetime, now: datetime, limit: int):
    locked = (
        select(RuleLock.client_id)
        .where(RuleLock.rule_id == rule.id)
        .where(RuleLock.client_id.isnot(None))
        .where(RuleLock.dedupe_key.like("inactive:%"))
        .where(or_(RuleLock.lock_until.is_(None), RuleLock.lock_until > now))
    )
    return (
        db.query(Customer)
        .filter(Customer.organization_id == rule.organization_id)
        .filter(or_(Customer.last_order_at.is_(None), Customer.last_order_at <= cutoff))
        .filter(Customer.client_id.notin_(locked))
        .order_by(asc(Customer.client_id))
        .limit(limit)
        .all()
    )


def run_inactivity_sweep_once(
    db: Session,
    *,
    now: datetime | None = None,
    batch_size: int = INACTIVE_SWEEP_BATCH_SIZE,
) -> SweepStats:
    """
    Emit one `customer_inactive` event per (rule, inactive customer) and lock the
    customer for that rule during its cooldown.
    """
    if now is None:
        now = _utcnow()

    rules = (
        db.query(Rule)
        .filter(Rule.enabled.is_(True), Rule.event == "customer_inactive")
        .order_by(asc(Rule.priority), desc(Rule.created_at))
        .all()
    )

    stats = SweepStats(rules=len(rules), checked=0, triggered=0, failed=0)

    for rule in rules:
        try:
            document = RuleOut.model_validate(rule)
        except ValidationError:
            logger.warning("skipping invalid customer_inactive rule", extra={"rule_id": str(rule.id)})
            stats.failed += 1
            continue

        days = inactivity_threshold_days(document)
        if days is None:
            continue

        cooldown = document.cooldownDays or INACTIVE_DEFAULT_COOLDOWN_DAYS
        cutoff = now - timedelta(days=days)

        customers = _inactive_customers(db, rule, cutoff=cutoff, now=now, limit=batch_size)
        stats.checked += len(customers)

        for customer in customers:
            event = EventCreate(
                event="customer_inactive",
                eventId=f"inactive_{rule.id}_{customer.client_id}_{now.date().isoformat()}",
                source="SWEEP",
                clientId=customer.client_id,
                country=customer.country,
                customerLastOrderAt=customer.last_order_at,
            )
            try:
                event_row = create_event(db, rule.organization_id, event, rule_ids=[rule.id], now=now)
                acquire_lock(
                    db,
                    organization_id=rule.organization_id,
                    rule_id=rule.id,
                    dedupe_key=_cooldown_key(customer.client_id),
                    client_id=customer.client_id,
                    lock_until=cooldown_until(now, cooldown),
                )
                db.commit()
            except Exception:
                db.rollback()
                logger.exception(
                    "inactivity sweep failed for customer",
                    extra={"rule_id": str(rule.id), "client_id": customer.client_id},
                )
                stats.failed += 1
                continue

            if event_row.status == "FAILED":
                stats.failed += 1
            else:
                stats.triggered += 1

        logger.info(
            "inactivity sweep rule done",
            extra={
                "rule_id": str(rule.id),
                "organization_id": rule.organization_id,
                "threshold_days": days,
                "candidates": len(customers),
            },
        )

    return stats
