import logging
from datetime import datetime, timezone

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.models.automation_event import AutomationEvent
from app.schemas.event import EventContext, EventCreate
from app.services.customer_service import get_customer, record_order
from app.services.rule_engine import process_event


logger = logging.getLogger(__name__)

# Orders that count as "placed an order" for inactivity purposes.
ORDER_ACTIVITY_EVENTS = {"order_paid", "order_completed"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def build_context(db: Session, organization_id: str, event_data: EventCreate) -> EventContext:
    """Fill what the caller left out from the customer mirror."""
    ctx = EventContext.model_validate(event_data.model_dump(exclude={"eventId", "source"}))

    if ctx.clientId and (ctx.country is None or ctx.customerLastOrderAt is None):
        customer = get_customer(db, organization_id, ctx.clientId)
        if customer:
            updates = {}
            if ctx.country is None and customer.country:
                updates["country"] = customer.country
            if ctx.customerLastOrderAt is None and customer.last_order_at:
                updates["customerLastOrderAt"] = customer.last_order_at
            if updates:
                ctx = ctx.model_copy(update=updates)

    return ctx


def create_event(
    db: Session,
    organization_id: str,
    event_data: EventCreate,
    *,
    rule_ids=None,
    now: datetime | None = None,
) -> AutomationEvent:
    """
    Store an event idempotently and run the rules bound to it.
    A second delivery of the same eventId returns the stored event untouched.
    """
    existing = (
        db.query(AutomationEvent)
        .filter(AutomationEvent.organization_id == organization_id)
        .filter(AutomationEvent.event_id == event_data.eventId)
        .first()
    )
    if existing:
        return existing

    if not organization_id or not organization_id.strip():
        raise HTTPException(status_code=400, detail="organizationId is required")

    if now is None:
        now = _utcnow()

    ctx = build_context(db, organization_id, event_data)

    event_row = AutomationEvent(
        organization_id=organization_id,
        event_id=event_data.eventId,
        event=ctx.event,
        source=event_data.source,
        context=ctx.model_dump(mode="json"),
        status="PENDING",
    )
    db.add(event_row)
    db.commit()
    db.refresh(event_row)

    try:
        process_event(db, event_row, rule_ids=rule_ids, now=now)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception("event processing failed", extra={"event_id": str(event_row.id)})
        event_row.status = "FAILED"
        event_row.error_message = str(e)
        event_row.processed_at = now
        db.commit()

    if ctx.event in ORDER_ACTIVITY_EVENTS and ctx.clientId:
        record_order(db, organization_id, ctx.clientId, now, country=ctx.country)
        db.commit()

    return event_row
