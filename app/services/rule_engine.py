import logging
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.automation_event import AutomationEvent
from app.models.delivery_request import DeliveryRequest
from app.models.rule_execution import RuleExecution
from app.models.rule_lock import RuleLock
from app.schemas.event import EventContext
from app.schemas.rule import RuleOut
from app.services.action_dispatcher import QUEUED, dispatch, make_dedupe_key
from app.services.condition_evaluator import explain
from app.services.rule_service import candidate_rules


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def scope_lock_key(scope: str | None, ctx: EventContext) -> tuple[str | None, str | None]:
    """(dedupe key, skip reason) for a rule scope."""
    if scope == "per_order":
        if not ctx.orderId:
            return None, "missing_order_id"
        return f"order:{ctx.orderId}", None
    if scope == "per_customer":
        if not ctx.clientId:
            return None, "missing_client_id"
        return f"customer:{ctx.clientId}", None
    return None, None


def is_locked(db: Session, rule_id, dedupe_key: str, now: datetime) -> bool:
    existing = (
        db.query(RuleLock.id)
        .filter(RuleLock.rule_id == rule_id, RuleLock.dedupe_key == dedupe_key)
        .filter(or_(RuleLock.lock_until.is_(None), RuleLock.lock_until > now))
        .first()
    )
    return existing is not None


def acquire_lock(
    db: Session,
    *,
    organization_id: str,
    rule_id,
    dedupe_key: str,
    client_id: str | None = None,
    order_id: str | None = None,
    lock_until: datetime | None = None,
) -> RuleLock:
    lock = (
        db.query(RuleLock)
        .filter(RuleLock.rule_id == rule_id, RuleLock.dedupe_key == dedupe_key)
        .first()
    )
    if lock is None:
        lock = RuleLock(organization_id=organization_id, rule_id=rule_id, dedupe_key=dedupe_key)
        db.add(lock)
    lock.client_id = client_id
    lock.order_id = order_id
    lock.lock_until = lock_until
    db.flush()
    return lock


def cooldown_until(now: datetime, days: int) -> datetime:
    return now + timedelta(days=int(days))


def _record(db: Session, event_row: AutomationEvent, rule_id, result: str, details: dict) -> None:
    db.add(
        RuleExecution(
            event_id=event_row.id,
            rule_id=rule_id,
            result=result,
            details=details,
        )
    )


def _persist_attempts(db: Session, event_row: AutomationEvent, rule_id, ctx: EventContext, attempts) -> None:
    for attempt in attempts:
        db.add(
            DeliveryRequest(
                organization_id=event_row.organization_id,
                event_id=event_row.id,
                rule_id=rule_id,
                action_index=attempt.action_index,
                action_type=attempt.action_type,
                channel=attempt.channel,
                status=attempt.status,
                reason=attempt.reason,
                subject=attempt.subject,
                message=attempt.message,
                url=attempt.url,
                variables=attempt.variables,
                coupon_id=attempt.coupon_id,
                client_id=ctx.clientId,
                dedupe_key=make_dedupe_key(
                    {
                        "organizationId": event_row.organization_id,
                        "eventId": str(event_row.id),
                        "ruleId": str(rule_id),
                        "actionIndex": attempt.action_index,
                        "channel": attempt.channel,
                    }
                ),
            )
        )


def process_event(db: Session, event_row: AutomationEvent, *, rule_ids=None, now: datetime | None = None):
    """
    Run every enabled rule bound to a stored event.

    All matching rules dispatch, in ascending priority. A failure in one rule
    is recorded on its execution row and never stops the others.
    """
    if now is None:
        now = _utcnow()

    ctx = EventContext.model_validate(event_row.context or {"event": event_row.event})

    rules = candidate_rules(db, event_row.organization_id, event_row.event, rule_ids=rule_ids)

    if not rules:
        event_row.error_code = "NO_RULES"
        event_row.error_message = "No enabled rules matched this event."
        event_row.status = "PROCESSED"
        event_row.processed_at = now
        return []

    all_attempts = []
    had_rule_failures = False

    for rule in rules:
        try:
            document = RuleOut.model_validate(rule)
        except ValidationError as e:
            had_rule_failures = True
            logger.warning(
                "stored rule document is invalid",
                extra={"rule_id": str(rule.id), "event_id": str(event_row.id), "error": str(e)},
            )
            _record(db, event_row, rule.id, "FAILED", {"error": "Invalid rule document", "detail": str(e)})
            continue

        try:
            matched, reason = explain(document, ctx, now=now)
            if not matched:
                logger.debug("rule not matched", extra={"rule_id": str(rule.id), "reason": reason})
                _record(db, event_row, rule.id, "SKIPPED", {"matched": False, "reason": reason})
                continue

            lock_key, lock_skip = scope_lock_key(document.scope, ctx)
            if lock_skip:
                _record(db, event_row, rule.id, "SKIPPED", {"matched": True, "reason": lock_skip})
                continue
            if lock_key and is_locked(db, rule.id, lock_key, now):
                _record(db, event_row, rule.id, "SKIPPED", {"matched": True, "reason": "already_fired"})
                continue

            with db.begin_nested():
                attempts = dispatch(db, document, ctx, organization_id=event_row.organization_id)
                _persist_attempts(db, event_row, rule.id, ctx, attempts)

                delivered = any(a.status == QUEUED for a in attempts)
                if delivered and lock_key:
                    acquire_lock(
                        db,
                        organization_id=event_row.organization_id,
                        rule_id=rule.id,
                        dedupe_key=lock_key,
                        client_id=ctx.clientId,
                        order_id=ctx.orderId,
                    )
                db.flush()

            all_attempts.extend(attempts)
            details = {"matched": True, "attempts": [a.summary() for a in attempts]}
            if delivered:
                _record(db, event_row, rule.id, "SUCCESS", details)
            else:
                details["reason"] = "no_deliverable_actions"
                _record(db, event_row, rule.id, "SKIPPED", details)

        except Exception as e:
            had_rule_failures = True
            logger.exception(
                "rule execution failed",
                extra={"rule_id": str(rule.id), "event_id": str(event_row.id)},
            )
            _record(db, event_row, rule.id, "FAILED", {"error": str(e)})

    event_row.status = "PROCESSED_WITH_ERRORS" if had_rule_failures else "PROCESSED"
    event_row.processed_at = now

    logger.info(
        "event processed",
        extra={
            "event_id": str(event_row.id),
            "event": event_row.event,
            "organization_id": event_row.organization_id,
            "rules": len(rules),
            "attempts": len(all_attempts),
            "status": event_row.status,
        },
    )
    return all_attempts
