from sqlalchemy import asc, desc
from sqlalchemy.orm import Session

from app.models.rule import Rule
from app.models.rule_lock import RuleLock
from app.schemas.rule import RuleBase
from app.services.rule_validation import validate_rule


def format_validation_errors(exc) -> list[str]:
    out = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc") or ())
        out.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return out


def rule_document_dict(rule: Rule) -> dict:
    """Raw stored document, without re-validation."""
    return {
        "name": rule.name,
        "description": rule.description or "",
        "enabled": bool(rule.enabled),
        "priority": rule.priority,
        "event": rule.event,
        "countries": list(rule.countries or []),
        "orderCurrencyIn": list(rule.order_currency_in or []),
        "conditions": rule.conditions or {},
        "actions": list(rule.actions or []),
        "scope": rule.scope,
        "cooldownDays": rule.cooldown_days,
    }


def _apply_document(rule: Rule, document: RuleBase) -> None:
    rule.name = document.name
    rule.description = document.description
    rule.enabled = document.enabled
    rule.priority = document.priority
    rule.event = document.event
    rule.countries = list(document.countries)
    rule.order_currency_in = list(document.orderCurrencyIn)
    rule.conditions = document.conditions.model_dump(mode="json", exclude_none=True)
    rule.actions = [a.model_dump(mode="json", exclude_none=True) for a in document.actions]
    rule.scope = document.scope
    rule.cooldown_days = document.cooldownDays


def create_rule(db: Session, organization_id: str, document: RuleBase) -> Rule:
    validate_rule(db, organization_id, document)

    rule = Rule(organization_id=organization_id)
    _apply_document(rule, document)
    db.add(rule)
    db.commit()
    db.refresh(rule)
    return rule


def update_rule(db: Session, rule: Rule, document: RuleBase) -> Rule:
    validate_rule(db, rule.organization_id, document)

    _apply_document(rule, document)
    db.commit()
    db.refresh(rule)
    return rule


def delete_rule(db: Session, rule: Rule) -> None:
    db.query(RuleLock).filter(RuleLock.rule_id == rule.id).delete(synchronize_session=False)
    db.delete(rule)
    db.commit()


def get_rule(db: Session, organization_id: str, rule_id):
    return (
        db.query(Rule)
        .filter(Rule.id == rule_id, Rule.organization_id == organization_id)
        .first()
    )


def candidate_rules(db: Session, organization_id: str, event: str, rule_ids=None) -> list[Rule]:
    """Enabled rules for an event, lowest priority first; ties go to the newest rule."""
    q = (
        db.query(Rule)
        .filter(
            Rule.organization_id == organization_id,
            Rule.event == event,
            Rule.enabled.is_(True),
        )
    )
    if rule_ids is not None:
        q = q.filter(Rule.id.in_(list(rule_ids)))
    return q.order_by(asc(Rule.priority), desc(Rule.created_at), asc(Rule.id)).all()
