from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.organization import get_active_organization
from app.models.rule import Rule
from app.schemas.event import EventContext
from app.schemas.rule import RuleBatchCreate, RuleCreate, RuleOut, RuleUpdate
from app.schemas.rule_condition_catalog import get_rule_conditions_catalog
from app.services.action_dispatcher import dispatch
from app.services.condition_evaluator import explain
from app.services.inactivity_sweep import run_inactivity_sweep_once
from app.services.rule_service import (
    create_rule as create_rule_row,
    delete_rule as delete_rule_row,
    format_validation_errors,
    get_rule as get_rule_row,
    rule_document_dict,
    update_rule as update_rule_row,
)
from app.services.rule_validation import RuleValidationError


router = APIRouter(prefix="/api/rules", tags=["rules"])


def _load_rule(db: Session, organization_id: str, rule_id: UUID) -> Rule:
    rule = get_rule_row(db, organization_id, rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.get("", response_model=list[RuleOut])
def list_rules(
    event: str | None = None,
    enabled: bool | None = None,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    q = db.query(Rule).filter(Rule.organization_id == organization_id)
    if event:
        q = q.filter(Rule.event == event)
    if enabled is not None:
        q = q.filter(Rule.enabled.is_(enabled))
    return q.order_by(Rule.priority.asc(), Rule.created_at.desc()).all()


@router.get("/catalog")
def get_rules_catalog():
    return get_rule_conditions_catalog()


@router.post("", response_model=RuleOut, status_code=201)
def create_rule(
    payload: RuleCreate,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    try:
        return create_rule_row(db, organization_id, payload)
    except RuleValidationError as e:
        raise HTTPException(status_code=400, detail={"errors": e.errors})


@router.post("/batch")
def create_rules_batch(
    payload: RuleBatchCreate,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    """
    Fan out one stored rule per (event, action). Each rule is committed on its
    own, so one invalid combination does not prevent the others.
    """
    base = payload.model_dump(exclude={"events", "actions"}, exclude_none=True)

    created = []
    errors = []
    for event in payload.events:
        for index, action in enumerate(payload.actions):
            body = {**base, "event": event, "actions": [action]}
            try:
                document = RuleCreate.model_validate(body)
                rule = create_rule_row(db, organization_id, document)
            except ValidationError as e:
                errors.append({"event": event, "actionIndex": index, "errors": format_validation_errors(e)})
                continue
            except RuleValidationError as e:
                errors.append({"event": event, "actionIndex": index, "errors": e.errors})
                continue
            created.append(RuleOut.model_validate(rule).model_dump(mode="json"))

    return {"created": created, "errors": errors}


@router.post("/sweeps/customer-inactive")
def run_customer_inactive_sweep(db: Session = Depends(get_db)):
    stats = run_inactivity_sweep_once(db)
    db.commit()
    return {"ok": True, **stats.as_dict()}


@router.get("/{rule_id}", response_model=RuleOut)
def get_rule(
    rule_id: UUID,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    return _load_rule(db, organization_id, rule_id)


@router.patch("/{rule_id}", response_model=RuleOut)
def update_rule(
    rule_id: UUID,
    payload: RuleUpdate,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    rule = _load_rule(db, organization_id, rule_id)

    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise HTTPException(status_code=400, detail="No fields provided to update")

    merged = {**rule_document_dict(rule), **data}
    try:
        document = RuleCreate.model_validate(merged)
    except ValidationError as e:
        raise RequestValidationError(e.errors())

    try:
        return update_rule_row(db, rule, document)
    except RuleValidationError as e:
        raise HTTPException(status_code=400, detail={"errors": e.errors})


@router.delete("/{rule_id}")
def delete_rule(
    rule_id: UUID,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    rule = _load_rule(db, organization_id, rule_id)
    delete_rule_row(db, rule)
    return {"ok": True}


@router.post("/{rule_id}/preview")
def preview_rule(
    rule_id: UUID,
    context: EventContext,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    """Evaluate a stored rule against a sample context; nothing is persisted."""
    rule = _load_rule(db, organization_id, rule_id)
    document = RuleOut.model_validate(rule)

    matched, reason = explain(document, context)
    attempts = dispatch(db, document, context, organization_id=organization_id) if matched else []
    return {
        "matched": matched,
        "reason": reason,
        "attempts": [a.as_dict() for a in attempts],
    }
