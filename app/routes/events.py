from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.organization import get_active_organization
from app.models.automation_event import AutomationEvent
from app.models.delivery_request import DeliveryRequest
from app.models.rule_execution import RuleExecution
from app.schemas.delivery import DeliveryRequestOut
from app.schemas.event import EventCreate, EventOut
from app.schemas.execution import RuleExecutionOut
from app.services.event_service import create_event as create_event_row

router = APIRouter(prefix="/api/events", tags=["events"])


def _load_event(db: Session, organization_id: str, event_id: UUID) -> AutomationEvent:
    event_row = (
        db.query(AutomationEvent)
        .filter(AutomationEvent.id == event_id, AutomationEvent.organization_id == organization_id)
        .first()
    )
    if not event_row:
        raise HTTPException(status_code=404, detail="Event not found")
    return event_row


def _deliveries(db: Session, event_id):
    return (
        db.query(DeliveryRequest)
        .filter(DeliveryRequest.event_id == event_id)
        .order_by(DeliveryRequest.created_at.asc(), DeliveryRequest.action_index.asc())
        .all()
    )


@router.post("")
def create_event(
    event: EventCreate,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    event_row = create_event_row(db, organization_id, event)

    return {
        "id": str(event_row.id),
        "eventId": event_row.event_id,
        "status": event_row.status,
        "attempts": [
            DeliveryRequestOut.model_validate(d).model_dump(mode="json") for d in _deliveries(db, event_row.id)
        ],
    }


@router.get("/{event_id}", response_model=EventOut)
def get_event(
    event_id: UUID,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    return _load_event(db, organization_id, event_id)


@router.get("/{event_id}/executions", response_model=list[RuleExecutionOut])
def list_event_executions(
    event_id: UUID,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    event_row = _load_event(db, organization_id, event_id)
    return (
        db.query(RuleExecution)
        .filter(RuleExecution.event_id == event_row.id)
        .order_by(RuleExecution.executed_at.asc())
        .all()
    )


@router.get("/{event_id}/deliveries", response_model=list[DeliveryRequestOut])
def list_event_deliveries(
    event_id: UUID,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    event_row = _load_event(db, organization_id, event_id)
    return _deliveries(db, event_row.id)
