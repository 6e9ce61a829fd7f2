from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.organization import get_active_organization
from app.schemas.customer import CustomerOut, CustomerUpsert
from app.services.customer_service import get_customer as get_customer_row
from app.services.customer_service import get_or_create_customer


router = APIRouter(prefix="/api/customers", tags=["customers"])


@router.get("/{client_id}", response_model=CustomerOut)
def get_customer(
    client_id: str,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    customer = get_customer_row(db, organization_id, client_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


@router.post("/upsert", response_model=CustomerOut)
def upsert_customer(
    payload: CustomerUpsert,
    organization_id: str = Depends(get_active_organization),
    db: Session = Depends(get_db),
):
    customer = get_or_create_customer(
        db,
        organization_id,
        payload.clientId,
        {"country": payload.country, "lastOrderAt": payload.lastOrderAt},
    )
    db.commit()
    db.refresh(customer)
    return customer
