from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.models.customer import Customer


def _to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def get_customer(db: Session, organization_id: str, client_id: str):
    if not client_id:
        return None
    return (
        db.query(Customer)
        .filter(
            Customer.organization_id == organization_id,
            Customer.client_id == client_id,
        )
        .first()
    )


def get_or_create_customer(db: Session, organization_id: str, client_id: str, payload: dict | None = None):
    customer = get_customer(db, organization_id, client_id)

    if not customer:
        customer = Customer(organization_id=organization_id, client_id=client_id)
        db.add(customer)
        db.flush()

    if payload:
        if payload.get("country"):
            customer.country = str(payload["country"]).strip().upper()[:2]
        if payload.get("lastOrderAt"):
            customer.last_order_at = _to_utc_naive(payload["lastOrderAt"])

    return customer


def record_order(db: Session, organization_id: str, client_id: str, at: datetime, country: str | None = None):
    at = _to_utc_naive(at)
    customer = get_or_create_customer(db, organization_id, client_id, {"country": country})
    if customer.last_order_at is None or customer.last_order_at < at:
        customer.last_order_at = at
    return customer
