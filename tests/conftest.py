import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Must be set before app.db is imported.
_DB_DIR = Path(tempfile.mkdtemp(prefix="automation-rules-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'test.db'}"

from fastapi.testclient import TestClient  # noqa: E402

from app.db import Base, SessionLocal, engine  # noqa: E402
from app.main import app  # noqa: E402
from app.models.coupon import Coupon  # noqa: E402
from app.models.customer import Customer  # noqa: E402
from app.models.product import Product  # noqa: E402
from app.schemas.rule import RuleCreate  # noqa: E402


ORG = "org_test"
HEADERS = {"X-Organization": ORG}


def build_rule(**overrides) -> RuleCreate:
    data = {
        "name": "Paid order coupon",
        "event": "order_paid",
        "countries": [],
        "conditions": {"op": "AND", "items": []},
        "actions": [
            {"type": "send_coupon", "channels": ["email"], "payload": {"code": "WELCOME"}},
        ],
    }
    data.update(overrides)
    return RuleCreate.model_validate(data)


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def add_coupon(db):
    def _add(coupon_id: str, code: str, countries: list[str], organization_id: str = ORG):
        coupon = Coupon(id=coupon_id, organization_id=organization_id, name=code, code=code, countries=countries)
        db.add(coupon)
        db.commit()
        return coupon

    return _add


@pytest.fixture()
def add_product(db):
    def _add(product_id: str, title: str, organization_id: str = ORG):
        product = Product(id=product_id, organization_id=organization_id, title=title)
        db.add(product)
        db.commit()
        return product

    return _add


@pytest.fixture()
def add_customer(db):
    def _add(client_id: str, last_order_at=None, country: str | None = None, organization_id: str = ORG):
        customer = Customer(
            organization_id=organization_id,
            client_id=client_id,
            country=country,
            last_order_at=last_order_at,
        )
        db.add(customer)
        db.commit()
        return customer

    return _add
