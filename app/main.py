import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import CORS_ORIGINS, LOG_LEVEL
from app.db import engine, Base

from app.models.rule import Rule
from app.models.automation_event import AutomationEvent
from app.models.rule_execution import RuleExecution
from app.models.delivery_request import DeliveryRequest
from app.models.rule_lock import RuleLock
from app.models.coupon import Coupon
from app.models.product import Product
from app.models.customer import Customer

from app.routes.rules import router as rules_router
from app.routes.events import router as events_router
from app.routes.catalog import router as catalog_router
from app.routes.customers import router as customers_router

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="Automation Rules Engine")

# ─── CORS ─────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup():
    Base.metadata.create_all(bind=engine)


app.include_router(rules_router)
app.include_router(events_router)
app.include_router(catalog_router)
app.include_router(customers_router)


@app.get("/")
def read_root():
    return {"message": "Automation Rules Engine is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8001)
