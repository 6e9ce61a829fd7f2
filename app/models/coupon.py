from sqlalchemy import Column, String, JSON, TIMESTAMP
from sqlalchemy.sql import func
from app.db import Base


class Coupon(Base):
    __tablename__ = "coupons"

    # ids come from the storefront catalog
    id = Column(String(100), primary_key=True)

    organization_id = Column(String(100), nullable=False, index=True)

    name = Column(String(200), nullable=False, default="")
    code = Column(String(100), nullable=False)

    countries = Column(JSON, nullable=False, default=list)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
