from sqlalchemy import Column, String, TIMESTAMP
from sqlalchemy.sql import func
from app.db import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(String(100), primary_key=True)

    organization_id = Column(String(100), nullable=False, index=True)
    title = Column(String(500), nullable=False)

    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
