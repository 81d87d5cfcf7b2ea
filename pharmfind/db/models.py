"""Database models."""
from sqlalchemy import Column, DateTime, Integer, JSON, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class OrderRecord(Base):
    """Order row: indexed status and version, full order as JSON payload."""

    __tablename__ = "orders"

    id = Column(String, primary_key=True, index=True)
    status = Column(String, nullable=False, index=True)
    version = Column(Integer, nullable=False, default=0)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
