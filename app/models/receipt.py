"""
SQLAlchemy model for receipt persistence.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, Float, String, Text

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReceiptModel(Base):
    __tablename__ = "receipts"

    id = Column(String, primary_key=True)
    image_url = Column(String, nullable=False)
    image_base64 = Column(Text)
    store_name = Column(String, nullable=False, index=True)
    amount = Column(Float, nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    confidence = Column(String, default="medium")  # high, medium, low
    extracted_text = Column(Text)
    processing_status = Column(String, default="completed")  # pending, processing, completed, failed
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)
