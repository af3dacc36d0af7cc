"""
FastAPI dependencies for the record store, image storage and extractor.

Tests override these through ``app.dependency_overrides``.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.pipeline.extractor import ReceiptExtractor
from app.services.storage import StorageService
from app.services.store import SqlReceiptStore


def get_store(db: Session = Depends(get_db)) -> SqlReceiptStore:
    return SqlReceiptStore(db)


def get_storage() -> StorageService:
    return StorageService()


def get_extractor() -> ReceiptExtractor:
    return ReceiptExtractor()
