from app.services.storage import StorageService
from app.services.store import SqlReceiptStore

__all__ = ["SqlReceiptStore", "StorageService"]
