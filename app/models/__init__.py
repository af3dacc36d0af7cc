from app.models.receipt import ReceiptModel

__all__ = ["ReceiptModel"]
