"""
Client-side working copy of the receipt list.

Owned by a single ``CaptureSession``; every mutation goes through
``set`` / ``add`` / ``update`` / ``remove`` and the last write wins.
"""
from __future__ import annotations

from typing import Iterable, Optional, Union

from app.schemas import Receipt, ReceiptSummary


class ReceiptCache:
    def __init__(self, receipts: Iterable[Receipt] = ()) -> None:
        self._receipts: list[Receipt] = list(receipts)

    def __len__(self) -> int:
        return len(self._receipts)

    def __iter__(self):
        return iter(list(self._receipts))

    @property
    def receipts(self) -> list[Receipt]:
        return list(self._receipts)

    def get(self, receipt_id: str) -> Optional[Receipt]:
        for receipt in self._receipts:
            if receipt.id == receipt_id:
                return receipt
        return None

    def set(self, receipts: Iterable[Receipt]) -> None:
        self._receipts = list(receipts)

    def add(self, receipt: Receipt) -> None:
        self._receipts.append(receipt)

    def update(self, receipt_id: str, patch: Union[Receipt, dict]) -> bool:
        """Replace (``Receipt``) or patch (``dict``) the cached entry."""
        for idx, receipt in enumerate(self._receipts):
            if receipt.id != receipt_id:
                continue
            if isinstance(patch, Receipt):
                self._receipts[idx] = patch
            else:
                self._receipts[idx] = receipt.model_copy(update=patch)
            return True
        return False

    def remove(self, receipt_id: str) -> bool:
        before = len(self._receipts)
        self._receipts = [r for r in self._receipts if r.id != receipt_id]
        return len(self._receipts) != before

    # ── computed values ─────────────────────────────────────────────────
    def total_amount(self) -> float:
        return sum(r.amount for r in self._receipts)

    def average_amount(self) -> float:
        if not self._receipts:
            return 0.0
        return self.total_amount() / len(self._receipts)

    def summary(self) -> ReceiptSummary:
        return ReceiptSummary(
            count=len(self._receipts),
            total_amount=self.total_amount(),
            average_amount=self.average_amount(),
        )
