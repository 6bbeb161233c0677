"""In-process replacement store for unit tests."""

import copy
import uuid
from collections import Counter
from decimal import Decimal
from typing import Dict, List, Optional

from apps.core.errors import InvalidState
from apps.core.memory import InMemoryDatabase
from .domain import Replacement, ReplacementStatus, ReplacementStorePort


class InMemoryReplacementStore(ReplacementStorePort):
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    @property
    def _rows(self) -> dict:
        return self.db.table("replacements")

    def create(self, replacement: Replacement) -> Replacement:
        if self.has_active(replacement.order_id, replacement.item.product_id):
            raise InvalidState("Replacement already requested for this item", code="DUPLICATE_REQUEST")
        stored = copy.deepcopy(replacement)
        stored.id = str(uuid.uuid4())
        self._rows[stored.id] = stored
        return copy.deepcopy(stored)

    def get(self, replacement_id: str) -> Optional[Replacement]:
        row = self._rows.get(str(replacement_id))
        return copy.deepcopy(row) if row else None

    def get_for_update(self, replacement_id: str) -> Optional[Replacement]:
        return self.get(replacement_id)

    def list(self, user_id: Optional[str] = None, status: Optional[ReplacementStatus] = None) -> List[Replacement]:
        rows = [
            r for r in self._rows.values()
            if (user_id is None or r.user_id == user_id) and (status is None or r.status == status)
        ]
        rows.sort(key=lambda r: r.requested_at, reverse=True)
        return [copy.deepcopy(r) for r in rows]

    def list_for_order(self, order_id: str) -> List[Replacement]:
        return [copy.deepcopy(r) for r in self._rows.values() if r.order_id == str(order_id)]

    def has_active(self, order_id: str, product_id: str) -> bool:
        return any(
            r.order_id == str(order_id) and r.item.product_id == str(product_id) and r.is_active
            for r in self._rows.values()
        )

    def save(self, replacement: Replacement,
             expected_status: Optional[ReplacementStatus] = None) -> Optional[Replacement]:
        stored = self._rows.get(replacement.id)
        if stored is None or (expected_status is not None and stored.status != expected_status):
            return None
        self._rows[replacement.id] = copy.deepcopy(replacement)
        return copy.deepcopy(replacement)

    def claim_stock_restore(self, replacement_id: str) -> bool:
        row = self._rows.get(str(replacement_id))
        if row is None or row.stock_restored:
            return False
        row.stock_restored = True
        return True

    def count_by_status(self) -> Dict[ReplacementStatus, int]:
        return dict(Counter(r.status for r in self._rows.values()))

    def refunded_total(self) -> Decimal:
        return sum(
            (r.refund.amount or Decimal(0) for r in self._rows.values() if r.status == ReplacementStatus.REFUNDED),
            Decimal(0),
        )
