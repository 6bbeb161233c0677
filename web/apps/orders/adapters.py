"""In-process order store for unit tests and local development.

Orders live in the ``orders`` table of an ``InMemoryDatabase`` and are
copied on every read and write so callers never share mutable state with
the store, just as they would not with rows in a database.
"""

import copy
import uuid
from typing import List, Optional

from apps.core.memory import InMemoryDatabase
from .domain import Order, OrderStatus, OrderStorePort


class InMemoryOrderStore(OrderStorePort):
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    @property
    def _orders(self) -> dict:
        return self.db.table("orders")

    def create(self, order: Order) -> Order:
        stored = copy.deepcopy(order)
        stored.id = str(uuid.uuid4())
        stored.order_number = len(self._orders) + 1
        for item in stored.items:
            item.id = str(uuid.uuid4())
        self._orders[stored.id] = stored
        return copy.deepcopy(stored)

    def get(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(str(order_id))
        return copy.deepcopy(order) if order else None

    def get_for_update(self, order_id: str) -> Optional[Order]:
        return self.get(order_id)

    def list(self, user_id: Optional[str], offset: int, limit: int) -> tuple[List[Order], int]:
        orders = [o for o in self._orders.values() if user_id is None or o.user_id == user_id]
        orders.sort(key=lambda o: (o.created_at, o.order_number), reverse=True)
        return [copy.deepcopy(o) for o in orders[offset:offset + limit]], len(orders)

    def save(self, order: Order, expected_status: Optional[OrderStatus] = None) -> Optional[Order]:
        stored = self._orders.get(order.id)
        if stored is None or (expected_status is not None and stored.status != expected_status):
            return None
        self._orders[order.id] = copy.deepcopy(order)
        return copy.deepcopy(order)
