"""In-process coupon store and customer directory.

Both keep their records in an ``InMemoryDatabase`` and are meant for unit
tests and local runs without a database.
"""

import copy
import uuid
from datetime import datetime
from typing import List, Optional

from apps.core.memory import InMemoryDatabase
from .domain import Coupon, CouponStorePort, CouponUsage, CustomerDirectoryPort, CustomerProfile


class InMemoryCouponStore(CouponStorePort):
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    @property
    def _coupons(self) -> dict:
        return self.db.table("coupons")

    def _find(self, code: str) -> Optional[Coupon]:
        for coupon in self._coupons.values():
            if coupon.code == code.upper():
                return coupon
        return None

    def get(self, coupon_id: str) -> Optional[Coupon]:
        coupon = self._coupons.get(str(coupon_id))
        return copy.deepcopy(coupon) if coupon else None

    def get_by_code(self, code: str) -> Optional[Coupon]:
        coupon = self._find(code)
        return copy.deepcopy(coupon) if coupon else None

    def list(self) -> List[Coupon]:
        return [copy.deepcopy(c) for c in reversed(list(self._coupons.values()))]

    def create(self, coupon: Coupon) -> Coupon:
        stored = copy.deepcopy(coupon)
        stored.id = stored.id or str(uuid.uuid4())
        self._coupons[stored.id] = stored
        return copy.deepcopy(stored)

    def save(self, coupon: Coupon) -> Coupon:
        current = self._coupons[coupon.id]
        stored = copy.deepcopy(coupon)
        stored.used_by = current.used_by
        stored.used_count = current.used_count
        stored.eligible_users = current.eligible_users
        self._coupons[coupon.id] = stored
        return copy.deepcopy(stored)

    def delete(self, coupon_id: str) -> bool:
        return self._coupons.pop(str(coupon_id), None) is not None

    def record_usage(self, code: str, user_id: str, used_at: datetime) -> bool:
        coupon = self._find(code)
        if coupon is None:
            return False
        if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
            return False
        if coupon.usage_per_user and coupon.usage_by(user_id) >= coupon.usage_per_user:
            return False
        coupon.used_by.append(CouponUsage(user_id=str(user_id), used_at=used_at))
        coupon.used_count += 1
        return True


class InMemoryCustomerDirectory(CustomerDirectoryPort):
    """Fixed list of customer profiles."""

    def __init__(self, customers: List[CustomerProfile] | None = None):
        self.customers = list(customers or [])

    def list_customers(self) -> List[CustomerProfile]:
        return list(self.customers)
