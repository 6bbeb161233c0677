"""Wiring for ``CouponService``."""

from apps.notifications.providers import get_dispatcher
from .domain import CouponService
from .repository import CouponRepository, CustomerDirectory


def get_coupon_service() -> CouponService:
    return CouponService(
        coupons=CouponRepository(),
        customers=CustomerDirectory(),
        dispatcher=get_dispatcher(),
    )
