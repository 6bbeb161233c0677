"""Coupon rules, targeting and the coupon service.

The pure rules (``Coupon.check``, ``Coupon.compute_discount``,
``TargetingCriteria.matches``) have no I/O. ``CouponService`` orchestrates
them over a ``CouponStorePort`` and a ``CustomerDirectoryPort`` and hands
announcements to the notification dispatcher.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Callable, List, Optional, Protocol

from apps.core.errors import InvalidState, NotFound, Unauthorized, ValidationError
from apps.core.identity import Actor

logger = logging.getLogger("coupons")

CURRENCY = "₹"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class UserType(str, Enum):
    ALL = "all"
    NEW = "new"
    EXISTING = "existing"


@dataclass(frozen=True)
class CouponUsage:
    user_id: str
    used_at: datetime


@dataclass(frozen=True)
class CustomerProfile:
    """Purchase history summary used to evaluate coupon targeting.

    ``total_spent`` and ``order_count`` only count orders that were not
    cancelled.
    """

    user_id: str
    joined_at: datetime
    total_spent: Decimal = Decimal(0)
    order_count: int = 0
    wishlist_count: int = 0
    email: str = ""
    name: str = ""


@dataclass
class TargetingCriteria:
    """Admin-defined audience for a coupon; unset bounds are ignored."""

    enabled: bool = False
    user_type: UserType = UserType.ALL
    min_total_purchase: Optional[Decimal] = None
    max_total_purchase: Optional[Decimal] = None
    min_order_count: Optional[int] = None
    max_order_count: Optional[int] = None
    registered_days_ago: Optional[int] = None
    has_wishlist_items: Optional[bool] = None

    def matches(self, customer: CustomerProfile, now: datetime) -> bool:
        if self.user_type == UserType.NEW and customer.order_count > 0:
            return False
        if self.user_type == UserType.EXISTING and customer.order_count == 0:
            return False
        if self.min_total_purchase and customer.total_spent < self.min_total_purchase:
            return False
        if self.max_total_purchase and customer.total_spent > self.max_total_purchase:
            return False
        if self.min_order_count and customer.order_count < self.min_order_count:
            return False
        if self.max_order_count and customer.order_count > self.max_order_count:
            return False
        if self.registered_days_ago and (now - customer.joined_at).days < self.registered_days_ago:
            return False
        if self.has_wishlist_items is True and customer.wishlist_count == 0:
            return False
        if self.has_wishlist_items is False and customer.wishlist_count > 0:
            return False
        return True


@dataclass(frozen=True)
class CouponCheck:
    valid: bool
    message: Optional[str] = None


@dataclass
class Coupon:
    """A discount code and its usage ledger.

    Attributes:
        code: Unique code, always upper case.
        discount_type: ``percentage`` of the order amount or ``fixed`` amount.
        discount_value: Percentage points or currency units.
        min_order_amount: Smallest order amount the coupon applies to.
        max_discount_amount: Optional cap on the computed discount.
        usage_limit: Optional cap on total redemptions.
        usage_per_user: Redemptions allowed per user (0 means unlimited).
        eligible_users: Targeting snapshot taken when the coupon was created.
        used_by: Append-only redemption log.
    """

    code: str
    discount_type: DiscountType
    discount_value: Decimal
    end_date: datetime
    start_date: datetime = field(default_factory=_utcnow)
    id: Optional[str] = None
    description: str = ""
    min_order_amount: Decimal = Decimal(0)
    max_discount_amount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    usage_per_user: int = 1
    is_active: bool = True
    targeting: TargetingCriteria = field(default_factory=TargetingCriteria)
    eligible_users: List[str] = field(default_factory=list)
    notify_users: bool = False
    used_by: List[CouponUsage] = field(default_factory=list)
    used_count: int = 0
    created_at: Optional[datetime] = None

    def usage_by(self, user_id: str) -> int:
        return sum(1 for usage in self.used_by if usage.user_id == str(user_id))

    def is_targeted_at(self, user_id: str) -> bool:
        return not self.targeting.enabled or str(user_id) in self.eligible_users

    def check(self, order_amount: Decimal, user_id: Optional[str], now: datetime) -> CouponCheck:
        """Validate the coupon for an order; the first failing rule wins."""
        if not self.is_active:
            return CouponCheck(False, "This coupon is not active")
        if now < self.start_date:
            return CouponCheck(False, "This coupon is not yet active")
        if now > self.end_date:
            return CouponCheck(False, "This coupon has expired")
        if self.usage_limit is not None and self.used_count >= self.usage_limit:
            return CouponCheck(False, "This coupon has reached its usage limit")
        if order_amount < self.min_order_amount:
            return CouponCheck(False, f"Minimum order amount is {CURRENCY}{self.min_order_amount}")
        if user_id and self.usage_per_user and self.usage_by(user_id) >= self.usage_per_user:
            return CouponCheck(False, "You have already used this coupon")
        return CouponCheck(True)

    def compute_discount(self, order_amount: Decimal) -> Decimal:
        """Discount for ``order_amount``, capped and rounded to whole units.

        The discount never exceeds ``max_discount_amount`` (when set) nor
        the order amount itself.
        """
        if self.discount_type == DiscountType.PERCENTAGE:
            discount = order_amount * self.discount_value / Decimal(100)
        else:
            discount = self.discount_value
        if self.max_discount_amount is not None and discount > self.max_discount_amount:
            discount = self.max_discount_amount
        if discount > order_amount:
            discount = order_amount
        return discount.quantize(Decimal(1), rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class AppliedCoupon:
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    discount: Decimal
    final_amount: Decimal


@dataclass(frozen=True)
class CouponStats:
    total_coupons: int
    active_coupons: int
    expired_coupons: int


def select_eligible_users(criteria: TargetingCriteria, customers: List[CustomerProfile],
                          now: datetime) -> List[CustomerProfile]:
    """Customers matching ``criteria``; empty when targeting is disabled."""
    if not criteria.enabled:
        return []
    return [c for c in customers if criteria.matches(c, now)]


# ---- Ports ----
class CouponStorePort(Protocol):
    def get(self, coupon_id: str) -> Optional[Coupon]:
        raise NotImplementedError()

    def get_by_code(self, code: str) -> Optional[Coupon]:
        raise NotImplementedError()

    def list(self) -> List[Coupon]:
        raise NotImplementedError()

    def create(self, coupon: Coupon) -> Coupon:
        raise NotImplementedError()

    def save(self, coupon: Coupon) -> Coupon:
        """Persist coupon settings; never rewrites the usage ledger."""
        raise NotImplementedError()

    def delete(self, coupon_id: str) -> bool:
        raise NotImplementedError()

    def record_usage(self, code: str, user_id: str, used_at: datetime) -> bool:
        """Append a redemption and bump ``used_count`` atomically.

        Must refuse (return False) when the append would exceed the
        coupon's ``usage_limit`` or the user's ``usage_per_user``.
        """
        raise NotImplementedError()


class CustomerDirectoryPort(Protocol):
    def list_customers(self) -> List[CustomerProfile]:
        raise NotImplementedError()


# ---- Service ----
class CouponService:
    """Apply, create and administer coupons."""

    def __init__(self, coupons: CouponStorePort, customers: CustomerDirectoryPort | None = None,
                 dispatcher=None, clock: Callable[[], datetime] = _utcnow):
        self.coupons = coupons
        self.customers = customers
        self.dispatcher = dispatcher
        self.clock = clock

    def apply(self, code: str, order_amount: Decimal, actor: Actor) -> AppliedCoupon:
        """Validate ``code`` for the actor and compute its discount.

        Raises:
            ValidationError: If no code is given.
            NotFound: If the code does not exist.
            InvalidState: If the actor is outside the targeting snapshot or
                any validation rule fails.
        """
        if not code or not code.strip():
            raise ValidationError("Coupon code is required")
        coupon = self.coupons.get_by_code(code.strip().upper())
        if coupon is None:
            raise NotFound("Invalid coupon code")
        if not coupon.is_targeted_at(actor.user_id):
            raise InvalidState("You are not eligible for this coupon", code="COUPON_NOT_ELIGIBLE")
        result = coupon.check(order_amount, actor.user_id, self.clock())
        if not result.valid:
            raise InvalidState(result.message, code="COUPON_INVALID")
        discount = coupon.compute_discount(order_amount)
        return AppliedCoupon(
            code=coupon.code,
            discount_type=coupon.discount_type,
            discount_value=coupon.discount_value,
            discount=discount,
            final_amount=order_amount - discount,
        )

    def _require_admin(self, actor: Actor) -> None:
        if not actor.is_admin:
            raise Unauthorized("Only administrators can manage coupons")

    def list_coupons(self, actor: Actor) -> List[Coupon]:
        self._require_admin(actor)
        return self.coupons.list()

    def get_coupon(self, coupon_id: str, actor: Actor) -> Coupon:
        self._require_admin(actor)
        coupon = self.coupons.get(coupon_id)
        if coupon is None:
            raise NotFound("Coupon not found")
        return coupon

    def create_coupon(self, coupon: Coupon, actor: Actor, send_email: bool = False) -> Coupon:
        """Create a coupon and snapshot its eligible audience.

        When ``coupon.notify_users`` (or ``send_email``) is set, the eligible
        users receive a ``coupon_available`` notification in the background.
        """
        self._require_admin(actor)
        coupon.code = coupon.code.strip().upper()
        if coupon.end_date <= coupon.start_date:
            raise ValidationError("End date must be after start date")
        if self.coupons.get_by_code(coupon.code) is not None:
            raise InvalidState("Coupon code already exists", code="DUPLICATE_COUPON")

        eligible: List[CustomerProfile] = []
        if coupon.targeting.enabled and self.customers is not None:
            eligible = select_eligible_users(coupon.targeting, self.customers.list_customers(), self.clock())
        coupon.eligible_users = [c.user_id for c in eligible]
        coupon.used_by = []
        coupon.used_count = 0

        created = self.coupons.create(coupon)
        logger.info("coupon created", extra={"code": created.code, "eligible_count": len(eligible)})

        if (coupon.notify_users or send_email) and eligible and self.dispatcher is not None:
            self.dispatcher.dispatch_bulk(
                [c.user_id for c in eligible],
                "coupon_available",
                self._announcement(created, send_email),
            )
        return created

    def _announcement(self, coupon: Coupon, send_email: bool) -> dict:
        if coupon.discount_type == DiscountType.PERCENTAGE:
            off = f"{coupon.discount_value.normalize():f}%"
        else:
            off = f"{CURRENCY}{coupon.discount_value.normalize():f}"
        return {
            "title": "New Coupon Available!",
            "message": (
                f"Use code {coupon.code} to get {off} off on your next order! "
                f"Valid till {coupon.end_date:%d/%m/%Y}."
            ),
            "code": coupon.code,
            "discountType": coupon.discount_type.value,
            "discountValue": str(coupon.discount_value),
            "minOrderAmount": str(coupon.min_order_amount),
            "endDate": coupon.end_date.isoformat(),
            "channels": ["in_app", "email"] if send_email else ["in_app"],
        }

    def update_coupon(self, coupon_id: str, changes: dict, actor: Actor) -> Coupon:
        """Apply a partial update; the usage ledger is never touched."""
        coupon = self.get_coupon(coupon_id, actor)
        if "code" in changes and changes["code"]:
            new_code = changes["code"].strip().upper()
            if new_code != coupon.code and self.coupons.get_by_code(new_code) is not None:
                raise InvalidState("Coupon code already exists", code="DUPLICATE_COUPON")
            changes = {**changes, "code": new_code}
        for name, value in changes.items():
            if name in {"id", "used_by", "used_count", "eligible_users", "created_at"}:
                continue
            setattr(coupon, name, value)
        if coupon.end_date <= coupon.start_date:
            raise ValidationError("End date must be after start date")
        return self.coupons.save(coupon)

    def delete_coupon(self, coupon_id: str, actor: Actor) -> None:
        self._require_admin(actor)
        if not self.coupons.delete(coupon_id):
            raise NotFound("Coupon not found")

    def stats(self, actor: Actor) -> CouponStats:
        """Counts of all, active and expired coupons.

        Active and expired are independent: a coupon past its end date that
        was never switched off counts in both.
        """
        self._require_admin(actor)
        coupons = self.coupons.list()
        now = self.clock()
        return CouponStats(
            total_coupons=len(coupons),
            active_coupons=sum(1 for c in coupons if c.is_active),
            expired_coupons=sum(1 for c in coupons if c.end_date < now),
        )
