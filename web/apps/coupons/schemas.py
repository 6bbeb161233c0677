"""Pydantic schemas for the coupons API."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, model_validator

from apps.core.schemas import CamelModel, Money, UtcDateTime
from .domain import AppliedCoupon, Coupon, CouponStats, DiscountType, TargetingCriteria, UserType


class ApplyCouponIn(CamelModel):
    code: str = ""
    order_amount: Decimal = Field(ge=0)


class AppliedCouponOut(CamelModel):
    code: str
    discount_type: DiscountType
    discount_value: Money
    discount: Money
    final_amount: Money

    @classmethod
    def from_domain(cls, applied: AppliedCoupon) -> "AppliedCouponOut":
        return cls(
            code=applied.code,
            discount_type=applied.discount_type,
            discount_value=applied.discount_value,
            discount=applied.discount,
            final_amount=applied.final_amount,
        )


class TargetingSchema(CamelModel):
    enabled: bool = False
    user_type: UserType = UserType.ALL
    min_total_purchase: Optional[Money] = Field(default=None, ge=0)
    max_total_purchase: Optional[Money] = Field(default=None, ge=0)
    min_order_count: Optional[int] = Field(default=None, ge=0)
    max_order_count: Optional[int] = Field(default=None, ge=0)
    registered_days_ago: Optional[int] = Field(default=None, ge=0)
    has_wishlist_items: Optional[bool] = None

    def to_domain(self) -> TargetingCriteria:
        return TargetingCriteria(**self.model_dump())

    @classmethod
    def from_domain(cls, t: TargetingCriteria) -> "TargetingSchema":
        return cls(
            enabled=t.enabled,
            user_type=t.user_type,
            min_total_purchase=t.min_total_purchase,
            max_total_purchase=t.max_total_purchase,
            min_order_count=t.min_order_count,
            max_order_count=t.max_order_count,
            registered_days_ago=t.registered_days_ago,
            has_wishlist_items=t.has_wishlist_items,
        )


def _check_percentage(discount_type, discount_value):
    if discount_type == DiscountType.PERCENTAGE and discount_value is not None and discount_value > 100:
        raise ValueError("Percentage discount cannot exceed 100")


class CreateCouponIn(CamelModel):
    """Body of ``POST /api/coupons/``.

    ``startDate`` defaults to now; ``endDate`` defaults to thirty days later.
    """

    code: str = Field(min_length=1, max_length=64)
    description: str = ""
    discount_type: DiscountType
    discount_value: Decimal = Field(gt=0)
    min_order_amount: Decimal = Field(default=Decimal(0), ge=0)
    max_discount_amount: Optional[Decimal] = Field(default=None, gt=0)
    usage_limit: Optional[int] = Field(default=None, ge=1)
    usage_per_user: int = Field(default=1, ge=0)
    start_date: Optional[UtcDateTime] = None
    end_date: Optional[UtcDateTime] = None
    is_active: bool = True
    targeting: TargetingSchema = Field(default_factory=TargetingSchema)
    notify_users: bool = False
    send_email: bool = False

    @model_validator(mode="after")
    def _validate_value(self):
        _check_percentage(self.discount_type, self.discount_value)
        return self

    def to_domain(self, now: datetime | None = None) -> Coupon:
        start = self.start_date or now or datetime.now(timezone.utc)
        return Coupon(
            code=self.code,
            description=self.description,
            discount_type=self.discount_type,
            discount_value=self.discount_value,
            min_order_amount=self.min_order_amount,
            max_discount_amount=self.max_discount_amount,
            usage_limit=self.usage_limit,
            usage_per_user=self.usage_per_user,
            start_date=start,
            end_date=self.end_date or start + timedelta(days=30),
            is_active=self.is_active,
            targeting=self.targeting.to_domain(),
            notify_users=self.notify_users,
        )


class UpdateCouponIn(CamelModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=64)
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(default=None, gt=0)
    min_order_amount: Optional[Decimal] = Field(default=None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(default=None, gt=0)
    usage_limit: Optional[int] = Field(default=None, ge=1)
    usage_per_user: Optional[int] = Field(default=None, ge=0)
    start_date: Optional[UtcDateTime] = None
    end_date: Optional[UtcDateTime] = None
    is_active: Optional[bool] = None
    targeting: Optional[TargetingSchema] = None
    notify_users: Optional[bool] = None

    @model_validator(mode="after")
    def _validate_value(self):
        _check_percentage(self.discount_type, self.discount_value)
        return self

    def changes(self) -> dict:
        """Fields the client actually sent, keyed by domain attribute name.

        ``maxDiscountAmount`` and ``usageLimit`` may be sent as null to
        clear them; other nulls are ignored.
        """
        out = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if value is None and name not in {"max_discount_amount", "usage_limit"}:
                continue
            if name == "targeting":
                value = value.to_domain()
            out[name] = value
        return out


class CouponUsageOut(CamelModel):
    user: str
    used_at: datetime


class CouponOut(CamelModel):
    id: str
    code: str
    description: str
    discount_type: DiscountType
    discount_value: Money
    min_order_amount: Money
    max_discount_amount: Optional[Money] = None
    usage_limit: Optional[int] = None
    used_count: int
    usage_per_user: int
    start_date: datetime
    end_date: datetime
    is_active: bool
    targeting: TargetingSchema
    eligible_users: List[str]
    notify_users: bool
    used_by: List[CouponUsageOut]
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, c: Coupon) -> "CouponOut":
        return cls(
            id=c.id,
            code=c.code,
            description=c.description,
            discount_type=c.discount_type,
            discount_value=c.discount_value,
            min_order_amount=c.min_order_amount,
            max_discount_amount=c.max_discount_amount,
            usage_limit=c.usage_limit,
            used_count=c.used_count,
            usage_per_user=c.usage_per_user,
            start_date=c.start_date,
            end_date=c.end_date,
            is_active=c.is_active,
            targeting=TargetingSchema.from_domain(c.targeting),
            eligible_users=c.eligible_users,
            notify_users=c.notify_users,
            used_by=[CouponUsageOut(user=u.user_id, used_at=u.used_at) for u in c.used_by],
            created_at=c.created_at,
        )


class CouponStatsOut(CamelModel):
    total_coupons: int
    active_coupons: int
    expired_coupons: int

    @classmethod
    def from_domain(cls, s: CouponStats) -> "CouponStatsOut":
        return cls(total_coupons=s.total_coupons, active_coupons=s.active_coupons,
                   expired_coupons=s.expired_coupons)
