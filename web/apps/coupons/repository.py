"""Django ORM repositories for coupons and the customer directory."""

import uuid
from decimal import Decimal
from typing import List, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, F, Sum

from apps.catalog.models import WishlistItemModel
from apps.orders.models import OrderModel
from .domain import Coupon, CouponUsage, CustomerProfile, DiscountType, TargetingCriteria, UserType
from .models import CouponModel, CouponUsageModel

_DECIMAL_TARGETS = ("min_total_purchase", "max_total_purchase")


def targeting_to_json(t: TargetingCriteria) -> dict:
    data = {
        "enabled": t.enabled,
        "user_type": t.user_type.value,
        "min_order_count": t.min_order_count,
        "max_order_count": t.max_order_count,
        "registered_days_ago": t.registered_days_ago,
        "has_wishlist_items": t.has_wishlist_items,
    }
    for name in _DECIMAL_TARGETS:
        value = getattr(t, name)
        data[name] = str(value) if value is not None else None
    return data


def targeting_from_json(data: dict) -> TargetingCriteria:
    data = data or {}
    kwargs = {name: Decimal(data[name]) if data.get(name) is not None else None for name in _DECIMAL_TARGETS}
    return TargetingCriteria(
        enabled=bool(data.get("enabled", False)),
        user_type=UserType(data.get("user_type", UserType.ALL.value)),
        min_order_count=data.get("min_order_count"),
        max_order_count=data.get("max_order_count"),
        registered_days_ago=data.get("registered_days_ago"),
        has_wishlist_items=data.get("has_wishlist_items"),
        **kwargs,
    )


def to_domain(obj: CouponModel) -> Coupon:
    return Coupon(
        id=str(obj.id),
        code=obj.code,
        description=obj.description,
        discount_type=DiscountType(obj.discount_type),
        discount_value=obj.discount_value,
        min_order_amount=obj.min_order_amount,
        max_discount_amount=obj.max_discount_amount,
        usage_limit=obj.usage_limit,
        usage_per_user=obj.usage_per_user,
        start_date=obj.start_date,
        end_date=obj.end_date,
        is_active=obj.is_active,
        targeting=targeting_from_json(obj.targeting),
        eligible_users=[str(u) for u in obj.eligible_users or []],
        notify_users=obj.notify_users,
        used_by=[CouponUsage(user_id=u.user_id, used_at=u.used_at) for u in obj.usages.all()],
        used_count=obj.used_count,
        created_at=obj.created_at,
    )


def _settings_fields(coupon: Coupon) -> dict:
    return {
        "code": coupon.code,
        "description": coupon.description,
        "discount_type": coupon.discount_type.value,
        "discount_value": coupon.discount_value,
        "min_order_amount": coupon.min_order_amount,
        "max_discount_amount": coupon.max_discount_amount,
        "usage_limit": coupon.usage_limit,
        "usage_per_user": coupon.usage_per_user,
        "start_date": coupon.start_date,
        "end_date": coupon.end_date,
        "is_active": coupon.is_active,
        "notify_users": coupon.notify_users,
    }


class CouponRepository:
    """Coupon store backed by the ``coupons`` and ``coupon_usages`` tables."""

    def _query(self):
        return CouponModel.objects.prefetch_related("usages")

    def get(self, coupon_id: str) -> Optional[Coupon]:
        try:
            pk = uuid.UUID(str(coupon_id))
        except ValueError:
            return None
        obj = self._query().filter(pk=pk).first()
        return to_domain(obj) if obj else None

    def get_by_code(self, code: str) -> Optional[Coupon]:
        obj = self._query().filter(code=code.upper()).first()
        return to_domain(obj) if obj else None

    def list(self) -> List[Coupon]:
        return [to_domain(o) for o in self._query().all()]

    def create(self, coupon: Coupon) -> Coupon:
        obj = CouponModel.objects.create(
            targeting=targeting_to_json(coupon.targeting),
            eligible_users=list(coupon.eligible_users),
            **_settings_fields(coupon),
        )
        return self.get(str(obj.pk))

    def save(self, coupon: Coupon) -> Coupon:
        CouponModel.objects.filter(pk=coupon.id).update(
            targeting=targeting_to_json(coupon.targeting),
            **_settings_fields(coupon),
        )
        return self.get(coupon.id)

    def delete(self, coupon_id: str) -> bool:
        try:
            pk = uuid.UUID(str(coupon_id))
        except ValueError:
            return False
        deleted, _ = CouponModel.objects.filter(pk=pk).delete()
        return deleted > 0

    def record_usage(self, code: str, user_id: str, used_at) -> bool:
        """Append a redemption under a row lock on the coupon.

        Returns False, writing nothing, when the coupon is missing or the
        append would exceed ``usage_limit`` or ``usage_per_user``.
        """
        with transaction.atomic():
            coupon = CouponModel.objects.select_for_update().filter(code=code.upper()).first()
            if coupon is None:
                return False
            if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
                return False
            if coupon.usage_per_user and coupon.usages.filter(user_id=str(user_id)).count() >= coupon.usage_per_user:
                return False
            CouponUsageModel.objects.create(coupon=coupon, user_id=str(user_id), used_at=used_at)
            CouponModel.objects.filter(pk=coupon.pk).update(used_count=F("used_count") + 1)
        return True


class CustomerDirectory:
    """Purchase summaries of every active non-staff user.

    Spend and order counts come from non-cancelled orders; wishlist counts
    from ``wishlist_items``.
    """

    def list_customers(self) -> List[CustomerProfile]:
        spend = {
            row["user_id"]: row
            for row in OrderModel.objects.exclude(status=OrderModel.Status.CANCELLED)
            .order_by()
            .values("user_id")
            .annotate(total=Sum("grand_total"), count=Count("id"))
        }
        wishlists = dict(
            WishlistItemModel.objects.order_by().values("user_id").annotate(n=Count("id")).values_list("user_id", "n")
        )
        customers = []
        for user in get_user_model().objects.filter(is_staff=False, is_active=True).order_by("pk"):
            uid = str(user.pk)
            row = spend.get(uid, {})
            customers.append(CustomerProfile(
                user_id=uid,
                joined_at=user.date_joined,
                total_spent=row.get("total") or Decimal(0),
                order_count=row.get("count", 0),
                wishlist_count=wishlists.get(uid, 0),
                email=user.email,
                name=user.get_full_name() or user.get_username(),
            ))
        return customers
