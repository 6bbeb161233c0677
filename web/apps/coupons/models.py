import uuid
from django.db import models


class CouponModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=64, unique=True)

    class DiscountType(models.TextChoices):
        PERCENTAGE = "percentage"
        FIXED = "fixed"

    description = models.CharField(max_length=255, blank=True, default="")
    discount_type = models.CharField(max_length=16, choices=DiscountType.choices, default=DiscountType.PERCENTAGE)
    discount_value = models.DecimalField(max_digits=12, decimal_places=2)
    min_order_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    max_discount_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    used_count = models.PositiveIntegerField(default=0)
    usage_per_user = models.PositiveIntegerField(default=1)
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    is_active = models.BooleanField(default=True)
    targeting = models.JSONField(default=dict, blank=True)
    # Snapshot of eligible user ids, captured once at creation
    eligible_users = models.JSONField(default=list, blank=True)
    notify_users = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "coupons"
        ordering = ["-created_at"]


class CouponUsageModel(models.Model):
    coupon = models.ForeignKey(CouponModel, on_delete=models.CASCADE, related_name="usages")
    user_id = models.CharField(max_length=64, db_index=True)
    used_at = models.DateTimeField()

    class Meta:
        db_table = "coupon_usages"
        ordering = ["used_at", "id"]
