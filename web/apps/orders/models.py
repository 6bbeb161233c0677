import uuid
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models, transaction


class OrderModel(models.Model):
    # UUID PK exposed by the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Sequential number shown to customers
    internal_id = models.BigIntegerField(unique=True, editable=False, null=True)

    class Status(models.TextChoices):
        PENDING = "Pending"
        PROCESSING = "Processing"
        SHIPPED = "Shipped"
        DELIVERED = "Delivered"
        CANCELLED = "Cancelled"

    user_id = models.CharField(max_length=64, db_index=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    shipping_address = models.JSONField(default=dict)

    items_total = models.DecimalField(max_digits=12, decimal_places=2)
    delivery_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    other_charges = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    coupon_code = models.CharField(max_length=64, null=True, blank=True)
    coupon_discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    grand_total = models.DecimalField(max_digits=12, decimal_places=2)
    delivery_fee_refunded = models.BooleanField(default=False)

    payment_method = models.CharField(max_length=8, default="COD")
    payment_status = models.CharField(max_length=16, default="Pending")

    cancel_reason = models.TextField(blank=True, default="")
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.CharField(max_length=8, blank=True, default="")

    delivery_agent_name = models.CharField(max_length=120, blank=True, default="")
    delivery_agent_phone = models.CharField(max_length=32, blank=True, default="")
    estimated_delivery_date = models.DateTimeField(null=True, blank=True)
    delivery_date = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()

    class Meta:
        db_table = "orders"
        ordering = ["-created_at", "-internal_id"]

    def save(self, *args, **kwargs):
        # Assign incremental `internal_id` only on creation
        if self.internal_id is None:
            with transaction.atomic():
                last = (
                    OrderModel.objects.select_for_update()
                    .order_by("-internal_id")
                    .first()
                )
                self.internal_id = 1 if not last or last.internal_id is None else last.internal_id + 1

        super().save(*args, **kwargs)


class OrderItemModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(OrderModel, on_delete=models.CASCADE, related_name="items")
    position = models.PositiveSmallIntegerField(default=0)
    product_id = models.CharField(max_length=64, db_index=True)
    name = models.CharField(max_length=255)
    image = models.CharField(max_length=500, blank=True, default="")
    category = models.CharField(max_length=120, blank=True, default="")
    size = models.CharField(max_length=64, null=True, blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField()
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    return_status = models.CharField(max_length=16, default="none")
    returned_at = models.DateTimeField(null=True, blank=True)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    class Meta:
        db_table = "order_items"
        ordering = ["position"]


class IdempotencyKey(models.Model):
    key = models.CharField(max_length=128, unique=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict, encoder=DjangoJSONEncoder)
    order_id = models.UUIDField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
