import uuid
from django.db import models
from django.db.models import Q

TERMINAL = ["Rejected", "Completed", "Refunded"]


class ReplacementModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_id = models.UUIDField(db_index=True)
    user_id = models.CharField(max_length=64, db_index=True)

    # Snapshot of the replaced line
    product_id = models.CharField(max_length=64)
    item_name = models.CharField(max_length=255)
    item_image = models.CharField(max_length=500, blank=True, default="")
    item_price = models.DecimalField(max_digits=12, decimal_places=2)
    item_quantity = models.PositiveIntegerField()
    item_size = models.CharField(max_length=64, null=True, blank=True)

    reason = models.CharField(max_length=32)
    description = models.TextField(blank=True, default="")
    images = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=32, default="Requested", db_index=True)
    admin_notes = models.TextField(blank=True, default="")

    pickup_scheduled_date = models.DateTimeField(null=True, blank=True)
    pickup_agent_name = models.CharField(max_length=120, blank=True, default="")
    pickup_agent_phone = models.CharField(max_length=32, blank=True, default="")
    picked_up_at = models.DateTimeField(null=True, blank=True)
    pickup_address = models.JSONField(null=True, blank=True)

    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    refund_method = models.CharField(max_length=32, blank=True, default="")
    refund_transaction_id = models.CharField(max_length=120, blank=True, default="")
    refunded_at = models.DateTimeField(null=True, blank=True)
    refund_notes = models.TextField(blank=True, default="")

    delivery_date = models.DateTimeField(null=True, blank=True)
    replacement_deadline = models.DateTimeField(null=True, blank=True)
    requested_at = models.DateTimeField()
    stock_restored = models.BooleanField(default=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "replacements"
        ordering = ["-requested_at"]
        constraints = [
            # At most one open request per order line
            models.UniqueConstraint(
                fields=["order_id", "product_id"],
                condition=~Q(status__in=TERMINAL),
                name="uniq_active_replacement_per_item",
            ),
        ]


class TimelineEntryModel(models.Model):
    replacement = models.ForeignKey(ReplacementModel, on_delete=models.CASCADE, related_name="timeline")
    status = models.CharField(max_length=32)
    message = models.CharField(max_length=255)
    updated_by = models.CharField(max_length=8)
    timestamp = models.DateTimeField()

    class Meta:
        db_table = "replacement_timeline"
        ordering = ["timestamp", "id"]
