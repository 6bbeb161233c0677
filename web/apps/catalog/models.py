import uuid
from django.core.validators import MaxValueValidator
from django.db import models


class ProductModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    category = models.CharField(max_length=100)
    description = models.TextField(blank=True, default="")
    images = models.JSONField(default=list, blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    discount_percent = models.PositiveSmallIntegerField(default=0, validators=[MaxValueValidator(100)])
    # Flat stock; ignored when the product has size variants
    stock = models.PositiveIntegerField(default=0)
    replacement_days = models.PositiveIntegerField(default=7)
    cash_on_delivery = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "products"
        ordering = ["-created_at"]


class SizeVariantModel(models.Model):
    product = models.ForeignKey(ProductModel, on_delete=models.CASCADE, related_name="sizes")
    position = models.PositiveIntegerField(default=0)
    label = models.CharField(max_length=50)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    stock = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "product_sizes"
        ordering = ["position", "id"]
        constraints = [
            models.UniqueConstraint(fields=["product", "label"], name="uniq_product_size_label"),
        ]


class WishlistItemModel(models.Model):
    user_id = models.CharField(max_length=64, db_index=True)
    product = models.ForeignKey(ProductModel, on_delete=models.CASCADE, related_name="wishlisted_by")
    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "wishlist_items"
        constraints = [
            models.UniqueConstraint(fields=["user_id", "product"], name="uniq_wishlist_entry"),
        ]
