"""Django ORM implementation of ``CatalogPort``.

Stock changes are issued as single conditional ``UPDATE`` statements
(``stock = stock - n WHERE stock >= n``) so two concurrent checkouts can
never drive a counter below zero; the loser of the race simply sees zero
rows updated.
"""

import uuid
from typing import Optional

from django.db import transaction
from django.db.models import F

from .domain import Product, SizeVariant
from .models import ProductModel, SizeVariantModel


def _as_uuid(value) -> Optional[uuid.UUID]:
    try:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def to_domain(obj: ProductModel) -> Product:
    return Product(
        id=str(obj.id),
        name=obj.name,
        category=obj.category,
        price=obj.price,
        discount_percent=obj.discount_percent,
        stock=obj.stock,
        sizes=[SizeVariant(label=s.label, price=s.price, stock=s.stock) for s in obj.sizes.all()],
        images=list(obj.images or []),
        description=obj.description,
        replacement_days=obj.replacement_days,
        cash_on_delivery=obj.cash_on_delivery,
    )


class ProductRepository:
    """Catalog store backed by the ``products`` and ``product_sizes`` tables."""

    def get(self, product_id: str) -> Optional[Product]:
        pk = _as_uuid(product_id)
        if pk is None:
            return None
        obj = ProductModel.objects.prefetch_related("sizes").filter(pk=pk).first()
        return to_domain(obj) if obj else None

    def create(self, product: Product) -> Product:
        with transaction.atomic():
            obj = ProductModel.objects.create(
                name=product.name,
                category=product.category,
                description=product.description,
                images=list(product.images),
                price=product.price,
                discount_percent=product.discount_percent,
                stock=product.stock,
                replacement_days=product.replacement_days,
                cash_on_delivery=product.cash_on_delivery,
            )
            SizeVariantModel.objects.bulk_create(
                SizeVariantModel(product=obj, position=i, label=s.label, price=s.price, stock=s.stock)
                for i, s in enumerate(product.sizes)
            )
        return self.get(str(obj.pk))

    def decrement(self, product_id: str, size: Optional[str], quantity: int) -> bool:
        pk = _as_uuid(product_id)
        if pk is None:
            return False
        if size:
            qs = SizeVariantModel.objects.filter(product_id=pk, label=size, stock__gte=quantity)
        else:
            qs = ProductModel.objects.filter(pk=pk, stock__gte=quantity)
        return qs.update(stock=F("stock") - quantity) == 1

    def restore(self, product_id: str, size: Optional[str], quantity: int) -> bool:
        pk = _as_uuid(product_id)
        if pk is None:
            return False
        if size:
            qs = SizeVariantModel.objects.filter(product_id=pk, label=size)
        else:
            qs = ProductModel.objects.filter(pk=pk)
        return qs.update(stock=F("stock") + quantity) == 1
