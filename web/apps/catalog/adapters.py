"""In-process ``CatalogPort`` used by unit tests and local experiments."""

import copy
from typing import Optional

from apps.core.memory import InMemoryDatabase
from .domain import CatalogPort, Product


class InMemoryCatalog(CatalogPort):
    """Catalog kept in the ``products`` table of an ``InMemoryDatabase``."""

    def __init__(self, db: InMemoryDatabase):
        self.db = db

    @property
    def _products(self) -> dict:
        return self.db.table("products")

    def add(self, product: Product) -> Product:
        self._products[product.id] = copy.deepcopy(product)
        return product

    def get(self, product_id: str) -> Optional[Product]:
        product = self._products.get(str(product_id))
        return copy.deepcopy(product) if product else None

    def _holder(self, product_id, size):
        """Return the object owning the stock counter for ``size``, or None."""
        product = self._products.get(str(product_id))
        if product is None:
            return None
        return product.variant(size) if size else product

    def decrement(self, product_id: str, size: Optional[str], quantity: int) -> bool:
        holder = self._holder(product_id, size)
        if holder is None or holder.stock < quantity:
            return False
        holder.stock -= quantity
        return True

    def restore(self, product_id: str, size: Optional[str], quantity: int) -> bool:
        holder = self._holder(product_id, size)
        if holder is None:
            return False
        holder.stock += quantity
        return True
