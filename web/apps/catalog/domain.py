"""Catalog domain: products, size variants and the stock port.

Products carry either a flat ``stock`` counter or a list of size variants
that each hold their own stock. Every other component reads and mutates
stock exclusively through ``CatalogPort``, whose implementations never
let a counter drop below zero.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Protocol

from apps.core.errors import InsufficientStock


@dataclass
class SizeVariant:
    """A named stock-bearing sub-unit of a product (e.g. "50ml")."""

    label: str
    price: Decimal
    stock: int = 0


@dataclass
class Product:
    """Catalog entry as seen by the order and replacement flows.

    Attributes:
        id: Product identifier.
        name: Display name, copied into order line snapshots.
        category: Category name, copied into order line snapshots.
        price: Base unit price.
        discount_percent: Percentage discount (0-100) on the base price.
        stock: Flat stock counter, used when the product has no sizes.
        sizes: Ordered size variants; when present they own the stock.
        replacement_days: Days after delivery during which a replacement
            may be requested. 0 disables replacements.
    """

    id: str
    name: str
    category: str
    price: Decimal
    discount_percent: int = 0
    stock: int = 0
    sizes: List[SizeVariant] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    description: str = ""
    replacement_days: int = 7
    cash_on_delivery: bool = True

    @property
    def discounted_price(self) -> Decimal:
        return self.price - (self.price * self.discount_percent) / Decimal(100)

    def variant(self, label: str) -> Optional[SizeVariant]:
        for size in self.sizes:
            if size.label == label:
                return size
        return None

    def available(self, size: Optional[str] = None) -> int:
        """Units on hand for a size label, or the flat stock when ``size`` is None.

        An unknown size label has no stock.
        """
        if size:
            variant = self.variant(size)
            return variant.stock if variant else 0
        return self.stock


def ensure_in_stock(product: Product, size: Optional[str], quantity: int) -> None:
    """Raise ``InsufficientStock`` unless ``quantity`` units are available.

    Raises:
        InsufficientStock: If the size variant is missing or its stock (or
            the flat stock) is below ``quantity``.
    """
    if product.available(size) < quantity:
        label = f"{product.name} - {size}" if size else product.name
        raise InsufficientStock(f"Insufficient stock for {label}")


class CatalogPort(Protocol):
    """Port for product lookup and stock mutation."""

    def get(self, product_id: str) -> Optional[Product]:
        """Return the product or None when it does not exist."""
        raise NotImplementedError()

    def decrement(self, product_id: str, size: Optional[str], quantity: int) -> bool:
        """Remove ``quantity`` units from the matching stock field.

        Implementations must apply the change only if the result stays
        non-negative and report whether it was applied.
        """
        raise NotImplementedError()

    def restore(self, product_id: str, size: Optional[str], quantity: int) -> bool:
        """Add ``quantity`` units back; False when the product or size is gone."""
        raise NotImplementedError()
