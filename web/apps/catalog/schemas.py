"""Pydantic schemas for the catalog API."""

from decimal import Decimal
from typing import List

from pydantic import Field, field_validator

from apps.core.schemas import CamelModel, Money
from .domain import Product, SizeVariant


class SizeVariantSchema(CamelModel):
    label: str = Field(min_length=1, max_length=50)
    price: Money = Field(ge=0)
    stock: int = Field(default=0, ge=0)


class CreateProductDTO(CamelModel):
    """Body of ``POST /api/products/``.

    When ``sizes`` is given the variants own the stock and ``stock`` is
    ignored by the order flow.
    """

    name: str = Field(min_length=1, max_length=200)
    category: str = Field(min_length=1, max_length=100)
    description: str = ""
    images: List[str] = Field(default_factory=list)
    price: Decimal = Field(ge=0)
    discount_percent: int = Field(default=0, ge=0, le=100)
    stock: int = Field(default=0, ge=0)
    sizes: List[SizeVariantSchema] = Field(default_factory=list)
    replacement_days: int = Field(default=7, ge=0)
    cash_on_delivery: bool = True

    @field_validator("sizes")
    @classmethod
    def unique_labels(cls, v: List[SizeVariantSchema]) -> List[SizeVariantSchema]:
        labels = [s.label for s in v]
        if len(labels) != len(set(labels)):
            raise ValueError("Size labels must be unique")
        return v

    def to_domain(self) -> Product:
        return Product(
            id="",
            name=self.name,
            category=self.category,
            description=self.description,
            images=list(self.images),
            price=self.price,
            discount_percent=self.discount_percent,
            stock=self.stock,
            sizes=[SizeVariant(label=s.label, price=s.price, stock=s.stock) for s in self.sizes],
            replacement_days=self.replacement_days,
            cash_on_delivery=self.cash_on_delivery,
        )


class ProductOut(CamelModel):
    id: str
    name: str
    category: str
    description: str
    images: List[str]
    price: Money
    discount_percent: int
    discounted_price: Money
    stock: int
    sizes: List[SizeVariantSchema]
    replacement_days: int
    cash_on_delivery: bool

    @classmethod
    def from_domain(cls, p: Product) -> "ProductOut":
        return cls(
            id=p.id,
            name=p.name,
            category=p.category,
            description=p.description,
            images=p.images,
            price=p.price,
            discount_percent=p.discount_percent,
            discounted_price=p.discounted_price,
            stock=p.stock,
            sizes=[SizeVariantSchema(label=s.label, price=s.price, stock=s.stock) for s in p.sizes],
            replacement_days=p.replacement_days,
            cash_on_delivery=p.cash_on_delivery,
        )
