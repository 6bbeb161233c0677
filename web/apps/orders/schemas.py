"""Pydantic schemas for orders.

Request schemas validate and normalize incoming JSON (camelCase) and map
it onto domain objects; response schemas render domain objects back to
camelCase JSON.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from apps.core.schemas import CamelModel, Money, UtcDateTime
from .domain import DeliveryAgent, Order, OrderItem, OrderStatus, ReturnStatus, ShippingAddress
from .invoice import Invoice


class OrderItemIn(CamelModel):
    """Input schema for a single order line.

    Attributes:
        product: Product id.
        size: Size label for sized products; blank means no size.
        subtotal: Defaults to ``price * quantity``.
    """

    product: str = Field(min_length=1)
    name: str = Field(min_length=1)
    image: str = ""
    category: str = ""
    price: Decimal = Field(ge=0)
    quantity: int = Field(gt=0)
    size: Optional[str] = None
    subtotal: Optional[Decimal] = Field(default=None, ge=0)

    @field_validator("size")
    @classmethod
    def blank_size_is_none(cls, v: Optional[str]) -> Optional[str]:
        v2 = v.strip() if v else None
        return v2 or None

    def to_domain(self) -> OrderItem:
        return OrderItem(
            product_id=self.product,
            name=self.name,
            image=self.image,
            category=self.category,
            price=self.price,
            quantity=self.quantity,
            size=self.size,
            subtotal=self.subtotal,
        )


class ShippingAddressSchema(CamelModel):
    full_name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    address_line1: str = Field(min_length=1)
    address_line2: str = ""
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip_code: str = Field(min_length=1)

    def to_domain(self) -> ShippingAddress:
        return ShippingAddress(**self.model_dump())

    @classmethod
    def from_domain(cls, a: ShippingAddress) -> "ShippingAddressSchema":
        return cls(full_name=a.full_name, phone=a.phone, address_line1=a.address_line1,
                   address_line2=a.address_line2, city=a.city, state=a.state, zip_code=a.zip_code)


class CreateOrderDTO(CamelModel):
    """Schema for creating an order.

    Totals are supplied by the client and checked for consistency by the
    domain service; ``couponCode`` is normalized to upper case.
    """

    items: List[OrderItemIn]
    shipping_address: ShippingAddressSchema
    items_total: Decimal = Field(ge=0)
    delivery_fee: Decimal = Field(default=Decimal(0), ge=0)
    other_charges: Decimal = Field(default=Decimal(0), ge=0)
    coupon_code: Optional[str] = None
    coupon_discount: Decimal = Field(default=Decimal(0), ge=0)
    grand_total: Decimal = Field(ge=0)

    @field_validator("coupon_code")
    @classmethod
    def normalize_coupon(cls, v: Optional[str]) -> Optional[str]:
        v2 = v.strip().upper() if v else ""
        return v2 or None

    def to_domain(self, user_id: str) -> Order:
        return Order(
            user_id=user_id,
            items=[i.to_domain() for i in self.items],
            shipping_address=self.shipping_address.to_domain(),
            items_total=self.items_total,
            delivery_fee=self.delivery_fee,
            other_charges=self.other_charges,
            coupon_code=self.coupon_code,
            coupon_discount=self.coupon_discount,
            grand_total=self.grand_total,
        )


class ListOrdersQuery(CamelModel):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)
    scope: Literal["own", "all"] = "own"


class DeliveryAgentSchema(CamelModel):
    name: str = ""
    phone: str = ""


class UpdateStatusDTO(CamelModel):
    status: Optional[OrderStatus] = None
    delivery_agent: Optional[DeliveryAgentSchema] = None
    estimated_delivery_date: Optional[UtcDateTime] = None

    def agent(self) -> Optional[DeliveryAgent]:
        if self.delivery_agent is None:
            return None
        return DeliveryAgent(name=self.delivery_agent.name, phone=self.delivery_agent.phone)


class CancelOrderDTO(CamelModel):
    reason: str = ""


class OrderItemOut(CamelModel):
    id: Optional[str] = None
    product: str
    name: str
    image: str
    category: str
    price: Money
    quantity: int
    size: Optional[str] = None
    subtotal: Money
    return_status: ReturnStatus
    returned_at: Optional[datetime] = None
    refund_amount: Money


class CancellationOut(CamelModel):
    reason: str
    cancelled_at: datetime
    cancelled_by: str


class OrderReadDTO(CamelModel):
    id: str
    order_number: Optional[int] = None
    user: str
    items: List[OrderItemOut]
    shipping_address: ShippingAddressSchema
    items_total: Money
    delivery_fee: Money
    other_charges: Money
    coupon_code: Optional[str] = None
    coupon_discount: Money
    grand_total: Money
    delivery_fee_refunded: bool
    payment_method: str
    payment_status: str
    order_status: OrderStatus
    cancellation: Optional[CancellationOut] = None
    delivery_agent: Optional[DeliveryAgentSchema] = None
    estimated_delivery_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, o: Order) -> "OrderReadDTO":
        return cls(
            id=o.id,
            order_number=o.order_number,
            user=o.user_id,
            items=[
                OrderItemOut(
                    id=i.id, product=i.product_id, name=i.name, image=i.image, category=i.category,
                    price=i.price, quantity=i.quantity, size=i.size, subtotal=i.subtotal,
                    return_status=i.return_status, returned_at=i.returned_at, refund_amount=i.refund_amount,
                )
                for i in o.items
            ],
            shipping_address=ShippingAddressSchema.from_domain(o.shipping_address),
            items_total=o.items_total,
            delivery_fee=o.delivery_fee,
            other_charges=o.other_charges,
            coupon_code=o.coupon_code,
            coupon_discount=o.coupon_discount,
            grand_total=o.grand_total,
            delivery_fee_refunded=o.delivery_fee_refunded,
            payment_method=o.payment_method,
            payment_status=o.payment_status,
            order_status=o.status,
            cancellation=(
                CancellationOut(reason=o.cancellation.reason, cancelled_at=o.cancellation.cancelled_at,
                                cancelled_by=o.cancellation.cancelled_by)
                if o.cancellation else None
            ),
            delivery_agent=(
                DeliveryAgentSchema(name=o.delivery_agent.name, phone=o.delivery_agent.phone)
                if o.delivery_agent else None
            ),
            estimated_delivery_date=o.estimated_delivery_date,
            delivery_date=o.delivery_date,
            created_at=o.created_at,
            updated_at=o.updated_at,
        )


class RefundLineOut(CamelModel):
    replacement_id: str
    product: str
    name: str
    status: str
    amount: Money
    method: Optional[str] = None
    transaction_id: str = ""
    refunded_at: Optional[datetime] = None


class InvoiceDTO(CamelModel):
    order: OrderReadDTO
    refunds: List[RefundLineOut]
    items_refunded: Money
    delivery_fee_refund: Money
    total_refunded: Money
    net_payable: Money

    @classmethod
    def from_domain(cls, inv: Invoice) -> "InvoiceDTO":
        return cls(
            order=OrderReadDTO.from_domain(inv.order),
            refunds=[
                RefundLineOut(
                    replacement_id=r.replacement_id, product=r.product_id, name=r.name, status=r.status,
                    amount=r.amount, method=r.method, transaction_id=r.transaction_id,
                    refunded_at=r.refunded_at,
                )
                for r in inv.refunds
            ],
            items_refunded=inv.items_refunded,
            delivery_fee_refund=inv.delivery_fee_refund,
            total_refunded=inv.total_refunded,
            net_payable=inv.net_payable,
        )
