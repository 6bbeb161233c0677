"""Invoice view of an order merged with its replacement refunds.

The invoice is derived on every read; nothing here is persisted.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Protocol

from apps.core.identity import Actor
from .domain import Order, OrderService, OrderStatus


class ReplacementReader(Protocol):
    def list_for_order(self, order_id: str) -> list:
        raise NotImplementedError()


@dataclass(frozen=True)
class RefundLine:
    replacement_id: str
    product_id: str
    name: str
    status: str
    amount: Decimal
    method: Optional[str]
    transaction_id: str
    refunded_at: Optional[datetime]


@dataclass(frozen=True)
class Invoice:
    """Order totals after refunds.

    Attributes:
        items_refunded: Sum of the per-line refund amounts.
        delivery_fee_refund: The delivery fee once every line is returned.
        net_payable: What the customer still owes; 0 for a cancelled order.
    """

    order: Order
    refunds: List[RefundLine]
    items_refunded: Decimal
    delivery_fee_refund: Decimal
    total_refunded: Decimal
    net_payable: Decimal


def build_invoice(order: Order, replacements: list) -> Invoice:
    refunds = [
        RefundLine(
            replacement_id=r.id,
            product_id=r.item.product_id,
            name=r.item.name,
            status=r.status.value,
            amount=r.refund.amount or Decimal(0),
            method=r.refund.method.value if r.refund.method else None,
            transaction_id=r.refund.transaction_id,
            refunded_at=r.refund.refunded_at,
        )
        for r in replacements
        if r.refund.amount
    ]
    items_refunded = sum((item.refund_amount for item in order.items), Decimal(0))
    delivery_fee_refund = order.delivery_fee if order.delivery_fee_refunded else Decimal(0)
    total_refunded = items_refunded + delivery_fee_refund
    if order.status == OrderStatus.CANCELLED:
        net_payable = Decimal(0)
    else:
        net_payable = max(order.grand_total - total_refunded, Decimal(0))
    return Invoice(
        order=order,
        refunds=refunds,
        items_refunded=items_refunded,
        delivery_fee_refund=delivery_fee_refund,
        total_refunded=total_refunded,
        net_payable=net_payable,
    )


class InvoiceService:
    def __init__(self, orders: OrderService, replacements: ReplacementReader):
        self.orders = orders
        self.replacements = replacements

    def get_invoice(self, order_id: str, actor: Actor) -> Invoice:
        """Owner or administrator only, like reading the order itself."""
        order = self.orders.get_order(order_id, actor)
        return build_invoice(order, self.replacements.list_for_order(order.id))
