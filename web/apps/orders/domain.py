"""Domain models, ports and service for orders.

This module contains the order dataclasses (line items are frozen price
snapshots taken at checkout), the storage port, and ``OrderService`` which
reconciles orders with catalog stock and coupon usage when orders are
placed, updated and cancelled.

The service is framework-free. It receives an ``atomic`` context-manager
factory (``django.db.transaction.atomic`` in production) and runs every
multi-record write inside it, so a failed stock decrement rolls back the
order and the coupon usage written before it.
"""

import logging
from contextlib import nullcontext
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, ContextManager, List, Optional, Protocol

from apps.catalog.domain import CatalogPort, ensure_in_stock
from apps.core.errors import Conflict, InsufficientStock, InvalidState, NotFound, Unauthorized, ValidationError
from apps.core.identity import Actor

logger = logging.getLogger("orders")

TOTALS_TOLERANCE = Decimal("0.01")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---- Enums ----
class OrderStatus(str, Enum):
    """Lifecycle of an order. ``Delivered`` and ``Cancelled`` are terminal."""

    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class ReturnStatus(str, Enum):
    NONE = "none"
    REQUESTED = "requested"
    APPROVED = "approved"
    RETURNED = "returned"
    REFUNDED = "refunded"


PAYMENT_METHOD_COD = "COD"


# ---- Entities / DTOs ----
@dataclass
class OrderItem:
    """A line item, frozen at checkout.

    ``name``, ``price``, ``image`` and ``category`` are copies of the
    product at order time; later catalog edits never change them. The
    return fields are maintained by the replacement flow.
    """

    product_id: str
    name: str
    price: Decimal
    quantity: int
    size: Optional[str] = None
    image: str = ""
    category: str = ""
    subtotal: Optional[Decimal] = None
    return_status: ReturnStatus = ReturnStatus.NONE
    returned_at: Optional[datetime] = None
    refund_amount: Decimal = Decimal(0)
    id: Optional[str] = None

    def __post_init__(self):
        if self.subtotal is None:
            self.subtotal = self.price * self.quantity

    @property
    def is_returned(self) -> bool:
        return self.return_status in (ReturnStatus.RETURNED, ReturnStatus.REFUNDED)


@dataclass
class ShippingAddress:
    full_name: str
    phone: str
    address_line1: str
    city: str
    state: str
    zip_code: str
    address_line2: str = ""


@dataclass
class DeliveryAgent:
    name: str = ""
    phone: str = ""


@dataclass
class Cancellation:
    reason: str
    cancelled_at: datetime
    cancelled_by: str


@dataclass
class Order:
    """An order and its money fields.

    Attributes:
        items_total: Sum of the line subtotals as computed by the client.
        coupon_discount: Discount granted by ``coupon_code`` (0 without one).
        grand_total: Must equal ``items_total + delivery_fee +
            other_charges - coupon_discount`` within ``TOTALS_TOLERANCE``.
        delivery_fee_refunded: Set once every line has been returned or
            refunded.
        order_number: Sequential human-facing number assigned on insert.
    """

    user_id: str
    items: List[OrderItem]
    shipping_address: ShippingAddress
    items_total: Decimal
    grand_total: Decimal
    delivery_fee: Decimal = Decimal(0)
    other_charges: Decimal = Decimal(0)
    coupon_code: Optional[str] = None
    coupon_discount: Decimal = Decimal(0)
    status: OrderStatus = OrderStatus.PENDING
    payment_method: str = PAYMENT_METHOD_COD
    payment_status: str = "Pending"
    delivery_fee_refunded: bool = False
    cancellation: Optional[Cancellation] = None
    delivery_agent: Optional[DeliveryAgent] = None
    estimated_delivery_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    id: Optional[str] = None
    order_number: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def reconciles(self) -> bool:
        expected = self.items_total + self.delivery_fee + self.other_charges - self.coupon_discount
        return abs(expected - self.grand_total) <= TOTALS_TOLERANCE

    def item_for(self, product_id: str) -> Optional[OrderItem]:
        for item in self.items:
            if item.product_id == str(product_id):
                return item
        return None

    def all_items_returned(self) -> bool:
        return all(item.is_returned for item in self.items)


@dataclass(frozen=True)
class OrderPage:
    results: List[Order]
    count: int
    page: int
    page_size: int


# ---- Ports (DIP) ----
class OrderStorePort(Protocol):
    """Port for order persistence."""

    def create(self, order: Order) -> Order:
        """Insert ``order`` with its items; returns it with ids and order number."""
        raise NotImplementedError()

    def get(self, order_id: str) -> Optional[Order]:
        raise NotImplementedError()

    def get_for_update(self, order_id: str) -> Optional[Order]:
        """Like ``get``, but locks the order until the surrounding transaction ends."""
        raise NotImplementedError()

    def list(self, user_id: Optional[str], offset: int, limit: int) -> tuple[List[Order], int]:
        """Newest first; ``user_id=None`` lists every order.

        Returns:
            The requested slice and the total number of matching orders.
        """
        raise NotImplementedError()

    def save(self, order: Order, expected_status: Optional[OrderStatus] = None) -> Optional[Order]:
        """Persist status, cancellation, delivery and per-item return fields.

        With ``expected_status`` the write only applies while the stored
        status still equals it.

        Returns:
            The stored order, or None when ``expected_status`` no longer matches.
        """
        raise NotImplementedError()


class CouponUsagePort(Protocol):
    """The part of the coupon store the order flow needs."""

    def get_by_code(self, code: str):
        raise NotImplementedError()

    def record_usage(self, code: str, user_id: str, used_at: datetime) -> bool:
        raise NotImplementedError()


# ---- Domain service ----
class OrderService:
    """Domain service for placing, reading, updating and cancelling orders.

    Args:
        catalog: Stock lookup and conditional decrement/restore.
        orders: Order persistence.
        coupons: Coupon store used to record redemptions.
        dispatcher: Fire-and-forget notification dispatcher, optional.
        atomic: Factory of the transaction context manager.
        clock: Returns the current aware datetime.
    """

    def __init__(self, catalog: CatalogPort, orders: OrderStorePort, coupons: CouponUsagePort | None = None,
                 dispatcher=None, atomic: Callable[[], ContextManager] = nullcontext,
                 clock: Callable[[], datetime] = _utcnow):
        self.catalog = catalog
        self.orders = orders
        self.coupons = coupons
        self.dispatcher = dispatcher
        self.atomic = atomic
        self.clock = clock

    def place_order(self, order: Order, actor: Actor) -> Order:
        """Validate stock, persist the order, record coupon usage and take stock.

        Every item is checked before anything is written. The writes run in
        one transaction; a decrement that loses a race rolls everything back.

        Raises:
            ValidationError: If the order has no items or its totals do not
                reconcile.
            NotFound: If a product or the coupon code does not exist.
            InsufficientStock: If a size variant is missing or any stock
                counter is below the requested quantity.
            InvalidState: If recording the coupon usage would exceed its
                usage limits.
        """
        if not order.items:
            raise ValidationError("No order items provided", code="EMPTY_ORDER")
        if not order.reconciles():
            raise ValidationError("Order totals do not add up to the grand total", code="TOTALS_MISMATCH")

        now = self.clock()
        with self.atomic():
            for item in order.items:
                product = self.catalog.get(item.product_id)
                if product is None:
                    raise NotFound(f"Product not found: {item.name}")
                ensure_in_stock(product, item.size, item.quantity)

            order.user_id = actor.user_id
            order.status = OrderStatus.PENDING
            order.payment_method = PAYMENT_METHOD_COD
            order.payment_status = "Pending"
            order.created_at = order.updated_at = now
            if order.coupon_code:
                order.coupon_code = order.coupon_code.strip().upper()
            created = self.orders.create(order)

            if created.coupon_code:
                self._record_coupon_usage(created.coupon_code, actor.user_id, now)

            for item in created.items:
                if not self.catalog.decrement(item.product_id, item.size, item.quantity):
                    label = f"{item.name} - {item.size}" if item.size else item.name
                    raise InsufficientStock(f"Insufficient stock for {label}")

        logger.info(
            "order placed",
            extra={"order_id": created.id, "order_number": created.order_number,
                   "user_id": created.user_id, "grand_total": str(created.grand_total)},
        )
        return created

    def _record_coupon_usage(self, code: str, user_id: str, now: datetime) -> None:
        if self.coupons is None or self.coupons.get_by_code(code) is None:
            raise NotFound("Invalid coupon code")
        if not self.coupons.record_usage(code, user_id, now):
            raise InvalidState("This coupon has reached its usage limit", code="COUPON_USAGE_EXCEEDED")

    def list_orders(self, actor: Actor, scope_all: bool = False, page: int = 1, page_size: int = 20) -> OrderPage:
        """Orders newest first; only administrators may list every user's orders."""
        if scope_all and not actor.is_admin:
            raise Unauthorized("Only administrators can list all orders")
        page = max(page, 1)
        user_id = None if scope_all else actor.user_id
        results, count = self.orders.list(user_id, offset=(page - 1) * page_size, limit=page_size)
        return OrderPage(results=results, count=count, page=page, page_size=page_size)

    def get_order(self, order_id: str, actor: Actor) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise NotFound("Order not found")
        if not actor.can_access(order.user_id):
            raise Unauthorized("Not authorized to view this order")
        return order

    def update_status(self, order_id: str, actor: Actor, status: OrderStatus | None = None,
                      delivery_agent: DeliveryAgent | None = None,
                      estimated_delivery_date: datetime | None = None) -> Order:
        """Administrator update of status and delivery details.

        The first transition into ``Delivered`` stamps ``delivery_date``.
        Terminal statuses cannot be left, and ``Cancelled`` is only reachable
        through ``cancel_order`` so that stock is restored.

        Raises:
            Conflict: If the status changed after the order was read.
        """
        if not actor.is_admin:
            raise Unauthorized("Only administrators can update order status")

        now = self.clock()
        with self.atomic():
            order = self.orders.get_for_update(order_id)
            if order is None:
                raise NotFound("Order not found")
            previous = order.status
            if status is not None and status != previous:
                if status == OrderStatus.CANCELLED:
                    raise InvalidState("Use the cancel endpoint to cancel an order", code="USE_CANCEL_FLOW")
                if previous.is_terminal:
                    raise InvalidState(f"Order is already {previous.value}")
                order.status = status
                if status == OrderStatus.DELIVERED and order.delivery_date is None:
                    order.delivery_date = now
            if delivery_agent is not None:
                order.delivery_agent = delivery_agent
            if estimated_delivery_date is not None:
                order.estimated_delivery_date = estimated_delivery_date
            order.updated_at = now
            saved = self.orders.save(order, expected_status=previous)
            if saved is None:
                raise Conflict("Order was changed by another request")

        if saved.status != previous:
            logger.info("order status updated",
                        extra={"order_id": saved.id, "from": previous.value, "to": saved.status.value})
            template = "order_delivered" if saved.status == OrderStatus.DELIVERED else "order_status_changed"
            self._notify(saved, template)
        return saved

    def cancel_order(self, order_id: str, reason: str, actor: Actor) -> Order:
        """Cancel an order and put its stock back.

        The status flip is written before any stock moves and only applies
        while the order still has the status that was checked, so an order
        is restocked at most once. Coupon usage recorded at checkout is
        kept. A product or size that no longer exists is skipped.

        Raises:
            ValidationError: If ``reason`` is blank.
            NotFound: If the order does not exist.
            Unauthorized: If the actor is neither the owner nor an admin.
            InvalidState: If the order is already cancelled or delivered.
            Conflict: If the status changed after the order was read.
        """
        if not reason or not reason.strip():
            raise ValidationError("Cancellation reason is required")

        now = self.clock()
        with self.atomic():
            order = self.orders.get_for_update(order_id)
            if order is None:
                raise NotFound("Order not found")
            if not actor.can_access(order.user_id):
                raise Unauthorized("Not authorized to cancel this order")
            if order.status == OrderStatus.CANCELLED:
                raise InvalidState("Order is already cancelled", code="ALREADY_CANCELLED")
            if order.status == OrderStatus.DELIVERED:
                raise InvalidState("Cannot cancel delivered order", code="ORDER_DELIVERED")

            previous = order.status
            order.status = OrderStatus.CANCELLED
            order.cancellation = Cancellation(reason=reason.strip(), cancelled_at=now, cancelled_by=actor.role)
            order.updated_at = now
            saved = self.orders.save(order, expected_status=previous)
            if saved is None:
                raise Conflict("Order was changed by another request")
            for item in saved.items:
                if not self.catalog.restore(item.product_id, item.size, item.quantity):
                    logger.warning("stock restore skipped",
                                   extra={"order_id": saved.id, "product_id": item.product_id, "size": item.size})

        logger.info("order cancelled", extra={"order_id": saved.id, "cancelled_by": actor.role})
        self._notify(saved, "order_cancelled")
        return saved

    def _notify(self, order: Order, template: str) -> None:
        if self.dispatcher is None:
            return
        data = {
            "orderId": order.id,
            "orderNumber": order.order_number,
            "status": order.status.value,
            "grandTotal": str(order.grand_total),
        }
        if order.cancellation is not None:
            data["reason"] = order.cancellation.reason
        self.dispatcher.dispatch(order.user_id, template, data)
