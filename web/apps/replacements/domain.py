"""Replacement and refund requests for delivered order items.

A replacement moves through a small state machine::

    Requested -> Approved | Rejected
    Approved -> Pickup Scheduled -> Picked Up -> Replacement Shipped -> Completed
    Approved -> Pickup Scheduled -> Picked Up -> Refund Initiated -> Refunded

Forward moves may skip steps of the same path. ``Rejected``, ``Completed``
and ``Refunded`` are terminal. Each transition is mirrored on the order's
line item (``return_status``) and a refund puts the item's stock back
exactly once.
"""

import copy
import logging
import math
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, ContextManager, Dict, List, Optional, Protocol

from apps.catalog.domain import CatalogPort
from apps.core.errors import Conflict, InvalidState, NotFound, Unauthorized
from apps.core.identity import Actor
from apps.orders.domain import Order, OrderStatus, OrderStorePort, ReturnStatus, ShippingAddress

logger = logging.getLogger("replacements")

CURRENCY = "₹"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReplacementStatus(str, Enum):
    REQUESTED = "Requested"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PICKUP_SCHEDULED = "Pickup Scheduled"
    PICKED_UP = "Picked Up"
    REPLACEMENT_SHIPPED = "Replacement Shipped"
    COMPLETED = "Completed"
    REFUND_INITIATED = "Refund Initiated"
    REFUNDED = "Refunded"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({ReplacementStatus.REJECTED, ReplacementStatus.COMPLETED, ReplacementStatus.REFUNDED})

_S = ReplacementStatus
_PATHS = (
    (_S.APPROVED, _S.PICKUP_SCHEDULED, _S.PICKED_UP, _S.REPLACEMENT_SHIPPED, _S.COMPLETED),
    (_S.APPROVED, _S.PICKUP_SCHEDULED, _S.PICKED_UP, _S.REFUND_INITIATED, _S.REFUNDED),
)

RETURN_STATUS_MAP: Dict[ReplacementStatus, ReturnStatus] = {
    _S.REQUESTED: ReturnStatus.REQUESTED,
    _S.APPROVED: ReturnStatus.APPROVED,
    _S.REJECTED: ReturnStatus.NONE,
    _S.PICKUP_SCHEDULED: ReturnStatus.APPROVED,
    _S.PICKED_UP: ReturnStatus.APPROVED,
    _S.REPLACEMENT_SHIPPED: ReturnStatus.APPROVED,
    _S.COMPLETED: ReturnStatus.RETURNED,
    _S.REFUND_INITIATED: ReturnStatus.APPROVED,
    _S.REFUNDED: ReturnStatus.REFUNDED,
}


def can_transition(current: ReplacementStatus, target: ReplacementStatus) -> bool:
    if current.is_terminal or current == target:
        return False
    if current == _S.REQUESTED:
        return target in (_S.APPROVED, _S.REJECTED)
    for path in _PATHS:
        if current in path and target in path and path.index(target) > path.index(current):
            return True
    return False


class ReplacementReason(str, Enum):
    DAMAGED_PRODUCT = "Damaged Product"
    WRONG_PRODUCT = "Wrong Product"
    QUALITY_ISSUE = "Quality Issue"
    SIZE_ISSUE = "Size Issue"
    MISSING_PARTS = "Missing Parts"
    NOT_AS_DESCRIBED = "Not as Described"
    OTHER = "Other"


class RefundMethod(str, Enum):
    ORIGINAL_PAYMENT_METHOD = "Original Payment Method"
    BANK_TRANSFER = "Bank Transfer"
    STORE_CREDIT = "Store Credit"
    UPI = "UPI"


class EligibilityReason(str, Enum):
    ORDER_NOT_DELIVERED = "ORDER_NOT_DELIVERED"
    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    WINDOW_EXPIRED = "WINDOW_EXPIRED"
    DUPLICATE_REQUEST = "DUPLICATE_REQUEST"


@dataclass
class ReplacementItem:
    """Snapshot of the order line being replaced."""

    product_id: str
    name: str
    price: Decimal
    quantity: int
    size: Optional[str] = None
    image: str = ""


@dataclass
class Pickup:
    scheduled_date: Optional[datetime] = None
    agent_name: str = ""
    agent_phone: str = ""
    picked_up_at: Optional[datetime] = None
    address: Optional[ShippingAddress] = None


@dataclass
class Refund:
    amount: Optional[Decimal] = None
    method: Optional[RefundMethod] = None
    transaction_id: str = ""
    refunded_at: Optional[datetime] = None
    notes: str = ""


@dataclass
class TimelineEntry:
    status: ReplacementStatus
    message: str
    updated_by: str
    timestamp: datetime


@dataclass
class Replacement:
    order_id: str
    user_id: str
    item: ReplacementItem
    reason: ReplacementReason
    description: str = ""
    images: List[str] = field(default_factory=list)
    status: ReplacementStatus = ReplacementStatus.REQUESTED
    admin_notes: str = ""
    pickup: Pickup = field(default_factory=Pickup)
    refund: Refund = field(default_factory=Refund)
    timeline: List[TimelineEntry] = field(default_factory=list)
    delivery_date: Optional[datetime] = None
    replacement_deadline: Optional[datetime] = None
    requested_at: Optional[datetime] = None
    stock_restored: bool = False
    id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: Optional[EligibilityReason] = None
    message: str = ""
    replacement_days: int = 0
    delivery_date: Optional[datetime] = None
    deadline: Optional[datetime] = None
    days_remaining: int = 0


@dataclass
class ReplacementUpdate:
    """Partial admin update.

    ``pickup`` and ``refund`` map attribute names of ``Pickup`` and
    ``Refund`` to new values; attributes left out are kept.
    """

    status: Optional[ReplacementStatus] = None
    admin_notes: Optional[str] = None
    pickup: Dict[str, object] = field(default_factory=dict)
    refund: Dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class ReplacementStats:
    total_requests: int
    pending: int
    approved: int
    in_progress: int
    completed: int
    refunded: int
    rejected: int
    total_refund_amount: Decimal


# ---- Ports ----
class ReplacementStorePort(Protocol):
    def create(self, replacement: Replacement) -> Replacement:
        """Insert a request; raise ``InvalidState(DUPLICATE_REQUEST)`` when
        another active request exists for the same order item."""
        raise NotImplementedError()

    def get(self, replacement_id: str) -> Optional[Replacement]:
        raise NotImplementedError()

    def get_for_update(self, replacement_id: str) -> Optional[Replacement]:
        """Like ``get``, but locks the request until the surrounding transaction ends."""
        raise NotImplementedError()

    def list(self, user_id: Optional[str] = None, status: Optional[ReplacementStatus] = None) -> List[Replacement]:
        """Newest first, optionally filtered by owner and status."""
        raise NotImplementedError()

    def list_for_order(self, order_id: str) -> List[Replacement]:
        raise NotImplementedError()

    def has_active(self, order_id: str, product_id: str) -> bool:
        raise NotImplementedError()

    def save(self, replacement: Replacement,
             expected_status: Optional[ReplacementStatus] = None) -> Optional[Replacement]:
        """Persist status, notes, pickup, refund, stock flag and new timeline entries.

        Returns None, writing nothing, when ``expected_status`` is given and
        the stored status no longer equals it.
        """
        raise NotImplementedError()

    def claim_stock_restore(self, replacement_id: str) -> bool:
        """Set ``stock_restored`` if it is still unset; True only for the caller that set it."""
        raise NotImplementedError()

    def count_by_status(self) -> Dict[ReplacementStatus, int]:
        raise NotImplementedError()

    def refunded_total(self) -> Decimal:
        raise NotImplementedError()


def _status_message(replacement: Replacement) -> Optional[str]:
    """User-facing notification text for the current status, if any."""
    status = replacement.status
    if status == _S.PICKUP_SCHEDULED:
        when = replacement.pickup.scheduled_date
        return f"Pickup scheduled for {when:%d/%m/%Y}" if when else "Pickup has been scheduled"
    if status == _S.REFUNDED:
        return f"Refund of {CURRENCY}{replacement.refund.amount or 0} has been processed."
    return {
        _S.APPROVED: "Your replacement request has been approved.",
        _S.REJECTED: "Your replacement request has been rejected.",
        _S.PICKED_UP: "Your product has been picked up.",
        _S.REPLACEMENT_SHIPPED: "Your replacement item has been shipped.",
        _S.COMPLETED: "Your replacement request has been completed.",
        _S.REFUND_INITIATED: "Refund has been initiated for your item.",
    }.get(status)


def _timeline_message(replacement: Replacement, from_pickup: bool) -> str:
    if replacement.status == _S.REFUNDED:
        refund = replacement.refund
        method = refund.method.value if refund.method else "the original payment method"
        return f"Refund of {CURRENCY}{refund.amount or 0} processed via {method}"
    if from_pickup:
        return "Product picked up from customer"
    return f"Status updated to {replacement.status.value}"


# ---- Service ----
class ReplacementService:
    """Eligibility checks, requests and the admin workflow for replacements."""

    def __init__(self, catalog: CatalogPort, orders: OrderStorePort, replacements: ReplacementStorePort,
                 dispatcher=None, atomic: Callable[[], ContextManager] = nullcontext,
                 clock: Callable[[], datetime] = _utcnow):
        self.catalog = catalog
        self.orders = orders
        self.replacements = replacements
        self.dispatcher = dispatcher
        self.atomic = atomic
        self.clock = clock

    def _owned_order(self, order_id: str, actor: Actor) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise NotFound("Order not found")
        if order.user_id != actor.user_id:
            raise Unauthorized("Not authorized")
        return order

    def _evaluate(self, order: Order, product_id: str, now: datetime) -> Eligibility:
        if order.status != OrderStatus.DELIVERED:
            return Eligibility(False, EligibilityReason.ORDER_NOT_DELIVERED,
                               "Order must be delivered to request replacement")
        if order.item_for(product_id) is None:
            raise NotFound("Item not found in order")

        product = self.catalog.get(product_id)
        days = product.replacement_days if product else 0
        if days <= 0:
            return Eligibility(False, EligibilityReason.NOT_ELIGIBLE, "Replacement is not available for this product")

        delivered_at = order.delivery_date or order.updated_at
        deadline = delivered_at + timedelta(days=days)
        remaining = max(0, math.ceil((deadline - now).total_seconds() / 86400))
        window = {"replacement_days": days, "delivery_date": delivered_at, "deadline": deadline,
                  "days_remaining": remaining}
        if now > deadline:
            return Eligibility(False, EligibilityReason.WINDOW_EXPIRED, "Replacement period has expired", **window)
        if self.replacements.has_active(order.id, str(product_id)):
            return Eligibility(False, EligibilityReason.DUPLICATE_REQUEST,
                               "Replacement already requested for this item", **window)
        return Eligibility(True, None, f"You have {remaining} day(s) left to request replacement", **window)

    def check_eligibility(self, order_id: str, product_id: str, actor: Actor) -> Eligibility:
        """Report whether the actor may request a replacement; writes nothing."""
        order = self._owned_order(order_id, actor)
        return self._evaluate(order, product_id, self.clock())

    def request(self, order_id: str, product_id: str, reason: ReplacementReason, actor: Actor,
                description: str = "", images: Optional[List[str]] = None) -> Replacement:
        """Open a replacement request for one delivered line item.

        Raises:
            NotFound: If the order or the item does not exist.
            Unauthorized: If the order belongs to someone else.
            InvalidState: With the eligibility reason as ``code`` when the
                item cannot be replaced.
        """
        now = self.clock()
        order = self._owned_order(order_id, actor)
        eligibility = self._evaluate(order, product_id, now)
        if not eligibility.eligible:
            raise InvalidState(eligibility.message, code=eligibility.reason.value)

        line = order.item_for(product_id)
        replacement = Replacement(
            order_id=order.id,
            user_id=actor.user_id,
            item=ReplacementItem(product_id=line.product_id, name=line.name, price=line.price,
                                 quantity=line.quantity, size=line.size, image=line.image),
            reason=reason,
            description=description,
            images=list(images or []),
            pickup=Pickup(address=copy.deepcopy(order.shipping_address)),
            timeline=[TimelineEntry(_S.REQUESTED, "Replacement request submitted", "user", now)],
            delivery_date=eligibility.delivery_date,
            replacement_deadline=eligibility.deadline,
            requested_at=now,
        )
        with self.atomic():
            created = self.replacements.create(replacement)
            self._sync_order(created, now)

        logger.info("replacement requested",
                    extra={"replacement_id": created.id, "order_id": order.id, "product_id": line.product_id})
        if self.dispatcher is not None:
            self.dispatcher.dispatch(actor.user_id, "replacement_requested", {
                "title": "Replacement Request Submitted",
                "message": (f"Your replacement request for {line.name} has been submitted. "
                            "We will review it shortly."),
                "replacementId": created.id,
                "orderId": order.id,
            })
        return created

    def list_replacements(self, actor: Actor, status: Optional[ReplacementStatus] = None) -> List[Replacement]:
        """Administrators see every request, other users only their own."""
        user_id = None if actor.is_admin else actor.user_id
        return self.replacements.list(user_id=user_id, status=status)

    def get_replacement(self, replacement_id: str, actor: Actor) -> Replacement:
        replacement = self.replacements.get(replacement_id)
        if replacement is None:
            raise NotFound("Replacement request not found")
        if not actor.can_access(replacement.user_id):
            raise Unauthorized("Not authorized")
        return replacement

    def update(self, replacement_id: str, changes: ReplacementUpdate, actor: Actor) -> Replacement:
        """Apply an admin update and reconcile the order and stock.

        ``refund.refunded_at`` forces ``Refunded``; ``pickup.picked_up_at``
        without an explicit status moves an approved or scheduled request to
        ``Picked Up``. Re-sending the current status records no new
        transition, but a refund amount sent to a request that is already
        ``Refunded`` is still applied to the order line. Stock comes back
        at most once per request.

        Raises:
            Conflict: If the status changed after the request was read.
        """
        if not actor.is_admin:
            raise Unauthorized("Only administrators can update replacements")

        now = self.clock()
        with self.atomic():
            replacement = self.replacements.get_for_update(replacement_id)
            if replacement is None:
                raise NotFound("Replacement request not found")

            previous = replacement.status
            target = changes.status
            from_pickup = False
            if changes.admin_notes is not None:
                replacement.admin_notes = changes.admin_notes
            for name, value in changes.pickup.items():
                setattr(replacement.pickup, name, value)
            if changes.pickup.get("picked_up_at") and target is None and \
                    previous in (_S.APPROVED, _S.PICKUP_SCHEDULED):
                target, from_pickup = _S.PICKED_UP, True
            for name, value in changes.refund.items():
                setattr(replacement.refund, name, value)
            if changes.refund.get("refunded_at"):
                target = _S.REFUNDED

            transitioned = target is not None and target != previous
            if transitioned:
                if not can_transition(previous, target):
                    raise InvalidState(
                        f"Cannot change status from {previous.value} to {target.value}",
                        code="INVALID_TRANSITION",
                    )
                replacement.status = target
                replacement.timeline.append(
                    TimelineEntry(target, _timeline_message(replacement, from_pickup), "admin", now)
                )

            late_refund = not transitioned and previous == _S.REFUNDED and bool(changes.refund.get("amount"))
            if transitioned or late_refund:
                self._sync_order(replacement, now)
            saved = self.replacements.save(replacement, expected_status=previous)
            if saved is None:
                raise Conflict("Replacement request was changed by another request")

        if late_refund:
            logger.info("replacement refund amount applied",
                        extra={"replacement_id": saved.id, "amount": str(saved.refund.amount)})
        if transitioned:
            logger.info("replacement status updated",
                        extra={"replacement_id": saved.id, "status": saved.status.value})
            message = _status_message(saved)
            if message and self.dispatcher is not None:
                self.dispatcher.dispatch(saved.user_id, "replacement_status", {
                    "title": f"Replacement {saved.status.value}",
                    "message": message,
                    "replacementId": saved.id,
                    "status": saved.status.value,
                })
        return saved

    def _sync_order(self, replacement: Replacement, now: datetime) -> None:
        """Mirror the replacement status on the order line; restock on refund."""
        order = self.orders.get_for_update(replacement.order_id)
        if order is None:
            logger.warning("order missing for replacement", extra={"replacement_id": replacement.id})
            return
        line = order.item_for(replacement.item.product_id)
        if line is None:
            return
        status = replacement.status
        line.return_status = RETURN_STATUS_MAP[status]
        if status in (_S.COMPLETED, _S.REFUNDED) and line.returned_at is None:
            line.returned_at = now

        if status == _S.REFUNDED and replacement.refund.amount:
            line.refund_amount = replacement.refund.amount
            if not replacement.stock_restored:
                item = replacement.item
                if not self.replacements.claim_stock_restore(replacement.id):
                    logger.info("replacement stock already restored", extra={"replacement_id": replacement.id})
                elif self.catalog.restore(item.product_id, item.size, item.quantity):
                    logger.info("replacement stock restored",
                                extra={"replacement_id": replacement.id, "product_id": item.product_id,
                                       "quantity": item.quantity})
                else:
                    logger.warning("stock restore skipped",
                                   extra={"replacement_id": replacement.id, "product_id": item.product_id})
                replacement.stock_restored = True
            if order.all_items_returned():
                order.delivery_fee_refunded = True

        order.updated_at = now
        self.orders.save(order)

    def stats(self, actor: Actor) -> ReplacementStats:
        if not actor.is_admin:
            raise Unauthorized("Only administrators can view replacement stats")
        counts = self.replacements.count_by_status()
        in_progress = (_S.PICKUP_SCHEDULED, _S.PICKED_UP, _S.REPLACEMENT_SHIPPED, _S.REFUND_INITIATED)
        return ReplacementStats(
            total_requests=sum(counts.values()),
            pending=counts.get(_S.REQUESTED, 0),
            approved=counts.get(_S.APPROVED, 0),
            in_progress=sum(counts.get(s, 0) for s in in_progress),
            completed=counts.get(_S.COMPLETED, 0),
            refunded=counts.get(_S.REFUNDED, 0),
            rejected=counts.get(_S.REJECTED, 0),
            total_refund_amount=self.replacements.refunded_total(),
        )
