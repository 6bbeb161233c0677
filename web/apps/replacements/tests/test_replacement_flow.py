"""Replacement eligibility, state machine and refund reconciliation."""

import copy
from decimal import Decimal

import pytest

from apps.catalog.domain import Product
from apps.core.errors import Conflict, InvalidState, NotFound, Unauthorized
from apps.core.identity import Actor
from apps.orders.domain import Order, OrderItem, OrderStatus, ReturnStatus, ShippingAddress
from apps.replacements.domain import (
    EligibilityReason,
    ReplacementReason,
    ReplacementStatus,
    ReplacementUpdate,
    can_transition,
)

ASHA = Actor("u-asha")
RAVI = Actor("u-ravi")
ADMIN = Actor("u-admin", is_admin=True)
S = ReplacementStatus


def placed_order(world, *lines, delivery_fee="40"):
    """Place an order for ``(product_id, price, qty)`` lines."""
    items = [OrderItem(pid, pid.title(), Decimal(price), qty) for pid, price, qty in lines]
    items_total = sum((i.subtotal for i in items), Decimal(0))
    order = world.order_service.place_order(Order(
        user_id="",
        items=items,
        shipping_address=ShippingAddress("Asha Rao", "9999999999", "12 MG Road", "Bengaluru", "KA", "560001"),
        items_total=items_total,
        delivery_fee=Decimal(delivery_fee),
        grand_total=items_total + Decimal(delivery_fee),
    ), ASHA)
    return order


def delivered_order(world, *lines, **kwargs):
    order = placed_order(world, *lines, **kwargs)
    return world.order_service.update_status(order.id, ADMIN, OrderStatus.DELIVERED)


@pytest.fixture
def products(world):
    world.catalog.add(Product(id="attar", name="Attar", category="Attar", price=Decimal("500"), stock=10))
    world.catalog.add(Product(id="oud", name="Oud", category="Attar", price=Decimal("900"), stock=10))
    world.catalog.add(Product(id="final", name="Final Sale", category="Attar", price=Decimal("100"), stock=10,
                              replacement_days=0))


def request(world, order, product_id="attar", actor=ASHA):
    return world.replacement_service.request(order.id, product_id, ReplacementReason.DAMAGED_PRODUCT, actor,
                                             description="Cap was broken")


def update(world, replacement, actor=ADMIN, **kwargs):
    return world.replacement_service.update(replacement.id, ReplacementUpdate(**kwargs), actor)


@pytest.mark.parametrize("current, target, allowed", [
    (S.REQUESTED, S.APPROVED, True),
    (S.REQUESTED, S.REJECTED, True),
    (S.REQUESTED, S.PICKED_UP, False),
    (S.APPROVED, S.PICKUP_SCHEDULED, True),
    (S.APPROVED, S.REJECTED, False),
    (S.APPROVED, S.REFUNDED, True),
    (S.PICKED_UP, S.REPLACEMENT_SHIPPED, True),
    (S.PICKED_UP, S.REFUND_INITIATED, True),
    (S.REPLACEMENT_SHIPPED, S.REFUNDED, False),
    (S.REFUND_INITIATED, S.COMPLETED, False),
    (S.PICKED_UP, S.APPROVED, False),
    (S.REFUNDED, S.COMPLETED, False),
    (S.REJECTED, S.APPROVED, False),
])
def test_transitions(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_request_within_window(world, products):
    order = delivered_order(world, ("attar", "500", 1))
    world.clock.advance(days=2)

    eligibility = world.replacement_service.check_eligibility(order.id, "attar", ASHA)
    assert eligibility.eligible is True
    assert eligibility.days_remaining == 5
    assert eligibility.replacement_days == 7

    replacement = request(world, order)
    assert replacement.status == S.REQUESTED
    assert replacement.item.price == Decimal("500")
    assert replacement.pickup.address.city == "Bengaluru"
    assert replacement.replacement_deadline == eligibility.deadline
    assert [t.status for t in replacement.timeline] == [S.REQUESTED]
    assert world.orders.get(order.id).items[0].return_status == ReturnStatus.REQUESTED
    assert "replacement_requested" in world.templates()


def test_request_on_day_eight_is_expired(world, products):
    order = delivered_order(world, ("attar", "500", 1))
    world.clock.advance(days=8)

    with pytest.raises(InvalidState) as e:
        request(world, order)
    assert e.value.code == "WINDOW_EXPIRED"
    assert world.replacements.list() == []


def test_last_second_of_window_is_accepted(world, products):
    order = delivered_order(world, ("attar", "500", 1))
    world.clock.advance(days=7)
    assert request(world, order).status == S.REQUESTED


def test_undelivered_order_is_not_eligible(world, products):
    other = placed_order(world, ("attar", "500", 1))

    eligibility = world.replacement_service.check_eligibility(other.id, "attar", ASHA)
    assert eligibility.eligible is False
    assert eligibility.reason == EligibilityReason.ORDER_NOT_DELIVERED
    with pytest.raises(InvalidState) as e:
        request(world, other)
    assert e.value.code == "ORDER_NOT_DELIVERED"


def test_products_without_replacement_window(world, products):
    order = delivered_order(world, ("final", "100", 1))
    with pytest.raises(InvalidState) as e:
        request(world, order, "final")
    assert e.value.code == "NOT_ELIGIBLE"


def test_item_must_be_in_order_and_order_owned(world, products):
    order = delivered_order(world, ("attar", "500", 1))
    with pytest.raises(NotFound):
        request(world, order, "oud")
    with pytest.raises(Unauthorized):
        request(world, order, actor=RAVI)
    with pytest.raises(Unauthorized):
        request(world, order, actor=ADMIN)


def test_duplicate_active_request_is_rejected(world, products):
    order = delivered_order(world, ("attar", "500", 1))
    request(world, order)

    assert world.replacement_service.check_eligibility(order.id, "attar", ASHA).reason == \
        EligibilityReason.DUPLICATE_REQUEST
    with pytest.raises(InvalidState) as e:
        request(world, order)
    assert e.value.code == "DUPLICATE_REQUEST"


def test_rejected_request_can_be_filed_again(world, products):
    order = delivered_order(world, ("attar", "500", 1))
    first = request(world, order)
    rejected = update(world, first, status=S.REJECTED, admin_notes="Photos do not show damage")
    assert rejected.status == S.REJECTED
    assert world.orders.get(order.id).items[0].return_status == ReturnStatus.NONE

    assert request(world, order).id != first.id


def test_update_is_admin_only_and_validates_transitions(world, products):
    order = delivered_order(world, ("attar", "500", 1))
    replacement = request(world, order)

    with pytest.raises(Unauthorized):
        update(world, replacement, actor=ASHA, status=S.APPROVED)
    with pytest.raises(InvalidState) as e:
        update(world, replacement, status=S.PICKED_UP)
    assert e.value.code == "INVALID_TRANSITION"


def test_full_refund_path_restores_stock_once(world, products):
    order = delivered_order(world, ("attar", "500", 2))
    assert world.catalog.get("attar").stock == 8
    replacement = request(world, order)

    update(world, replacement, status=S.APPROVED)
    scheduled = update(world, replacement, status=S.PICKUP_SCHEDULED,
                       pickup={"scheduled_date": world.clock(), "agent_name": "Kiran"})
    assert scheduled.pickup.agent_name == "Kiran"
    picked = update(world, replacement, pickup={"picked_up_at": world.clock()})
    assert picked.status == S.PICKED_UP
    assert picked.timeline[-1].message == "Product picked up from customer"

    refund = {"amount": Decimal("1000"), "refunded_at": world.clock(), "transaction_id": "TXN-1"}
    refunded = update(world, replacement, refund=refund)
    assert refunded.status == S.REFUNDED
    assert refunded.stock_restored is True
    assert world.catalog.get("attar").stock == 10

    # repeated patches must not restock again
    update(world, replacement, refund=refund)
    update(world, replacement, status=S.REFUNDED)
    assert world.catalog.get("attar").stock == 10

    line = world.orders.get(order.id).items[0]
    assert line.return_status == ReturnStatus.REFUNDED
    assert line.refund_amount == Decimal("1000")
    assert line.returned_at is not None
    assert [t.status for t in world.replacements.get(replacement.id).timeline] == [
        S.REQUESTED, S.APPROVED, S.PICKUP_SCHEDULED, S.PICKED_UP, S.REFUNDED,
    ]
    assert world.notifier.sent[-1].data["message"] == "Refund of ₹1000 has been processed."


def test_delivery_fee_refunded_when_last_item_is_returned(world, products):
    order = delivered_order(world, ("attar", "500", 1), ("oud", "900", 1))
    first = request(world, order, "attar")
    second = request(world, order, "oud")

    update(world, first, status=S.APPROVED)
    update(world, first, status=S.COMPLETED)
    assert world.orders.get(order.id).delivery_fee_refunded is False

    update(world, second, status=S.APPROVED)
    update(world, second, refund={"amount": Decimal("900"), "refunded_at": world.clock()})

    stored = world.orders.get(order.id)
    assert [i.return_status for i in stored.items] == [ReturnStatus.RETURNED, ReturnStatus.REFUNDED]
    assert stored.delivery_fee_refunded is True


def test_partial_refund_keeps_delivery_fee(world, products):
    order = delivered_order(world, ("attar", "500", 1), ("oud", "900", 1))
    replacement = request(world, order, "oud")
    update(world, replacement, status=S.APPROVED)
    update(world, replacement, refund={"amount": Decimal("900"), "refunded_at": world.clock()})

    assert world.orders.get(order.id).delivery_fee_refunded is False


def test_list_and_get_visibility(world, products):
    order = delivered_order(world, ("attar", "500", 1))
    replacement = request(world, order)

    assert [r.id for r in world.replacement_service.list_replacements(ASHA)] == [replacement.id]
    assert world.replacement_service.list_replacements(RAVI) == []
    assert len(world.replacement_service.list_replacements(ADMIN, status=S.REQUESTED)) == 1
    assert world.replacement_service.list_replacements(ADMIN, status=S.APPROVED) == []
    with pytest.raises(Unauthorized):
        world.replacement_service.get_replacement(replacement.id, RAVI)
    with pytest.raises(NotFound):
        world.replacement_service.get_replacement("missing", ADMIN)


def test_stats(world, products):
    order = delivered_order(world, ("attar", "500", 1), ("oud", "900", 1))
    a = request(world, order, "attar")
    b = request(world, order, "oud")
    update(world, a, status=S.APPROVED)
    update(world, a, status=S.REFUND_INITIATED)
    update(world, b, status=S.APPROVED)
    update(world, b, refund={"amount": Decimal("900"), "refunded_at": world.clock()})

    stats = world.replacement_service.stats(ADMIN)
    assert stats.total_requests == 2
    assert stats.in_progress == 1
    assert stats.refunded == 1
    assert stats.pending == 0
    assert stats.total_refund_amount == Decimal("900")
    with pytest.raises(Unauthorized):
        world.replacement_service.stats(ASHA)


def serve_stale(world, monkeypatch, snapshot):
    monkeypatch.setattr(world.replacements, "get_for_update", lambda _id: copy.deepcopy(snapshot))


def test_refund_amount_sent_after_refunded_is_applied(world, products):
    order = delivered_order(world, ("attar", "500", 2))
    replacement = request(world, order)
    update(world, replacement, status=S.APPROVED)

    refunded = update(world, replacement, refund={"refunded_at": world.clock()})
    assert refunded.status == S.REFUNDED
    assert refunded.stock_restored is False
    assert world.catalog.get("attar").stock == 8

    later = update(world, replacement, status=S.REFUNDED,
                   refund={"amount": Decimal("1000"), "refunded_at": world.clock()})
    assert later.stock_restored is True
    assert world.catalog.get("attar").stock == 10
    stored = world.orders.get(order.id)
    assert stored.items[0].refund_amount == Decimal("1000")
    assert stored.delivery_fee_refunded is True
    assert [t.status for t in later.timeline].count(S.REFUNDED) == 1

    update(world, replacement, refund={"amount": Decimal("1000")})
    assert world.catalog.get("attar").stock == 10


def test_overlapping_refunds_restore_stock_once(world, products, monkeypatch):
    order = delivered_order(world, ("attar", "500", 2))
    replacement = request(world, order)
    update(world, replacement, status=S.APPROVED)
    snapshot = world.replacements.get(replacement.id)
    refund = {"amount": Decimal("1000"), "refunded_at": world.clock()}
    update(world, replacement, refund=refund)
    assert world.catalog.get("attar").stock == 10

    serve_stale(world, monkeypatch, snapshot)
    with pytest.raises(Conflict):
        update(world, replacement, refund=refund)

    assert world.catalog.get("attar").stock == 10
    assert [t.status for t in world.replacements.get(replacement.id).timeline].count(S.REFUNDED) == 1


def test_late_refund_amounts_from_stale_reads_restore_stock_once(world, products, monkeypatch):
    order = delivered_order(world, ("attar", "500", 2))
    replacement = request(world, order)
    update(world, replacement, status=S.APPROVED)
    update(world, replacement, refund={"refunded_at": world.clock()})
    snapshot = world.replacements.get(replacement.id)
    update(world, replacement, refund={"amount": Decimal("1000")})
    assert world.catalog.get("attar").stock == 10

    serve_stale(world, monkeypatch, snapshot)
    again = update(world, replacement, refund={"amount": Decimal("1000")})

    assert again.stock_restored is True
    assert world.catalog.get("attar").stock == 10
