from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from apps.catalog.adapters import InMemoryCatalog
from apps.catalog.domain import Product, SizeVariant
from apps.catalog.repository import ProductRepository
from apps.core.memory import InMemoryDatabase
from apps.coupons.adapters import InMemoryCouponStore, InMemoryCustomerDirectory
from apps.coupons.domain import CouponService
from apps.notifications.adapters import InlineExecutor
from apps.notifications.dispatcher import NotificationDispatcher
from apps.notifications.http_adapters import notifications_breaker
from apps.orders.adapters import InMemoryOrderStore
from apps.orders.domain import OrderService
from apps.replacements.adapters import InMemoryReplacementStore
from apps.replacements.domain import ReplacementService


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.NOTIFICATIONS_INLINE = True
    settings.NOTIFICATION_BATCH_PAUSE_SECS = 0
    cache.clear()  # throttle counters
    notifications_breaker.reset()


# ---- API fixtures ----
@pytest.fixture
def customer(django_user_model):
    return django_user_model.objects.create_user(username="asha", password="pw", email="asha@example.com")


@pytest.fixture
def other_customer(django_user_model):
    return django_user_model.objects.create_user(username="ravi", password="pw", email="ravi@example.com")


@pytest.fixture
def customer_client(customer):
    c = APIClient()
    c.force_authenticate(customer)
    return c


@pytest.fixture
def other_client(other_customer):
    c = APIClient()
    c.force_authenticate(other_customer)
    return c


@pytest.fixture
def staff_client(admin_user):
    c = APIClient()
    c.force_authenticate(admin_user)
    return c


@pytest.fixture
def make_product(db):
    def _make(name="Rose Attar", stock=10, sizes=None, price="500", replacement_days=7):
        return ProductRepository().create(Product(
            id="",
            name=name,
            category="Attar",
            price=Decimal(price),
            stock=stock,
            sizes=[SizeVariant(label=label, price=Decimal(price), stock=qty) for label, qty in (sizes or [])],
            replacement_days=replacement_days,
        ))
    return _make


def _order_payload(product, quantity=1, size=None, price=None, delivery_fee=40, coupon_code=None, coupon_discount=0):
    """A camelCase order body whose totals reconcile."""
    unit = Decimal(str(price if price is not None else product.price))
    items_total = unit * quantity
    grand = items_total + Decimal(delivery_fee) - Decimal(coupon_discount)
    body = {
        "items": [{
            "product": product.id,
            "name": product.name,
            "price": float(unit),
            "quantity": quantity,
            "size": size,
            "category": product.category,
        }],
        "shippingAddress": {
            "fullName": "Asha Rao",
            "phone": "9999999999",
            "addressLine1": "12 MG Road",
            "city": "Bengaluru",
            "state": "KA",
            "zipCode": "560001",
        },
        "itemsTotal": float(items_total),
        "deliveryFee": delivery_fee,
        "grandTotal": float(grand),
    }
    if coupon_code:
        body["couponCode"] = coupon_code
        body["couponDiscount"] = coupon_discount
    return body


@pytest.fixture
def order_payload():
    return _order_payload


# ---- In-memory domain fixtures ----
class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send(self, notification):
        self.sent.append(notification)


@dataclass
class FakeClock:
    now: datetime = field(default_factory=lambda: datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class World:
    db: InMemoryDatabase
    clock: FakeClock
    notifier: RecordingNotifier
    catalog: InMemoryCatalog
    orders: InMemoryOrderStore
    coupons: InMemoryCouponStore
    replacements: InMemoryReplacementStore
    customers: InMemoryCustomerDirectory
    order_service: OrderService
    coupon_service: CouponService
    replacement_service: ReplacementService

    def templates(self):
        return [n.template for n in self.notifier.sent]


@pytest.fixture
def world() -> World:
    db = InMemoryDatabase()
    clock = FakeClock()
    notifier = RecordingNotifier()
    dispatcher = NotificationDispatcher(notifier, InlineExecutor(), batch_size=10, batch_pause=0)
    catalog = InMemoryCatalog(db)
    orders = InMemoryOrderStore(db)
    coupons = InMemoryCouponStore(db)
    replacements = InMemoryReplacementStore(db)
    customers = InMemoryCustomerDirectory()
    return World(
        db=db,
        clock=clock,
        notifier=notifier,
        catalog=catalog,
        orders=orders,
        coupons=coupons,
        replacements=replacements,
        customers=customers,
        order_service=OrderService(catalog, orders, coupons, dispatcher, atomic=db.atomic, clock=clock),
        coupon_service=CouponService(coupons, customers, dispatcher, clock=clock),
        replacement_service=ReplacementService(catalog, orders, replacements, dispatcher, atomic=db.atomic,
                                               clock=clock),
    )
