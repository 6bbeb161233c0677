from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.catalog.repository import ProductRepository
from apps.coupons.domain import Coupon, DiscountType
from apps.coupons.repository import CouponRepository
from apps.orders.models import OrderModel

CREATE_URL = "/api/orders/"


def stock_of(product, size=None):
    return ProductRepository().get(product.id).available(size)


@pytest.mark.django_db
def test_create_order_returns_201_and_takes_stock(customer_client, customer, make_product, order_payload):
    product = make_product(stock=10)

    r = customer_client.post(CREATE_URL, order_payload(product, quantity=3), format="json")

    assert r.status_code == 201, r.content
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "Order placed successfully"
    data = body["data"]
    assert data["orderStatus"] == "Pending"
    assert data["paymentMethod"] == "COD"
    assert data["user"] == str(customer.pk)
    assert data["grandTotal"] == 1540.0
    assert data["items"][0]["product"] == product.id
    assert data["items"][0]["subtotal"] == 1500.0
    assert data["items"][0]["returnStatus"] == "none"
    assert data["orderNumber"] >= 1
    assert stock_of(product) == 7
    assert OrderModel.objects.count() == 1


@pytest.mark.django_db
def test_create_order_uses_size_variant_stock(customer_client, make_product, order_payload):
    product = make_product(stock=0, sizes=[("6ml", 4), ("12ml", 1)])

    r = customer_client.post(CREATE_URL, order_payload(product, quantity=2, size="6ml"), format="json")

    assert r.status_code == 201, r.content
    assert stock_of(product, "6ml") == 2
    assert stock_of(product, "12ml") == 1


@pytest.mark.django_db
def test_insufficient_stock_is_400_and_writes_nothing(customer_client, make_product, order_payload):
    product = make_product(stock=2)

    r = customer_client.post(CREATE_URL, order_payload(product, quantity=3), format="json")

    assert r.status_code == 400
    assert r.json() == {"success": False, "message": "Insufficient stock for Rose Attar",
                        "detail": "INSUFFICIENT_STOCK"}
    assert stock_of(product) == 2
    assert OrderModel.objects.count() == 0


@pytest.mark.django_db
def test_totals_mismatch_is_rejected(customer_client, make_product, order_payload):
    product = make_product()
    payload = order_payload(product)
    payload["grandTotal"] += 10

    r = customer_client.post(CREATE_URL, payload, format="json")

    assert r.status_code == 400
    assert r.json()["detail"] == "TOTALS_MISMATCH"


@pytest.mark.django_db
def test_empty_items_is_rejected(customer_client, make_product, order_payload):
    payload = order_payload(make_product())
    payload["items"] = []
    payload["itemsTotal"] = 0
    payload["grandTotal"] = 40

    r = customer_client.post(CREATE_URL, payload, format="json")

    assert r.status_code == 400
    assert r.json()["detail"] == "EMPTY_ORDER"


@pytest.mark.django_db
def test_schema_errors_are_400(customer_client, make_product, order_payload):
    payload = order_payload(make_product())
    payload["items"][0]["quantity"] = 0

    r = customer_client.post(CREATE_URL, payload, format="json")

    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"
    assert r.json()["errors"]


@pytest.mark.django_db
def test_unknown_product_is_404(customer_client, make_product, order_payload):
    payload = order_payload(make_product())
    payload["items"][0]["product"] = "00000000-0000-0000-0000-000000000000"

    r = customer_client.post(CREATE_URL, payload, format="json")

    assert r.status_code == 404


@pytest.mark.django_db
def test_coupon_code_records_usage(customer_client, customer, make_product, order_payload):
    now = timezone.now()
    CouponRepository().create(Coupon(code="SAVE10", discount_type=DiscountType.PERCENTAGE,
                                     discount_value=Decimal("10"), max_discount_amount=Decimal("50"),
                                     start_date=now - timedelta(days=1), end_date=now + timedelta(days=30)))
    product = make_product()

    r = customer_client.post(CREATE_URL, order_payload(product, quantity=2, coupon_code="save10",
                                                       coupon_discount=50), format="json")

    assert r.status_code == 201, r.content
    assert r.json()["data"]["couponCode"] == "SAVE10"
    coupon = CouponRepository().get_by_code("SAVE10")
    assert coupon.used_count == 1
    assert [u.user_id for u in coupon.used_by] == [str(customer.pk)]

    again = customer_client.post(CREATE_URL, order_payload(product, quantity=1, coupon_code="SAVE10",
                                                           coupon_discount=50), format="json")
    assert again.status_code == 400
    assert again.json()["detail"] == "COUPON_USAGE_EXCEEDED"
    assert stock_of(product) == 8


@pytest.mark.django_db
def test_create_requires_authentication(client, make_product, order_payload):
    r = client.post(CREATE_URL, order_payload(make_product()), content_type="application/json")
    assert r.status_code in (401, 403)


@pytest.mark.django_db
def test_ping_is_public(client):
    r = client.get("/api/orders/ping/")
    assert r.status_code == 200
    assert r.json() == {"ok": True}
