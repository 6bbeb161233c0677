from datetime import timedelta

import pytest
from django.utils import timezone

from apps.catalog.models import WishlistItemModel
from apps.coupons.repository import CouponRepository, CustomerDirectory

URL = "/api/coupons/"
APPLY_URL = "/api/coupons/apply/"


def create(staff_client, **body):
    payload = {"code": "save10", "discountType": "percentage", "discountValue": 10, "maxDiscountAmount": 50}
    payload.update(body)
    return staff_client.post(URL, payload, format="json")


@pytest.mark.django_db
def test_admin_creates_and_customer_applies(staff_client, customer_client):
    r = create(staff_client)
    assert r.status_code == 201, r.content
    data = r.json()["data"]
    assert data["code"] == "SAVE10"
    assert data["usedCount"] == 0
    assert r.json()["eligibleCount"] == 0

    applied = customer_client.post(APPLY_URL, {"code": "save10", "orderAmount": 1000}, format="json")
    assert applied.status_code == 200, applied.content
    assert applied.json()["message"] == "Coupon applied successfully"
    assert applied.json()["data"]["discount"] == 50.0
    assert applied.json()["data"]["finalAmount"] == 950.0


@pytest.mark.django_db
def test_apply_does_not_record_usage(staff_client, customer_client):
    create(staff_client)
    customer_client.post(APPLY_URL, {"code": "SAVE10", "orderAmount": 1000}, format="json")
    assert CouponRepository().get_by_code("SAVE10").used_count == 0


@pytest.mark.django_db
def test_apply_unknown_code_is_404(customer_client):
    r = customer_client.post(APPLY_URL, {"code": "NOPE", "orderAmount": 1000}, format="json")
    assert r.status_code == 404
    assert r.json()["message"] == "Invalid coupon code"


@pytest.mark.django_db
def test_apply_expired_coupon_is_400(staff_client, customer_client):
    start = timezone.now() - timedelta(days=10)
    create(staff_client, startDate=start.isoformat(), endDate=(start + timedelta(days=1)).isoformat())

    r = customer_client.post(APPLY_URL, {"code": "SAVE10", "orderAmount": 1000}, format="json")
    assert r.status_code == 400
    assert r.json()["message"] == "This coupon has expired"


@pytest.mark.django_db
def test_percentage_above_100_is_rejected(staff_client):
    r = create(staff_client, discountValue=150)
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"


@pytest.mark.django_db
def test_duplicate_code_is_rejected(staff_client):
    create(staff_client)
    r = create(staff_client, code="SAVE10")
    assert r.status_code == 400
    assert r.json()["detail"] == "DUPLICATE_COUPON"


@pytest.mark.django_db
def test_coupon_admin_endpoints_are_admin_only(customer_client):
    assert customer_client.get(URL).status_code == 403
    assert create(customer_client).status_code == 403


@pytest.mark.django_db
def test_targeting_snapshot_uses_purchase_history(staff_client, customer, other_customer, customer_client,
                                                  other_client, make_product, order_payload):
    product = make_product(stock=10)
    r = customer_client.post("/api/orders/", order_payload(product, quantity=2), format="json")
    assert r.status_code == 201
    WishlistItemModel.objects.create(user_id=str(other_customer.pk), product_id=product.id)

    r = create(staff_client, code="LOYAL", targeting={"enabled": True, "userType": "existing"})
    assert r.status_code == 201
    assert r.json()["eligibleCount"] == 1
    assert r.json()["data"]["eligibleUsers"] == [str(customer.pk)]

    assert customer_client.post(APPLY_URL, {"code": "LOYAL", "orderAmount": 500}, format="json").status_code == 200
    denied = other_client.post(APPLY_URL, {"code": "LOYAL", "orderAmount": 500}, format="json")
    assert denied.status_code == 400
    assert denied.json()["detail"] == "COUPON_NOT_ELIGIBLE"

    profiles = {p.user_id: p for p in CustomerDirectory().list_customers()}
    assert profiles[str(customer.pk)].order_count == 1
    assert profiles[str(customer.pk)].total_spent == 1040
    assert profiles[str(other_customer.pk)].wishlist_count == 1


@pytest.mark.django_db
def test_cancelled_orders_do_not_count_as_spend(customer, customer_client, make_product, order_payload):
    product = make_product(stock=10)
    oid = customer_client.post("/api/orders/", order_payload(product), format="json").json()["data"]["id"]
    customer_client.put(f"/api/orders/{oid}/cancel/", {"reason": "no"}, format="json")

    profile = {p.user_id: p for p in CustomerDirectory().list_customers()}[str(customer.pk)]
    assert profile.order_count == 0
    assert profile.total_spent == 0


@pytest.mark.django_db
def test_update_get_and_delete(staff_client):
    cid = create(staff_client).json()["data"]["id"]

    r = staff_client.put(f"{URL}{cid}/", {"discountValue": 15, "maxDiscountAmount": None}, format="json")
    assert r.status_code == 200, r.content
    assert r.json()["data"]["discountValue"] == 15.0
    assert r.json()["data"]["maxDiscountAmount"] is None

    assert staff_client.get(f"{URL}{cid}/").json()["data"]["discountValue"] == 15.0
    assert len(staff_client.get(URL).json()["data"]) == 1

    assert staff_client.delete(f"{URL}{cid}/").status_code == 200
    assert staff_client.get(f"{URL}{cid}/").status_code == 404


@pytest.mark.django_db
def test_coupon_stats(staff_client, customer_client):
    create(staff_client)
    create(staff_client, code="OFF", isActive=False)
    start = timezone.now() - timedelta(days=10)
    create(staff_client, code="OLD", startDate=start.isoformat(), endDate=(start + timedelta(days=1)).isoformat())

    r = staff_client.get(f"{URL}stats/")
    assert r.status_code == 200, r.content
    assert r.json()["data"] == {"totalCoupons": 3, "activeCoupons": 2, "expiredCoupons": 1}
    assert customer_client.get(f"{URL}stats/").status_code == 403
