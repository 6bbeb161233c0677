from datetime import timedelta

import pytest
from django.utils import timezone

from apps.catalog.repository import ProductRepository
from apps.orders.models import OrderModel
from apps.replacements.models import ReplacementModel

URL = "/api/replacements/"


@pytest.fixture
def delivered(customer_client, staff_client, make_product, order_payload):
    """A delivered two-unit order of a 7-day-replacement product."""
    product = make_product(stock=10)
    oid = customer_client.post("/api/orders/", order_payload(product, quantity=2), format="json").json()["data"]["id"]
    r = staff_client.put(f"/api/orders/{oid}/status/", {"status": "Delivered"}, format="json")
    assert r.status_code == 200
    return oid, product


def file_request(c, oid, product, reason="Damaged Product"):
    return c.post(URL, {"orderId": oid, "productId": product.id, "reason": reason,
                        "description": "Leaking bottle"}, format="json")


@pytest.mark.django_db
def test_request_replacement(customer_client, delivered):
    oid, product = delivered

    r = file_request(customer_client, oid, product)

    assert r.status_code == 201, r.content
    assert r.json()["message"] == "Replacement request submitted successfully"
    data = r.json()["data"]
    assert data["status"] == "Requested"
    assert data["item"]["quantity"] == 2
    assert data["pickup"]["address"]["city"] == "Bengaluru"
    assert data["timeline"][0]["updatedBy"] == "user"

    order = customer_client.get(f"/api/orders/{oid}/").json()["data"]
    assert order["items"][0]["returnStatus"] == "requested"


@pytest.mark.django_db
def test_eligibility_probe(customer_client, delivered):
    oid, product = delivered

    r = customer_client.get(f"{URL}check/{oid}/{product.id}/")
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["eligible"] is True
    assert data["replacementDays"] == 7
    assert data["daysRemaining"] == 7

    file_request(customer_client, oid, product)
    data = customer_client.get(f"{URL}check/{oid}/{product.id}/").json()["data"]
    assert data["eligible"] is False
    assert data["reason"] == "DUPLICATE_REQUEST"


@pytest.mark.django_db
def test_expired_window_is_rejected(customer_client, delivered):
    oid, product = delivered
    OrderModel.objects.filter(pk=oid).update(delivery_date=timezone.now() - timedelta(days=8))

    r = file_request(customer_client, oid, product)
    assert r.status_code == 400
    assert r.json()["detail"] == "WINDOW_EXPIRED"
    assert ReplacementModel.objects.count() == 0


@pytest.mark.django_db
def test_duplicate_request_is_rejected(customer_client, delivered):
    oid, product = delivered
    assert file_request(customer_client, oid, product).status_code == 201

    r = file_request(customer_client, oid, product)
    assert r.status_code == 400
    assert r.json()["detail"] == "DUPLICATE_REQUEST"
    assert ReplacementModel.objects.count() == 1


@pytest.mark.django_db
def test_other_user_cannot_request(other_client, delivered):
    oid, product = delivered
    assert file_request(other_client, oid, product).status_code == 403


@pytest.mark.django_db
def test_unknown_reason_is_400(customer_client, delivered):
    oid, product = delivered
    r = file_request(customer_client, oid, product, reason="Bored")
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"


@pytest.mark.django_db
def test_refund_flow_restores_stock_once_and_updates_invoice(customer_client, staff_client, delivered):
    oid, product = delivered
    rid = file_request(customer_client, oid, product).json()["data"]["id"]
    assert ProductRepository().get(product.id).stock == 8

    assert staff_client.put(f"{URL}{rid}/", {"status": "Approved"}, format="json").status_code == 200
    r = staff_client.put(f"{URL}{rid}/", {"pickup": {"pickedUpAt": timezone.now().isoformat()}}, format="json")
    assert r.json()["data"]["status"] == "Picked Up"

    refund = {"refund": {"amount": 1000, "method": "UPI", "transactionId": "UPI-77",
                         "refundedAt": timezone.now().isoformat()}}
    r = staff_client.put(f"{URL}{rid}/", refund, format="json")
    assert r.status_code == 200, r.content
    data = r.json()["data"]
    assert data["status"] == "Refunded"
    assert data["stockRestored"] is True
    assert data["refund"]["amount"] == 1000.0
    assert [t["status"] for t in data["timeline"]] == ["Requested", "Approved", "Picked Up", "Refunded"]
    assert ProductRepository().get(product.id).stock == 10

    staff_client.put(f"{URL}{rid}/", refund, format="json")
    staff_client.put(f"{URL}{rid}/", {"status": "Refunded"}, format="json")
    assert ProductRepository().get(product.id).stock == 10

    invoice = customer_client.get(f"/api/orders/{oid}/invoice/").json()["data"]
    assert invoice["itemsRefunded"] == 1000.0
    assert invoice["deliveryFeeRefund"] == 40.0
    assert invoice["totalRefunded"] == 1040.0
    assert invoice["netPayable"] == 0
    assert invoice["order"]["deliveryFeeRefunded"] is True
    assert invoice["refunds"][0]["method"] == "UPI"
    assert invoice["refunds"][0]["transactionId"] == "UPI-77"


@pytest.mark.django_db
def test_invalid_transition_is_400(customer_client, staff_client, delivered):
    oid, product = delivered
    rid = file_request(customer_client, oid, product).json()["data"]["id"]

    r = staff_client.put(f"{URL}{rid}/", {"status": "Completed"}, format="json")
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_TRANSITION"


@pytest.mark.django_db
def test_customers_cannot_update(customer_client, delivered):
    oid, product = delivered
    rid = file_request(customer_client, oid, product).json()["data"]["id"]
    assert customer_client.put(f"{URL}{rid}/", {"status": "Approved"}, format="json").status_code == 403


@pytest.mark.django_db
def test_rejected_request_frees_the_item(customer_client, staff_client, delivered):
    oid, product = delivered
    rid = file_request(customer_client, oid, product).json()["data"]["id"]
    staff_client.put(f"{URL}{rid}/", {"status": "Rejected", "adminNotes": "No damage visible"}, format="json")

    assert file_request(customer_client, oid, product).status_code == 201
    assert ReplacementModel.objects.count() == 2


@pytest.mark.django_db
def test_list_detail_and_stats(customer_client, other_client, staff_client, delivered):
    oid, product = delivered
    rid = file_request(customer_client, oid, product).json()["data"]["id"]

    mine = customer_client.get(URL).json()
    assert mine["total"] == 1
    assert mine["data"][0]["id"] == rid
    assert other_client.get(URL).json()["total"] == 0
    assert staff_client.get(URL, {"status": "Requested"}).json()["total"] == 1
    assert staff_client.get(URL, {"status": "Approved"}).json()["total"] == 0

    assert customer_client.get(f"{URL}{rid}/").status_code == 200
    assert other_client.get(f"{URL}{rid}/").status_code == 403

    stats = staff_client.get(f"{URL}stats/").json()["data"]
    assert stats["totalRequests"] == 1
    assert stats["pending"] == 1
    assert stats["totalRefundAmount"] == 0
    assert customer_client.get(f"{URL}stats/").status_code == 403


@pytest.mark.django_db
def test_refund_amount_sent_after_refunded_updates_line_and_stock(customer_client, staff_client, delivered):
    oid, product = delivered
    rid = file_request(customer_client, oid, product).json()["data"]["id"]
    staff_client.put(f"{URL}{rid}/", {"status": "Approved"}, format="json")

    r = staff_client.put(f"{URL}{rid}/", {"refund": {"refundedAt": timezone.now().isoformat()}}, format="json")
    assert r.json()["data"]["status"] == "Refunded"
    assert r.json()["data"]["stockRestored"] is False
    assert ProductRepository().get(product.id).stock == 8

    r = staff_client.put(f"{URL}{rid}/", {"status": "Refunded", "refund": {"amount": 1000}}, format="json")
    assert r.status_code == 200, r.content
    assert r.json()["data"]["stockRestored"] is True
    assert ProductRepository().get(product.id).stock == 10

    invoice = customer_client.get(f"/api/orders/{oid}/invoice/").json()["data"]
    assert invoice["itemsRefunded"] == 1000.0
    assert invoice["totalRefunded"] == 1040.0
    assert invoice["netPayable"] == 0
