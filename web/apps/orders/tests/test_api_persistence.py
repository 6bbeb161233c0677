"""Integration tests that assert created orders are persisted.

These tests go through the HTTP API and then read the ``orders`` and
``order_items`` tables with raw SQL, so they check what is actually
stored rather than what the ORM hands back.
"""

from decimal import Decimal
from uuid import UUID

import pytest
from django.db import connection

CREATE_URL = "/api/orders/"


@pytest.mark.django_db
def test_create_persists_order_and_item_snapshot(customer_client, customer, make_product, order_payload):
    product = make_product(stock=5)
    r = customer_client.post(CREATE_URL, order_payload(product, quantity=2, size=None), format="json")
    assert r.status_code == 201
    oid = UUID(r.json()["data"]["id"])

    with connection.cursor() as cur:
        cur.execute("SELECT id, user_id, status, grand_total, payment_method, internal_id FROM orders")
        rows = cur.fetchall()
        cur.execute("SELECT name, price, quantity, subtotal, return_status FROM order_items")
        items = cur.fetchall()

    assert len(rows) == 1
    stored_id, user_id, status, grand_total, payment_method, internal_id = rows[0]
    assert UUID(str(stored_id)) == oid
    assert user_id == str(customer.pk)
    assert status == "Pending"
    assert Decimal(str(grand_total)) == Decimal("1040")
    assert payment_method == "COD"
    assert internal_id == 1
    assert len(items) == 1
    name, price, quantity, subtotal, return_status = items[0]
    assert (name, quantity, return_status) == ("Rose Attar", 2, "none")
    assert Decimal(str(price)) == Decimal("500")
    assert Decimal(str(subtotal)) == Decimal("1000")


@pytest.mark.django_db
def test_order_numbers_are_sequential(customer_client, make_product, order_payload):
    product = make_product(stock=5)
    numbers = [
        customer_client.post(CREATE_URL, order_payload(product), format="json").json()["data"]["orderNumber"]
        for _ in range(3)
    ]
    assert numbers == [numbers[0], numbers[0] + 1, numbers[0] + 2]


@pytest.mark.django_db
def test_rejected_order_leaves_no_rows(customer_client, make_product, order_payload):
    product = make_product(stock=1)
    r = customer_client.post(CREATE_URL, order_payload(product, quantity=2), format="json")
    assert r.status_code == 400

    with connection.cursor() as cur:
        cur.execute("SELECT COUNT(*) FROM orders")
        assert cur.fetchone()[0] == 0
        cur.execute("SELECT COUNT(*) FROM order_items")
        assert cur.fetchone()[0] == 0
