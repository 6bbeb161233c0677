import logging
import uuid

import pytest

from gateway import middleware
from gateway.logging_filters import RequestIdFilter
from gateway.middleware import REQUEST_ID_CTX


def record(**extra):
    rec = logging.LogRecord("orders", logging.INFO, __file__, 1, "order placed", None, None)
    for name, value in extra.items():
        setattr(rec, name, value)
    return rec


def test_filter_uses_current_request_id():
    token = REQUEST_ID_CTX.set("rid-7")
    try:
        rec = record()
        assert RequestIdFilter().filter(rec) is True
    finally:
        REQUEST_ID_CTX.reset(token)
    assert rec.request_id == "rid-7"


def test_filter_outside_request_and_explicit_id():
    rec = record()
    RequestIdFilter().filter(rec)
    assert rec.request_id == "-"

    token = REQUEST_ID_CTX.set("rid-new")
    try:
        rec = record(request_id="rid-worker")
        RequestIdFilter().filter(rec)
    finally:
        REQUEST_ID_CTX.reset(token)
    assert rec.request_id == "rid-worker"


@pytest.mark.django_db
def test_request_id_is_generated_when_absent(client):
    r = client.get("/api/orders/ping/")
    assert uuid.UUID(r.headers["X-Request-ID"]).version == 4


def test_oversized_api_body_is_413(client, monkeypatch):
    monkeypatch.setattr(middleware, "MAX_API_BYTES", 10)
    r = client.post("/api/orders/", data="x" * 11, content_type="application/json", HTTP_X_REQUEST_ID="rid-big")

    assert r.status_code == 413
    assert r.json() == {"success": False, "message": "Request body too large", "detail": "PAYLOAD_TOO_LARGE"}
    assert r.headers["X-Request-ID"] == "rid-big"
