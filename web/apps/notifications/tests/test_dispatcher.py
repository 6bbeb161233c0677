"""Unit tests for the fire-and-forget notification dispatcher."""

import logging

import pytest

from apps.notifications.adapters import InlineExecutor, LoggingNotifier
from apps.notifications.dispatcher import NotificationDispatcher
from apps.notifications.http_adapters import HttpNotificationClient
from apps.notifications.providers import get_dispatcher, get_notifier


class Recorder:
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, notification):
        if notification.recipient in self.fail_for:
            raise RuntimeError("notification service down")
        self.sent.append(notification)


def test_dispatch_delivers_notification():
    notifier = Recorder()
    dispatcher = NotificationDispatcher(notifier, InlineExecutor())

    assert dispatcher.dispatch(42, "order_cancelled", {"orderNumber": 7}).result() is True
    assert notifier.sent[0].recipient == "42"
    assert notifier.sent[0].data == {"orderNumber": 7}


def test_delivery_failure_is_logged_not_raised(caplog):
    dispatcher = NotificationDispatcher(Recorder(fail_for={"u1"}), InlineExecutor())

    with caplog.at_level(logging.ERROR, logger="notifications"):
        future = dispatcher.dispatch("u1", "order_cancelled")

    assert future.result() is False
    assert "notification dispatch failed" in caplog.text


def test_bulk_dispatch_batches_and_counts(monkeypatch):
    sleeps = []
    monkeypatch.setattr("apps.notifications.dispatcher.time.sleep", lambda s: sleeps.append(s))
    notifier = Recorder(fail_for={"u3"})
    dispatcher = NotificationDispatcher(notifier, InlineExecutor(), batch_size=10, batch_pause=0.5)

    result = dispatcher.dispatch_bulk([f"u{i}" for i in range(25)], "coupon_available", {"code": "SAVE10"})

    assert result.result() == {"sent": 24, "failed": 1}
    assert len(notifier.sent) == 24
    # three batches, pauses only between them
    assert sleeps == [0.5, 0.5]


def test_bulk_dispatch_of_nobody():
    dispatcher = NotificationDispatcher(Recorder(), InlineExecutor())
    assert dispatcher.dispatch_bulk([], "coupon_available").result() == {"sent": 0, "failed": 0}


def test_providers_follow_settings(settings):
    settings.USE_HTTP_ADAPTERS = False
    assert isinstance(get_notifier(), LoggingNotifier)
    assert isinstance(get_dispatcher().executor, InlineExecutor)

    settings.USE_HTTP_ADAPTERS = True
    assert isinstance(get_notifier(), HttpNotificationClient)


@pytest.mark.django_db
def test_order_flow_survives_notification_outage(customer_client, staff_client, make_product, order_payload,
                                                 monkeypatch):
    def down(self, notification):
        raise RuntimeError("down")

    monkeypatch.setattr(LoggingNotifier, "send", down)
    oid = customer_client.post("/api/orders/", order_payload(make_product()), format="json").json()["data"]["id"]

    r = customer_client.put(f"/api/orders/{oid}/cancel/", {"reason": "changed mind"}, format="json")
    assert r.status_code == 200
    assert r.json()["data"]["orderStatus"] == "Cancelled"
