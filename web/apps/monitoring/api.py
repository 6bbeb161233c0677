import logging

from django.conf import settings
from django.db import connection
from django.http import JsonResponse

from apps.notifications.http_adapters import HttpNotificationClient, notifications_breaker

logger = logging.getLogger("monitoring")


def _db_ok() -> bool:
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        return True
    except Exception:
        logger.exception("database health check failed")
        return False


def _notifications_component() -> dict:
    if not getattr(settings, "USE_HTTP_ADAPTERS", True):
        return {"ok": True, "mode": "stub"}
    try:
        ok = HttpNotificationClient().health()
    except Exception:
        ok = False
    return {"ok": ok, "mode": "http", "circuit": notifications_breaker.state}


def health_view(_request):
    """Database and notification service status; 503 only when the database is down.

    The notification service is a non-blocking collaborator, so its outage
    is reported but does not fail the probe.
    """
    db_ok = _db_ok()
    notifications = _notifications_component()
    code = 200 if db_ok else 503
    return JsonResponse(
        {"ok": db_ok, "components": {"db": {"ok": db_ok}, "notifications": notifications}},
        status=code,
    )
