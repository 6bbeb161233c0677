"""Wiring for the notification dispatcher.

``get_dispatcher`` returns a ``NotificationDispatcher`` whose notifier is
the HTTP client when ``settings.USE_HTTP_ADAPTERS`` is truthy and the
logging stub otherwise. Deliveries run on a process-wide thread pool,
or inline when ``settings.NOTIFICATIONS_INLINE`` is set (tests).
"""

import threading
from concurrent.futures import ThreadPoolExecutor

from django.conf import settings

from .adapters import InlineExecutor, LoggingNotifier
from .dispatcher import NotificationDispatcher
from .http_adapters import HttpNotificationClient

_pool: ThreadPoolExecutor | None = None
_pool_lock = threading.Lock()


def _shared_pool() -> ThreadPoolExecutor:
    global _pool
    with _pool_lock:
        if _pool is None:
            _pool = ThreadPoolExecutor(
                max_workers=getattr(settings, "NOTIFICATION_WORKERS", 4),
                thread_name_prefix="notify",
            )
        return _pool


def get_notifier():
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return HttpNotificationClient()
    return LoggingNotifier()


def get_dispatcher() -> NotificationDispatcher:
    executor = InlineExecutor() if getattr(settings, "NOTIFICATIONS_INLINE", False) else _shared_pool()
    return NotificationDispatcher(
        notifier=get_notifier(),
        executor=executor,
        batch_size=getattr(settings, "NOTIFICATION_BATCH_SIZE", 10),
        batch_pause=getattr(settings, "NOTIFICATION_BATCH_PAUSE_SECS", 0.5),
    )
