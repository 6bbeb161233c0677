"""In-process stand-ins for the notification collaborator.

``LoggingNotifier`` implements ``NotifierPort`` without any network call;
it only logs the notification, which is what local development and the
test-suite want. ``InlineExecutor`` runs submitted work synchronously so
tests can assert on delivery without sleeping.
"""

import logging
from concurrent.futures import Executor, Future

from .domain import Notification, NotifierPort

logger = logging.getLogger("notifications")


class LoggingNotifier(NotifierPort):
    """Stub ``NotifierPort`` that records the notification in the log."""

    def send(self, notification: Notification) -> None:
        logger.info(
            "notification (stub)",
            extra={
                "recipient": notification.recipient,
                "template": notification.template,
                "title": notification.data.get("title"),
            },
        )


class InlineExecutor(Executor):
    """Executor that runs each submitted callable immediately."""

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as exc:
            future.set_exception(exc)
        return future
