"""Fire-and-forget notification dispatch.

Domain services call ``NotificationDispatcher.dispatch`` after their own
writes succeed. Delivery happens on an executor so the HTTP request never
waits on it, and a delivery failure is logged but never propagated back to
the operation that triggered it.

Bulk dispatch (coupon announcements) is chunked: each batch is delivered
concurrently, then the worker pauses before the next batch to bound the
outbound load on the notification service.
"""

import logging
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from typing import Iterable, Sequence

from .domain import Notification, NotifierPort

logger = logging.getLogger("notifications")


class NotificationDispatcher:
    """Hand notifications to a ``NotifierPort`` without blocking the caller.

    Args:
        notifier: Port that performs the actual delivery.
        executor: Executor running deliveries (a thread pool in production,
            an inline executor in tests).
        batch_size: Recipients per batch for ``dispatch_bulk``.
        batch_pause: Seconds to wait between two bulk batches.
    """

    def __init__(self, notifier: NotifierPort, executor: Executor, batch_size: int = 10, batch_pause: float = 0.5):
        self.notifier = notifier
        self.executor = executor
        self.batch_size = max(1, batch_size)
        self.batch_pause = batch_pause

    def dispatch(self, recipient: str, template: str, data: dict | None = None) -> Future:
        """Queue a single notification and return immediately."""
        note = Notification(recipient=str(recipient), template=template, data=dict(data or {}))
        return self.executor.submit(self._deliver, note)

    def dispatch_bulk(self, recipients: Iterable[str], template: str, data: dict | None = None) -> Future:
        """Queue the same notification for many recipients.

        Returns a future resolving to ``{"sent": n, "failed": m}``.
        """
        notes = [Notification(recipient=str(r), template=template, data=dict(data or {})) for r in recipients]
        return self.executor.submit(self._deliver_batches, notes)

    def _deliver(self, note: Notification) -> bool:
        try:
            self.notifier.send(note)
        except Exception:
            logger.exception(
                "notification dispatch failed",
                extra={"recipient": note.recipient, "template": note.template},
            )
            return False
        logger.info("notification sent", extra={"recipient": note.recipient, "template": note.template})
        return True

    def _deliver_batches(self, notes: Sequence[Notification]) -> dict:
        results = {"sent": 0, "failed": 0}
        for start in range(0, len(notes), self.batch_size):
            batch = notes[start:start + self.batch_size]
            for ok in self._deliver_concurrently(batch):
                results["sent" if ok else "failed"] += 1
            if start + self.batch_size < len(notes):
                time.sleep(self.batch_pause)
        logger.info("bulk notification finished", extra=results)
        return results

    def _deliver_concurrently(self, batch: Sequence[Notification]) -> list[bool]:
        # Private pool: the shared executor may be the one running this batch.
        with ThreadPoolExecutor(max_workers=len(batch)) as pool:
            futures = [pool.submit(self._deliver, note) for note in batch]
            wait(futures)
        return [f.result() for f in futures]
