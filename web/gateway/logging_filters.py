"""Logging filter that stamps records with the current request id.

The id comes from the ``REQUEST_ID_CTX`` ContextVar that
``RequestIdMiddleware`` sets for every request, so log lines emitted by the
domain services, repositories and the notification dispatcher can be
correlated with the HTTP request that caused them without passing the id
around explicitly.
"""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to every log record.

    Install it on handlers whose formatter references ``%(request_id)s``,
    including the JSON formatter configured in ``config.settings``. Outside
    a request the ContextVar default "-" is used, so the formatter never
    fails on a missing attribute.
    """

    def filter(self, record: LogRecord) -> bool:
        """Populate ``record.request_id`` unless the caller already set one.

        A ``request_id`` passed through ``extra=`` (for example by worker
        threads that log on behalf of a finished request) is kept.

        Args:
            record: The log record to enrich.

        Returns:
            bool: Always True; the filter only enriches records.
        """
        if not hasattr(record, "request_id"):
            record.request_id = REQUEST_ID_CTX.get()
        return True
