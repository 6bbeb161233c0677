"""HTTP client for the notification service, with retries and a breaker.

``HttpNotificationClient`` implements ``NotifierPort`` on top of ``httpx``:

- Request correlation: the ``X-Request-ID`` of the request that triggered
  the notification (read from the gateway ContextVar) is forwarded.
- Circuit breaker: after ``HTTP_CIRCUIT_FAIL_THRESHOLD`` consecutive
  failures the client stops calling the service for
  ``HTTP_CIRCUIT_RESET_TIMEOUT`` seconds, then lets one probe through.
- Retries: transport errors and 5xx responses are retried with exponential
  backoff (``HTTP_RETRY_MAX``, ``HTTP_RETRY_BACKOFF_BASE``, capped by
  ``HTTP_RETRY_MAX_SLEEP``). 4xx responses are not retried.

Every failure is raised to the caller; the dispatcher is the layer that
decides notifications are best-effort.
"""

import os
import sys
import threading
import time
from typing import Optional

import httpx
from django.conf import settings

from gateway.middleware import REQUEST_ID_CTX
from .domain import Notification, NotifierPort


def _is_test_mode() -> bool:
    return "pytest" in sys.modules or os.environ.get("PYTEST_CURRENT_TEST") is not None


class CircuitOpenError(RuntimeError):
    """Raised instead of calling a dependency whose breaker is open."""


class CircuitBreaker:
    """Thread-safe CLOSED/OPEN/HALF_OPEN breaker for one downstream service.

    CLOSED counts consecutive failures and opens at ``fail_threshold``.
    OPEN rejects calls until ``reset_timeout`` seconds have passed, then
    becomes HALF_OPEN, which admits a single probe: success closes the
    breaker, failure opens it again.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"
        self._opened_at = 0.0
        self._probing = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and time.monotonic() - self._opened_at >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._probing = False
            return self._state

    def acquire(self) -> str:
        """Admit a call or raise ``CircuitOpenError``; returns the state at admission."""
        with self._lock:
            current = self.state
            if current == "OPEN":
                raise CircuitOpenError(f"{self.name}: CIRCUIT_OPEN")
            if current == "HALF_OPEN":
                if self._probing:
                    raise CircuitOpenError(f"{self.name}: CIRCUIT_HALF_OPEN_BUSY")
                self._probing = True
            return current

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._probing = False

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
            self._probing = False

    def release(self) -> None:
        with self._lock:
            if self._state == "HALF_OPEN":
                self._probing = False

    def reset(self) -> None:
        self.record_success()


notifications_breaker = CircuitBreaker(
    "notifications",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


def _correlation_headers(extra: Optional[dict] = None) -> dict:
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retryable(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    return exc is not None or (resp is not None and 500 <= resp.status_code < 600)


class HttpNotificationClient(NotifierPort):
    """``NotifierPort`` that POSTs to ``{NOTIFICATIONS_BASE_URL}/notifications``."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None,
                 breaker: CircuitBreaker | None = None):
        self.base_url = (base_url or settings.NOTIFICATIONS_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS
        self.breaker = breaker or notifications_breaker

    def send(self, notification: Notification) -> None:
        """Deliver one notification.

        Raises:
            CircuitOpenError: If the breaker refuses the call.
            httpx.RequestError: On transport errors once retries are spent.
            httpx.HTTPStatusError: On 4xx, or on 5xx once retries are spent.
        """
        payload = {
            "recipient": notification.recipient,
            "template": notification.template,
            "data": notification.data,
        }
        max_retries = getattr(settings, "HTTP_RETRY_MAX", 3)
        backoff = getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15)
        max_sleep = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)

        state = self.breaker.acquire()
        headers = _correlation_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})
        attempt = 0
        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp, exc = None, None
                    try:
                        resp = client.post(f"{self.base_url}/notifications", json=payload, headers=headers)
                        if resp.status_code < 400:
                            self.breaker.record_success()
                            return
                        if not _retryable(resp, None):
                            # Client error: our request is wrong, the service is fine.
                            self.breaker.record_success()
                            resp.raise_for_status()
                    except httpx.RequestError as e:
                        exc = e

                    attempt += 1
                    headers["X-Retry-Count"] = str(attempt)
                    if attempt > max_retries:
                        self.breaker.record_failure()
                        if exc is not None:
                            raise exc
                        resp.raise_for_status()

                    if not _is_test_mode():
                        time.sleep(min(backoff * (2 ** (attempt - 1)), max_sleep))
        finally:
            self.breaker.release()

    def health(self) -> bool:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                return client.get(f"{self.base_url}/health").status_code == 200
        except httpx.HTTPError:
            return False
