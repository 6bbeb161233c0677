"""Idempotency utilities for safely handling duplicate order requests.

This module stores and retrieves idempotency keys to de-duplicate client
retries of ``POST /api/orders/``. The request hash covers the payload and
the authenticated user, so a key replayed by another user never returns
someone else's order.
"""

import hashlib
import json

from django.db import IntegrityError, transaction

from apps.core.errors import DomainError
from .models import IdempotencyKey


class IdempotencyError(DomainError):
    status_code = 409


def _hash(payload: dict, user_id: str) -> str:
    """Stable SHA-256 of the user id and the payload with sorted keys."""
    body = json.dumps({"user": user_id, "payload": payload}, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def get_or_create_idempotent(key: str, payload: dict, user_id: str):
    """Get-or-create an idempotency record for the key.

    Returns:
        tuple[bool, IdempotencyKey]: ``(existing, rec)``; ``existing`` is
        False when the record was created by this call and the caller must
        ``finalize`` or ``release`` it.

    Raises:
        IdempotencyError: ``IDEMPOTENCY_CONFLICT`` when the key was used
            with a different payload or user, ``IDEMPOTENCY_IN_PROGRESS``
            when the first request has not finished yet.
    """
    h = _hash(payload, user_id)

    try:
        # Nested savepoint: if IntegrityError occurs, only this block is rolled back.
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(
                key=key, request_hash=h, response_status=0, response_body={}
            )
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise IdempotencyError("Idempotency key was already used with a different request",
                                   code="IDEMPOTENCY_CONFLICT")
        if rec.response_status == 0:
            raise IdempotencyError("A request with this idempotency key is still being processed",
                                   code="IDEMPOTENCY_IN_PROGRESS")
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None):
    """Store the final response so retries can replay it without side effects."""
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order_id"])


def release(rec: IdempotencyKey):
    """Forget a key whose request failed unexpectedly so the client may retry."""
    IdempotencyKey.objects.filter(pk=rec.pk, response_status=0).delete()
