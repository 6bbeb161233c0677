"""Helpers that render the API's success and error envelopes."""

from pydantic import ValidationError as SchemaError
from rest_framework.response import Response

from .errors import DomainError


def error_body(exc: DomainError) -> dict:
    return {"success": False, "message": exc.message, "detail": exc.code}


def error_response(exc: DomainError) -> Response:
    """Render a ``DomainError`` as ``{success: false, message, detail}``."""
    return Response(error_body(exc), status=exc.status_code)


def schema_error_response(exc: SchemaError) -> Response:
    """Render a pydantic validation failure as a 400 ``VALIDATION_ERROR``.

    Only the first error is surfaced in ``message``; the full list is
    returned under ``errors`` for clients that want field-level detail.
    """
    errors = exc.errors(include_url=False, include_context=False)
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()))
    message = first.get("msg", "Invalid request")
    if field:
        message = f"{field}: {message}"
    body = {
        "success": False,
        "message": message,
        "detail": "VALIDATION_ERROR",
        "errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors],
    }
    return Response(body, status=400)


def success_response(data, message: str | None = None, status: int = 200, **extra) -> Response:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    body.update(extra)
    return Response(body, status=status)
