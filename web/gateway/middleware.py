"""Request correlation and payload-size middleware for the shop API.

``RequestIdMiddleware`` gives every request an identifier. Behavior:
- If the request carries an ``X-Request-ID`` header, its value is reused.
- Otherwise a new UUID4 string is generated.
- The id is attached to ``request.request_id`` and published in the
  ``REQUEST_ID_CTX`` ContextVar, where the logging filter and the outbound
  notification client pick it up.
- The response echoes the id in its ``X-Request-ID`` header.

``ApiSizeLimitMiddleware`` rejects ``/api/`` requests whose declared body
is larger than ``API_MAX_BYTES`` with a 413 in the API error envelope.
"""

import contextvars
import os
import uuid

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024)))


class RequestIdMiddleware(MiddlewareMixin):
    """Assign, publish and echo a per-request identifier.

    Attributes:
        HEADER (str): Incoming header holding a client-supplied id, in
            ``request.META`` casing.
        RESPONSE_HEADER (str): Header the id is returned in.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        """Reuse the client's id or generate one, then publish it.

        Args:
            request: Django HttpRequest instance.
        """
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        """Copy the request id onto the response.

        Falls back to the ContextVar when ``process_request`` did not run for
        this request, for example because a middleware listed earlier
        answered it.

        Args:
            request: Django HttpRequest.
            response: Django HttpResponse to modify.

        Returns:
            The same response with the ``X-Request-ID`` header set.
        """
        rid = getattr(request, "request_id", None) or REQUEST_ID_CTX.get()
        response[self.RESPONSE_HEADER] = rid
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        """Answer 413 for oversized ``/api/`` bodies; None lets the request through.

        Only the declared ``Content-Length`` is checked.

        Args:
            request: Django HttpRequest instance.

        Returns:
            A 413 ``JsonResponse`` or None.
        """
        if not request.path.startswith("/api/"):
            return None
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
            return JsonResponse(
                {"success": False, "message": "Request body too large", "detail": "PAYLOAD_TOO_LARGE"},
                status=413,
            )
        return None
