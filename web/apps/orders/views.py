"""HTTP views for the orders app.

Views are kept small: they validate requests (via Pydantic), build domain
objects, delegate to ``OrderService`` from ``get_order_service()`` and
render the ``{success, data, message}`` envelope. Domain errors are
rendered with their code as ``detail``.

Idempotency: when an ``Idempotency-Key`` header is provided, the create
endpoint processes the first request and stores its response. Retries
with the same payload (from the same user) replay the stored response with
``Idempotent-Replay: true``; reusing the key with a different payload, or
while the first request is still running, returns HTTP 409.
"""

import logging

from pydantic import ValidationError as SchemaError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.core.errors import DomainError
from apps.core.identity import actor_from_request
from apps.core.responses import error_body, error_response, schema_error_response, success_response
from .idempotency import finalize, get_or_create_idempotent, release
from .providers import get_invoice_service, get_order_service
from .schemas import (
    CancelOrderDTO,
    CreateOrderDTO,
    InvoiceDTO,
    ListOrdersQuery,
    OrderReadDTO,
    UpdateStatusDTO,
)

logger = logging.getLogger("orders")


class OrdersPingView(APIView):
    """Liveness endpoint for the orders module."""

    authentication_classes = []
    permission_classes = []

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(APIView):
    """List the caller's orders (``GET``) or place a new one (``POST``)."""

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        try:
            query = ListOrdersQuery.model_validate(request.query_params.dict())
        except SchemaError as e:
            return schema_error_response(e)
        try:
            page = get_order_service().list_orders(
                actor_from_request(request),
                scope_all=query.scope == "all",
                page=query.page,
                page_size=query.page_size,
            )
        except DomainError as e:
            return error_response(e)
        return success_response(
            [OrderReadDTO.from_domain(o).to_json() for o in page.results],
            count=page.count,
            page=page.page,
            pageSize=page.page_size,
        )

    def post(self, request):
        """Create a new order.

        Returns:
            Response: One of the following responses.
            - 201 with the created order.
            - the stored status and body when the same idempotency key and
              payload are retried.
            - 409 with ``IDEMPOTENCY_CONFLICT`` or ``IDEMPOTENCY_IN_PROGRESS``.
            - 400 for schema errors, ``EMPTY_ORDER``, ``TOTALS_MISMATCH``,
              ``INSUFFICIENT_STOCK`` and coupon usage errors.
            - 404 when a product or the coupon code does not exist.
        """
        actor = actor_from_request(request)
        idem_key = request.headers.get("Idempotency-Key")

        # 1) Pydantic validation
        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except SchemaError as e:
            return schema_error_response(e)

        # 2) Idempotency get-or-create
        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(idem_key, request.data, actor.user_id)
            except DomainError as e:
                return error_response(e)
            if existing:
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        # 3) Domain
        try:
            order = get_order_service().place_order(dto.to_domain(actor.user_id), actor)
        except DomainError as e:
            body = error_body(e)
            if rec:
                finalize(rec, e.status_code, body)
            return Response(body, status=e.status_code)
        except Exception:
            if rec:
                release(rec)
            raise

        # 4) Response
        body = {
            "success": True,
            "data": OrderReadDTO.from_domain(order).to_json(),
            "message": "Order placed successfully",
        }
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=order.id)
        return Response(body, status=status.HTTP_201_CREATED)


class RetrieveOrderView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        try:
            order = get_order_service().get_order(str(oid), actor_from_request(request))
        except DomainError as e:
            return error_response(e)
        return success_response(OrderReadDTO.from_domain(order).to_json())


class OrderStatusView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_update"

    def put(self, request, oid):
        try:
            dto = UpdateStatusDTO.model_validate(request.data)
        except SchemaError as e:
            return schema_error_response(e)
        try:
            order = get_order_service().update_status(
                str(oid),
                actor_from_request(request),
                status=dto.status,
                delivery_agent=dto.agent(),
                estimated_delivery_date=dto.estimated_delivery_date,
            )
        except DomainError as e:
            return error_response(e)
        return success_response(OrderReadDTO.from_domain(order).to_json(), message="Order status updated")


class CancelOrderView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_update"

    def put(self, request, oid):
        try:
            dto = CancelOrderDTO.model_validate(request.data)
        except SchemaError as e:
            return schema_error_response(e)
        try:
            order = get_order_service().cancel_order(str(oid), dto.reason, actor_from_request(request))
        except DomainError as e:
            return error_response(e)
        return success_response(OrderReadDTO.from_domain(order).to_json(), message="Order cancelled successfully")


class OrderInvoiceView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        try:
            invoice = get_invoice_service().get_invoice(str(oid), actor_from_request(request))
        except DomainError as e:
            return error_response(e)
        return success_response(InvoiceDTO.from_domain(invoice).to_json())
