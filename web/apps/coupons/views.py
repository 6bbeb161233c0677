"""HTTP views for coupons.

Views validate the body with pydantic, delegate to ``CouponService`` from
``get_coupon_service()`` and render the success or error envelope.
"""

from pydantic import ValidationError as SchemaError
from rest_framework import status
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.core.errors import DomainError
from apps.core.identity import actor_from_request
from apps.core.responses import error_response, schema_error_response, success_response
from .providers import get_coupon_service
from .schemas import AppliedCouponOut, ApplyCouponIn, CouponOut, CouponStatsOut, CreateCouponIn, UpdateCouponIn


class ApplyCouponView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "coupons_apply"

    def post(self, request):
        try:
            dto = ApplyCouponIn.model_validate(request.data)
        except SchemaError as e:
            return schema_error_response(e)
        try:
            applied = get_coupon_service().apply(dto.code, dto.order_amount, actor_from_request(request))
        except DomainError as e:
            return error_response(e)
        return success_response(AppliedCouponOut.from_domain(applied).to_json(), message="Coupon applied successfully")


class CouponCollectionView(APIView):
    """Admin listing and creation of coupons."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "coupons_admin"

    def get(self, request):
        try:
            coupons = get_coupon_service().list_coupons(actor_from_request(request))
        except DomainError as e:
            return error_response(e)
        return success_response([CouponOut.from_domain(c).to_json() for c in coupons])

    def post(self, request):
        try:
            dto = CreateCouponIn.model_validate(request.data)
        except SchemaError as e:
            return schema_error_response(e)
        service = get_coupon_service()
        try:
            created = service.create_coupon(dto.to_domain(service.clock()), actor_from_request(request),
                                            send_email=dto.send_email)
        except DomainError as e:
            return error_response(e)
        return success_response(
            CouponOut.from_domain(created).to_json(),
            message="Coupon created successfully",
            status=status.HTTP_201_CREATED,
            eligibleCount=len(created.eligible_users),
        )


class CouponDetailView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "coupons_admin"

    def get(self, request, coupon_id):
        try:
            coupon = get_coupon_service().get_coupon(str(coupon_id), actor_from_request(request))
        except DomainError as e:
            return error_response(e)
        return success_response(CouponOut.from_domain(coupon).to_json())

    def put(self, request, coupon_id):
        try:
            dto = UpdateCouponIn.model_validate(request.data)
        except SchemaError as e:
            return schema_error_response(e)
        try:
            coupon = get_coupon_service().update_coupon(str(coupon_id), dto.changes(), actor_from_request(request))
        except DomainError as e:
            return error_response(e)
        return success_response(CouponOut.from_domain(coupon).to_json(), message="Coupon updated successfully")

    def delete(self, request, coupon_id):
        try:
            get_coupon_service().delete_coupon(str(coupon_id), actor_from_request(request))
        except DomainError as e:
            return error_response(e)
        return success_response(None, message="Coupon deleted successfully")


class CouponStatsView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "coupons_admin"

    def get(self, request):
        try:
            stats = get_coupon_service().stats(actor_from_request(request))
        except DomainError as e:
            return error_response(e)
        return success_response(CouponStatsOut.from_domain(stats).to_json())
