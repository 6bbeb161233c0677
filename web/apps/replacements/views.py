"""HTTP views for replacement and refund requests."""

from pydantic import ValidationError as SchemaError
from rest_framework import status
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.core.errors import DomainError
from apps.core.identity import actor_from_request
from apps.core.responses import error_response, schema_error_response, success_response
from .providers import get_replacement_service
from .schemas import (
    EligibilityOut,
    ListReplacementsQuery,
    ReplacementOut,
    RequestReplacementDTO,
    StatsOut,
    UpdateReplacementDTO,
)


class ReplacementCollectionView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "replacements"

    def get(self, request):
        try:
            query = ListReplacementsQuery.model_validate(request.query_params.dict())
        except SchemaError as e:
            return schema_error_response(e)
        items = get_replacement_service().list_replacements(actor_from_request(request), status=query.status)
        return success_response([ReplacementOut.from_domain(r).to_json() for r in items], total=len(items))

    def post(self, request):
        try:
            dto = RequestReplacementDTO.model_validate(request.data)
        except SchemaError as e:
            return schema_error_response(e)
        try:
            created = get_replacement_service().request(
                dto.order_id,
                dto.product_id,
                dto.reason,
                actor_from_request(request),
                description=dto.description,
                images=dto.images,
            )
        except DomainError as e:
            return error_response(e)
        return success_response(
            ReplacementOut.from_domain(created).to_json(),
            message="Replacement request submitted successfully",
            status=status.HTTP_201_CREATED,
        )


class ReplacementDetailView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "replacements"

    def get(self, request, rid):
        try:
            replacement = get_replacement_service().get_replacement(str(rid), actor_from_request(request))
        except DomainError as e:
            return error_response(e)
        return success_response(ReplacementOut.from_domain(replacement).to_json())

    def put(self, request, rid):
        try:
            dto = UpdateReplacementDTO.model_validate(request.data)
        except SchemaError as e:
            return schema_error_response(e)
        try:
            replacement = get_replacement_service().update(str(rid), dto.to_domain(), actor_from_request(request))
        except DomainError as e:
            return error_response(e)
        return success_response(ReplacementOut.from_domain(replacement).to_json(),
                                message="Replacement updated successfully")


class EligibilityView(APIView):
    """Side-effect free probe: may the caller request a replacement for this item?"""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "replacements"

    def get(self, request, order_id, product_id):
        try:
            result = get_replacement_service().check_eligibility(
                str(order_id), str(product_id), actor_from_request(request)
            )
        except DomainError as e:
            return error_response(e)
        return success_response(EligibilityOut.from_domain(result).to_json())


class ReplacementStatsView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "replacements"

    def get(self, request):
        try:
            stats = get_replacement_service().stats(actor_from_request(request))
        except DomainError as e:
            return error_response(e)
        return success_response(StatsOut.from_domain(stats).to_json())
