"""HTTP views for products.

Reads are open to any authenticated user; creating products is reserved
for administrators.
"""

from pydantic import ValidationError as SchemaError
from rest_framework import status
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.core.errors import NotFound, Unauthorized
from apps.core.identity import actor_from_request
from apps.core.responses import error_response, schema_error_response, success_response
from .providers import get_catalog
from .schemas import CreateProductDTO, ProductOut


class ProductCollectionView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "catalog"

    def post(self, request):
        if not actor_from_request(request).is_admin:
            return error_response(Unauthorized("Only administrators can create products"))
        try:
            dto = CreateProductDTO.model_validate(request.data)
        except SchemaError as e:
            return schema_error_response(e)
        product = get_catalog().create(dto.to_domain())
        return success_response(ProductOut.from_domain(product).to_json(), message="Product created successfully",
                                status=status.HTTP_201_CREATED)


class ProductDetailView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "catalog"

    def get(self, request, pid):
        product = get_catalog().get(str(pid))
        if product is None:
            return error_response(NotFound("Product not found"))
        return success_response(ProductOut.from_domain(product).to_json())
