from django.urls import include, path

urlpatterns = [
    path("", include("apps.monitoring.urls")),
    path("api/orders/", include("apps.orders.urls")),
    path("api/coupons/", include("apps.coupons.urls")),
    path("api/replacements/", include("apps.replacements.urls")),
    path("api/products/", include("apps.catalog.urls")),
]
