from django.urls import path
from .views import EligibilityView, ReplacementCollectionView, ReplacementDetailView, ReplacementStatsView

app_name = "replacements"

urlpatterns = [
    path("", ReplacementCollectionView.as_view(), name="replacements-collection"),
    path("stats/", ReplacementStatsView.as_view(), name="replacements-stats"),
    path("check/<uuid:order_id>/<str:product_id>/", EligibilityView.as_view(), name="replacements-check"),
    path("<uuid:rid>/", ReplacementDetailView.as_view(), name="replacements-detail"),
]
