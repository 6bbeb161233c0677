from django.urls import path
from .views import ApplyCouponView, CouponCollectionView, CouponDetailView, CouponStatsView

app_name = "coupons"

urlpatterns = [
    path("apply/", ApplyCouponView.as_view(), name="apply"),
    path("stats/", CouponStatsView.as_view(), name="coupons-stats"),
    path("", CouponCollectionView.as_view(), name="coupons-collection"),
    path("<uuid:coupon_id>/", CouponDetailView.as_view(), name="coupons-detail"),
]
