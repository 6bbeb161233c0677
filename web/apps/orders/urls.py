from django.urls import path
from .views import OrdersPingView, OrdersCollectionView, RetrieveOrderView
from .views import CancelOrderView, OrderInvoiceView, OrderStatusView
app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST create
    path("<uuid:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("<uuid:oid>/status/", OrderStatusView.as_view(), name="orders-status"),
    path("<uuid:oid>/cancel/", CancelOrderView.as_view(), name="orders-cancel"),
    path("<uuid:oid>/invoice/", OrderInvoiceView.as_view(), name="orders-invoice"),
]
