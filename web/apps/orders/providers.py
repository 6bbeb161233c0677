"""Service provider helpers for wiring OrderService with ports.

``get_order_service`` returns an ``OrderService`` over the Django ORM
repositories, running its writes in ``transaction.atomic``. The
notification side is chosen by ``apps.notifications.providers``: the HTTP
client when ``settings.USE_HTTP_ADAPTERS`` is truthy, the logging stub
otherwise.
"""

from django.db import transaction

from apps.catalog.repository import ProductRepository
from apps.coupons.repository import CouponRepository
from apps.notifications.providers import get_dispatcher
from apps.replacements.repository import ReplacementRepository
from .domain import OrderService
from .invoice import InvoiceService
from .repository import OrderRepository


def get_order_service() -> OrderService:
    return OrderService(
        catalog=ProductRepository(),
        orders=OrderRepository(),
        coupons=CouponRepository(),
        dispatcher=get_dispatcher(),
        atomic=transaction.atomic,
    )


def get_invoice_service() -> InvoiceService:
    return InvoiceService(orders=get_order_service(), replacements=ReplacementRepository())
