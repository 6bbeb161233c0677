"""Wiring for ``ReplacementService``."""

from django.db import transaction

from apps.catalog.repository import ProductRepository
from apps.notifications.providers import get_dispatcher
from apps.orders.repository import OrderRepository
from .domain import ReplacementService
from .repository import ReplacementRepository


def get_replacement_service() -> ReplacementService:
    return ReplacementService(
        catalog=ProductRepository(),
        orders=OrderRepository(),
        replacements=ReplacementRepository(),
        dispatcher=get_dispatcher(),
        atomic=transaction.atomic,
    )
