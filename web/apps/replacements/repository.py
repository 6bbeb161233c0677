"""Django ORM repository for replacement requests."""

import uuid
from decimal import Decimal
from typing import Dict, List, Optional

from django.db import IntegrityError, transaction
from django.db.models import Count, Sum

from apps.core.errors import InvalidState
from apps.orders.repository import address_from_json, address_to_json
from .domain import (
    Pickup,
    Refund,
    RefundMethod,
    Replacement,
    ReplacementItem,
    ReplacementReason,
    ReplacementStatus,
    TimelineEntry,
)
from .models import TERMINAL, ReplacementModel, TimelineEntryModel


def _as_uuid(value) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def to_domain(obj: ReplacementModel) -> Replacement:
    return Replacement(
        id=str(obj.id),
        order_id=str(obj.order_id),
        user_id=obj.user_id,
        item=ReplacementItem(
            product_id=obj.product_id,
            name=obj.item_name,
            image=obj.item_image,
            price=obj.item_price,
            quantity=obj.item_quantity,
            size=obj.item_size or None,
        ),
        reason=ReplacementReason(obj.reason),
        description=obj.description,
        images=list(obj.images or []),
        status=ReplacementStatus(obj.status),
        admin_notes=obj.admin_notes,
        pickup=Pickup(
            scheduled_date=obj.pickup_scheduled_date,
            agent_name=obj.pickup_agent_name,
            agent_phone=obj.pickup_agent_phone,
            picked_up_at=obj.picked_up_at,
            address=address_from_json(obj.pickup_address) if obj.pickup_address else None,
        ),
        refund=Refund(
            amount=obj.refund_amount,
            method=RefundMethod(obj.refund_method) if obj.refund_method else None,
            transaction_id=obj.refund_transaction_id,
            refunded_at=obj.refunded_at,
            notes=obj.refund_notes,
        ),
        timeline=[
            TimelineEntry(status=ReplacementStatus(t.status), message=t.message,
                          updated_by=t.updated_by, timestamp=t.timestamp)
            for t in obj.timeline.all()
        ],
        delivery_date=obj.delivery_date,
        replacement_deadline=obj.replacement_deadline,
        requested_at=obj.requested_at,
        stock_restored=obj.stock_restored,
    )


def _mutable_fields(r: Replacement) -> dict:
    pickup, refund = r.pickup, r.refund
    return {
        "status": r.status.value,
        "admin_notes": r.admin_notes,
        "pickup_scheduled_date": pickup.scheduled_date,
        "pickup_agent_name": pickup.agent_name,
        "pickup_agent_phone": pickup.agent_phone,
        "picked_up_at": pickup.picked_up_at,
        "pickup_address": address_to_json(pickup.address) if pickup.address else None,
        "refund_amount": refund.amount,
        "refund_method": refund.method.value if refund.method else "",
        "refund_transaction_id": refund.transaction_id,
        "refunded_at": refund.refunded_at,
        "refund_notes": refund.notes,
        "stock_restored": r.stock_restored,
    }


class ReplacementRepository:
    """Replacement store backed by ``replacements`` and ``replacement_timeline``."""

    def _query(self):
        return ReplacementModel.objects.prefetch_related("timeline")

    def _append_timeline(self, replacement_id, entries) -> None:
        TimelineEntryModel.objects.bulk_create([
            TimelineEntryModel(replacement_id=replacement_id, status=e.status.value, message=e.message,
                               updated_by=e.updated_by, timestamp=e.timestamp)
            for e in entries
        ])

    def create(self, replacement: Replacement) -> Replacement:
        item = replacement.item
        try:
            with transaction.atomic():
                obj = ReplacementModel.objects.create(
                    order_id=replacement.order_id,
                    user_id=replacement.user_id,
                    product_id=item.product_id,
                    item_name=item.name,
                    item_image=item.image,
                    item_price=item.price,
                    item_quantity=item.quantity,
                    item_size=item.size,
                    reason=replacement.reason.value,
                    description=replacement.description,
                    images=replacement.images,
                    delivery_date=replacement.delivery_date,
                    replacement_deadline=replacement.replacement_deadline,
                    requested_at=replacement.requested_at,
                    **_mutable_fields(replacement),
                )
                self._append_timeline(obj.id, replacement.timeline)
        except IntegrityError:
            raise InvalidState("Replacement already requested for this item", code="DUPLICATE_REQUEST")
        return self.get(str(obj.id))

    def get(self, replacement_id: str) -> Optional[Replacement]:
        return self._get(self._query(), replacement_id)

    def get_for_update(self, replacement_id: str) -> Optional[Replacement]:
        return self._get(self._query().select_for_update(), replacement_id)

    def _get(self, qs, replacement_id: str) -> Optional[Replacement]:
        pk = _as_uuid(replacement_id)
        if pk is None:
            return None
        obj = qs.filter(pk=pk).first()
        return to_domain(obj) if obj else None

    def list(self, user_id: Optional[str] = None, status: Optional[ReplacementStatus] = None) -> List[Replacement]:
        qs = self._query()
        if user_id is not None:
            qs = qs.filter(user_id=user_id)
        if status is not None:
            qs = qs.filter(status=status.value)
        return [to_domain(o) for o in qs]

    def list_for_order(self, order_id: str) -> List[Replacement]:
        pk = _as_uuid(order_id)
        if pk is None:
            return []
        return [to_domain(o) for o in self._query().filter(order_id=pk)]

    def has_active(self, order_id: str, product_id: str) -> bool:
        return (
            ReplacementModel.objects.filter(order_id=order_id, product_id=str(product_id))
            .exclude(status__in=TERMINAL)
            .exists()
        )

    def save(self, replacement: Replacement,
             expected_status: Optional[ReplacementStatus] = None) -> Optional[Replacement]:
        qs = ReplacementModel.objects.filter(pk=replacement.id)
        if expected_status is not None:
            qs = qs.filter(status=expected_status.value)
        if not qs.update(**_mutable_fields(replacement)):
            return None
        stored = TimelineEntryModel.objects.filter(replacement_id=replacement.id).count()
        self._append_timeline(replacement.id, replacement.timeline[stored:])
        return self.get(replacement.id)

    def claim_stock_restore(self, replacement_id: str) -> bool:
        return ReplacementModel.objects.filter(pk=replacement_id, stock_restored=False).update(stock_restored=True) == 1

    def count_by_status(self) -> Dict[ReplacementStatus, int]:
        rows = ReplacementModel.objects.order_by().values("status").annotate(n=Count("id"))
        return {ReplacementStatus(row["status"]): row["n"] for row in rows}

    def refunded_total(self) -> Decimal:
        total = ReplacementModel.objects.filter(status=ReplacementStatus.REFUNDED.value).aggregate(
            total=Sum("refund_amount")
        )["total"]
        return total or Decimal(0)
