"""Pydantic schemas for the replacements API."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from apps.core.schemas import CamelModel, Money, UtcDateTime
from apps.orders.schemas import ShippingAddressSchema
from .domain import (
    Eligibility,
    EligibilityReason,
    RefundMethod,
    Replacement,
    ReplacementReason,
    ReplacementStats,
    ReplacementStatus,
    ReplacementUpdate,
)


class RequestReplacementDTO(CamelModel):
    order_id: str = Field(min_length=1)
    product_id: str = Field(min_length=1)
    reason: ReplacementReason
    description: str = Field(default="", max_length=1000)
    images: List[str] = Field(default_factory=list)


class PickupIn(CamelModel):
    scheduled_date: Optional[UtcDateTime] = None
    agent_name: Optional[str] = None
    agent_phone: Optional[str] = None
    picked_up_at: Optional[UtcDateTime] = None


class RefundIn(CamelModel):
    amount: Optional[Money] = Field(default=None, ge=0)
    method: Optional[RefundMethod] = None
    transaction_id: Optional[str] = None
    refunded_at: Optional[UtcDateTime] = None
    notes: Optional[str] = None


def _sent(schema: Optional[CamelModel]) -> dict:
    if schema is None:
        return {}
    return {name: getattr(schema, name) for name in schema.model_fields_set if getattr(schema, name) is not None}


class UpdateReplacementDTO(CamelModel):
    status: Optional[ReplacementStatus] = None
    admin_notes: Optional[str] = None
    pickup: Optional[PickupIn] = None
    refund: Optional[RefundIn] = None

    def to_domain(self) -> ReplacementUpdate:
        return ReplacementUpdate(
            status=self.status,
            admin_notes=self.admin_notes,
            pickup=_sent(self.pickup),
            refund=_sent(self.refund),
        )


class ListReplacementsQuery(CamelModel):
    status: Optional[ReplacementStatus] = None


class ItemOut(CamelModel):
    product: str
    name: str
    image: str
    price: Money
    quantity: int
    size: Optional[str] = None


class PickupOut(CamelModel):
    scheduled_date: Optional[datetime] = None
    agent_name: str = ""
    agent_phone: str = ""
    picked_up_at: Optional[datetime] = None
    address: Optional[ShippingAddressSchema] = None


class RefundOut(CamelModel):
    amount: Optional[Money] = None
    method: Optional[RefundMethod] = None
    transaction_id: str = ""
    refunded_at: Optional[datetime] = None
    notes: str = ""


class TimelineEntryOut(CamelModel):
    status: ReplacementStatus
    message: str
    updated_by: str
    timestamp: datetime


class ReplacementOut(CamelModel):
    id: str
    order: str
    user: str
    item: ItemOut
    reason: ReplacementReason
    description: str
    images: List[str]
    status: ReplacementStatus
    admin_notes: str
    pickup: PickupOut
    refund: RefundOut
    timeline: List[TimelineEntryOut]
    delivery_date: Optional[datetime] = None
    replacement_deadline: Optional[datetime] = None
    requested_at: Optional[datetime] = None
    stock_restored: bool

    @classmethod
    def from_domain(cls, r: Replacement) -> "ReplacementOut":
        p, f = r.pickup, r.refund
        return cls(
            id=r.id,
            order=r.order_id,
            user=r.user_id,
            item=ItemOut(product=r.item.product_id, name=r.item.name, image=r.item.image,
                         price=r.item.price, quantity=r.item.quantity, size=r.item.size),
            reason=r.reason,
            description=r.description,
            images=r.images,
            status=r.status,
            admin_notes=r.admin_notes,
            pickup=PickupOut(
                scheduled_date=p.scheduled_date, agent_name=p.agent_name, agent_phone=p.agent_phone,
                picked_up_at=p.picked_up_at,
                address=ShippingAddressSchema.from_domain(p.address) if p.address else None,
            ),
            refund=RefundOut(amount=f.amount, method=f.method, transaction_id=f.transaction_id,
                             refunded_at=f.refunded_at, notes=f.notes),
            timeline=[
                TimelineEntryOut(status=t.status, message=t.message, updated_by=t.updated_by, timestamp=t.timestamp)
                for t in r.timeline
            ],
            delivery_date=r.delivery_date,
            replacement_deadline=r.replacement_deadline,
            requested_at=r.requested_at,
            stock_restored=r.stock_restored,
        )


class EligibilityOut(CamelModel):
    eligible: bool
    reason: Optional[EligibilityReason] = None
    message: str
    replacement_days: int
    delivery_date: Optional[datetime] = None
    deadline: Optional[datetime] = None
    days_remaining: int

    @classmethod
    def from_domain(cls, e: Eligibility) -> "EligibilityOut":
        return cls(
            eligible=e.eligible,
            reason=e.reason,
            message=e.message,
            replacement_days=e.replacement_days,
            delivery_date=e.delivery_date,
            deadline=e.deadline,
            days_remaining=e.days_remaining,
        )


class StatsOut(CamelModel):
    total_requests: int
    pending: int
    approved: int
    in_progress: int
    completed: int
    refunded: int
    rejected: int
    total_refund_amount: Money

    @classmethod
    def from_domain(cls, s: ReplacementStats) -> "StatsOut":
        return cls(**{name: getattr(s, name) for name in cls.model_fields})
