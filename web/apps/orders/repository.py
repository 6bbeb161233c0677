"""Repository layer for persisting orders.

``OrderRepository`` implements ``OrderStorePort`` over the Django ORM and
keeps the domain layer free of model types: it only accepts and returns
domain ``Order`` objects.
"""

import uuid
from typing import List, Optional

from .domain import (
    Cancellation,
    DeliveryAgent,
    Order,
    OrderItem,
    OrderStatus,
    ReturnStatus,
    ShippingAddress,
)
from .models import OrderItemModel, OrderModel

_ADDRESS_FIELDS = ("full_name", "phone", "address_line1", "address_line2", "city", "state", "zip_code")


def address_to_json(address: ShippingAddress) -> dict:
    return {name: getattr(address, name) for name in _ADDRESS_FIELDS}


def address_from_json(data: dict) -> ShippingAddress:
    return ShippingAddress(**{name: data.get(name, "") for name in _ADDRESS_FIELDS})


def item_to_domain(obj: OrderItemModel) -> OrderItem:
    return OrderItem(
        id=str(obj.id),
        product_id=obj.product_id,
        name=obj.name,
        image=obj.image,
        category=obj.category,
        size=obj.size or None,
        price=obj.price,
        quantity=obj.quantity,
        subtotal=obj.subtotal,
        return_status=ReturnStatus(obj.return_status),
        returned_at=obj.returned_at,
        refund_amount=obj.refund_amount,
    )


def to_domain(obj: OrderModel) -> Order:
    cancellation = None
    if obj.cancelled_at is not None:
        cancellation = Cancellation(reason=obj.cancel_reason, cancelled_at=obj.cancelled_at,
                                    cancelled_by=obj.cancelled_by)
    agent = None
    if obj.delivery_agent_name or obj.delivery_agent_phone:
        agent = DeliveryAgent(name=obj.delivery_agent_name, phone=obj.delivery_agent_phone)
    return Order(
        id=str(obj.id),
        order_number=obj.internal_id,
        user_id=obj.user_id,
        items=[item_to_domain(i) for i in obj.items.all()],
        shipping_address=address_from_json(obj.shipping_address),
        items_total=obj.items_total,
        delivery_fee=obj.delivery_fee,
        other_charges=obj.other_charges,
        coupon_code=obj.coupon_code,
        coupon_discount=obj.coupon_discount,
        grand_total=obj.grand_total,
        delivery_fee_refunded=obj.delivery_fee_refunded,
        payment_method=obj.payment_method,
        payment_status=obj.payment_status,
        status=OrderStatus(obj.status),
        cancellation=cancellation,
        delivery_agent=agent,
        estimated_delivery_date=obj.estimated_delivery_date,
        delivery_date=obj.delivery_date,
        created_at=obj.created_at,
        updated_at=obj.updated_at,
    )


class OrderRepository:
    """Repository that persists Order domain objects using Django ORM.

    Callers are expected to wrap multi-step writes in
    ``transaction.atomic``; ``create`` inserts the order and its items but
    does not open a transaction of its own.
    """

    def _query(self):
        return OrderModel.objects.prefetch_related("items")

    def create(self, order: Order) -> Order:
        obj = OrderModel.objects.create(
            user_id=order.user_id,
            status=order.status.value,
            shipping_address=address_to_json(order.shipping_address),
            items_total=order.items_total,
            delivery_fee=order.delivery_fee,
            other_charges=order.other_charges,
            coupon_code=order.coupon_code,
            coupon_discount=order.coupon_discount,
            grand_total=order.grand_total,
            payment_method=order.payment_method,
            payment_status=order.payment_status,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
        OrderItemModel.objects.bulk_create([
            OrderItemModel(
                order=obj,
                position=pos,
                product_id=str(item.product_id),
                name=item.name,
                image=item.image,
                category=item.category,
                size=item.size,
                price=item.price,
                quantity=item.quantity,
                subtotal=item.subtotal,
            )
            for pos, item in enumerate(order.items)
        ])
        return self.get(str(obj.id))

    def get(self, order_id: str) -> Optional[Order]:
        return self._get(self._query(), order_id)

    def get_for_update(self, order_id: str) -> Optional[Order]:
        """Must run inside ``transaction.atomic``; the row lock is held until it ends."""
        return self._get(self._query().select_for_update(), order_id)

    def _get(self, qs, order_id: str) -> Optional[Order]:
        try:
            pk = uuid.UUID(str(order_id))
        except ValueError:
            return None
        obj = qs.filter(pk=pk).first()
        return to_domain(obj) if obj else None

    def list(self, user_id: Optional[str], offset: int, limit: int) -> tuple[List[Order], int]:
        qs = self._query()
        if user_id is not None:
            qs = qs.filter(user_id=user_id)
        count = qs.count()
        return [to_domain(o) for o in qs[offset:offset + limit]], count

    def save(self, order: Order, expected_status: Optional[OrderStatus] = None) -> Optional[Order]:
        cancellation = order.cancellation
        agent = order.delivery_agent or DeliveryAgent()
        qs = OrderModel.objects.filter(pk=order.id)
        if expected_status is not None:
            qs = qs.filter(status=expected_status.value)
        updated = qs.update(
            status=order.status.value,
            delivery_fee_refunded=order.delivery_fee_refunded,
            payment_status=order.payment_status,
            cancel_reason=cancellation.reason if cancellation else "",
            cancelled_at=cancellation.cancelled_at if cancellation else None,
            cancelled_by=cancellation.cancelled_by if cancellation else "",
            delivery_agent_name=agent.name,
            delivery_agent_phone=agent.phone,
            estimated_delivery_date=order.estimated_delivery_date,
            delivery_date=order.delivery_date,
            updated_at=order.updated_at,
        )
        if not updated:
            return None
        for item in order.items:
            OrderItemModel.objects.filter(pk=item.id, order_id=order.id).update(
                return_status=item.return_status.value,
                returned_at=item.returned_at,
                refund_amount=item.refund_amount,
            )
        return self.get(order.id)
