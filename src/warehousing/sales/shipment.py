"""Shipment aggregate (CQRS) — the goods of one order pulled from one warehouse.

State Machine:
    DISPATCHED → DELIVERED → RETURNED
    DISPATCHED → CANCELLED
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String

from warehousing.domain import warehousing
from warehousing.exceptions import InvalidTransition
from warehousing.sales.events import ShipmentCancelled, ShipmentDelivered, ShipmentDispatched, ShipmentReturned
from warehousing.warehouse.warehouse import normalize_variant


class ShipmentStatus(Enum):
    DISPATCHED = "dispatched"
    DELIVERED = "delivered"
    RETURNED = "returned"
    CANCELLED = "cancelled"


_VALID_TRANSITIONS = {
    ShipmentStatus.DISPATCHED: {ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED},
    ShipmentStatus.DELIVERED: {ShipmentStatus.RETURNED},
    ShipmentStatus.RETURNED: set(),
    ShipmentStatus.CANCELLED: set(),
}


@warehousing.entity(part_of="Shipment")
class ShipmentItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True, min_value=1)


@warehousing.aggregate
class Shipment:
    order_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    items = HasMany(ShipmentItem)
    status = String(choices=ShipmentStatus, default=ShipmentStatus.DISPATCHED.value)
    tracking_number = String(max_length=255)
    carrier = String(max_length=100)
    dispatched_at = DateTime()
    delivery_date = DateTime()
    returned_at = DateTime()
    cancelled_at = DateTime()

    @classmethod
    def dispatch(
        cls,
        order_id: str,
        warehouse_id: str,
        items_data: list[dict],
        tracking_number: str | None = None,
        carrier: str | None = None,
    ):
        if not items_data:
            raise ValidationError({"items": ["A shipment needs at least one item"]})

        now = datetime.now(UTC)
        shipment = cls(
            order_id=order_id,
            warehouse_id=warehouse_id,
            tracking_number=tracking_number,
            carrier=carrier,
            dispatched_at=now,
        )
        for item in items_data:
            shipment.add_items(
                ShipmentItem(
                    product_id=str(item["product_id"]),
                    variant_id=normalize_variant(item.get("variant_id")),
                    quantity=item["quantity"],
                )
            )
        shipment.raise_(
            ShipmentDispatched(
                shipment_id=str(shipment.id),
                order_id=order_id,
                warehouse_id=warehouse_id,
                items=json.dumps(shipment.line_items()),
                tracking_number=tracking_number,
                carrier=carrier,
                dispatched_at=now,
            )
        )
        return shipment

    def line_items(self) -> list[dict]:
        return [
            {
                "product_id": str(i.product_id),
                "variant_id": normalize_variant(i.variant_id),
                "quantity": i.quantity,
            }
            for i in (self.items or [])
        ]

    def _assert_can_transition(self, target_status: ShipmentStatus) -> None:
        current = ShipmentStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition(current.value, target_status.value)

    def mark_delivered(self) -> None:
        self._assert_can_transition(ShipmentStatus.DELIVERED)
        self.status = ShipmentStatus.DELIVERED.value
        self.delivery_date = datetime.now(UTC)
        self.raise_(
            ShipmentDelivered(
                shipment_id=str(self.id),
                order_id=str(self.order_id),
                delivery_date=self.delivery_date,
            )
        )

    def mark_returned(self) -> None:
        self._assert_can_transition(ShipmentStatus.RETURNED)
        self.status = ShipmentStatus.RETURNED.value
        self.returned_at = datetime.now(UTC)
        self.raise_(
            ShipmentReturned(
                shipment_id=str(self.id),
                order_id=str(self.order_id),
                returned_at=self.returned_at,
            )
        )

    def cancel(self) -> None:
        self._assert_can_transition(ShipmentStatus.CANCELLED)
        self.status = ShipmentStatus.CANCELLED.value
        self.cancelled_at = datetime.now(UTC)
        self.raise_(
            ShipmentCancelled(
                shipment_id=str(self.id),
                order_id=str(self.order_id),
                cancelled_at=self.cancelled_at,
            )
        )
