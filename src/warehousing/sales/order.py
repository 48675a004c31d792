"""SalesOrder aggregate (CQRS) — the sales fulfillment state machine.

State Machine:
    PENDING → CONFIRMED → DISPATCHED → DELIVERED → EXPECTED_RETURN → RETURNED
    {PENDING, CONFIRMED, DISPATCHED} → CANCELLED

DELIVERED (when no return follows), RETURNED and CANCELLED are terminal.
Every legality check lives in ``begin_transition``: moving into the state
the order already occupies is a no-op, any other move outside the map is an
InvalidTransition. Stock side effects are applied by the handler in
``warehousing.sales.fulfillment`` only after ``begin_transition`` agrees.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text

from warehousing.domain import warehousing
from warehousing.exceptions import InvalidTransition
from warehousing.sales.events import SalesOrderCreated, SalesOrderStatusChanged
from warehousing.warehouse.warehouse import normalize_variant


class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DISPATCHED = "dispatched"
    DELIVERED = "delivered"
    EXPECTED_RETURN = "expected_return"
    RETURNED = "returned"
    CANCELLED = "cancelled"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.DISPATCHED, OrderStatus.CANCELLED},
    OrderStatus.DISPATCHED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: {OrderStatus.EXPECTED_RETURN},
    OrderStatus.EXPECTED_RETURN: {OrderStatus.RETURNED},
    OrderStatus.RETURNED: set(),  # terminal
    OrderStatus.CANCELLED: set(),  # terminal
}


@warehousing.entity(part_of="SalesOrder")
class SalesOrderItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    variant_name = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(default=0.0, min_value=0.0)


@warehousing.aggregate
class SalesOrder:
    """A customer order driven through dispatch, delivery and returns."""

    customer_name = String(required=True, max_length=255)
    customer_contact = String(max_length=255)
    items = HasMany(SalesOrderItem)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    total_amount = Float(default=0.0)
    warehouse_id = Identifier()  # Warehouse the order was dispatched from
    shipment_id = Identifier()
    expected_return_id = Identifier()
    return_id = Identifier()
    cancellation_reason = String(max_length=500)
    return_reason = String(max_length=500)
    status_history = Text(default="[]")  # JSON: [{from, to, at, actor}]
    created_by = String(max_length=100)
    created_at = DateTime()
    updated_at = DateTime()
    confirmed_at = DateTime()
    dispatched_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()
    returned_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        customer_name: str,
        items_data: list[dict],
        customer_contact: str | None = None,
        actor: str | None = None,
    ):
        """Place a new pending order."""
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        now = datetime.now(UTC)
        order = cls(
            customer_name=customer_name,
            customer_contact=customer_contact,
            status=OrderStatus.PENDING.value,
            created_by=actor,
            created_at=now,
            updated_at=now,
        )
        for item in items_data:
            order.add_items(
                SalesOrderItem(
                    product_id=str(item["product_id"]),
                    variant_id=normalize_variant(item.get("variant_id")),
                    variant_name=item.get("variant_name"),
                    quantity=item["quantity"],
                    unit_price=item.get("unit_price", 0.0),
                )
            )
        order.total_amount = round(sum(i.quantity * (i.unit_price or 0.0) for i in order.items), 2)

        order.raise_(
            SalesOrderCreated(
                order_id=str(order.id),
                customer_name=customer_name,
                items=json.dumps(order.line_items()),
                total_amount=order.total_amount,
                created_by=actor,
                created_at=now,
            )
        )
        return order

    def line_items(self) -> list[dict]:
        return [
            {
                "product_id": str(i.product_id),
                "variant_id": normalize_variant(i.variant_id),
                "variant_name": i.variant_name,
                "quantity": i.quantity,
                "unit_price": i.unit_price,
            }
            for i in (self.items or [])
        ]

    def ordered_quantity(self, product_id, variant_id=None) -> int:
        return sum(
            i.quantity
            for i in (self.items or [])
            if str(i.product_id) == str(product_id)
            and normalize_variant(i.variant_id) == normalize_variant(variant_id)
        )

    @property
    def history(self) -> list[dict]:
        return json.loads(self.status_history) if self.status_history else []

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def begin_transition(self, target) -> bool:
        """Check a move to ``target``.

        Returns False when the order is already in ``target`` (nothing to do),
        True when the move is legal, and raises InvalidTransition otherwise.
        """
        current = OrderStatus(self.status)
        try:
            target = OrderStatus(target.value if isinstance(target, OrderStatus) else target)
        except ValueError:
            raise InvalidTransition(current.value, str(target)) from None

        if target == current:
            return False
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition(current.value, target.value)
        return True

    def _transition(self, target: OrderStatus, actor=None, reason=None, **refs) -> datetime:
        if not self.begin_transition(target):
            raise InvalidTransition(self.status, target.value)

        previous = self.status
        now = datetime.now(UTC)
        self.status = target.value
        self.updated_at = now
        self.status_history = json.dumps(
            self.history + [{"from": previous, "to": target.value, "at": now.isoformat(), "actor": actor}]
        )
        self.raise_(
            SalesOrderStatusChanged(
                order_id=str(self.id),
                from_status=previous,
                to_status=target.value,
                warehouse_id=refs.get("warehouse_id"),
                shipment_id=refs.get("shipment_id"),
                expected_return_id=refs.get("expected_return_id"),
                return_id=refs.get("return_id"),
                reason=reason,
                actor=actor,
                changed_at=now,
            )
        )
        return now

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def confirm(self, actor=None) -> None:
        self.confirmed_at = self._transition(OrderStatus.CONFIRMED, actor=actor)

    def mark_dispatched(self, warehouse_id: str, shipment_id: str, actor=None) -> None:
        self.dispatched_at = self._transition(
            OrderStatus.DISPATCHED,
            actor=actor,
            warehouse_id=warehouse_id,
            shipment_id=shipment_id,
        )
        self.warehouse_id = warehouse_id
        self.shipment_id = shipment_id

    def mark_delivered(self, actor=None) -> None:
        self.delivered_at = self._transition(OrderStatus.DELIVERED, actor=actor)

    def mark_expected_return(self, expected_return_id: str, reason=None, actor=None) -> None:
        self._transition(
            OrderStatus.EXPECTED_RETURN,
            actor=actor,
            reason=reason,
            expected_return_id=expected_return_id,
        )
        self.expected_return_id = expected_return_id
        self.return_reason = reason

    def mark_returned(self, return_id: str, actor=None) -> None:
        self.returned_at = self._transition(OrderStatus.RETURNED, actor=actor, return_id=return_id)
        self.return_id = return_id

    def cancel(self, reason=None, actor=None) -> None:
        self.cancelled_at = self._transition(OrderStatus.CANCELLED, actor=actor, reason=reason)
        self.cancellation_reason = reason
