"""ExpectedReturn aggregate (CQRS) — customer intent to send goods back.

State Machine:
    PENDING → IN_TRANSIT → RECEIVED
    PENDING → RECEIVED

Created either when a delivered order is flagged for return or directly
for an order. Either way there is at most one open (not yet received)
expected return per order.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String

from warehousing.domain import warehousing
from warehousing.exceptions import AlreadyProcessed, InvalidTransition
from warehousing.returns.events import ExpectedReturnCreated, ExpectedReturnInTransit, ExpectedReturnReceived
from warehousing.warehouse.warehouse import normalize_variant


class ExpectedReturnStatus(Enum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"


class ReturnSource(Enum):
    ORDER_FLAG = "order_flag"
    DIRECT = "direct"


_VALID_TRANSITIONS = {
    ExpectedReturnStatus.PENDING: {ExpectedReturnStatus.IN_TRANSIT, ExpectedReturnStatus.RECEIVED},
    ExpectedReturnStatus.IN_TRANSIT: {ExpectedReturnStatus.RECEIVED},
    ExpectedReturnStatus.RECEIVED: set(),
}


@warehousing.entity(part_of="ExpectedReturn")
class ExpectedReturnItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True, min_value=1)


@warehousing.aggregate
class ExpectedReturn:
    order_id = Identifier(required=True)
    origin_warehouse_id = Identifier()  # Warehouse the goods were delivered from
    warehouse_id = Identifier()  # Warehouse the goods are expected back into
    items = HasMany(ExpectedReturnItem)
    status = String(choices=ExpectedReturnStatus, default=ExpectedReturnStatus.PENDING.value)
    source = String(choices=ReturnSource, default=ReturnSource.ORDER_FLAG.value)
    reason = String(max_length=500)
    return_id = Identifier()
    received_into = Identifier()
    created_by = String(max_length=100)
    created_at = DateTime()
    in_transit_at = DateTime()
    received_at = DateTime()

    @classmethod
    def create(
        cls,
        order_id: str,
        items_data: list[dict],
        origin_warehouse_id: str | None = None,
        warehouse_id: str | None = None,
        source: str = ReturnSource.ORDER_FLAG.value,
        reason: str | None = None,
        actor: str | None = None,
    ):
        if not items_data:
            raise ValidationError({"items": ["An expected return needs at least one item"]})

        now = datetime.now(UTC)
        expected = cls(
            order_id=order_id,
            origin_warehouse_id=origin_warehouse_id,
            warehouse_id=warehouse_id or origin_warehouse_id,
            source=source,
            reason=reason,
            created_by=actor,
            created_at=now,
        )
        for item in items_data:
            expected.add_items(
                ExpectedReturnItem(
                    product_id=str(item["product_id"]),
                    variant_id=normalize_variant(item.get("variant_id")),
                    quantity=item["quantity"],
                )
            )
        expected.raise_(
            ExpectedReturnCreated(
                expected_return_id=str(expected.id),
                order_id=order_id,
                origin_warehouse_id=origin_warehouse_id,
                warehouse_id=expected.warehouse_id,
                items=json.dumps(expected.line_items()),
                source=source,
                reason=reason,
                created_by=actor,
                created_at=now,
            )
        )
        return expected

    def line_items(self) -> list[dict]:
        return [
            {
                "product_id": str(i.product_id),
                "variant_id": normalize_variant(i.variant_id),
                "quantity": i.quantity,
            }
            for i in (self.items or [])
        ]

    @property
    def is_open(self) -> bool:
        return self.status != ExpectedReturnStatus.RECEIVED.value

    def _assert_can_transition(self, target_status: ExpectedReturnStatus) -> None:
        current = ExpectedReturnStatus(self.status)
        if current == ExpectedReturnStatus.RECEIVED:
            raise AlreadyProcessed("ExpectedReturn", str(self.id), current.value)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition(current.value, target_status.value)

    def assert_can_receive(self) -> None:
        self._assert_can_transition(ExpectedReturnStatus.RECEIVED)

    def mark_in_transit(self) -> None:
        self._assert_can_transition(ExpectedReturnStatus.IN_TRANSIT)
        self.status = ExpectedReturnStatus.IN_TRANSIT.value
        self.in_transit_at = datetime.now(UTC)
        self.raise_(
            ExpectedReturnInTransit(
                expected_return_id=str(self.id),
                order_id=str(self.order_id),
                in_transit_at=self.in_transit_at,
            )
        )

    def mark_received(self, warehouse_id: str, return_id: str) -> None:
        self._assert_can_transition(ExpectedReturnStatus.RECEIVED)
        self.status = ExpectedReturnStatus.RECEIVED.value
        self.received_into = warehouse_id
        self.return_id = return_id
        self.received_at = datetime.now(UTC)
        self.raise_(
            ExpectedReturnReceived(
                expected_return_id=str(self.id),
                order_id=str(self.order_id),
                warehouse_id=warehouse_id,
                return_id=return_id,
                received_at=self.received_at,
            )
        )
