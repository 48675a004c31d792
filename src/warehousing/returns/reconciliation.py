"""Return reconciliation — flagging expected returns and receiving them.

Both entry points converge here: a delivered order flagged through the
sales state machine, and an expected return created directly for an order.
Receiving is the only step that puts returned units back on hand.
"""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from warehousing.domain import logger, warehousing
from warehousing.exceptions import AlreadyProcessed, InsufficientStock, InvalidTransition
from warehousing.persistence import fetch
from warehousing.returns.expected_return import ExpectedReturn, ReturnSource
from warehousing.returns.return_record import ReturnRecord
from warehousing.sales.order import OrderStatus, SalesOrder
from warehousing.sales.shipment import Shipment, ShipmentStatus
from warehousing.warehouse.warehouse import Warehouse, normalize_variant


def _item_key(item) -> tuple:
    return (str(item["product_id"]), normalize_variant(item.get("variant_id")))


def _condition_for(item: dict, item_conditions: list[dict] | None) -> str | None:
    for entry in item_conditions or []:
        if _item_key(entry) == _item_key(item):
            return entry.get("condition")
    return None


def _returnable_items(order: SalesOrder, items: list[dict] | None) -> list[dict]:
    """Requested return lines, checked against what the order delivered."""
    if not items:
        return [
            {"product_id": i["product_id"], "variant_id": i["variant_id"], "quantity": i["quantity"]}
            for i in order.line_items()
        ]

    requested: dict[tuple, int] = {}
    for item in items:
        quantity = item.get("quantity") or 0
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})
        requested[_item_key(item)] = requested.get(_item_key(item), 0) + quantity

    for (product_id, variant_id), quantity in requested.items():
        delivered = order.ordered_quantity(product_id, variant_id)
        if quantity > delivered:
            raise InsufficientStock(product_id, required=quantity, available=delivered, variant_id=variant_id)

    return [
        {"product_id": product_id, "variant_id": variant_id, "quantity": quantity}
        for (product_id, variant_id), quantity in requested.items()
    ]


def flag_return(
    order: SalesOrder,
    items: list[dict] | None = None,
    reason: str | None = None,
    source: str = ReturnSource.ORDER_FLAG.value,
    warehouse_id: str | None = None,
    actor: str | None = None,
) -> ExpectedReturn:
    """Record that a delivered order's goods will come back.

    Creates the ExpectedReturn, bumps ``expected_returns`` on the stock lines
    the goods were delivered from and moves the order to ``expected_return``.
    """
    expected_repo = current_domain.repository_for(ExpectedReturn)
    existing = expected_repo.find_open_for_order(order.id)
    if existing is not None:
        raise AlreadyProcessed("ExpectedReturn", str(existing.id), existing.status)
    if order.status != OrderStatus.DELIVERED.value:
        raise InvalidTransition(order.status, OrderStatus.EXPECTED_RETURN.value)

    return_items = _returnable_items(order, items)
    shipment = fetch(Shipment, order.shipment_id)
    origin = fetch(Warehouse, shipment.warehouse_id)
    if warehouse_id:
        fetch(Warehouse, warehouse_id)

    expected = ExpectedReturn.create(
        order_id=str(order.id),
        items_data=return_items,
        origin_warehouse_id=str(origin.id),
        warehouse_id=warehouse_id,
        source=source,
        reason=reason,
        actor=actor,
    )
    for item in return_items:
        origin.mark_expected_return(
            item["product_id"],
            item["quantity"],
            variant_id=item["variant_id"],
            reference_id=str(expected.id),
        )
    order.mark_expected_return(str(expected.id), reason=reason, actor=actor)

    current_domain.repository_for(Warehouse).add(origin)
    expected_repo.add(expected)
    current_domain.repository_for(SalesOrder).add(order)
    logger.info(
        "expected_return_flagged",
        expected_return_id=str(expected.id),
        order_id=str(order.id),
        source=source,
        units=sum(i["quantity"] for i in return_items),
        actor=actor,
    )
    return expected


def reconcile_return(
    expected: ExpectedReturn,
    warehouse_id: str | None = None,
    item_conditions: list[dict] | None = None,
    actor: str | None = None,
    order: SalesOrder | None = None,
) -> ReturnRecord:
    """Physically receive an expected return into a warehouse.

    Each line moves from expected to on-hand and returned, tagged
    ``returned`` plus its condition. A second receipt is AlreadyProcessed.
    ``order`` may be passed when the caller already holds the sales order.
    """
    expected.assert_can_receive()

    warehouse_id = warehouse_id or expected.warehouse_id
    if not warehouse_id:
        raise ValidationError({"warehouse_id": ["Please select a warehouse to receive the return"]})

    target = fetch(Warehouse, warehouse_id)
    origin = None
    if expected.origin_warehouse_id and str(expected.origin_warehouse_id) != str(target.id):
        origin = fetch(Warehouse, expected.origin_warehouse_id)

    items = expected.line_items()
    target.assert_can_accept(sum(i["quantity"] for i in items))

    received = []
    for item in items:
        condition = _condition_for(item, item_conditions)
        target.receive_return(
            item["product_id"],
            item["quantity"],
            variant_id=item["variant_id"],
            tags=[condition] if condition else None,
            reference_id=str(expected.id),
            actor=actor,
        )
        if origin is not None:
            origin.clear_expected_return(
                item["product_id"],
                item["quantity"],
                variant_id=item["variant_id"],
                reference_id=str(expected.id),
            )
        received.append({**item, "condition": condition})

    record = ReturnRecord.record(
        expected_return_id=str(expected.id),
        order_id=str(expected.order_id),
        warehouse_id=str(target.id),
        items_data=received,
        actor=actor,
    )
    expected.mark_received(str(target.id), str(record.id))

    if order is None:
        order = fetch(SalesOrder, expected.order_id)
    if order.status == OrderStatus.EXPECTED_RETURN.value:
        order.mark_returned(str(record.id), actor=actor)
        current_domain.repository_for(SalesOrder).add(order)
    if order.shipment_id:
        shipment = fetch(Shipment, order.shipment_id)
        if shipment.status == ShipmentStatus.DELIVERED.value:
            shipment.mark_returned()
            current_domain.repository_for(Shipment).add(shipment)

    current_domain.repository_for(Warehouse).add(target)
    if origin is not None:
        current_domain.repository_for(Warehouse).add(origin)
    current_domain.repository_for(ExpectedReturn).add(expected)
    current_domain.repository_for(ReturnRecord).add(record)
    logger.info(
        "return_received",
        return_id=str(record.id),
        expected_return_id=str(expected.id),
        order_id=str(expected.order_id),
        warehouse_id=str(target.id),
        units=sum(i["quantity"] for i in received),
        actor=actor,
    )
    return record


def _json_list(value) -> list[dict] | None:
    if not value:
        return None
    return json.loads(value) if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@warehousing.command(part_of="ExpectedReturn")
class FlagExpectedReturn:
    """Create an expected return directly for a delivered order."""

    order_id = Identifier(required=True)
    items = Text()  # JSON: [{product_id, variant_id, quantity}], defaults to every delivered item
    warehouse_id = Identifier()  # Defaults to the warehouse the order shipped from
    reason = String(max_length=500)
    actor = String(max_length=100)


@warehousing.command(part_of="ExpectedReturn")
class MarkReturnInTransit:
    expected_return_id = Identifier(required=True)
    actor = String(max_length=100)


@warehousing.command(part_of="ExpectedReturn")
class ReceiveReturn:
    """Finalize physical receipt of an expected return."""

    expected_return_id = Identifier(required=True)
    warehouse_id = Identifier()
    item_conditions = Text()  # JSON: [{product_id, variant_id, condition}]
    actor = String(max_length=100)


@warehousing.command_handler(part_of=ExpectedReturn)
class ReturnReconciliationHandler:
    @handle(FlagExpectedReturn)
    def flag_expected_return(self, command):
        order = fetch(SalesOrder, command.order_id)
        return flag_return(
            order,
            items=_json_list(command.items),
            reason=command.reason,
            source=ReturnSource.DIRECT.value,
            warehouse_id=command.warehouse_id,
            actor=command.actor,
        )

    @handle(MarkReturnInTransit)
    def mark_return_in_transit(self, command):
        expected = fetch(ExpectedReturn, command.expected_return_id)
        expected.mark_in_transit()
        current_domain.repository_for(ExpectedReturn).add(expected)
        return expected

    @handle(ReceiveReturn)
    def receive_return(self, command):
        expected = fetch(ExpectedReturn, command.expected_return_id)
        return reconcile_return(
            expected,
            warehouse_id=command.warehouse_id,
            item_conditions=_json_list(command.item_conditions),
            actor=command.actor,
        )
