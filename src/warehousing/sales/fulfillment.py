"""Sales order transitions and their stock side effects — command and handler.

``TransitionSalesOrder`` names the target state; the handler asks the order
whether the move is legal (``begin_transition``) and only then applies the
stock side effects that belong to it:

    confirmed      : none
    dispatched     : reserve every item in the chosen warehouse, create Shipment
    delivered      : deliver every item out of the shipment's warehouse
    expected_return: flag the return (see return reconciliation)
    returned       : receive the open expected return
    cancelled      : release any reservation; no movement is recorded
"""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from warehousing.domain import logger, warehousing
from warehousing.exceptions import NotFound
from warehousing.persistence import fetch
from warehousing.returns.expected_return import ExpectedReturn, ReturnSource
from warehousing.returns.reconciliation import flag_return, reconcile_return
from warehousing.sales.order import OrderStatus, SalesOrder
from warehousing.sales.shipment import Shipment, ShipmentStatus
from warehousing.warehouse.warehouse import Warehouse


@warehousing.command(part_of="SalesOrder")
class TransitionSalesOrder:
    """Move a sales order to ``target_state``.

    ``details`` is a JSON object whose keys depend on the target:
    dispatched: warehouse_id, tracking_number, carrier
    expected_return: items, reason, warehouse_id
    returned: warehouse_id, item_conditions
    cancelled: reason
    """

    order_id = Identifier(required=True)
    target_state = String(required=True, max_length=50)
    details = Text()
    actor = String(max_length=100)


def _details(command) -> dict:
    if not command.details:
        return {}
    return json.loads(command.details) if isinstance(command.details, str) else dict(command.details)


@warehousing.command_handler(part_of=SalesOrder)
class SalesFulfillmentHandler:
    @handle(TransitionSalesOrder)
    def transition_sales_order(self, command):
        order = fetch(SalesOrder, command.order_id)
        if not order.begin_transition(command.target_state):
            logger.info(
                "sales_order_transition_skipped",
                order_id=str(order.id),
                status=order.status,
                actor=command.actor,
            )
            return order

        target = OrderStatus(command.target_state)
        payload = _details(command)
        previous = order.status

        if target == OrderStatus.CONFIRMED:
            self._confirm(order, command.actor)
        elif target == OrderStatus.DISPATCHED:
            self._dispatch(order, payload, command.actor)
        elif target == OrderStatus.DELIVERED:
            self._deliver(order, command.actor)
        elif target == OrderStatus.EXPECTED_RETURN:
            flag_return(
                order,
                items=payload.get("items"),
                reason=payload.get("reason"),
                source=ReturnSource.ORDER_FLAG.value,
                warehouse_id=payload.get("warehouse_id"),
                actor=command.actor,
            )
        elif target == OrderStatus.RETURNED:
            self._receive(order, payload, command.actor)
        elif target == OrderStatus.CANCELLED:
            self._cancel(order, payload, command.actor)

        logger.info(
            "sales_order_transitioned",
            order_id=str(order.id),
            from_status=previous,
            to_status=target.value,
            actor=command.actor,
        )
        return order

    def _confirm(self, order, actor):
        order.confirm(actor=actor)
        current_domain.repository_for(SalesOrder).add(order)

    def _dispatch(self, order, payload, actor):
        warehouse_id = payload.get("warehouse_id")
        if not warehouse_id:
            raise ValidationError({"warehouse_id": ["A warehouse is required to dispatch an order"]})

        warehouse = fetch(Warehouse, warehouse_id)
        items = order.line_items()
        warehouse.reserve_items(items, order_id=str(order.id))

        shipment = Shipment.dispatch(
            order_id=str(order.id),
            warehouse_id=str(warehouse.id),
            items_data=items,
            tracking_number=payload.get("tracking_number"),
            carrier=payload.get("carrier"),
        )
        order.mark_dispatched(str(warehouse.id), str(shipment.id), actor=actor)

        current_domain.repository_for(Warehouse).add(warehouse)
        current_domain.repository_for(Shipment).add(shipment)
        current_domain.repository_for(SalesOrder).add(order)

    def _deliver(self, order, actor):
        shipment = fetch(Shipment, order.shipment_id)
        warehouse = fetch(Warehouse, shipment.warehouse_id)
        for item in shipment.line_items():
            warehouse.deliver(
                item["product_id"],
                item["quantity"],
                variant_id=item["variant_id"],
                order_id=str(order.id),
                actor=actor,
            )
        shipment.mark_delivered()
        order.mark_delivered(actor=actor)

        current_domain.repository_for(Warehouse).add(warehouse)
        current_domain.repository_for(Shipment).add(shipment)
        current_domain.repository_for(SalesOrder).add(order)

    def _receive(self, order, payload, actor):
        expected = current_domain.repository_for(ExpectedReturn).find_open_for_order(order.id)
        if expected is None:
            raise NotFound("ExpectedReturn", f"for order {order.id}")
        reconcile_return(
            expected,
            warehouse_id=payload.get("warehouse_id"),
            item_conditions=payload.get("item_conditions"),
            actor=actor,
            order=order,
        )

    def _cancel(self, order, payload, actor):
        if order.shipment_id:
            shipment = fetch(Shipment, order.shipment_id)
            warehouse = fetch(Warehouse, shipment.warehouse_id)
            for item in shipment.line_items():
                warehouse.release_reservation(
                    item["product_id"],
                    item["quantity"],
                    variant_id=item["variant_id"],
                    order_id=str(order.id),
                )
            if shipment.status == ShipmentStatus.DISPATCHED.value:
                shipment.cancel()
            current_domain.repository_for(Warehouse).add(warehouse)
            current_domain.repository_for(Shipment).add(shipment)

        order.cancel(reason=payload.get("reason"), actor=actor)
        current_domain.repository_for(SalesOrder).add(order)
