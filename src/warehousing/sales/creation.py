"""Sales order placement — command and handler."""

import json

from protean import handle
from protean.fields import String, Text
from protean.utils.globals import current_domain

from warehousing.domain import logger, warehousing
from warehousing.exceptions import InsufficientStock
from warehousing.sales.order import SalesOrder
from warehousing.warehouse.warehouse import Warehouse, normalize_variant


@warehousing.command(part_of="SalesOrder")
class CreateSalesOrder:
    """Place a new sales order."""

    customer_name = String(required=True, max_length=255)
    customer_contact = String(max_length=255)
    items = Text(required=True)  # JSON: [{product_id, variant_id, variant_name, quantity, unit_price}]
    actor = String(max_length=100)


def available_across_warehouses(product_id, variant_id=None) -> int:
    """Unreserved units of a product/variant summed over active warehouses."""
    warehouses = current_domain.repository_for(Warehouse).find_active()
    return sum(w.available_for(product_id, variant_id) for w in warehouses)


def assert_items_available(items: list[dict]) -> None:
    requested: dict[tuple, int] = {}
    for item in items:
        key = (str(item["product_id"]), normalize_variant(item.get("variant_id")))
        requested[key] = requested.get(key, 0) + (item.get("quantity") or 0)

    for (product_id, variant_id), quantity in requested.items():
        available = available_across_warehouses(product_id, variant_id)
        if available < quantity:
            raise InsufficientStock(product_id, required=quantity, available=available, variant_id=variant_id)


@warehousing.command_handler(part_of=SalesOrder)
class SalesOrderCreationHandler:
    @handle(CreateSalesOrder)
    def create_sales_order(self, command):
        items = json.loads(command.items) if isinstance(command.items, str) else command.items
        assert_items_available(items)

        order = SalesOrder.create(
            customer_name=command.customer_name,
            items_data=items,
            customer_contact=command.customer_contact,
            actor=command.actor,
        )
        current_domain.repository_for(SalesOrder).add(order)
        logger.info(
            "sales_order_created",
            order_id=str(order.id),
            items=len(items),
            total_amount=order.total_amount,
            actor=command.actor,
        )
        return str(order.id)
