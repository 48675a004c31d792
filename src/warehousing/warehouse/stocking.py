"""Direct stock intake and manual adjustment — commands and handler."""

import json

from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from warehousing.domain import logger, warehousing
from warehousing.persistence import fetch
from warehousing.warehouse.warehouse import Warehouse


@warehousing.command(part_of="Warehouse")
class AddStock:
    """Put units of a product/variant into a warehouse."""

    warehouse_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True, min_value=1)
    tags = Text()  # JSON list
    reference_type = String(max_length=50)
    reference_id = Identifier()
    actor = String(max_length=100)


@warehousing.command(part_of="Warehouse")
class AdjustStock:
    """Manually correct on-hand stock by a signed amount."""

    warehouse_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity_change = Integer(required=True)  # Can be negative
    reason = String(required=True, max_length=255)
    actor = String(max_length=100)


@warehousing.command_handler(part_of=Warehouse)
class StockingHandler:
    @handle(AddStock)
    def add_stock(self, command):
        warehouse = fetch(Warehouse, command.warehouse_id)
        line = warehouse.add_stock(
            command.product_id,
            command.quantity,
            variant_id=command.variant_id,
            tags=json.loads(command.tags) if command.tags else None,
            reference_type=command.reference_type or "manual",
            reference_id=command.reference_id,
            actor=command.actor,
        )
        current_domain.repository_for(Warehouse).add(warehouse)
        logger.info(
            "stock_added",
            warehouse_id=str(warehouse.id),
            product_id=command.product_id,
            variant_id=command.variant_id,
            quantity=command.quantity,
            actor=command.actor,
        )
        return line

    @handle(AdjustStock)
    def adjust_stock(self, command):
        warehouse = fetch(Warehouse, command.warehouse_id)
        warehouse.adjust_stock(
            command.product_id,
            command.quantity_change,
            variant_id=command.variant_id,
            reason=command.reason,
            actor=command.actor,
        )
        current_domain.repository_for(Warehouse).add(warehouse)
        logger.info(
            "stock_adjusted",
            warehouse_id=str(warehouse.id),
            product_id=command.product_id,
            quantity_change=command.quantity_change,
            reason=command.reason,
            actor=command.actor,
        )
        return warehouse.find_line(command.product_id, command.variant_id)
