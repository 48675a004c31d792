"""Stock transfer between warehouses — command and handler.

Every precondition on both sides is checked before either warehouse is
touched, so a rejected transfer leaves both exactly as they were.
"""

import json

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from warehousing.domain import logger, warehousing
from warehousing.persistence import fetch
from warehousing.transfer.transfer import StockTransfer
from warehousing.warehouse.warehouse import Warehouse


@warehousing.command(part_of="StockTransfer")
class TransferStock:
    """Move units of one or more product/variants between two warehouses."""

    source_warehouse_id = Identifier(required=True)
    target_warehouse_id = Identifier(required=True)
    items = Text(required=True)  # JSON: [{product_id, variant_id, quantity}]
    actor = String(max_length=100)


@warehousing.command_handler(part_of=StockTransfer)
class StockTransferHandler:
    @handle(TransferStock)
    def transfer_stock(self, command):
        items = json.loads(command.items) if isinstance(command.items, str) else command.items
        transfer = StockTransfer.record(
            command.source_warehouse_id,
            command.target_warehouse_id,
            items,
            actor=command.actor,
        )

        source = fetch(Warehouse, command.source_warehouse_id)
        target = fetch(Warehouse, command.target_warehouse_id)

        for item in transfer.line_items():
            source.assert_can_release(item["product_id"], item["quantity"], variant_id=item["variant_id"])
        target.assert_can_accept(transfer.total_quantity)

        for item in transfer.line_items():
            line = source.find_line(item["product_id"], item["variant_id"])
            tags = line.tag_list
            source.remove_stock(
                item["product_id"],
                item["quantity"],
                variant_id=item["variant_id"],
                movement_type="transfer_out",
                reference_type="transfer",
                reference_id=str(transfer.id),
                actor=command.actor,
            )
            target.add_stock(
                item["product_id"],
                item["quantity"],
                variant_id=item["variant_id"],
                tags=tags,
                movement_type="transfer_in",
                reference_type="transfer",
                reference_id=str(transfer.id),
                actor=command.actor,
            )
        transfer.complete()

        current_domain.repository_for(Warehouse).add(source)
        current_domain.repository_for(Warehouse).add(target)
        current_domain.repository_for(StockTransfer).add(transfer)
        logger.info(
            "stock_transferred",
            transfer_id=str(transfer.id),
            source_warehouse_id=str(source.id),
            target_warehouse_id=str(target.id),
            total_quantity=transfer.total_quantity,
            actor=command.actor,
        )
        return transfer
