"""Purchase recording and allocation into the stock ledger — commands and handler."""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from warehousing.domain import logger, warehousing
from warehousing.persistence import fetch
from warehousing.purchase.purchase import Purchase
from warehousing.warehouse.warehouse import Warehouse


@warehousing.command(part_of="Purchase")
class CreatePurchase:
    """Record a supplier purchase."""

    supplier = String(required=True, max_length=255)
    items = Text(required=True)  # JSON: [{product_id, variant_id, quantity, unit_cost}]
    warehouse_id = Identifier()
    actor = String(max_length=100)


@warehousing.command(part_of="Purchase")
class ConfirmPurchase:
    """Confirm payment/receipt and allocate the purchased stock."""

    purchase_id = Identifier(required=True)
    warehouse_id = Identifier()  # Falls back to the purchase's designated warehouse
    actor = String(max_length=100)


@warehousing.command(part_of="Purchase")
class CancelPurchase:
    """Cancel a pending purchase."""

    purchase_id = Identifier(required=True)
    reason = String(max_length=500)
    actor = String(max_length=100)


@warehousing.command_handler(part_of=Purchase)
class PurchaseAllocationHandler:
    @handle(CreatePurchase)
    def create_purchase(self, command):
        items = json.loads(command.items) if isinstance(command.items, str) else command.items
        purchase = Purchase.create(
            supplier=command.supplier,
            items_data=items,
            warehouse_id=command.warehouse_id,
            actor=command.actor,
        )
        current_domain.repository_for(Purchase).add(purchase)
        logger.info(
            "purchase_created",
            purchase_id=str(purchase.id),
            supplier=command.supplier,
            total_quantity=purchase.total_quantity,
            actor=command.actor,
        )
        return str(purchase.id)

    @handle(ConfirmPurchase)
    def confirm_purchase(self, command):
        purchase = fetch(Purchase, command.purchase_id)
        purchase.assert_can_confirm()

        warehouse_id = command.warehouse_id or purchase.warehouse_id
        if not warehouse_id:
            raise ValidationError({"warehouse_id": ["A warehouse is required to receive a purchase"]})
        warehouse = fetch(Warehouse, warehouse_id)

        # Whole purchase must fit before any line is added
        warehouse.assert_can_accept(purchase.total_quantity)
        for item in purchase.line_items():
            warehouse.add_stock(
                item["product_id"],
                item["quantity"],
                variant_id=item["variant_id"],
                reference_type="purchase",
                reference_id=str(purchase.id),
                actor=command.actor,
            )
        purchase.confirm(str(warehouse.id), actor=command.actor)

        current_domain.repository_for(Warehouse).add(warehouse)
        current_domain.repository_for(Purchase).add(purchase)
        logger.info(
            "purchase_received",
            purchase_id=str(purchase.id),
            warehouse_id=str(warehouse.id),
            total_quantity=purchase.total_quantity,
            actor=command.actor,
        )
        return purchase

    @handle(CancelPurchase)
    def cancel_purchase(self, command):
        purchase = fetch(Purchase, command.purchase_id)
        purchase.cancel(reason=command.reason, actor=command.actor)
        current_domain.repository_for(Purchase).add(purchase)
        logger.info("purchase_cancelled", purchase_id=str(purchase.id), actor=command.actor)
        return purchase
