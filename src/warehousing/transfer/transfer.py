"""StockTransfer aggregate (CQRS) — record of units moved between two warehouses."""

import json
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String

from warehousing.domain import warehousing
from warehousing.transfer.events import StockTransferred
from warehousing.warehouse.warehouse import normalize_variant


@warehousing.entity(part_of="StockTransfer")
class TransferItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True, min_value=1)


@warehousing.aggregate
class StockTransfer:
    source_warehouse_id = Identifier(required=True)
    target_warehouse_id = Identifier(required=True)
    items = HasMany(TransferItem)
    actor = String(max_length=100)
    transferred_at = DateTime()

    @classmethod
    def record(cls, source_warehouse_id: str, target_warehouse_id: str, items_data: list[dict], actor=None):
        if str(source_warehouse_id) == str(target_warehouse_id):
            raise ValidationError({"target_warehouse_id": ["Source and target warehouses must be different"]})
        if not items_data:
            raise ValidationError({"items": ["A transfer needs at least one item"]})

        transfer = cls(
            source_warehouse_id=source_warehouse_id,
            target_warehouse_id=target_warehouse_id,
            actor=actor,
        )
        # Repeated product/variant lines are merged into one
        merged: dict[tuple, int] = {}
        for item in items_data:
            key = (str(item["product_id"]), normalize_variant(item.get("variant_id")))
            merged[key] = merged.get(key, 0) + item["quantity"]

        for (product_id, variant_id), quantity in merged.items():
            transfer.add_items(TransferItem(product_id=product_id, variant_id=variant_id, quantity=quantity))
        return transfer

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
    def total_quantity(self) -> int:
        return sum(i.quantity for i in (self.items or []))

    def complete(self) -> None:
        self.transferred_at = datetime.now(UTC)
        self.raise_(
            StockTransferred(
                transfer_id=str(self.id),
                source_warehouse_id=str(self.source_warehouse_id),
                target_warehouse_id=str(self.target_warehouse_id),
                items=json.dumps(self.line_items()),
                total_quantity=self.total_quantity,
                actor=self.actor,
                transferred_at=self.transferred_at,
            )
        )
