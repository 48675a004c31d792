"""ReturnRecord aggregate (CQRS) — finalized receipt of returned goods."""

import json
from datetime import UTC, datetime

from protean.fields import DateTime, HasMany, Identifier, Integer, String

from warehousing.domain import warehousing
from warehousing.returns.events import ReturnRecorded
from warehousing.warehouse.warehouse import normalize_variant


@warehousing.entity(part_of="ReturnRecord")
class ReturnedItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True, min_value=1)
    condition = String(max_length=50)


@warehousing.aggregate
class ReturnRecord:
    expected_return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    items = HasMany(ReturnedItem)
    received_by = String(max_length=100)
    received_at = DateTime()

    @classmethod
    def record(
        cls,
        expected_return_id: str,
        order_id: str,
        warehouse_id: str,
        items_data: list[dict],
        actor: str | None = None,
    ):
        now = datetime.now(UTC)
        record = cls(
            expected_return_id=expected_return_id,
            order_id=order_id,
            warehouse_id=warehouse_id,
            received_by=actor,
            received_at=now,
        )
        for item in items_data:
            record.add_items(
                ReturnedItem(
                    product_id=str(item["product_id"]),
                    variant_id=normalize_variant(item.get("variant_id")),
                    quantity=item["quantity"],
                    condition=item.get("condition"),
                )
            )
        record.raise_(
            ReturnRecorded(
                return_id=str(record.id),
                expected_return_id=expected_return_id,
                order_id=order_id,
                warehouse_id=warehouse_id,
                items=json.dumps(items_data),
                received_by=actor,
                received_at=now,
            )
        )
        return record
