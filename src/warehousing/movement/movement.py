"""Stock movement log — append-only audit trail of every physical stock change.

Entries are derived from Warehouse events after the warehouse itself has
been written. A failed entry write is logged as a data-quality warning and
never rolls back the stock change it describes.
"""

import uuid
from enum import Enum

from protean.core.projector import on
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from warehousing.domain import logger, warehousing
from warehousing.warehouse.events import ReturnReceived, StockAdded, StockDelivered, StockRemoved
from warehousing.warehouse.warehouse import Warehouse


class MovementType(Enum):
    IN = "in"
    OUT = "out"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"


INBOUND_TYPES = {MovementType.IN.value, MovementType.TRANSFER_IN.value}


@warehousing.projection
class StockMovement:
    movement_id = Identifier(identifier=True, required=True)
    warehouse_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    movement_type = String(required=True, choices=MovementType)
    quantity = Integer(required=True, min_value=1)
    previous_quantity = Integer(default=0)
    new_quantity = Integer(default=0)
    reference_type = String(max_length=50)
    reference_id = Identifier()
    reason = String(max_length=255)
    actor = String(max_length=100)
    occurred_at = DateTime(required=True)

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.movement_type in INBOUND_TYPES else -self.quantity


def _add_entry(event, movement_type, occurred_at, reason=None):
    try:
        current_domain.repository_for(StockMovement).add(
            StockMovement(
                movement_id=str(uuid.uuid4()),
                warehouse_id=event.warehouse_id,
                product_id=event.product_id,
                variant_id=event.variant_id,
                movement_type=movement_type,
                quantity=event.quantity,
                previous_quantity=event.previous_quantity,
                new_quantity=event.new_quantity,
                reference_type=event.reference_type,
                reference_id=event.reference_id,
                reason=reason,
                actor=event.actor,
                occurred_at=occurred_at,
            )
        )
    except Exception as exc:
        logger.warning(
            "stock_movement_write_failed",
            warehouse_id=event.warehouse_id,
            product_id=event.product_id,
            variant_id=event.variant_id,
            movement_type=movement_type,
            quantity=event.quantity,
            reference_type=event.reference_type,
            reference_id=event.reference_id,
            error=str(exc),
        )


@warehousing.projector(projector_for=StockMovement, aggregates=[Warehouse])
class StockMovementProjector:
    @on(StockAdded)
    def on_stock_added(self, event):
        _add_entry(event, event.movement_type, event.added_at, reason=event.reason)

    @on(StockRemoved)
    def on_stock_removed(self, event):
        _add_entry(event, event.movement_type, event.removed_at, reason=event.reason)

    @on(StockDelivered)
    def on_stock_delivered(self, event):
        _add_entry(event, MovementType.OUT.value, event.delivered_at)

    @on(ReturnReceived)
    def on_return_received(self, event):
        _add_entry(event, MovementType.IN.value, event.received_at)
