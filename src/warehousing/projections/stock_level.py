"""Stock level — per warehouse/product/variant snapshot with low-stock status."""

import os
from enum import Enum

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from warehousing.domain import logger, warehousing
from warehousing.persistence import collect_all
from warehousing.warehouse.events import (
    ExpectedReturnCleared,
    ExpectedReturnMarked,
    ReservationReleased,
    ReturnReceived,
    StockAdded,
    StockDelivered,
    StockRemoved,
    StockReserved,
)
from warehousing.warehouse.warehouse import Warehouse

DEFAULT_LOW_STOCK_THRESHOLD = 5


class StockStatus(Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


def low_stock_threshold() -> int:
    value = os.getenv("WAREHOUSING_LOW_STOCK_THRESHOLD")
    if value is not None:
        return int(value)
    custom = current_domain.config.get("custom", {}) or {}
    return int(custom.get("low_stock_threshold", DEFAULT_LOW_STOCK_THRESHOLD))


def stock_status(available: int, threshold: int) -> str:
    if available <= 0:
        return StockStatus.OUT_OF_STOCK.value
    if available <= threshold:
        return StockStatus.LOW_STOCK.value
    return StockStatus.IN_STOCK.value


def level_id(warehouse_id, product_id, variant_id=None) -> str:
    return f"{warehouse_id}:{product_id}:{variant_id or '-'}"


@warehousing.projection
class StockLevel:
    level_id = Identifier(identifier=True, required=True)
    warehouse_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(default=0)
    reserved_quantity = Integer(default=0)
    available = Integer(default=0)
    delivered_quantity = Integer(default=0)
    expected_returns = Integer(default=0)
    returned_quantity = Integer(default=0)
    tags = Text()
    stock_status = String(choices=StockStatus, default=StockStatus.OUT_OF_STOCK.value)
    updated_at = DateTime()


def _sync(event, occurred_at):
    """Copy the line's current counters from its warehouse into the read model.

    The row is rebuilt from the warehouse on every event, so a failed write
    is logged and catches up on the line's next event instead of blocking
    the stock change.
    """
    try:
        _write_level(event, occurred_at)
    except Exception as exc:
        logger.warning(
            "stock_level_write_failed",
            warehouse_id=event.warehouse_id,
            product_id=event.product_id,
            variant_id=event.variant_id,
            error=str(exc),
        )


def _write_level(event, occurred_at):
    repo = current_domain.repository_for(StockLevel)
    identifier = level_id(event.warehouse_id, event.product_id, event.variant_id)

    warehouse = current_domain.repository_for(Warehouse).get(event.warehouse_id)
    line = warehouse.find_line(event.product_id, event.variant_id)
    try:
        level = repo.get(identifier)
    except ObjectNotFoundError:
        level = None

    if line is None:
        if level is not None:
            repo._dao.delete(level)
        return

    if level is None:
        level = StockLevel(
            level_id=identifier,
            warehouse_id=event.warehouse_id,
            product_id=event.product_id,
            variant_id=event.variant_id,
        )

    available = line.available
    level.quantity = line.quantity
    level.reserved_quantity = line.reserved_quantity
    level.available = available
    level.delivered_quantity = line.delivered_quantity
    level.expected_returns = line.expected_returns
    level.returned_quantity = line.returned_quantity
    level.tags = line.tags
    level.stock_status = stock_status(available, low_stock_threshold())
    level.updated_at = occurred_at
    repo.add(level)


@warehousing.projector(projector_for=StockLevel, aggregates=[Warehouse])
class StockLevelProjector:
    @on(StockAdded)
    def on_stock_added(self, event):
        _sync(event, event.added_at)

    @on(StockRemoved)
    def on_stock_removed(self, event):
        _sync(event, event.removed_at)

    @on(StockReserved)
    def on_stock_reserved(self, event):
        _sync(event, event.reserved_at)

    @on(ReservationReleased)
    def on_reservation_released(self, event):
        _sync(event, event.released_at)

    @on(StockDelivered)
    def on_stock_delivered(self, event):
        _sync(event, event.delivered_at)

    @on(ExpectedReturnMarked)
    def on_expected_return_marked(self, event):
        _sync(event, event.marked_at)

    @on(ExpectedReturnCleared)
    def on_expected_return_cleared(self, event):
        _sync(event, event.cleared_at)

    @on(ReturnReceived)
    def on_return_received(self, event):
        _sync(event, event.received_at)


def stock_alerts(threshold: int | None = None, warehouse_id: str | None = None) -> list[StockLevel]:
    """Levels at or below the low-stock threshold, emptiest first."""
    threshold = low_stock_threshold() if threshold is None else threshold
    query = current_domain.repository_for(StockLevel)._dao.query
    if warehouse_id:
        query = query.filter(warehouse_id=str(warehouse_id))
    levels = collect_all(query.filter(available__lte=threshold))
    return sorted(levels, key=lambda level: (level.available, str(level.product_id)))
