"""Read-only queries over the movement log, including drift detection.

Drift is the difference between a stock line's on-hand quantity and the
signed sum of the movements recorded for it. It only surfaces data-quality
problems (lost movement writes, manual edits); nothing here corrects stock.
"""

from dataclasses import dataclass
from datetime import datetime

from protean.utils.globals import current_domain

from warehousing.domain import logger
from warehousing.movement.movement import StockMovement
from warehousing.persistence import collect_all, fetch
from warehousing.warehouse.warehouse import Warehouse, normalize_variant


@dataclass(frozen=True)
class Drift:
    """Result of comparing one stock line with its movement ledger."""

    warehouse_id: str
    product_id: str
    variant_id: str | None
    recorded_quantity: int
    ledger_quantity: int

    @property
    def difference(self) -> int:
        return self.recorded_quantity - self.ledger_quantity


def movements(
    product_id: str | None = None,
    warehouse_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    variant_id: str | None = None,
    limit: int | None = None,
) -> list[StockMovement]:
    """Movement entries matching every given filter, oldest first.

    ``start`` is inclusive and ``end`` exclusive.
    """
    filters = {}
    if product_id:
        filters["product_id"] = str(product_id)
    if warehouse_id:
        filters["warehouse_id"] = str(warehouse_id)
    if start:
        filters["occurred_at__gte"] = start
    if end:
        filters["occurred_at__lt"] = end

    query = current_domain.repository_for(StockMovement)._dao.query
    if filters:
        query = query.filter(**filters)
    entries = collect_all(query)
    if variant_id is not None:
        entries = [m for m in entries if normalize_variant(m.variant_id) == normalize_variant(variant_id)]
    entries.sort(key=lambda m: m.occurred_at)
    return entries[:limit] if limit else entries


def ledger_quantity(warehouse_id: str, product_id: str, variant_id: str | None = None) -> int:
    """On-hand quantity reconstructed from the movement log alone."""
    return sum(
        m.signed_quantity
        for m in movements(product_id=product_id, warehouse_id=warehouse_id)
        if normalize_variant(m.variant_id) == normalize_variant(variant_id)
    )


def detect_drift(warehouse_id: str) -> list[Drift]:
    """Stock lines whose on-hand quantity disagrees with the movement log."""
    warehouse = fetch(Warehouse, warehouse_id)

    balances: dict[tuple, int] = {}
    for movement in movements(warehouse_id=warehouse_id):
        key = (str(movement.product_id), normalize_variant(movement.variant_id))
        balances[key] = balances.get(key, 0) + movement.signed_quantity

    drifts = []
    seen = set()
    for line in warehouse.stock_lines or []:
        key = (str(line.product_id), normalize_variant(line.variant_id))
        seen.add(key)
        recorded = line.quantity or 0
        if recorded != balances.get(key, 0):
            drifts.append(Drift(str(warehouse.id), key[0], key[1], recorded, balances.get(key, 0)))

    # Lines pruned from the warehouse must net out to zero in the ledger
    for key, balance in balances.items():
        if key not in seen and balance != 0:
            drifts.append(Drift(str(warehouse.id), key[0], key[1], 0, balance))

    if drifts:
        logger.warning("stock_drift_detected", warehouse_id=str(warehouse.id), lines=len(drifts))
    return drifts
