"""Public entry points of the warehousing core.

Each mutating function wraps one command in ``run_serialized`` so the
documents it touches are locked for the whole read-validate-write and a
lost race is retried. Query functions are read-only.

All functions expect an active warehousing domain context.
"""

import json

from protean.utils.globals import current_domain

from warehousing.concurrency import run_serialized
from warehousing.exceptions import NotFound
from warehousing.movement.ledger import Drift, detect_drift, ledger_quantity, movements
from warehousing.persistence import fetch
from warehousing.projections.stock_level import StockLevel, level_id, stock_alerts
from warehousing.purchase.allocation import CancelPurchase, ConfirmPurchase, CreatePurchase
from warehousing.purchase.purchase import Purchase
from warehousing.returns.expected_return import ExpectedReturn
from warehousing.returns.reconciliation import FlagExpectedReturn, MarkReturnInTransit, ReceiveReturn
from warehousing.sales.creation import CreateSalesOrder
from warehousing.sales.fulfillment import TransitionSalesOrder
from warehousing.sales.order import SalesOrder
from warehousing.transfer.transferring import TransferStock
from warehousing.utils.logging import add_context, clear_context
from warehousing.warehouse.management import CreateWarehouse, DeactivateWarehouse, UpdateWarehouse
from warehousing.warehouse.stocking import AdjustStock, AddStock
from warehousing.warehouse.warehouse import StockLine, Warehouse

__all__ = [
    "Drift",
    "add_stock",
    "adjust_stock",
    "cancel_purchase",
    "confirm_purchase",
    "create_purchase",
    "create_sales_order",
    "create_warehouse",
    "deactivate_warehouse",
    "detect_drift",
    "expected_returns_by_product",
    "flag_expected_return",
    "ledger_quantity",
    "mark_return_in_transit",
    "movements",
    "receive_return",
    "stock_alerts",
    "stock_level",
    "stock_line",
    "stock_lines",
    "transfer_stock",
    "transition_sales_order",
    "update_warehouse",
]


def _process(command):
    add_context(command=type(command).__name__, actor=getattr(command, "actor", None))
    try:
        return current_domain.process(command, asynchronous=False)
    finally:
        clear_context()


def _dumps(value) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else json.dumps(value)


# ---------------------------------------------------------------------------
# Warehouses and stock
# ---------------------------------------------------------------------------
def create_warehouse(name: str, capacity: int, location: str | None = None, actor: str | None = None) -> str:
    return _process(CreateWarehouse(name=name, capacity=capacity, location=location, actor=actor))


def update_warehouse(warehouse_id: str, name=None, location=None, capacity=None, actor=None) -> Warehouse:
    command = UpdateWarehouse(
        warehouse_id=warehouse_id,
        name=name,
        location=location,
        capacity=capacity,
        actor=actor,
    )
    return run_serialized(lambda: _process(command), [warehouse_id])


def deactivate_warehouse(warehouse_id: str, actor: str | None = None) -> Warehouse:
    command = DeactivateWarehouse(warehouse_id=warehouse_id, actor=actor)
    return run_serialized(lambda: _process(command), [warehouse_id])


def add_stock(
    warehouse_id: str,
    product_id: str,
    quantity: int,
    variant_id: str | None = None,
    tags: list[str] | None = None,
    actor: str | None = None,
) -> StockLine:
    command = AddStock(
        warehouse_id=warehouse_id,
        product_id=product_id,
        variant_id=variant_id,
        quantity=quantity,
        tags=_dumps(tags),
        actor=actor,
    )
    return run_serialized(lambda: _process(command), [warehouse_id])


def adjust_stock(
    warehouse_id: str,
    product_id: str,
    quantity_change: int,
    reason: str,
    variant_id: str | None = None,
    actor: str | None = None,
) -> StockLine | None:
    command = AdjustStock(
        warehouse_id=warehouse_id,
        product_id=product_id,
        variant_id=variant_id,
        quantity_change=quantity_change,
        reason=reason,
        actor=actor,
    )
    return run_serialized(lambda: _process(command), [warehouse_id])


def transfer_stock(source_warehouse_id: str, target_warehouse_id: str, items: list[dict], actor: str | None = None):
    command = TransferStock(
        source_warehouse_id=source_warehouse_id,
        target_warehouse_id=target_warehouse_id,
        items=_dumps(items),
        actor=actor,
    )
    return run_serialized(lambda: _process(command), [source_warehouse_id, target_warehouse_id])


# ---------------------------------------------------------------------------
# Purchases
# ---------------------------------------------------------------------------
def create_purchase(supplier: str, items: list[dict], warehouse_id: str | None = None, actor: str | None = None) -> str:
    return _process(CreatePurchase(supplier=supplier, items=_dumps(items), warehouse_id=warehouse_id, actor=actor))


def confirm_purchase(purchase_id: str, warehouse_id: str | None = None, actor: str | None = None) -> Purchase:
    def keys():
        designated = None
        if warehouse_id is None:
            designated = fetch(Purchase, purchase_id).warehouse_id
        return [purchase_id, warehouse_id or designated]

    command = ConfirmPurchase(purchase_id=purchase_id, warehouse_id=warehouse_id, actor=actor)
    return run_serialized(lambda: _process(command), keys)


def cancel_purchase(purchase_id: str, reason: str | None = None, actor: str | None = None) -> Purchase:
    command = CancelPurchase(purchase_id=purchase_id, reason=reason, actor=actor)
    return run_serialized(lambda: _process(command), [purchase_id])


# ---------------------------------------------------------------------------
# Sales orders
# ---------------------------------------------------------------------------
def create_sales_order(
    customer_name: str,
    items: list[dict],
    customer_contact: str | None = None,
    actor: str | None = None,
) -> str:
    return _process(
        CreateSalesOrder(
            customer_name=customer_name,
            customer_contact=customer_contact,
            items=_dumps(items),
            actor=actor,
        )
    )


def _order_documents(order_id: str, extra=()) -> list[str]:
    """Ids of every document a transition of ``order_id`` may write."""
    keys = [order_id, *extra]
    try:
        order = fetch(SalesOrder, order_id)
    except NotFound:
        return keys
    keys.append(order.warehouse_id)

    expected = current_domain.repository_for(ExpectedReturn).find_open_for_order(order_id)
    if expected is not None:
        keys.extend([expected.id, expected.warehouse_id, expected.origin_warehouse_id])
    return keys


def transition_sales_order(
    order_id: str,
    target_state: str,
    payload: dict | None = None,
    actor: str | None = None,
) -> SalesOrder:
    payload = payload or {}
    command = TransitionSalesOrder(
        order_id=order_id,
        target_state=target_state,
        details=_dumps(payload),
        actor=actor,
    )
    return run_serialized(
        lambda: _process(command),
        lambda: _order_documents(order_id, [payload.get("warehouse_id")]),
    )


# ---------------------------------------------------------------------------
# Returns
# ---------------------------------------------------------------------------
def flag_expected_return(
    order_id: str,
    items: list[dict] | None = None,
    warehouse_id: str | None = None,
    reason: str | None = None,
    actor: str | None = None,
) -> ExpectedReturn:
    command = FlagExpectedReturn(
        order_id=order_id,
        items=_dumps(items),
        warehouse_id=warehouse_id,
        reason=reason,
        actor=actor,
    )
    return run_serialized(lambda: _process(command), lambda: _order_documents(order_id, [warehouse_id]))


def mark_return_in_transit(expected_return_id: str, actor: str | None = None) -> ExpectedReturn:
    command = MarkReturnInTransit(expected_return_id=expected_return_id, actor=actor)
    return run_serialized(lambda: _process(command), [expected_return_id])


def receive_return(
    expected_return_id: str,
    warehouse_id: str | None = None,
    item_conditions: list[dict] | None = None,
    actor: str | None = None,
):
    def keys():
        expected = fetch(ExpectedReturn, expected_return_id)
        return [expected_return_id, *_order_documents(expected.order_id, [warehouse_id, expected.warehouse_id])]

    command = ReceiveReturn(
        expected_return_id=expected_return_id,
        warehouse_id=warehouse_id,
        item_conditions=_dumps(item_conditions),
        actor=actor,
    )
    return run_serialized(lambda: _process(command), keys)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def stock_lines(warehouse_id: str) -> list[StockLine]:
    return list(fetch(Warehouse, warehouse_id).stock_lines or [])


def stock_line(warehouse_id: str, product_id: str, variant_id: str | None = None) -> StockLine | None:
    return fetch(Warehouse, warehouse_id).find_line(product_id, variant_id)


def stock_level(warehouse_id: str, product_id: str, variant_id: str | None = None) -> StockLevel | None:
    line = stock_line(warehouse_id, product_id, variant_id)
    if line is None:
        return None
    return current_domain.repository_for(StockLevel).get(level_id(warehouse_id, product_id, variant_id))


def expected_returns_by_product() -> dict[tuple, int]:
    """Units still expected back, keyed by (product_id, variant_id)."""
    summary: dict[tuple, int] = {}
    for expected in current_domain.repository_for(ExpectedReturn).find_open():
        for item in expected.line_items():
            key = (item["product_id"], item["variant_id"])
            summary[key] = summary.get(key, 0) + item["quantity"]
    return summary
