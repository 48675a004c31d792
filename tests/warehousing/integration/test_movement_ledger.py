"""Integration tests for the stock movement log and drift detection."""

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

from protean import current_domain
from warehousing import operations
from warehousing.movement.movement import MovementType
from warehousing.warehouse.warehouse import Warehouse


def _stocked_warehouse(quantity=50, capacity=100):
    warehouse_id = operations.create_warehouse("Main Warehouse", capacity=capacity)
    operations.add_stock(warehouse_id, "prod-001", quantity, actor="alice")
    return warehouse_id


def _delivered_order(warehouse_id, quantity):
    order_id = operations.create_sales_order("Jane Doe", [{"product_id": "prod-001", "quantity": quantity}])
    for target in ("confirmed", "dispatched", "delivered"):
        operations.transition_sales_order(order_id, target, {"warehouse_id": warehouse_id})
    return order_id


class TestMovementEntries:
    def test_add_stock_records_in_movement(self):
        warehouse_id = _stocked_warehouse(quantity=50)
        entries = operations.movements(product_id="prod-001", warehouse_id=warehouse_id)

        assert len(entries) == 1
        entry = entries[0]
        assert entry.movement_type == MovementType.IN.value
        assert entry.quantity == 50
        assert entry.previous_quantity == 0
        assert entry.new_quantity == 50
        assert entry.reference_type == "manual"
        assert entry.actor == "alice"

    def test_reservation_records_no_movement(self):
        warehouse_id = _stocked_warehouse()
        order_id = operations.create_sales_order("Jane Doe", [{"product_id": "prod-001", "quantity": 5}])
        operations.transition_sales_order(order_id, "confirmed")
        operations.transition_sales_order(order_id, "dispatched", {"warehouse_id": warehouse_id})
        operations.transition_sales_order(order_id, "cancelled")

        assert len(operations.movements(warehouse_id=warehouse_id)) == 1

    def test_delivery_records_out_movement(self):
        warehouse_id = _stocked_warehouse()
        order_id = _delivered_order(warehouse_id, 10)

        out = operations.movements(warehouse_id=warehouse_id)[-1]
        assert out.movement_type == MovementType.OUT.value
        assert out.quantity == 10
        assert out.reference_type == "sales"
        assert out.reference_id == order_id

    def test_return_records_in_movement(self):
        warehouse_id = _stocked_warehouse()
        order_id = _delivered_order(warehouse_id, 10)
        operations.transition_sales_order(order_id, "expected_return")
        operations.transition_sales_order(order_id, "returned")

        last = operations.movements(warehouse_id=warehouse_id)[-1]
        assert last.movement_type == MovementType.IN.value
        assert last.reference_type == "return"
        assert last.quantity == 10

    def test_transfer_records_both_sides(self):
        source_id = _stocked_warehouse(quantity=20)
        target_id = operations.create_warehouse("Annex", capacity=50)
        transfer = operations.transfer_stock(source_id, target_id, [{"product_id": "prod-001", "quantity": 5}])

        out = operations.movements(warehouse_id=source_id)[-1]
        assert out.movement_type == MovementType.TRANSFER_OUT.value
        assert out.reference_id == str(transfer.id)

        into = operations.movements(warehouse_id=target_id)
        assert [m.movement_type for m in into] == [MovementType.TRANSFER_IN.value]

    def test_purchase_and_adjustment_references(self):
        warehouse_id = operations.create_warehouse("Main Warehouse", capacity=100)
        purchase_id = operations.create_purchase("Acme", [{"product_id": "prod-001", "quantity": 20}])
        operations.confirm_purchase(purchase_id, warehouse_id=warehouse_id)
        operations.adjust_stock(warehouse_id, "prod-001", -2, reason="shrinkage")

        entries = operations.movements(warehouse_id=warehouse_id)
        assert [(m.reference_type, m.signed_quantity) for m in entries] == [("purchase", 20), ("adjustment", -2)]
        assert entries[0].reference_id == purchase_id
        assert entries[1].reason == "shrinkage"


class TestMovementQueries:
    def test_time_window_filters(self):
        warehouse_id = _stocked_warehouse()
        now = datetime.now(UTC)

        assert len(operations.movements(warehouse_id=warehouse_id, start=now - timedelta(minutes=5))) == 1
        assert operations.movements(warehouse_id=warehouse_id, start=now + timedelta(minutes=5)) == []
        assert operations.movements(warehouse_id=warehouse_id, end=now - timedelta(minutes=5)) == []

    def test_limit_and_order(self):
        warehouse_id = _stocked_warehouse(quantity=10)
        operations.add_stock(warehouse_id, "prod-001", 5)
        operations.add_stock(warehouse_id, "prod-001", 1)

        entries = operations.movements(warehouse_id=warehouse_id, limit=2)
        assert [m.quantity for m in entries] == [10, 5]

    def test_product_filter(self):
        warehouse_id = _stocked_warehouse()
        operations.add_stock(warehouse_id, "prod-002", 3)
        assert [m.product_id for m in operations.movements(product_id="prod-002")] == ["prod-002"]


class TestDrift:
    def test_ledger_matches_stock(self):
        warehouse_id = _stocked_warehouse(quantity=50)
        _delivered_order(warehouse_id, 10)
        operations.adjust_stock(warehouse_id, "prod-001", 3, reason="found")

        assert operations.ledger_quantity(warehouse_id, "prod-001") == 43
        assert operations.detect_drift(warehouse_id) == []

    def test_lost_movement_write_is_reported_as_drift(self):
        warehouse_id = _stocked_warehouse(quantity=50)

        with patch("warehousing.movement.movement.current_domain") as domain:
            domain.repository_for.return_value.add.side_effect = RuntimeError("store unavailable")
            operations.add_stock(warehouse_id, "prod-001", 7)

        assert operations.stock_line(warehouse_id, "prod-001").quantity == 57
        drifts = operations.detect_drift(warehouse_id)
        assert len(drifts) == 1
        assert drifts[0].recorded_quantity == 57
        assert drifts[0].ledger_quantity == 50
        assert drifts[0].difference == 7

    def test_manual_edit_is_reported_as_drift(self):
        warehouse_id = _stocked_warehouse(quantity=50)
        repo = current_domain.repository_for(Warehouse)
        warehouse = repo.get(warehouse_id)
        warehouse.find_line("prod-001").quantity = 45
        repo.add(warehouse)

        drift = operations.detect_drift(warehouse_id)[0]
        assert drift.difference == -5

    def test_pruned_line_must_net_to_zero(self):
        warehouse_id = _stocked_warehouse(quantity=5)
        operations.adjust_stock(warehouse_id, "prod-001", -5, reason="write-off")
        assert operations.stock_line(warehouse_id, "prod-001") is None
        assert operations.detect_drift(warehouse_id) == []

    def test_pruned_line_with_open_ledger_balance_is_reported(self):
        warehouse_id = _stocked_warehouse(quantity=5)

        with patch("warehousing.movement.movement.current_domain") as domain:
            domain.repository_for.return_value.add.side_effect = RuntimeError("store unavailable")
            operations.adjust_stock(warehouse_id, "prod-001", -5, reason="write-off")

        drift = operations.detect_drift(warehouse_id)[0]
        assert drift.recorded_quantity == 0
        assert drift.ledger_quantity == 5
