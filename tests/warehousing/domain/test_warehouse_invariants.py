"""Warehouse invariants: reservations never exceed stock, stock never exceeds capacity."""

import pytest
from protean import atomic_change
from protean.exceptions import ValidationError
from warehousing.warehouse.warehouse import Warehouse


def _stocked_warehouse(quantity=10, capacity=20):
    warehouse = Warehouse.create(name="Main Warehouse", capacity=capacity)
    warehouse.add_stock("prod-001", quantity)
    return warehouse


class TestReservedWithinQuantity:
    def test_reserved_above_quantity_is_rejected(self):
        warehouse = _stocked_warehouse(quantity=10)
        line = warehouse.find_line("prod-001")
        with pytest.raises(ValidationError) as exc:
            with atomic_change(warehouse):
                line.reserved_quantity = 11
        assert "reserved_quantity" in exc.value.messages

    def test_reserved_equal_to_quantity_is_allowed(self):
        warehouse = _stocked_warehouse(quantity=10)
        warehouse.reserve("prod-001", 10)
        assert warehouse.find_line("prod-001").available == 0

    def test_counters_cannot_go_negative(self):
        warehouse = _stocked_warehouse(quantity=10)
        line = warehouse.find_line("prod-001")
        with pytest.raises(ValidationError):
            line.quantity = -1


class TestCapacity:
    def test_usage_above_capacity_is_rejected(self):
        warehouse = _stocked_warehouse(quantity=10, capacity=20)
        line = warehouse.find_line("prod-001")
        with pytest.raises(ValidationError) as exc:
            with atomic_change(warehouse):
                line.quantity = 21
        assert "capacity" in exc.value.messages

    def test_capacity_counts_every_line(self):
        warehouse = _stocked_warehouse(quantity=10, capacity=20)
        warehouse.add_stock("prod-002", 10, variant_id="var-001")
        assert warehouse.total_quantity == 20
        assert warehouse.available_capacity == 0
