"""Application tests for warehouse management and stock commands."""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError
from warehousing.exceptions import CapacityExceeded, InsufficientStock, InvalidTransition, NotFound
from warehousing.warehouse.management import CreateWarehouse, DeactivateWarehouse, UpdateWarehouse
from warehousing.warehouse.stocking import AddStock, AdjustStock
from warehousing.warehouse.warehouse import Warehouse


def _create_warehouse(**overrides):
    defaults = {"name": "Main Warehouse", "location": "Pune", "capacity": 100}
    defaults.update(overrides)
    return current_domain.process(CreateWarehouse(**defaults), asynchronous=False)


def _add_stock(warehouse_id, quantity=50, **overrides):
    defaults = {
        "warehouse_id": warehouse_id,
        "product_id": "prod-001",
        "variant_id": "var-001",
        "quantity": quantity,
    }
    defaults.update(overrides)
    return current_domain.process(AddStock(**defaults), asynchronous=False)


def _get(warehouse_id):
    return current_domain.repository_for(Warehouse).get(warehouse_id)


class TestWarehouseManagement:
    def test_create_persists(self):
        warehouse_id = _create_warehouse()
        warehouse = _get(warehouse_id)
        assert warehouse.name == "Main Warehouse"
        assert warehouse.capacity == 100
        assert warehouse.is_active

    def test_update_persists(self):
        warehouse_id = _create_warehouse()
        current_domain.process(
            UpdateWarehouse(warehouse_id=warehouse_id, location="Mumbai", capacity=150),
            asynchronous=False,
        )
        warehouse = _get(warehouse_id)
        assert warehouse.location == "Mumbai"
        assert warehouse.capacity == 150
        assert warehouse.name == "Main Warehouse"

    def test_update_below_usage_fails(self):
        warehouse_id = _create_warehouse()
        _add_stock(warehouse_id, quantity=60)
        with pytest.raises(CapacityExceeded):
            current_domain.process(UpdateWarehouse(warehouse_id=warehouse_id, capacity=50), asynchronous=False)
        assert _get(warehouse_id).capacity == 100

    def test_deactivate_persists(self):
        warehouse_id = _create_warehouse()
        current_domain.process(DeactivateWarehouse(warehouse_id=warehouse_id), asynchronous=False)
        assert _get(warehouse_id).is_active is False

    def test_unknown_warehouse_is_not_found(self):
        with pytest.raises(NotFound) as exc:
            current_domain.process(DeactivateWarehouse(warehouse_id="wh-404"), asynchronous=False)
        assert exc.value.entity == "Warehouse"
        assert exc.value.identifier == "wh-404"

    def test_find_active_reads_every_page(self, monkeypatch):
        monkeypatch.setattr("warehousing.persistence.PAGE_SIZE", 2)
        created = [_create_warehouse(name=f"Warehouse {i}") for i in range(5)]
        current_domain.process(DeactivateWarehouse(warehouse_id=created[0]), asynchronous=False)

        active = current_domain.repository_for(Warehouse).find_active()
        assert sorted(str(w.id) for w in active) == sorted(created[1:])


class TestAddStockCommand:
    def test_add_persists(self):
        warehouse_id = _create_warehouse()
        line = _add_stock(warehouse_id, quantity=50, tags='["new"]')
        assert line.quantity == 50

        stored = _get(warehouse_id).find_line("prod-001", "var-001")
        assert stored.quantity == 50
        assert stored.tag_list == ["new"]

    def test_add_over_capacity_leaves_stock_untouched(self):
        warehouse_id = _create_warehouse(capacity=60)
        _add_stock(warehouse_id, quantity=50)
        with pytest.raises(CapacityExceeded) as exc:
            _add_stock(warehouse_id, quantity=11)
        assert "Available space: 10" in str(exc.value.messages)
        assert _get(warehouse_id).total_quantity == 50

    def test_add_requires_positive_quantity(self):
        warehouse_id = _create_warehouse()
        with pytest.raises(ValidationError):
            _add_stock(warehouse_id, quantity=0)

    def test_inactive_warehouse_rejects_stock(self):
        warehouse_id = _create_warehouse()
        current_domain.process(DeactivateWarehouse(warehouse_id=warehouse_id), asynchronous=False)
        with pytest.raises(InvalidTransition):
            _add_stock(warehouse_id, quantity=1)


class TestAdjustStockCommand:
    def test_positive_adjustment_persists(self):
        warehouse_id = _create_warehouse()
        _add_stock(warehouse_id, quantity=10)
        line = current_domain.process(
            AdjustStock(
                warehouse_id=warehouse_id,
                product_id="prod-001",
                variant_id="var-001",
                quantity_change=5,
                reason="recount",
            ),
            asynchronous=False,
        )
        assert line.quantity == 15
        assert _get(warehouse_id).find_line("prod-001", "var-001").quantity == 15

    def test_negative_adjustment_to_zero_prunes_line(self):
        warehouse_id = _create_warehouse()
        _add_stock(warehouse_id, quantity=10)
        line = current_domain.process(
            AdjustStock(
                warehouse_id=warehouse_id,
                product_id="prod-001",
                variant_id="var-001",
                quantity_change=-10,
                reason="write-off",
            ),
            asynchronous=False,
        )
        assert line is None
        assert _get(warehouse_id).find_line("prod-001", "var-001") is None

    def test_negative_adjustment_beyond_stock_fails(self):
        warehouse_id = _create_warehouse()
        _add_stock(warehouse_id, quantity=10)
        with pytest.raises(InsufficientStock):
            current_domain.process(
                AdjustStock(
                    warehouse_id=warehouse_id,
                    product_id="prod-001",
                    variant_id="var-001",
                    quantity_change=-11,
                    reason="write-off",
                ),
                asynchronous=False,
            )
        assert _get(warehouse_id).find_line("prod-001", "var-001").quantity == 10

    def test_adjustment_requires_reason(self):
        warehouse_id = _create_warehouse()
        with pytest.raises(ValidationError):
            AdjustStock(warehouse_id=warehouse_id, product_id="prod-001", quantity_change=1)
