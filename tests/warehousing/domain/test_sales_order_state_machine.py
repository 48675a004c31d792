"""Tests for the SalesOrder state machine and the Shipment that follows it."""

import pytest
from protean.exceptions import ValidationError
from warehousing.exceptions import InvalidTransition
from warehousing.sales.events import SalesOrderCreated, SalesOrderStatusChanged
from warehousing.sales.order import OrderStatus, SalesOrder
from warehousing.sales.shipment import Shipment, ShipmentStatus


def _make_order(**overrides):
    defaults = {
        "customer_name": "Jane Doe",
        "items_data": [
            {"product_id": "prod-001", "variant_id": "var-001", "quantity": 2, "unit_price": 15.0},
            {"product_id": "prod-002", "quantity": 1, "unit_price": 5.0},
        ],
        "customer_contact": "jane@example.com",
        "actor": "sales",
    }
    defaults.update(overrides)
    return SalesOrder.create(**defaults)


def _delivered_order():
    order = _make_order()
    order.confirm()
    order.mark_dispatched("wh-001", "shp-001")
    order.mark_delivered()
    return order


class TestSalesOrderCreation:
    def test_create_is_pending(self):
        order = _make_order()
        assert order.status == OrderStatus.PENDING.value
        assert order.total_amount == 35.0
        assert isinstance(order._events[0], SalesOrderCreated)

    def test_create_requires_items(self):
        with pytest.raises(ValidationError):
            _make_order(items_data=[])

    def test_ordered_quantity(self):
        order = _make_order()
        assert order.ordered_quantity("prod-001", "var-001") == 2
        assert order.ordered_quantity("prod-001") == 0
        assert order.ordered_quantity("prod-002", "") == 1


class TestBeginTransition:
    def test_legal_move(self):
        order = _make_order()
        assert order.begin_transition("confirmed") is True

    def test_same_state_is_noop(self):
        order = _make_order()
        assert order.begin_transition(OrderStatus.PENDING) is False

    def test_skipping_states_is_invalid(self):
        order = _make_order()
        with pytest.raises(InvalidTransition) as exc:
            order.begin_transition("delivered")
        assert exc.value.current == "pending"
        assert exc.value.target == "delivered"

    def test_unknown_state_is_invalid(self):
        order = _make_order()
        with pytest.raises(InvalidTransition):
            order.begin_transition("teleported")

    @pytest.mark.parametrize("target", ["confirmed", "dispatched", "delivered", "expected_return"])
    def test_cancelled_is_terminal(self, target):
        order = _make_order()
        order.cancel(reason="changed mind")
        with pytest.raises(InvalidTransition):
            order.begin_transition(target)

    def test_delivered_order_cannot_be_cancelled(self):
        order = _delivered_order()
        with pytest.raises(InvalidTransition):
            order.begin_transition("cancelled")


class TestTransitions:
    def test_full_path_records_history(self):
        order = _delivered_order()
        order.mark_expected_return("er-001", reason="wrong size")
        order.mark_returned("ret-001", actor="clerk")

        assert order.status == OrderStatus.RETURNED.value
        assert [h["to"] for h in order.history] == [
            "confirmed",
            "dispatched",
            "delivered",
            "expected_return",
            "returned",
        ]
        assert order.history[-1]["actor"] == "clerk"
        assert order.return_id == "ret-001"
        assert order.return_reason == "wrong size"

    def test_dispatch_records_references(self):
        order = _make_order()
        order.confirm()
        order.mark_dispatched("wh-001", "shp-001", actor="picker")
        assert order.warehouse_id == "wh-001"
        assert order.shipment_id == "shp-001"
        assert order.dispatched_at is not None

        event = order._events[-1]
        assert isinstance(event, SalesOrderStatusChanged)
        assert event.from_status == "confirmed"
        assert event.to_status == "dispatched"
        assert event.shipment_id == "shp-001"

    def test_cancel_records_reason(self):
        order = _make_order()
        order.confirm()
        order.cancel(reason="fraud check")
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancellation_reason == "fraud check"
        assert order.cancelled_at is not None

    def test_repeating_a_transition_method_is_invalid(self):
        order = _make_order()
        order.confirm()
        with pytest.raises(InvalidTransition):
            order.confirm()


class TestShipment:
    def _dispatch(self):
        return Shipment.dispatch(
            order_id="ord-001",
            warehouse_id="wh-001",
            items_data=[{"product_id": "prod-001", "variant_id": None, "quantity": 2}],
            tracking_number="TRK-1",
            carrier="FastShip",
        )

    def test_dispatch_creates_dispatched_shipment(self):
        shipment = self._dispatch()
        assert shipment.status == ShipmentStatus.DISPATCHED.value
        assert shipment.tracking_number == "TRK-1"
        assert shipment.line_items()[0]["quantity"] == 2

    def test_delivery_stamps_date(self):
        shipment = self._dispatch()
        shipment.mark_delivered()
        assert shipment.status == ShipmentStatus.DELIVERED.value
        assert shipment.delivery_date is not None

    def test_return_requires_delivery(self):
        shipment = self._dispatch()
        with pytest.raises(InvalidTransition):
            shipment.mark_returned()

    def test_cancel_dispatched(self):
        shipment = self._dispatch()
        shipment.cancel()
        assert shipment.status == ShipmentStatus.CANCELLED.value
