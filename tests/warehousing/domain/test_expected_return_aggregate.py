"""Tests for the ExpectedReturn and ReturnRecord aggregates."""

import pytest
from protean.exceptions import ValidationError
from warehousing.exceptions import AlreadyProcessed, InvalidTransition
from warehousing.returns.events import ExpectedReturnCreated, ExpectedReturnInTransit, ExpectedReturnReceived
from warehousing.returns.expected_return import ExpectedReturn, ExpectedReturnStatus, ReturnSource
from warehousing.returns.return_record import ReturnRecord


def _make_expected_return(**overrides):
    defaults = {
        "order_id": "ord-001",
        "items_data": [{"product_id": "prod-001", "variant_id": "var-001", "quantity": 3}],
        "origin_warehouse_id": "wh-001",
        "reason": "wrong size",
    }
    defaults.update(overrides)
    return ExpectedReturn.create(**defaults)


class TestExpectedReturnCreation:
    def test_create_is_pending_and_open(self):
        expected = _make_expected_return()
        assert expected.status == ExpectedReturnStatus.PENDING.value
        assert expected.source == ReturnSource.ORDER_FLAG.value
        assert expected.is_open
        assert isinstance(expected._events[0], ExpectedReturnCreated)

    def test_target_defaults_to_origin(self):
        expected = _make_expected_return()
        assert expected.warehouse_id == "wh-001"

    def test_explicit_target(self):
        expected = _make_expected_return(warehouse_id="wh-002", source=ReturnSource.DIRECT.value)
        assert expected.warehouse_id == "wh-002"
        assert expected.origin_warehouse_id == "wh-001"
        assert expected.source == "direct"

    def test_requires_items(self):
        with pytest.raises(ValidationError):
            _make_expected_return(items_data=[])


class TestExpectedReturnTransitions:
    def test_pending_to_in_transit_to_received(self):
        expected = _make_expected_return()
        expected.mark_in_transit()
        assert expected.status == ExpectedReturnStatus.IN_TRANSIT.value
        assert isinstance(expected._events[-1], ExpectedReturnInTransit)

        expected.mark_received("wh-001", "ret-001")
        assert expected.status == ExpectedReturnStatus.RECEIVED.value
        assert expected.received_into == "wh-001"
        assert expected.return_id == "ret-001"
        assert not expected.is_open
        assert isinstance(expected._events[-1], ExpectedReturnReceived)

    def test_pending_can_be_received_directly(self):
        expected = _make_expected_return()
        expected.mark_received("wh-001", "ret-001")
        assert expected.status == ExpectedReturnStatus.RECEIVED.value

    def test_in_transit_twice_is_invalid(self):
        expected = _make_expected_return()
        expected.mark_in_transit()
        with pytest.raises(InvalidTransition):
            expected.mark_in_transit()

    def test_second_receipt_is_already_processed(self):
        expected = _make_expected_return()
        expected.mark_received("wh-001", "ret-001")
        with pytest.raises(AlreadyProcessed):
            expected.assert_can_receive()


class TestReturnRecord:
    def test_record_keeps_conditions(self):
        record = ReturnRecord.record(
            expected_return_id="er-001",
            order_id="ord-001",
            warehouse_id="wh-001",
            items_data=[{"product_id": "prod-001", "variant_id": "", "quantity": 3, "condition": "damaged"}],
            actor="clerk",
        )
        item = record.items[0]
        assert item.condition == "damaged"
        assert item.variant_id is None
        assert record.received_by == "clerk"
        assert record.received_at is not None
