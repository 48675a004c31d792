"""Domain events for the ExpectedReturn and ReturnRecord aggregates."""

from protean.fields import DateTime, Identifier, String, Text

from warehousing.domain import warehousing


@warehousing.event(part_of="ExpectedReturn")
class ExpectedReturnCreated:
    """A customer announced that delivered goods will come back."""

    __version__ = 1

    expected_return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    origin_warehouse_id = Identifier()
    warehouse_id = Identifier()
    items = Text(required=True)  # JSON: [{product_id, variant_id, quantity}]
    source = String(required=True)
    reason = String()
    created_by = String()
    created_at = DateTime(required=True)


@warehousing.event(part_of="ExpectedReturn")
class ExpectedReturnInTransit:
    """The returning goods are on their way."""

    __version__ = 1

    expected_return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    in_transit_at = DateTime(required=True)


@warehousing.event(part_of="ExpectedReturn")
class ExpectedReturnReceived:
    """The returning goods were physically received."""

    __version__ = 1

    expected_return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    return_id = Identifier(required=True)
    received_at = DateTime(required=True)


@warehousing.event(part_of="ReturnRecord")
class ReturnRecorded:
    """A finalized, condition-tagged record of physically received goods."""

    __version__ = 1

    return_id = Identifier(required=True)
    expected_return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    items = Text(required=True)  # JSON: [{product_id, variant_id, quantity, condition}]
    received_by = String()
    received_at = DateTime(required=True)
