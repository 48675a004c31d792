"""Domain events for the SalesOrder and Shipment aggregates."""

from protean.fields import DateTime, Float, Identifier, String, Text

from warehousing.domain import warehousing


@warehousing.event(part_of="SalesOrder")
class SalesOrderCreated:
    """A sales order was placed."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_name = String(required=True)
    items = Text(required=True)  # JSON: [{product_id, variant_id, variant_name, quantity, unit_price}]
    total_amount = Float(default=0.0)
    created_by = String()
    created_at = DateTime(required=True)


@warehousing.event(part_of="SalesOrder")
class SalesOrderStatusChanged:
    """A sales order moved from one lifecycle state to another."""

    __version__ = 1

    order_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    warehouse_id = Identifier()
    shipment_id = Identifier()
    expected_return_id = Identifier()
    return_id = Identifier()
    reason = String()
    actor = String()
    changed_at = DateTime(required=True)


@warehousing.event(part_of="Shipment")
class ShipmentDispatched:
    """Items of an order left their warehouse."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    items = Text(required=True)  # JSON
    tracking_number = String()
    carrier = String()
    dispatched_at = DateTime(required=True)


@warehousing.event(part_of="Shipment")
class ShipmentDelivered:
    """The customer received the shipment."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    delivery_date = DateTime(required=True)


@warehousing.event(part_of="Shipment")
class ShipmentReturned:
    """The shipped goods came back."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    returned_at = DateTime(required=True)


@warehousing.event(part_of="Shipment")
class ShipmentCancelled:
    """A dispatched shipment was called off before delivery."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    cancelled_at = DateTime(required=True)
