"""Domain events for the Purchase aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from warehousing.domain import warehousing


@warehousing.event(part_of="Purchase")
class PurchaseCreated:
    """A purchase was recorded, awaiting payment/receipt."""

    __version__ = 1

    purchase_id = Identifier(required=True)
    supplier = String(required=True)
    warehouse_id = Identifier()
    items = Text(required=True)  # JSON: [{product_id, variant_id, quantity, unit_cost}]
    total_amount = Float(default=0.0)
    created_by = String()
    created_at = DateTime(required=True)


@warehousing.event(part_of="Purchase")
class PurchaseReceived:
    """Payment cleared and the purchased stock was allocated to a warehouse."""

    __version__ = 1

    purchase_id = Identifier(required=True)
    warehouse_id = Identifier(required=True)
    total_quantity = Integer(default=0)
    confirmed_by = String()
    received_at = DateTime(required=True)


@warehousing.event(part_of="Purchase")
class PurchaseCancelled:
    """A pending purchase was cancelled before any stock was allocated."""

    __version__ = 1

    purchase_id = Identifier(required=True)
    reason = String()
    cancelled_by = String()
    cancelled_at = DateTime(required=True)
