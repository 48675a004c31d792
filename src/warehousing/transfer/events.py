"""Domain events for the StockTransfer aggregate."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from warehousing.domain import warehousing


@warehousing.event(part_of="StockTransfer")
class StockTransferred:
    """Units moved from one warehouse to another."""

    __version__ = 1

    transfer_id = Identifier(required=True)
    source_warehouse_id = Identifier(required=True)
    target_warehouse_id = Identifier(required=True)
    items = Text(required=True)  # JSON: [{product_id, variant_id, quantity}]
    total_quantity = Integer(default=0)
    actor = String()
    transferred_at = DateTime(required=True)
