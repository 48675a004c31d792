"""Domain events for the Warehouse aggregate and its stock lines."""

from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text

from warehousing.domain import warehousing


@warehousing.event(part_of="Warehouse")
class WarehouseCreated:
    """A new warehouse was created."""

    __version__ = 1

    warehouse_id = Identifier(required=True)
    name = String(required=True)
    location = String()
    capacity = Identifier(required=True)  # Stored as string to avoid Integer(0) issue
    created_at = DateTime(required=True)


@warehousing.event(part_of="Warehouse")
class WarehouseUpdated:
    """Warehouse details were updated."""

    __version__ = 1

    warehouse_id = Identifier(required=True)
    name = String(required=True)
    location = String()
    capacity = Identifier(required=True)
    updated_at = DateTime(required=True)


@warehousing.event(part_of="Warehouse")
class WarehouseDeactivated:
    """A warehouse was deactivated."""

    __version__ = 1

    warehouse_id = Identifier(required=True)
    deactivated_at = DateTime(required=True)


@warehousing.event(part_of="Warehouse")
class StockAdded:
    """Units physically entered a warehouse (purchase, transfer in, adjustment)."""

    __version__ = 1

    warehouse_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True)
    previous_quantity = Integer(default=0)
    new_quantity = Integer(default=0)
    reserved_quantity = Integer(default=0)
    movement_type = String(required=True)  # in, transfer_in
    reference_type = String()
    reference_id = Identifier()
    reason = String()
    tags = Text()  # JSON list
    actor = String()
    added_at = DateTime(required=True)


@warehousing.event(part_of="Warehouse")
class StockRemoved:
    """Unreserved units physically left a warehouse (transfer out, adjustment)."""

    __version__ = 1

    warehouse_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True)
    previous_quantity = Integer(default=0)
    new_quantity = Integer(default=0)
    reserved_quantity = Integer(default=0)
    movement_type = String(required=True)  # out, transfer_out
    reference_type = String()
    reference_id = Identifier()
    reason = String()
    line_removed = Boolean(default=False)
    actor = String()
    removed_at = DateTime(required=True)


@warehousing.event(part_of="Warehouse")
class StockReserved:
    """Units were put on hold for a sales order."""

    __version__ = 1

    warehouse_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True)
    quantity_on_hand = Integer(default=0)
    reserved_quantity = Integer(default=0)
    order_id = Identifier()
    reserved_at = DateTime(required=True)


@warehousing.event(part_of="Warehouse")
class ReservationReleased:
    """A hold on units was released (cancellation or rollback)."""

    __version__ = 1

    warehouse_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(default=0)
    quantity_on_hand = Integer(default=0)
    reserved_quantity = Integer(default=0)
    order_id = Identifier()
    released_at = DateTime(required=True)


@warehousing.event(part_of="Warehouse")
class StockDelivered:
    """Reserved units were shipped out to a customer."""

    __version__ = 1

    warehouse_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True)
    previous_quantity = Integer(default=0)
    new_quantity = Integer(default=0)
    reserved_quantity = Integer(default=0)
    delivered_quantity = Integer(default=0)
    reference_type = String()
    reference_id = Identifier()
    actor = String()
    delivered_at = DateTime(required=True)


@warehousing.event(part_of="Warehouse")
class ExpectedReturnMarked:
    """A customer signalled that delivered units will come back."""

    __version__ = 1

    warehouse_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True)
    expected_returns = Integer(default=0)
    reference_id = Identifier()
    marked_at = DateTime(required=True)


@warehousing.event(part_of="Warehouse")
class ExpectedReturnCleared:
    """Expected units were accounted for elsewhere (received at another warehouse)."""

    __version__ = 1

    warehouse_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(default=0)
    expected_returns = Integer(default=0)
    reference_id = Identifier()
    cleared_at = DateTime(required=True)


@warehousing.event(part_of="Warehouse")
class ReturnReceived:
    """Returned units were physically received back into stock."""

    __version__ = 1

    warehouse_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True)
    previous_quantity = Integer(default=0)
    new_quantity = Integer(default=0)
    reserved_quantity = Integer(default=0)
    expected_returns = Integer(default=0)
    returned_quantity = Integer(default=0)
    tags = Text()  # JSON list
    reference_type = String()
    reference_id = Identifier()
    actor = String()
    received_at = DateTime(required=True)
