"""Warehouse aggregate (CQRS) — the authoritative stock ledger.

A Warehouse embeds one StockLine per (product, variant). Every physical or
logical stock change goes through a method on this aggregate so that the
counters stay consistent and each change raises exactly one event for the
movement log and read models.

StockLine counters:
    quantity:           Physical units currently held
    reserved_quantity:  Held for dispatched-but-undelivered orders
    delivered_quantity: Cumulative units shipped out to customers
    expected_returns:   Units a customer has announced will come back
    returned_quantity:  Cumulative units physically received back

Invariants:
    0 <= reserved_quantity <= quantity, every counter >= 0
    sum(quantity) <= capacity
"""

import json
from datetime import UTC, datetime

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, Identifier, Integer, String, Text

from warehousing.domain import warehousing
from warehousing.exceptions import CapacityExceeded, InsufficientStock, InvalidTransition
from warehousing.warehouse.events import (
    ExpectedReturnCleared,
    ExpectedReturnMarked,
    ReservationReleased,
    ReturnReceived,
    StockAdded,
    StockDelivered,
    StockRemoved,
    StockReserved,
    WarehouseCreated,
    WarehouseDeactivated,
    WarehouseUpdated,
)

RETURNED_TAG = "returned"


def normalize_variant(variant_id):
    """Absence of a variant is ``None``, never an empty string."""
    if variant_id in (None, ""):
        return None
    return str(variant_id)


def merge_tags(existing, extra):
    """Union of two tag collections, preserving first-seen order."""
    merged = list(existing or [])
    for tag in extra or []:
        if tag and tag not in merged:
            merged.append(tag)
    return merged


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@warehousing.entity(part_of="Warehouse")
class StockLine:
    """Counters for one product/variant within one warehouse."""

    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(default=0, min_value=0)
    reserved_quantity = Integer(default=0, min_value=0)
    delivered_quantity = Integer(default=0, min_value=0)
    expected_returns = Integer(default=0, min_value=0)
    returned_quantity = Integer(default=0, min_value=0)
    tags = Text(default="[]")  # JSON list of condition/provenance labels

    @property
    def available(self) -> int:
        return (self.quantity or 0) - (self.reserved_quantity or 0)

    @property
    def tag_list(self) -> list[str]:
        return json.loads(self.tags) if self.tags else []

    def add_tags(self, tags) -> None:
        self.tags = json.dumps(merge_tags(self.tag_list, tags))

    def matches(self, product_id, variant_id=None) -> bool:
        return str(self.product_id) == str(product_id) and normalize_variant(self.variant_id) == normalize_variant(
            variant_id
        )

    def is_empty(self) -> bool:
        return not any(
            (
                self.quantity,
                self.reserved_quantity,
                self.delivered_quantity,
                self.expected_returns,
                self.returned_quantity,
            )
        )


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@warehousing.aggregate
class Warehouse:
    """A physical location holding stock, bounded by its capacity."""

    name = String(required=True, max_length=255)
    location = String(max_length=255)
    capacity = Integer(required=True, min_value=1)
    is_active = Boolean(default=True)
    stock_lines = HasMany(StockLine)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def stock_counters_must_be_consistent(self):
        for line in self.stock_lines or []:
            if (line.reserved_quantity or 0) > (line.quantity or 0):
                raise ValidationError(
                    {"reserved_quantity": [f"Reserved quantity exceeds on-hand quantity for {line.product_id}"]}
                )

    @invariant.post
    def total_quantity_cannot_exceed_capacity(self):
        if self.capacity is not None and self.total_quantity > self.capacity:
            raise ValidationError({"capacity": ["Current usage cannot exceed capacity"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, name: str, capacity: int, location: str | None = None):
        """Create a new, empty warehouse."""
        now = datetime.now(UTC)
        warehouse = cls(
            name=name,
            location=location,
            capacity=capacity,
            created_at=now,
            updated_at=now,
        )
        warehouse.raise_(
            WarehouseCreated(
                warehouse_id=str(warehouse.id),
                name=name,
                location=location or "",
                capacity=str(capacity),
                created_at=now,
            )
        )
        return warehouse

    # -------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------
    @property
    def total_quantity(self) -> int:
        return sum(line.quantity or 0 for line in (self.stock_lines or []))

    @property
    def available_capacity(self) -> int:
        return (self.capacity or 0) - self.total_quantity

    @property
    def utilization(self) -> float:
        if not self.capacity:
            return 0.0
        return round(self.total_quantity * 100.0 / self.capacity, 2)

    def find_line(self, product_id, variant_id=None) -> StockLine | None:
        return next(
            (line for line in (self.stock_lines or []) if line.matches(product_id, variant_id)),
            None,
        )

    def available_for(self, product_id, variant_id=None) -> int:
        line = self.find_line(product_id, variant_id)
        return line.available if line else 0

    # -------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------
    def _assert_active(self) -> None:
        if not self.is_active:
            raise InvalidTransition("Inactive", "stock intake", field="warehouse")

    def assert_can_accept(self, quantity: int) -> None:
        """Reject an intake of ``quantity`` units that would overflow the warehouse."""
        self._assert_active()
        if self.total_quantity + quantity > self.capacity:
            raise CapacityExceeded(str(self.id), required=quantity, available=self.available_capacity)

    def assert_can_release(self, product_id, quantity: int, variant_id=None) -> None:
        """Reject removal of ``quantity`` units that are not free to leave."""
        available = self.available_for(product_id, variant_id)
        if available < quantity:
            raise InsufficientStock(
                product_id,
                required=quantity,
                available=available,
                variant_id=normalize_variant(variant_id),
                warehouse_id=str(self.id),
            )

    @staticmethod
    def _assert_positive(quantity) -> None:
        if quantity is None or quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

    def _touch(self) -> datetime:
        self.updated_at = datetime.now(UTC)
        return self.updated_at

    def _get_or_create_line(self, product_id, variant_id=None) -> StockLine:
        line = self.find_line(product_id, variant_id)
        if line is None:
            line = StockLine(product_id=str(product_id), variant_id=normalize_variant(variant_id))
            self.add_stock_lines(line)
        return line

    def _prune_if_empty(self, line: StockLine) -> bool:
        if line.is_empty():
            self.remove_stock_lines(line)
            return True
        return False

    # -------------------------------------------------------------------
    # Warehouse details
    # -------------------------------------------------------------------
    def update_details(self, name=None, location=None, capacity=None):
        """Update warehouse name, location and/or capacity."""
        if capacity is not None and capacity < self.total_quantity:
            raise CapacityExceeded(str(self.id), required=self.total_quantity, available=capacity)
        if name is not None:
            self.name = name
        if location is not None:
            self.location = location
        if capacity is not None:
            self.capacity = capacity
        now = self._touch()
        self.raise_(
            WarehouseUpdated(
                warehouse_id=str(self.id),
                name=self.name,
                location=self.location or "",
                capacity=str(self.capacity),
                updated_at=now,
            )
        )

    def deactivate(self):
        """Deactivate the warehouse. Stock already held stays where it is."""
        if not self.is_active:
            raise InvalidTransition("Inactive", "Inactive", field="warehouse")
        self.is_active = False
        now = self._touch()
        self.raise_(
            WarehouseDeactivated(
                warehouse_id=str(self.id),
                deactivated_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Stock intake / removal
    # -------------------------------------------------------------------
    def add_stock(
        self,
        product_id,
        quantity: int,
        variant_id=None,
        tags=None,
        movement_type: str = "in",
        reference_type: str | None = None,
        reference_id: str | None = None,
        actor: str | None = None,
        reason: str | None = None,
    ) -> StockLine:
        """Add ``quantity`` physical units, creating the line if absent."""
        self._assert_positive(quantity)
        self.assert_can_accept(quantity)

        with atomic_change(self):
            line = self._get_or_create_line(product_id, variant_id)
            previous = line.quantity or 0
            line.quantity = previous + quantity
            if tags:
                line.add_tags(tags)
        now = self._touch()

        self.raise_(
            StockAdded(
                warehouse_id=str(self.id),
                product_id=str(product_id),
                variant_id=normalize_variant(variant_id),
                quantity=quantity,
                previous_quantity=previous,
                new_quantity=line.quantity,
                reserved_quantity=line.reserved_quantity or 0,
                movement_type=movement_type,
                reference_type=reference_type,
                reference_id=reference_id,
                reason=reason,
                tags=json.dumps(list(tags or [])),
                actor=actor,
                added_at=now,
            )
        )
        return line

    def remove_stock(
        self,
        product_id,
        quantity: int,
        variant_id=None,
        movement_type: str = "out",
        reference_type: str | None = None,
        reference_id: str | None = None,
        actor: str | None = None,
        reason: str | None = None,
    ) -> int:
        """Remove unreserved units. Returns the line's remaining quantity."""
        self._assert_positive(quantity)
        self.assert_can_release(product_id, quantity, variant_id)

        line = self.find_line(product_id, variant_id)
        with atomic_change(self):
            previous = line.quantity
            line.quantity = previous - quantity
            remaining = line.quantity
            reserved = line.reserved_quantity or 0
            removed = self._prune_if_empty(line)
        now = self._touch()

        self.raise_(
            StockRemoved(
                warehouse_id=str(self.id),
                product_id=str(product_id),
                variant_id=normalize_variant(variant_id),
                quantity=quantity,
                previous_quantity=previous,
                new_quantity=remaining,
                reserved_quantity=reserved,
                movement_type=movement_type,
                reference_type=reference_type,
                reference_id=reference_id,
                reason=reason,
                line_removed=removed,
                actor=actor,
                removed_at=now,
            )
        )
        return remaining

    def adjust_stock(self, product_id, quantity_change: int, variant_id=None, reason=None, actor=None):
        """Manually correct on-hand stock by a signed amount."""
        if not quantity_change:
            raise ValidationError({"quantity_change": ["Adjustment must be non-zero"]})
        if quantity_change > 0:
            self.add_stock(
                product_id,
                quantity_change,
                variant_id=variant_id,
                reference_type="adjustment",
                reason=reason,
                actor=actor,
            )
        else:
            self.remove_stock(
                product_id,
                -quantity_change,
                variant_id=variant_id,
                reference_type="adjustment",
                reason=reason,
                actor=actor,
            )

    # -------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------
    def reserve(self, product_id, quantity: int, variant_id=None, order_id=None) -> StockLine:
        """Hold ``quantity`` unreserved units against an order."""
        self._assert_positive(quantity)
        self.assert_can_release(product_id, quantity, variant_id)

        line = self.find_line(product_id, variant_id)
        line.reserved_quantity = (line.reserved_quantity or 0) + quantity
        now = self._touch()

        self.raise_(
            StockReserved(
                warehouse_id=str(self.id),
                product_id=str(product_id),
                variant_id=normalize_variant(variant_id),
                quantity=quantity,
                quantity_on_hand=line.quantity,
                reserved_quantity=line.reserved_quantity,
                order_id=order_id,
                reserved_at=now,
            )
        )
        return line

    def reserve_items(self, items: list[dict], order_id=None) -> None:
        """Reserve every item or none.

        Items are reserved one at a time; when one fails, the reservations
        already made for earlier items are released before the error
        propagates.
        """
        reserved: list[dict] = []
        try:
            for item in items:
                self.reserve(
                    item["product_id"],
                    item["quantity"],
                    variant_id=item.get("variant_id"),
                    order_id=order_id,
                )
                reserved.append(item)
        except ValidationError:
            for item in reversed(reserved):
                self.release_reservation(
                    item["product_id"],
                    item["quantity"],
                    variant_id=item.get("variant_id"),
                    order_id=order_id,
                )
            raise

    def release_reservation(self, product_id, quantity: int, variant_id=None, order_id=None) -> int:
        """Release up to ``quantity`` reserved units. Returns the amount released."""
        line = self.find_line(product_id, variant_id)
        if line is None or not line.reserved_quantity:
            return 0

        released = min(quantity, line.reserved_quantity)
        line.reserved_quantity = line.reserved_quantity - released
        now = self._touch()

        self.raise_(
            ReservationReleased(
                warehouse_id=str(self.id),
                product_id=str(product_id),
                variant_id=normalize_variant(variant_id),
                quantity=released,
                quantity_on_hand=line.quantity or 0,
                reserved_quantity=line.reserved_quantity,
                order_id=order_id,
                released_at=now,
            )
        )
        return released

    # -------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------
    def deliver(self, product_id, quantity: int, variant_id=None, order_id=None, actor=None) -> StockLine:
        """Ship reserved units out: on-hand and reserved drop, delivered grows."""
        self._assert_positive(quantity)
        line = self.find_line(product_id, variant_id)
        reserved = (line.reserved_quantity or 0) if line else 0
        on_hand = (line.quantity or 0) if line else 0
        if reserved < quantity or on_hand < quantity:
            raise InsufficientStock(
                product_id,
                required=quantity,
                available=min(reserved, on_hand),
                variant_id=normalize_variant(variant_id),
                warehouse_id=str(self.id),
            )

        with atomic_change(self):
            previous = line.quantity
            line.quantity = previous - quantity
            line.reserved_quantity = reserved - quantity
            line.delivered_quantity = (line.delivered_quantity or 0) + quantity
        now = self._touch()

        self.raise_(
            StockDelivered(
                warehouse_id=str(self.id),
                product_id=str(product_id),
                variant_id=normalize_variant(variant_id),
                quantity=quantity,
                previous_quantity=previous,
                new_quantity=line.quantity,
                reserved_quantity=line.reserved_quantity,
                delivered_quantity=line.delivered_quantity,
                reference_type="sales",
                reference_id=order_id,
                actor=actor,
                delivered_at=now,
            )
        )
        return line

    # -------------------------------------------------------------------
    # Returns
    # -------------------------------------------------------------------
    def mark_expected_return(self, product_id, quantity: int, variant_id=None, reference_id=None) -> StockLine:
        """Record that ``quantity`` delivered units are on their way back."""
        self._assert_positive(quantity)
        line = self._get_or_create_line(product_id, variant_id)
        line.expected_returns = (line.expected_returns or 0) + quantity
        now = self._touch()

        self.raise_(
            ExpectedReturnMarked(
                warehouse_id=str(self.id),
                product_id=str(product_id),
                variant_id=normalize_variant(variant_id),
                quantity=quantity,
                expected_returns=line.expected_returns,
                reference_id=reference_id,
                marked_at=now,
            )
        )
        return line

    def clear_expected_return(self, product_id, quantity: int, variant_id=None, reference_id=None) -> int:
        """Drop up to ``quantity`` expected units without receiving them here."""
        line = self.find_line(product_id, variant_id)
        if line is None or not line.expected_returns:
            return 0

        cleared = min(quantity, line.expected_returns)
        with atomic_change(self):
            line.expected_returns = line.expected_returns - cleared
            self._prune_if_empty(line)
        now = self._touch()

        self.raise_(
            ExpectedReturnCleared(
                warehouse_id=str(self.id),
                product_id=str(product_id),
                variant_id=normalize_variant(variant_id),
                quantity=cleared,
                expected_returns=line.expected_returns,
                reference_id=reference_id,
                cleared_at=now,
            )
        )
        return cleared

    def receive_return(
        self,
        product_id,
        quantity: int,
        variant_id=None,
        tags=None,
        reference_id=None,
        actor=None,
    ) -> StockLine:
        """Physically receive returned units back into stock.

        A missing line never blocks receipt: a fresh line is created with the
        returned quantity seeded.
        """
        self._assert_positive(quantity)
        self.assert_can_accept(quantity)
        all_tags = merge_tags([RETURNED_TAG], tags)

        with atomic_change(self):
            line = self._get_or_create_line(product_id, variant_id)
            previous = line.quantity or 0
            line.expected_returns = max((line.expected_returns or 0) - quantity, 0)
            line.quantity = previous + quantity
            line.returned_quantity = (line.returned_quantity or 0) + quantity
            line.add_tags(all_tags)
        now = self._touch()

        self.raise_(
            ReturnReceived(
                warehouse_id=str(self.id),
                product_id=str(product_id),
                variant_id=normalize_variant(variant_id),
                quantity=quantity,
                previous_quantity=previous,
                new_quantity=line.quantity,
                reserved_quantity=line.reserved_quantity or 0,
                expected_returns=line.expected_returns,
                returned_quantity=line.returned_quantity,
                tags=json.dumps(all_tags),
                reference_type="return",
                reference_id=reference_id,
                actor=actor,
                received_at=now,
            )
        )
        return line
