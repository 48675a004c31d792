"""Purchase aggregate (CQRS) — supplier order that feeds the stock ledger.

State Machine:
    PENDING → RECEIVED   (payment/receipt confirmed, stock allocated)
    PENDING → CANCELLED

RECEIVED and CANCELLED are terminal. Confirming a received purchase again is
reported as AlreadyProcessed, never as a second stock addition.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String

from warehousing.domain import warehousing
from warehousing.exceptions import AlreadyProcessed, InvalidTransition
from warehousing.purchase.events import PurchaseCancelled, PurchaseCreated, PurchaseReceived
from warehousing.warehouse.warehouse import normalize_variant


class PurchaseStatus(Enum):
    PENDING = "pending"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class PaymentStatus(Enum):
    UNPAID = "unpaid"
    PAID = "paid"


@warehousing.entity(part_of="Purchase")
class PurchaseItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True, min_value=1)
    unit_cost = Float(default=0.0, min_value=0.0)


@warehousing.aggregate
class Purchase:
    """A supplier order whose confirmation adds stock to one warehouse."""

    supplier = String(required=True, max_length=255)
    warehouse_id = Identifier()  # Designated receiving warehouse
    items = HasMany(PurchaseItem)
    status = String(choices=PurchaseStatus, default=PurchaseStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.UNPAID.value)
    total_amount = Float(default=0.0)
    received_into = Identifier()
    created_by = String(max_length=100)
    cancellation_reason = String(max_length=500)
    created_at = DateTime()
    received_at = DateTime()
    cancelled_at = DateTime()

    @classmethod
    def create(cls, supplier: str, items_data: list[dict], warehouse_id: str | None = None, actor: str | None = None):
        """Record a new pending purchase."""
        if not items_data:
            raise ValidationError({"items": ["A purchase needs at least one item"]})

        now = datetime.now(UTC)
        purchase = cls(
            supplier=supplier,
            warehouse_id=warehouse_id,
            created_by=actor,
            created_at=now,
        )
        for item in items_data:
            purchase.add_items(
                PurchaseItem(
                    product_id=str(item["product_id"]),
                    variant_id=normalize_variant(item.get("variant_id")),
                    quantity=item["quantity"],
                    unit_cost=item.get("unit_cost", 0.0),
                )
            )
        purchase.total_amount = round(sum(i.quantity * (i.unit_cost or 0.0) for i in purchase.items), 2)

        purchase.raise_(
            PurchaseCreated(
                purchase_id=str(purchase.id),
                supplier=supplier,
                warehouse_id=warehouse_id,
                items=json.dumps(purchase.line_items()),
                total_amount=purchase.total_amount,
                created_by=actor,
                created_at=now,
            )
        )
        return purchase

    def line_items(self) -> list[dict]:
        return [
            {
                "product_id": str(i.product_id),
                "variant_id": normalize_variant(i.variant_id),
                "quantity": i.quantity,
                "unit_cost": i.unit_cost,
            }
            for i in (self.items or [])
        ]

    @property
    def total_quantity(self) -> int:
        return sum(i.quantity for i in (self.items or []))

    def assert_can_confirm(self) -> None:
        current = PurchaseStatus(self.status)
        if current == PurchaseStatus.RECEIVED:
            raise AlreadyProcessed("Purchase", str(self.id), current.value)
        if current != PurchaseStatus.PENDING:
            raise InvalidTransition(current.value, PurchaseStatus.RECEIVED.value)

    def confirm(self, warehouse_id: str, actor: str | None = None) -> None:
        """Mark payment cleared and stock received into ``warehouse_id``."""
        self.assert_can_confirm()
        now = datetime.now(UTC)
        self.status = PurchaseStatus.RECEIVED.value
        self.payment_status = PaymentStatus.PAID.value
        self.received_into = warehouse_id
        self.received_at = now
        self.raise_(
            PurchaseReceived(
                purchase_id=str(self.id),
                warehouse_id=warehouse_id,
                total_quantity=self.total_quantity,
                confirmed_by=actor,
                received_at=now,
            )
        )

    def cancel(self, reason: str | None = None, actor: str | None = None) -> None:
        current = PurchaseStatus(self.status)
        if current == PurchaseStatus.RECEIVED:
            raise AlreadyProcessed("Purchase", str(self.id), current.value)
        if current != PurchaseStatus.PENDING:
            raise InvalidTransition(current.value, PurchaseStatus.CANCELLED.value)

        now = datetime.now(UTC)
        self.status = PurchaseStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_at = now
        self.raise_(
            PurchaseCancelled(
                purchase_id=str(self.id),
                reason=reason,
                cancelled_by=actor,
                cancelled_at=now,
            )
        )
