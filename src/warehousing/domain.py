"""Warehousing bounded context — Stock Ledger and Order Fulfillment.

Handles per-warehouse stock lines (CQRS), purchase allocation, the sales
fulfillment state machine, return reconciliation, stock transfers and the
append-only stock movement ledger.
"""

from protean.domain import Domain

from warehousing.utils.logging import configure_logging, get_logger

configure_logging(log_file_prefix="warehousing")

logger = get_logger(__name__)

warehousing = Domain(name="warehousing")
