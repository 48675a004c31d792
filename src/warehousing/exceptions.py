"""Error taxonomy for the warehousing domain.

Domain errors extend protean's exceptions so that command processing,
unit-of-work rollback and callers treat them the way they treat the
framework's own:

    NotFound           : an id could not be resolved
    InvalidTransition  : a state machine rejected the requested move
    InsufficientStock  : a quantity/reservation precondition failed
    CapacityExceeded   : a warehouse capacity precondition failed
    AlreadyProcessed   : a repeated finalize/confirm was short-circuited
    ConcurrencyConflict: a concurrent writer won the race; safe to retry
"""

from protean.exceptions import ObjectNotFoundError, ProteanExceptionWithMessage, ValidationError


class NotFound(ObjectNotFoundError):
    def __init__(self, entity: str, identifier: str):
        self.entity = entity
        self.identifier = str(identifier)
        super().__init__({"_entity": f"{entity} with id {identifier} does not exist"})


class InvalidTransition(ValidationError):
    def __init__(self, current: str, target: str, field: str = "status"):
        self.current = current
        self.target = target
        super().__init__({field: [f"Cannot transition from {current} to {target}"]})


class InsufficientStock(ValidationError):
    """Raised with the failing line and its shortfall."""

    def __init__(
        self,
        product_id: str,
        required: int,
        available: int,
        variant_id: str | None = None,
        warehouse_id: str | None = None,
    ):
        self.product_id = str(product_id)
        self.variant_id = variant_id
        self.warehouse_id = warehouse_id
        self.required = required
        self.available = available
        self.shortfall = required - available

        label = f"product {product_id}" + (f" variant {variant_id}" if variant_id else "")
        super().__init__({label: [f"Insufficient stock: required {required}, available {available}"]})


class CapacityExceeded(ValidationError):
    def __init__(self, warehouse_id: str, required: int, available: int):
        self.warehouse_id = str(warehouse_id)
        self.required = required
        self.available = available
        super().__init__(
            {
                "capacity": [
                    f"Warehouse capacity exceeded: required {required}, available {available}. "
                    f"Available space: {available}"
                ]
            }
        )


class AlreadyProcessed(ValidationError):
    def __init__(self, entity: str, identifier: str, status: str):
        self.entity = entity
        self.identifier = str(identifier)
        self.status = status
        super().__init__({"status": [f"{entity} {identifier} has already been processed ({status})"]})


class ConcurrencyConflict(ProteanExceptionWithMessage):
    def __init__(self, message: str, keys: tuple = ()):
        self.keys = keys
        super().__init__({"_concurrency": [message]})
