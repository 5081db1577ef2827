"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the inventory core (storefront checkout, admin dashboard, batch
imports) must react to failures precisely: an out-of-stock checkout is shown
to the shopper, a version conflict is shown to the admin with a "reload"
prompt, an internal error is paged.  Parsing message strings for that is
fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        inventory.reserve_order(order_id, actor_id=admin_id)
    except InsufficientStockError as e:
        return {"error": e.code, "lines": [line.as_dict() for line in e.lines]}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidMutationError
    |   +-- ActorRequiredError
    |   +-- InvalidQueryError
    |
    +-- NotFoundError
    |   +-- ProductNotFoundError
    |   +-- StockRecordNotFoundError
    |   +-- OrderNotFoundError
    |   +-- OrderItemNotFoundError
    |   +-- FulfillmentNotFoundError
    |   +-- AdjustmentNotFoundError
    |   +-- AlertNotFoundError
    |
    +-- ConflictError
    |   +-- OptimisticLockError
    |   +-- StockRecordInUseError
    |   +-- StockRecordExistsError
    |
    +-- InsufficientStockError
    +-- InvalidStateError
    +-- InternalError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed input (quantity, method, ...)
                | INVALID_MUTATION            | Mutation would break stock invariants
                | ACTOR_REQUIRED              | Mutating call without an actor
                | INVALID_QUERY               | Audit/movement query out of bounds
----------------|-----------------------------|-----------------------------------------
Not found       | PRODUCT_NOT_FOUND           | Catalog product doesn't exist
                | STOCK_RECORD_NOT_FOUND      | No stock record for product/id
                | ORDER_NOT_FOUND             | Order doesn't exist
                | ORDER_ITEM_NOT_FOUND        | Item doesn't exist or not on order
                | FULFILLMENT_NOT_FOUND       | Nothing fulfilled for order/product
                | ADJUSTMENT_NOT_FOUND        | Adjustment request doesn't exist
                | ALERT_NOT_FOUND             | Reorder alert doesn't exist
----------------|-----------------------------|-----------------------------------------
Conflict        | OPTIMISTIC_LOCK_CONFLICT    | Version moved since it was read
                | STOCK_RECORD_IN_USE         | Delete while units are reserved
                | STOCK_RECORD_EXISTS         | Second record for one product
----------------|-----------------------------|-----------------------------------------
Stock           | INSUFFICIENT_STOCK          | Reservation exceeds available stock
State           | INVALID_STATE               | Operation not allowed in this state
Internal        | INTERNAL_ERROR              | Unexpected storage failure
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an append-only record

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Conflicts are never retried by the kernel.  The caller decides whether to
   re-read and retry; retrying blindly could apply a stale admin edit.

2. InsufficientStockError carries EVERY failing line of a reservation, not
   just the first, so the storefront can show one complete message.

3. to_dict() is the single structured error object rendered by outer layers.
"""

from dataclasses import asdict, dataclass
from typing import Any


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Render the error as a structured object (code, message, details)."""
        details = {
            k: (str(v) if not isinstance(v, (int, float, str, bool, list, dict, type(None))) else v)
            for k, v in vars(self).items()
            if not k.startswith("_")
        }
        return {"code": self.code, "message": str(self), "details": details}


# Validation errors


class ValidationError(InventoryKernelError):
    """Input failed validation before any state was touched."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidMutationError(ValidationError):
    """
    A ledger mutation would violate the stock invariants.

    Raised when physical or reserved would go negative, or reserved would
    exceed physical.
    """

    code: str = "INVALID_MUTATION"

    def __init__(
        self,
        product_id: str,
        physical_stock: int,
        reserved_stock: int,
        physical_delta: int,
        reserved_delta: int,
    ):
        self.product_id = product_id
        self.physical_stock = physical_stock
        self.reserved_stock = reserved_stock
        self.physical_delta = physical_delta
        self.reserved_delta = reserved_delta
        super().__init__(
            f"Invalid stock mutation for product {product_id}: "
            f"physical {physical_stock}{physical_delta:+d}, "
            f"reserved {reserved_stock}{reserved_delta:+d}"
        )


class ActorRequiredError(ValidationError):
    """A mutating operation was called without an authenticated actor."""

    code: str = "ACTOR_REQUIRED"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Operation {operation} requires an authenticated actor", field="actor_id")


class InvalidQueryError(ValidationError):
    """A query object carries out-of-range parameters."""

    code: str = "INVALID_QUERY"


# Not-found errors


class NotFoundError(InventoryKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class ProductNotFoundError(NotFoundError):
    """Catalog product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class StockRecordNotFoundError(NotFoundError):
    """No stock record exists for the given key."""

    code: str = "STOCK_RECORD_NOT_FOUND"

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Stock record not found: {key}")


class OrderNotFoundError(NotFoundError):
    """Order with given ID was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class OrderItemNotFoundError(NotFoundError):
    """Order item does not exist or does not belong to the order."""

    code: str = "ORDER_ITEM_NOT_FOUND"

    def __init__(self, order_id: str, order_item_id: str):
        self.order_id = order_id
        self.order_item_id = order_item_id
        super().__init__(f"Order item {order_item_id} not found on order {order_id}")


class FulfillmentNotFoundError(NotFoundError):
    """No fulfilled quantity exists for an (order, product) pair."""

    code: str = "FULFILLMENT_NOT_FOUND"

    def __init__(self, order_id: str, product_id: str):
        self.order_id = order_id
        self.product_id = product_id
        super().__init__(
            f"No fulfillment recorded for product {product_id} on order {order_id}"
        )


class AdjustmentNotFoundError(NotFoundError):
    """Stock adjustment request was not found."""

    code: str = "ADJUSTMENT_NOT_FOUND"

    def __init__(self, adjustment_id: str):
        self.adjustment_id = adjustment_id
        super().__init__(f"Stock adjustment not found: {adjustment_id}")


class AlertNotFoundError(NotFoundError):
    """Reorder alert was not found."""

    code: str = "ALERT_NOT_FOUND"

    def __init__(self, alert_id: str):
        self.alert_id = alert_id
        super().__init__(f"Reorder alert not found: {alert_id}")


# Conflict errors


class ConflictError(InventoryKernelError):
    """Base exception for concurrent-modification and state conflicts."""

    code: str = "CONFLICT"


class OptimisticLockError(ConflictError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class StockRecordInUseError(ConflictError):
    """Stock record still holds reserved units and cannot be deleted."""

    code: str = "STOCK_RECORD_IN_USE"

    def __init__(self, product_id: str, reserved_stock: int):
        self.product_id = product_id
        self.reserved_stock = reserved_stock
        super().__init__(
            f"Stock record for product {product_id} has {reserved_stock} reserved units"
        )


class StockRecordExistsError(ConflictError):
    """A stock record already exists for the product."""

    code: str = "STOCK_RECORD_EXISTS"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Stock record already exists for product {product_id}")


# Stock errors


@dataclass(frozen=True)
class ShortLine:
    """One line of a reservation that cannot be satisfied."""

    product_id: str
    requested: int
    available: int

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class InsufficientStockError(InventoryKernelError):
    """One or more lines cannot be reserved from available stock."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, lines: list[ShortLine], order_id: str | None = None):
        self.lines = [line.as_dict() for line in lines]
        self.order_id = order_id
        summary = ", ".join(
            f"{line.product_id} (requested {line.requested}, available {line.available})"
            for line in lines
        )
        super().__init__(f"Insufficient stock: {summary}")

    @property
    def product_ids(self) -> list[str]:
        return [line["product_id"] for line in self.lines]


class InvalidStateError(InventoryKernelError):
    """The entity is in a state that does not allow the operation."""

    code: str = "INVALID_STATE"

    def __init__(self, entity_type: str, entity_id: str, state: str, operation: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.state = state
        self.operation = operation
        super().__init__(
            f"Cannot {operation} {entity_type} {entity_id} in state {state!r}"
        )


class InternalError(InventoryKernelError):
    """Unexpected storage failure, wrapped so callers see one typed error."""

    code: str = "INTERNAL_ERROR"

    def __init__(self, operation: str, cause: str):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Internal error during {operation}: {cause}")


# Audit errors


class AuditError(InventoryKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_entry_id: str, expected_hash: str, actual_hash: str):
        self.audit_entry_id = audit_entry_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_entry_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Immutability errors


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    Audit log entries, stock movements and order status history rows are
    immutable from creation.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
