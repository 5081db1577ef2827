"""
ORM-Level Immutability Enforcement for append-only inventory records.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  We register listeners that reject any such change to an
append-only entity:

    session.flush()
         |
         v
    [before_update] --> _reject_update() --> ImmutabilityViolationError
         |
    [before_delete] --> _reject_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only for mutable entities)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable         | Why
--------------------|------------------------|-----------------------------------
AuditLogEntry       | ALWAYS (from creation) | Hash-chained stock audit trail
StockMovement       | ALWAYS (from creation) | Movement history / trend reports
OrderStatusHistory  | ALWAYS (from creation) | Order transition record

These listeners see ORM unit-of-work writes only.  db/triggers.py installs
the database-level counterpart that also rejects Core statements and direct
SQL.
"""

from sqlalchemy import event

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _protected_models() -> dict:
    from inventory_kernel.models.audit_log import AuditLogEntry
    from inventory_kernel.models.order import OrderStatusHistory
    from inventory_kernel.models.stock_movement import StockMovement

    return {
        AuditLogEntry: "Inventory audit log entries are append-only",
        StockMovement: "Stock movements are append-only",
        OrderStatusHistory: "Order status history is append-only",
    }


def _block(target, operation: str) -> None:
    entity_type = type(target).__name__
    reason = _protected_models().get(type(target), "Record is append-only")
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"{reason}; {operation} rejected",
    )


def _reject_update(mapper, connection, target):
    """Prevent any updates to append-only records."""
    _block(target, "UPDATE")


def _reject_delete(mapper, connection, target):
    """Prevent deletion of append-only records."""
    _block(target, "DELETE")


def register_immutability_listeners() -> None:
    """
    Register immutability enforcement event listeners.

    Call this after all models are imported but before any database
    operations begin.  Calling it twice is harmless.
    """
    for model in _protected_models():
        if not event.contains(model, "before_update", _reject_update):
            event.listen(model, "before_update", _reject_update)
        if not event.contains(model, "before_delete", _reject_delete):
            event.listen(model, "before_delete", _reject_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    """Safely remove an event listener, ignoring if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for model in _protected_models():
        _safe_remove_listener(model, "before_update", _reject_update)
        _safe_remove_listener(model, "before_delete", _reject_delete)
