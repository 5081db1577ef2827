"""
DTOs -- immutable data structures crossing the kernel boundary.

Responsibility:
    Result objects returned by services and selectors, plus the fixed,
    validated input structures that replace free-form option bags
    (AuditQuery, MovementQuery, AlertQuery, StockRecordChanges, ImportRecord).

Architecture position:
    Kernel > Domain.  ``from_model()`` class methods are boundary converters
    invoked only from services and selectors.

Failure modes:
    - ValidationError / InvalidQueryError from ``__post_init__`` and
      ``from_mapping()`` on malformed input.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping
from uuid import UUID

from inventory_kernel.exceptions import InvalidQueryError, ValidationError
from inventory_kernel.models.audit_log import OperationType
from inventory_kernel.models.reorder_alert import AlertStatus, AlertType
from inventory_kernel.models.stock_movement import MovementType
from inventory_kernel.models.stock_record import StockStatus

DEFAULT_PAGE_SIZE = 100


# =============================================================================
# Field coercion helpers
# =============================================================================


def _as_int(value: Any, name: str, minimum: int | None = None) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer", field=name)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        value = int(value)
    if not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", field=name)
    if minimum is not None and value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}", field=name)
    return value


def _as_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{name} must be a number", field=name)
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{name} must be a number", field=name) from None
    if not result.is_finite() or result < 0:
        raise ValidationError(f"{name} must be a non-negative number", field=name)
    return result


def _as_uuid(value: Any, name: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"{name} must be a UUID", field=name) from None


def _as_status(value: Any) -> StockStatus:
    try:
        return StockStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in StockStatus)
        raise ValidationError(f"status must be one of: {allowed}", field="status") from None


def _as_optional_text(value: Any, name: str, max_length: int) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string", field=name)
    if len(value) > max_length:
        raise ValidationError(f"{name} exceeds {max_length} characters", field=name)
    return value


# =============================================================================
# Stock records
# =============================================================================


@dataclass(frozen=True)
class StockSnapshot:
    """Read-only view of a stock record."""

    stock_id: UUID
    product_id: UUID
    physical_stock: int
    reserved_stock: int
    available_stock: int
    min_stock: int
    max_stock: int | None
    reorder_point: int | None
    unit_cost: Decimal
    unit_price: Decimal
    status: StockStatus
    supplier: str | None
    notes: str | None
    last_restocked: datetime | None
    version: int

    @classmethod
    def from_model(cls, record) -> StockSnapshot:
        return cls(
            stock_id=record.id,
            product_id=record.product_id,
            physical_stock=record.physical_stock,
            reserved_stock=record.reserved_stock,
            available_stock=record.available_stock,
            min_stock=record.min_stock,
            max_stock=record.max_stock,
            reorder_point=record.reorder_point,
            unit_cost=record.unit_cost,
            unit_price=record.unit_price,
            status=StockStatus(record.status),
            supplier=record.supplier,
            notes=record.notes,
            last_restocked=record.last_restocked,
            version=record.version,
        )


@dataclass(frozen=True)
class StockRecordChanges:
    """
    Validated set of edits a bulk update may apply to a stock record.

    ``None`` means "leave unchanged".  ``physical_stock`` is a target level;
    the ledger turns it into a delta so the change is audited like any other
    physical mutation.
    """

    status: StockStatus | None = None
    min_stock: int | None = None
    max_stock: int | None = None
    reorder_point: int | None = None
    unit_cost: Decimal | None = None
    unit_price: Decimal | None = None
    supplier: str | None = None
    notes: str | None = None
    physical_stock: int | None = None

    ATTRIBUTE_FIELDS = (
        "status",
        "min_stock",
        "max_stock",
        "reorder_point",
        "unit_cost",
        "unit_price",
        "supplier",
        "notes",
    )

    def __post_init__(self) -> None:
        if self.min_stock is not None and self.max_stock is not None:
            if self.max_stock < self.min_stock:
                raise ValidationError("max_stock must be >= min_stock", field="max_stock")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> StockRecordChanges:
        if not isinstance(data, Mapping):
            raise ValidationError("changes must be a mapping")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(unknown)}")

        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            if key == "status":
                kwargs[key] = _as_status(value)
            elif key in ("min_stock", "max_stock", "reorder_point", "physical_stock"):
                kwargs[key] = _as_int(value, key, minimum=0)
            elif key in ("unit_cost", "unit_price"):
                kwargs[key] = _as_decimal(value, key)
            elif key == "supplier":
                kwargs[key] = _as_optional_text(value, key, 255)
            else:
                kwargs[key] = _as_optional_text(value, key, 10_000)
        return cls(**kwargs)

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def attribute_changes(self) -> dict[str, Any]:
        """Non-quantity column values to write, keyed by column name."""
        changes: dict[str, Any] = {}
        for name in self.ATTRIBUTE_FIELDS:
            value = getattr(self, name)
            if value is not None:
                changes[name] = value.value if isinstance(value, StockStatus) else value
        return changes


@dataclass(frozen=True)
class ImportRecord:
    """One validated row of a stock import."""

    product_id: UUID
    physical_stock: int | None = None
    changes: StockRecordChanges = field(default_factory=StockRecordChanges)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ImportRecord:
        if not isinstance(data, Mapping):
            raise ValidationError("import row must be a mapping")
        if data.get("product_id") in (None, ""):
            raise ValidationError("product_id is required", field="product_id")
        product_id = _as_uuid(data["product_id"], "product_id")
        rest = {k: v for k, v in data.items() if k not in ("product_id", "physical_stock")}
        physical = data.get("physical_stock")
        return cls(
            product_id=product_id,
            physical_stock=_as_int(physical, "physical_stock", minimum=0) if physical is not None else None,
            changes=StockRecordChanges.from_mapping(rest),
        )


# =============================================================================
# Audit
# =============================================================================


@dataclass(frozen=True)
class AuditEntryView:
    """Read-only view of an audit log entry."""

    entry_id: UUID
    seq: int
    product_id: UUID
    operation_type: OperationType
    physical_before: int
    physical_after: int
    reserved_before: int
    reserved_after: int
    available_before: int
    available_after: int
    version_before: int
    version_after: int
    quantity_affected: int
    related_order_id: UUID | None
    related_adjustment_id: UUID | None
    actor_id: UUID
    occurred_at: datetime
    notes: str | None
    hash: str

    @classmethod
    def from_model(cls, entry) -> AuditEntryView:
        return cls(
            entry_id=entry.id,
            seq=entry.seq,
            product_id=entry.product_id,
            operation_type=OperationType(entry.operation_type),
            physical_before=entry.physical_before,
            physical_after=entry.physical_after,
            reserved_before=entry.reserved_before,
            reserved_after=entry.reserved_after,
            available_before=entry.available_before,
            available_after=entry.available_after,
            version_before=entry.version_before,
            version_after=entry.version_after,
            quantity_affected=entry.quantity_affected,
            related_order_id=entry.related_order_id,
            related_adjustment_id=entry.related_adjustment_id,
            actor_id=entry.actor_id,
            occurred_at=entry.occurred_at,
            notes=entry.notes,
            hash=entry.hash,
        )


def _check_page(limit: int, offset: int) -> None:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise InvalidQueryError("limit must be a positive integer", field="limit")
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise InvalidQueryError("offset must be a non-negative integer", field="offset")


def _check_range(start: datetime | None, end: datetime | None) -> None:
    if start is not None and end is not None and start > end:
        raise InvalidQueryError("start_date must not be after end_date", field="start_date")


@dataclass(frozen=True)
class AuditQuery:
    """Filters for the audit log.  All filters are optional."""

    product_id: UUID | None = None
    order_id: UUID | None = None
    operation_type: OperationType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0

    def __post_init__(self) -> None:
        _check_page(self.limit, self.offset)
        _check_range(self.start_date, self.end_date)
        if self.operation_type is not None and not isinstance(self.operation_type, OperationType):
            try:
                object.__setattr__(self, "operation_type", OperationType(self.operation_type))
            except ValueError:
                raise InvalidQueryError(
                    f"Unknown operation_type {self.operation_type!r}", field="operation_type"
                ) from None


@dataclass(frozen=True)
class Pagination:
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.total > self.offset + self.limit


@dataclass(frozen=True)
class AuditQueryResult:
    """Page of audit entries (newest first) plus per-operation counts."""

    entries: tuple[AuditEntryView, ...]
    summary: dict[str, int]
    pagination: Pagination


# =============================================================================
# Reservation / fulfillment / returns
# =============================================================================


@dataclass(frozen=True)
class ReservationLine:
    product_id: UUID
    quantity: int
    audit_entry_id: UUID | None = None


@dataclass(frozen=True)
class ReservationResult:
    order_id: UUID
    reservation_state: str
    lines: tuple[ReservationLine, ...]
    already_reserved: bool = False


@dataclass(frozen=True)
class ReleaseResult:
    order_id: UUID
    reservation_state: str
    released: tuple[ReservationLine, ...]

    @property
    def was_no_op(self) -> bool:
        return len(self.released) == 0


@dataclass(frozen=True)
class FulfillmentResult:
    order_id: UUID
    order_item_id: UUID
    product_id: UUID
    quantity: int
    line_fulfilled_quantity: int
    line_status: str
    order_fulfillment_status: str
    order_fully_fulfilled: bool
    physical_after: int
    reserved_after: int
    audit_entry_id: UUID


@dataclass(frozen=True)
class ReturnResult:
    product_id: UUID
    order_id: UUID
    quantity: int
    reason: str
    physical_after: int
    available_after: int
    audit_entry_id: UUID


# =============================================================================
# Bulk / import / sync
# =============================================================================


@dataclass(frozen=True)
class BulkItemError:
    item: str
    reason: str
    code: str


@dataclass(frozen=True)
class BulkResult:
    updated_count: int
    created_count: int
    errors: tuple[BulkItemError, ...]
    total: int

    @property
    def failed_count(self) -> int:
        return len(self.errors)


@dataclass(frozen=True)
class DriftedRecord:
    product_id: UUID
    catalog_quantity: int
    physical_stock: int


@dataclass(frozen=True)
class SyncResult:
    synced_count: int
    errors: tuple[BulkItemError, ...]
    drifted: tuple[DriftedRecord, ...]


# =============================================================================
# Aggregates
# =============================================================================


@dataclass(frozen=True)
class LowStockItem:
    product_id: UUID
    product_name: str
    sku: str | None
    physical_stock: int
    reserved_stock: int
    available_stock: int
    threshold: int
    unit_cost: Decimal
    stock_value: Decimal


@dataclass(frozen=True)
class LowStockReport:
    items: tuple[LowStockItem, ...]
    count: int
    total_value: Decimal


@dataclass(frozen=True)
class InventoryStats:
    total_products: int
    total_inventory_value: Decimal
    average_price: Decimal
    active_count: int
    inactive_count: int
    discontinued_count: int
    low_stock_count: int
    out_of_stock_count: int
    total_physical: int
    total_reserved: int


# =============================================================================
# Movements
# =============================================================================


@dataclass(frozen=True)
class MovementQuery:
    product_id: UUID | None = None
    movement_type: MovementType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0

    def __post_init__(self) -> None:
        _check_page(self.limit, self.offset)
        _check_range(self.start_date, self.end_date)
        if self.movement_type is not None and not isinstance(self.movement_type, MovementType):
            try:
                object.__setattr__(self, "movement_type", MovementType(self.movement_type))
            except ValueError:
                raise InvalidQueryError(
                    f"Unknown movement_type {self.movement_type!r}", field="movement_type"
                ) from None


@dataclass(frozen=True)
class MovementView:
    movement_id: UUID
    inventory_id: UUID
    product_id: UUID
    movement_type: MovementType
    quantity_delta: int
    stock_before: int
    stock_after: int
    actor_id: UUID
    occurred_at: datetime
    notes: str | None
    reference: str | None

    @classmethod
    def from_model(cls, movement) -> MovementView:
        return cls(
            movement_id=movement.id,
            inventory_id=movement.inventory_id,
            product_id=movement.product_id,
            movement_type=MovementType(movement.movement_type),
            quantity_delta=movement.quantity_delta,
            stock_before=movement.stock_before,
            stock_after=movement.stock_after,
            actor_id=movement.actor_id,
            occurred_at=movement.occurred_at,
            notes=movement.notes,
            reference=movement.reference,
        )


@dataclass(frozen=True)
class MovementSummaryRow:
    movement_type: MovementType
    count: int
    net_delta: int


# =============================================================================
# Adjustments and alerts
# =============================================================================


@dataclass(frozen=True)
class AdjustmentView:
    adjustment_id: UUID
    product_id: UUID
    adjustment_type: str
    reason_code: str
    quantity: int
    previous_physical: int
    proposed_physical: int
    expected_version: int
    approval_status: str
    requested_by_id: UUID
    reviewed_by_id: UUID | None
    reviewed_at: datetime | None
    description: str | None
    review_notes: str | None
    audit_entry_id: UUID | None

    @classmethod
    def from_model(cls, adjustment) -> AdjustmentView:
        return cls(
            adjustment_id=adjustment.id,
            product_id=adjustment.product_id,
            adjustment_type=adjustment.adjustment_type,
            reason_code=adjustment.reason_code,
            quantity=adjustment.quantity,
            previous_physical=adjustment.previous_physical,
            proposed_physical=adjustment.proposed_physical,
            expected_version=adjustment.expected_version,
            approval_status=adjustment.approval_status,
            requested_by_id=adjustment.created_by_id,
            reviewed_by_id=adjustment.reviewed_by_id,
            reviewed_at=adjustment.reviewed_at,
            description=adjustment.description,
            review_notes=adjustment.review_notes,
            audit_entry_id=adjustment.audit_entry_id,
        )


@dataclass(frozen=True)
class AlertQuery:
    alert_status: AlertStatus | None = None
    alert_type: AlertType | None = None
    product_id: UUID | None = None
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0

    def __post_init__(self) -> None:
        _check_page(self.limit, self.offset)
        for name, enum_cls in (("alert_status", AlertStatus), ("alert_type", AlertType)):
            value = getattr(self, name)
            if value is not None and not isinstance(value, enum_cls):
                try:
                    object.__setattr__(self, name, enum_cls(value))
                except ValueError:
                    raise InvalidQueryError(f"Unknown {name} {value!r}", field=name) from None


@dataclass(frozen=True)
class AlertView:
    alert_id: UUID
    product_id: UUID
    alert_type: AlertType
    alert_status: AlertStatus
    current_available: int
    reorder_point: int
    suggested_reorder_quantity: int
    triggered_at: datetime
    acknowledged_by_id: UUID | None
    acknowledged_at: datetime | None
    resolved_at: datetime | None
    notes: str | None

    @classmethod
    def from_model(cls, alert) -> AlertView:
        return cls(
            alert_id=alert.id,
            product_id=alert.product_id,
            alert_type=AlertType(alert.alert_type),
            alert_status=AlertStatus(alert.alert_status),
            current_available=alert.current_available,
            reorder_point=alert.reorder_point,
            suggested_reorder_quantity=alert.suggested_reorder_quantity,
            triggered_at=alert.triggered_at,
            acknowledged_by_id=alert.acknowledged_by_id,
            acknowledged_at=alert.acknowledged_at,
            resolved_at=alert.resolved_at,
            notes=alert.notes,
        )


@dataclass(frozen=True)
class AlertListResult:
    alerts: tuple[AlertView, ...]
    statistics: dict[str, dict[str, int]]
    pagination: Pagination
