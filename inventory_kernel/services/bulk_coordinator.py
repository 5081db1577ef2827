"""
BulkOperationCoordinator -- many independent stock edits in one request.

Responsibility:
    Applies the same set of changes to many stock records (bulk edit), or
    creates/updates stock records from import rows.  Each item runs in its
    own SAVEPOINT: a failed item is rolled back and reported, the rest of the
    batch carries on.

Architecture position:
    Kernel > Services.  Writes go through StockLedger, so every item is
    version-checked and audited like any other mutation.

Invariants enforced:
    - One item's failure never aborts the batch.
    - Each item is checked against the version read inside its own savepoint,
      so a bulk edit cannot overwrite a concurrent reservation.
    - A ``physical_stock`` target becomes a delta and obeys the ledger's
      stock predicates (e.g. never below reserved).

Failure modes:
    - ValidationError (top level): malformed container, empty changes,
      more than ``max_items`` items.
    - Per item: BulkItemError(item, reason, code) in the result.
"""

from collections.abc import Mapping, Sequence
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import (
    BulkItemError,
    BulkResult,
    ImportRecord,
    StockRecordChanges,
)
from inventory_kernel.exceptions import (
    InventoryKernelError,
    StockRecordExistsError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.audit_log import OperationType
from inventory_kernel.models.stock_record import StockRecord
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.bulk")

DEFAULT_MAX_ITEMS = 1000


class _Outcome:
    UPDATED = "updated"
    CREATED = "created"


class BulkOperationCoordinator(BaseService):
    """Runs per-item ledger operations with partial-failure isolation."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: StockLedger | None = None,
        max_items: int = DEFAULT_MAX_ITEMS,
    ):
        super().__init__(session, clock)
        self._ledger = ledger or StockLedger(session, self._clock)
        self._max_items = max_items

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def bulk_update(
        self,
        item_ids: Sequence[UUID | str],
        changes: StockRecordChanges | Mapping[str, Any],
        actor_id: UUID,
    ) -> BulkResult:
        """
        Apply ``changes`` to every stock record in ``item_ids``.

        Raises:
            ValidationError: bad container, unknown change fields, or no changes.
        """
        self._check_container(item_ids, "item_ids")
        if not isinstance(changes, StockRecordChanges):
            changes = StockRecordChanges.from_mapping(changes)
        if changes.is_empty:
            raise ValidationError("No changes given", field="changes")

        def update_one(raw_id):
            stock_id = raw_id if isinstance(raw_id, UUID) else _parse_uuid(raw_id)
            record = self._ledger.get_by_id(stock_id)
            self._apply_changes(record, changes, changes.physical_stock, actor_id, "Bulk update")
            return _Outcome.UPDATED

        return self._run("bulk_update", item_ids, str, update_one)

    def import_records(
        self,
        records: Sequence[Mapping[str, Any]],
        update_existing: bool,
        actor_id: UUID,
    ) -> BulkResult:
        """
        Create stock records from import rows, optionally updating existing ones.

        A row for a product that already has a stock record is an item error
        (StockRecordExistsError) unless ``update_existing`` is set.
        """
        self._check_container(records, "records")
        for index, row in enumerate(records):
            if not isinstance(row, Mapping):
                raise ValidationError(f"records[{index}] must be a mapping", field="records")

        def import_one(row):
            parsed = ImportRecord.from_mapping(row)
            existing = self._ledger.find(parsed.product_id)
            if existing is not None:
                if not update_existing:
                    raise StockRecordExistsError(str(parsed.product_id))
                record = self._ledger.get_by_id(existing.id)
                self._apply_changes(record, parsed.changes, parsed.physical_stock, actor_id, "Import update")
                return _Outcome.UPDATED

            self._ledger.create(
                parsed.product_id,
                actor_id=actor_id,
                physical_stock=parsed.physical_stock or 0,
                operation_type=OperationType.BULK_UPDATE,
                audit_notes="Imported",
                **parsed.changes.attribute_changes(),
            )
            return _Outcome.CREATED

        return self._run("import", records, _row_label, import_one)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_container(self, items, name: str) -> None:
        if isinstance(items, (str, bytes, Mapping)) or not isinstance(items, Sequence):
            raise ValidationError(f"{name} must be a list", field=name)
        if len(items) > self._max_items:
            raise ValidationError(
                f"{name} has {len(items)} entries; at most {self._max_items} allowed",
                field=name,
            )

    def _apply_changes(
        self,
        record: StockRecord,
        changes: StockRecordChanges,
        physical_target: int | None,
        actor_id: UUID,
        notes: str,
    ) -> None:
        attributes = changes.attribute_changes()

        min_stock = attributes.get("min_stock", record.min_stock)
        max_stock = attributes.get("max_stock", record.max_stock)
        if max_stock is not None and min_stock is not None and max_stock < min_stock:
            raise ValidationError("max_stock must be >= min_stock", field="max_stock")

        delta = 0 if physical_target is None else physical_target - record.physical_stock
        if delta == 0 and not attributes:
            return

        self._ledger.mutate(
            record.product_id,
            physical_delta=delta,
            expected_version=record.version,
            operation_type=OperationType.BULK_UPDATE,
            actor_id=actor_id,
            quantity_affected=abs(delta),
            notes=notes,
            column_values=attributes,
        )

    def _run(self, operation: str, items, label, apply_one) -> BulkResult:
        updated = 0
        created = 0
        errors: list[BulkItemError] = []

        for item in items:
            savepoint = self.session.begin_nested()
            try:
                outcome = apply_one(item)
                savepoint.commit()
            except InventoryKernelError as exc:
                savepoint.rollback()
                errors.append(BulkItemError(item=label(item), reason=str(exc), code=exc.code))
                logger.warning(
                    "bulk_item_failed",
                    extra={"operation": operation, "item": label(item), "error_code": exc.code},
                )
                continue
            except SQLAlchemyError as exc:
                savepoint.rollback()
                errors.append(BulkItemError(item=label(item), reason=str(exc), code="INTERNAL"))
                logger.error(
                    "bulk_item_failed",
                    extra={"operation": operation, "item": label(item), "error_code": "INTERNAL"},
                )
                continue

            if outcome == _Outcome.CREATED:
                created += 1
            else:
                updated += 1

        result = BulkResult(
            updated_count=updated,
            created_count=created,
            errors=tuple(errors),
            total=len(items),
        )
        logger.info(
            "bulk_operation_completed",
            extra={
                "operation": operation,
                "total": result.total,
                "updated_count": updated,
                "created_count": created,
                "failed_count": result.failed_count,
            },
        )
        return result


def _parse_uuid(value) -> UUID:
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"Not a valid id: {value!r}", field="item_ids") from None


def _row_label(row: Mapping[str, Any]) -> str:
    product_id = row.get("product_id")
    return str(product_id) if product_id not in (None, "") else "<missing product_id>"
