"""
AdjustmentService -- request/review workflow for stock adjustments.

Responsibility:
    Staff request an increase, decrease or absolute set of a product's
    physical stock; an admin approves or rejects it.  Approval applies the
    change through MovementRecorder (ledger mutation + movement row), checked
    against the stock version captured at request time.

Invariants enforced:
    - Only pending adjustments can be reviewed; review happens once.
    - An approved adjustment never applies to stock that moved since the
      request (OptimisticLockError; the request stays pending).
    - The audit entry of an approved adjustment carries related_adjustment_id.
"""

from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import AdjustmentView
from inventory_kernel.domain.stock_levels import resolve_adjustment
from inventory_kernel.exceptions import (
    AdjustmentNotFoundError,
    InvalidStateError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.adjustment import (
    AdjustmentReason,
    AdjustmentType,
    ApprovalStatus,
    StockAdjustment,
)
from inventory_kernel.models.stock_movement import MovementType
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.movement_recorder import MovementRecorder
from inventory_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.adjustments")


class AdjustmentService(BaseService):
    """Creates and reviews StockAdjustment requests."""

    def __init__(self, session, clock=None, ledger: StockLedger | None = None):
        super().__init__(session, clock)
        self._ledger = ledger or StockLedger(session, self._clock)
        self._movements = MovementRecorder(session, self._clock, self._ledger)

    def request_adjustment(
        self,
        product_id: UUID,
        adjustment_type: AdjustmentType | str,
        reason_code: AdjustmentReason | str,
        quantity: int,
        actor_id: UUID,
        description: str | None = None,
    ) -> AdjustmentView:
        """
        Record a pending adjustment against the product's current stock.

        Raises:
            ValidationError: unknown type or reason, bad quantity, no change.
            StockRecordNotFoundError.
        """
        try:
            adjustment_type = AdjustmentType(adjustment_type)
        except ValueError:
            raise ValidationError(
                "adjustment_type must be increase, decrease or set", field="adjustment_type"
            ) from None
        try:
            reason_code = AdjustmentReason(reason_code)
        except ValueError:
            allowed = ", ".join(r.value for r in AdjustmentReason)
            raise ValidationError(f"reason_code must be one of: {allowed}", field="reason_code") from None

        record = self._ledger.get(product_id)
        proposed = resolve_adjustment(adjustment_type, record.physical_stock, quantity)
        if proposed == record.physical_stock:
            raise ValidationError("Adjustment does not change stock", field="quantity")

        adjustment = StockAdjustment(
            product_id=product_id,
            adjustment_type=adjustment_type.value,
            reason_code=reason_code.value,
            quantity=quantity,
            previous_physical=record.physical_stock,
            proposed_physical=proposed,
            expected_version=record.version,
            approval_status=ApprovalStatus.PENDING.value,
            description=description,
            created_by_id=actor_id,
        )
        self.session.add(adjustment)
        self.session.flush()

        logger.info(
            "adjustment_requested",
            extra={
                "adjustment_id": str(adjustment.id),
                "product_id": str(product_id),
                "adjustment_type": adjustment_type.value,
                "proposed_physical": proposed,
            },
        )
        return AdjustmentView.from_model(adjustment)

    def review_adjustment(
        self,
        adjustment_id: UUID,
        approve: bool,
        actor_id: UUID,
        notes: str | None = None,
    ) -> AdjustmentView:
        """
        Approve or reject a pending adjustment.

        Raises:
            AdjustmentNotFoundError, InvalidStateError (not pending),
            OptimisticLockError (stock moved since the request),
            InvalidMutationError (change would break a stock invariant).
        """
        adjustment = self.session.execute(
            select(StockAdjustment)
            .where(StockAdjustment.id == adjustment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if adjustment is None:
            raise AdjustmentNotFoundError(str(adjustment_id))
        if not adjustment.is_pending:
            raise InvalidStateError(
                "StockAdjustment", str(adjustment_id), adjustment.approval_status, "review"
            )

        if approve:
            record = self._ledger.get(adjustment.product_id)
            movement_notes = f"Adjustment ({adjustment.reason_code})"
            if adjustment.description:
                movement_notes = f"{movement_notes} {adjustment.description}"
            recorded = self._movements.record_movement(
                record.id,
                MovementType.ADJUSTMENT,
                adjustment.physical_delta,
                actor_id,
                notes=movement_notes,
                expected_version=adjustment.expected_version,
                related_adjustment_id=adjustment.id,
            )
            adjustment.audit_entry_id = recorded.audit_entry_id
            adjustment.approval_status = ApprovalStatus.APPROVED.value
        else:
            adjustment.approval_status = ApprovalStatus.REJECTED.value

        adjustment.reviewed_by_id = actor_id
        adjustment.reviewed_at = self._clock.now()
        adjustment.review_notes = notes
        adjustment.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "adjustment_reviewed",
            extra={
                "adjustment_id": str(adjustment.id),
                "product_id": str(adjustment.product_id),
                "approval_status": adjustment.approval_status,
            },
        )
        return AdjustmentView.from_model(adjustment)
