"""
AuditSelector -- filtered, paginated reads of the inventory audit log.

Entries come back newest first (descending ``seq``).  The summary counts
entries per operation type over the whole filtered set, not just the page.
"""

from uuid import UUID

from sqlalchemy import func, select

from inventory_kernel.domain.dtos import (
    DEFAULT_PAGE_SIZE,
    AuditEntryView,
    AuditQuery,
    AuditQueryResult,
    Pagination,
)
from inventory_kernel.models.audit_log import AuditLogEntry, OperationType
from inventory_kernel.selectors.base import BaseSelector


class AuditSelector(BaseSelector[AuditLogEntry]):
    """Read access to AuditLogEntry rows."""

    def _conditions(self, query: AuditQuery) -> list:
        conditions = []
        if query.product_id is not None:
            conditions.append(AuditLogEntry.product_id == query.product_id)
        if query.order_id is not None:
            conditions.append(AuditLogEntry.related_order_id == query.order_id)
        if query.operation_type is not None:
            conditions.append(AuditLogEntry.operation_type == query.operation_type.value)
        if query.start_date is not None:
            conditions.append(AuditLogEntry.occurred_at >= query.start_date)
        if query.end_date is not None:
            conditions.append(AuditLogEntry.occurred_at <= query.end_date)
        return conditions

    def query_audit(self, query: AuditQuery) -> AuditQueryResult:
        conditions = self._conditions(query)

        summary_rows = self.session.execute(
            select(AuditLogEntry.operation_type, func.count(AuditLogEntry.id))
            .where(*conditions)
            .group_by(AuditLogEntry.operation_type)
        ).all()
        summary = {operation_type: count for operation_type, count in summary_rows}
        total = sum(summary.values())

        entries = self.session.execute(
            select(AuditLogEntry)
            .where(*conditions)
            .order_by(AuditLogEntry.seq.desc())
            .limit(query.limit)
            .offset(query.offset)
        ).scalars().all()

        return AuditQueryResult(
            entries=tuple(AuditEntryView.from_model(e) for e in entries),
            summary=summary,
            pagination=Pagination(total=total, limit=query.limit, offset=query.offset),
        )

    def return_history(
        self,
        product_id: UUID | None = None,
        order_id: UUID | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> AuditQueryResult:
        """Audit entries for processed returns."""
        return self.query_audit(
            AuditQuery(
                product_id=product_id,
                order_id=order_id,
                operation_type=OperationType.RETURN_PROCESSING,
                limit=limit,
                offset=offset,
            )
        )

    def entries_for_product(self, product_id: UUID) -> list[AuditEntryView]:
        """Full trail of one product, oldest first."""
        entries = self.session.execute(
            select(AuditLogEntry)
            .where(AuditLogEntry.product_id == product_id)
            .order_by(AuditLogEntry.seq)
        ).scalars().all()
        return [AuditEntryView.from_model(e) for e in entries]
