"""MovementSelector -- stock movement history and per-type trend summaries."""

from sqlalchemy import func, select

from inventory_kernel.domain.dtos import MovementQuery, MovementSummaryRow, MovementView, Pagination
from inventory_kernel.models.stock_movement import MovementType, StockMovement
from inventory_kernel.selectors.base import BaseSelector


class MovementSelector(BaseSelector[StockMovement]):

    def _conditions(self, query: MovementQuery) -> list:
        conditions = []
        if query.product_id is not None:
            conditions.append(StockMovement.product_id == query.product_id)
        if query.movement_type is not None:
            conditions.append(StockMovement.movement_type == query.movement_type.value)
        if query.start_date is not None:
            conditions.append(StockMovement.occurred_at >= query.start_date)
        if query.end_date is not None:
            conditions.append(StockMovement.occurred_at <= query.end_date)
        return conditions

    def list_movements(self, query: MovementQuery) -> tuple[list[MovementView], Pagination]:
        """Movements matching ``query``, newest first."""
        conditions = self._conditions(query)
        total = self.session.execute(
            select(func.count(StockMovement.id)).where(*conditions)
        ).scalar_one()
        movements = self.session.execute(
            select(StockMovement)
            .where(*conditions)
            .order_by(StockMovement.occurred_at.desc(), StockMovement.id)
            .limit(query.limit)
            .offset(query.offset)
        ).scalars().all()
        return (
            [MovementView.from_model(m) for m in movements],
            Pagination(total=total, limit=query.limit, offset=query.offset),
        )

    def movement_summary(self, query: MovementQuery) -> list[MovementSummaryRow]:
        """Count and net delta per movement type over the filtered set (pagination ignored)."""
        rows = self.session.execute(
            select(
                StockMovement.movement_type,
                func.count(StockMovement.id),
                func.coalesce(func.sum(StockMovement.quantity_delta), 0),
            )
            .where(*self._conditions(query))
            .group_by(StockMovement.movement_type)
            .order_by(StockMovement.movement_type)
        ).all()
        return [
            MovementSummaryRow(movement_type=MovementType(t), count=count, net_delta=int(net))
            for t, count, net in rows
        ]
