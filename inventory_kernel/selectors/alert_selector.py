"""AlertSelector -- paginated reorder alerts with type/status statistics."""

from sqlalchemy import func, select

from inventory_kernel.domain.dtos import AlertListResult, AlertQuery, AlertView, Pagination
from inventory_kernel.exceptions import AlertNotFoundError
from inventory_kernel.models.reorder_alert import AlertStatus, AlertType, ReorderAlert
from inventory_kernel.selectors.base import BaseSelector


class AlertSelector(BaseSelector[ReorderAlert]):

    def get_alert(self, alert_id) -> AlertView:
        alert = self.session.get(ReorderAlert, alert_id)
        if alert is None:
            raise AlertNotFoundError(str(alert_id))
        return AlertView.from_model(alert)

    def list_alerts(self, query: AlertQuery) -> AlertListResult:
        """
        Alerts matching ``query``, newest first.

        ``statistics`` is ``{alert_type: {status: count}}`` over all alerts,
        every type and status present with zero defaults.
        """
        conditions = []
        if query.alert_status is not None:
            conditions.append(ReorderAlert.alert_status == query.alert_status.value)
        if query.alert_type is not None:
            conditions.append(ReorderAlert.alert_type == query.alert_type.value)
        if query.product_id is not None:
            conditions.append(ReorderAlert.product_id == query.product_id)

        total = self.session.execute(
            select(func.count(ReorderAlert.id)).where(*conditions)
        ).scalar_one()
        alerts = self.session.execute(
            select(ReorderAlert)
            .where(*conditions)
            .order_by(ReorderAlert.triggered_at.desc(), ReorderAlert.id)
            .limit(query.limit)
            .offset(query.offset)
        ).scalars().all()

        statistics = {t.value: {s.value: 0 for s in AlertStatus} for t in AlertType}
        for alert_type, alert_status, count in self.session.execute(
            select(ReorderAlert.alert_type, ReorderAlert.alert_status, func.count(ReorderAlert.id))
            .group_by(ReorderAlert.alert_type, ReorderAlert.alert_status)
        ).all():
            statistics.setdefault(alert_type, {})[alert_status] = count

        return AlertListResult(
            alerts=tuple(AlertView.from_model(a) for a in alerts),
            statistics=statistics,
            pagination=Pagination(total=total, limit=query.limit, offset=query.offset),
        )
