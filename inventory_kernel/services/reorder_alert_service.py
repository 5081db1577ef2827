"""
ReorderAlertService -- raises and manages low-stock alerts.

Responsibility:
    After any stock-decreasing operation the service layer calls
    ``check_product()``.  When available stock is at or below the record's
    reorder point (or the configured default threshold) an alert is opened;
    when stock recovers, open alerts are resolved.  Admins move alerts
    through acknowledged / resolved / dismissed with ``update_alert()``.

Invariants enforced:
    - At most one open (active or acknowledged) alert per product.
    - Only open alerts can change status.
"""

from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import AlertView
from inventory_kernel.domain.stock_levels import classify_alert, suggested_reorder_quantity
from inventory_kernel.exceptions import AlertNotFoundError, InvalidStateError, ValidationError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.reorder_alert import OPEN_ALERT_STATUSES, AlertStatus, ReorderAlert
from inventory_kernel.models.stock_record import StockRecord, StockStatus
from inventory_kernel.services.base import BaseService

logger = get_logger("services.alerts")

DEFAULT_LOW_STOCK_THRESHOLD = 5
DEFAULT_REORDER_BUFFER_PERCENTAGE = 20

_REVIEW_STATUSES = (AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED, AlertStatus.DISMISSED)


class ReorderAlertService(BaseService):
    def __init__(
        self,
        session,
        clock=None,
        default_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
        buffer_percentage: int = DEFAULT_REORDER_BUFFER_PERCENTAGE,
    ):
        super().__init__(session, clock)
        self._default_threshold = default_threshold
        self._buffer_percentage = buffer_percentage

    def check_product(self, product_id: UUID) -> AlertView | None:
        """
        Open, refresh or resolve the product's alert to match its stock.

        Returns the open alert after the check, or None when stock is healthy
        (or the product has no active stock record).
        """
        record = self.session.execute(
            select(StockRecord)
            .where(StockRecord.product_id == product_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if record is None or record.status != StockStatus.ACTIVE.value:
            return None

        threshold = record.reorder_point if record.reorder_point is not None else self._default_threshold
        available = record.available_stock
        alert_type = classify_alert(available, threshold)
        now = self._clock.now()

        open_alerts = self.session.execute(
            select(ReorderAlert)
            .where(ReorderAlert.product_id == product_id)
            .where(ReorderAlert.alert_status.in_(OPEN_ALERT_STATUSES))
            .order_by(ReorderAlert.triggered_at)
        ).scalars().all()

        if alert_type is None:
            for alert in open_alerts:
                alert.alert_status = AlertStatus.RESOLVED.value
                alert.resolved_at = now
                alert.notes = "Stock recovered"
                logger.info(
                    "reorder_alert_auto_resolved",
                    extra={"alert_id": str(alert.id), "product_id": str(product_id)},
                )
            self.session.flush()
            return None

        suggested = suggested_reorder_quantity(
            available, threshold, record.max_stock, self._buffer_percentage
        )

        if open_alerts:
            alert = open_alerts[0]
            alert.alert_type = alert_type.value
            alert.current_available = available
            alert.reorder_point = threshold
            alert.suggested_reorder_quantity = suggested
            self.session.flush()
            return AlertView.from_model(alert)

        alert = ReorderAlert(
            product_id=product_id,
            alert_type=alert_type.value,
            current_available=available,
            reorder_point=threshold,
            suggested_reorder_quantity=suggested,
            alert_status=AlertStatus.ACTIVE.value,
            triggered_at=now,
        )
        self.session.add(alert)
        self.session.flush()

        logger.warning(
            "reorder_alert_raised",
            extra={
                "alert_id": str(alert.id),
                "product_id": str(product_id),
                "alert_type": alert_type.value,
                "available": available,
                "threshold": threshold,
                "suggested_reorder_quantity": suggested,
            },
        )
        return AlertView.from_model(alert)

    def check_all(self) -> list[AlertView]:
        """Run ``check_product`` for every active stock record; returns the open alerts."""
        product_ids = self.session.execute(
            select(StockRecord.product_id)
            .where(StockRecord.status == StockStatus.ACTIVE.value)
            .order_by(StockRecord.product_id)
        ).scalars().all()
        open_alerts = []
        for product_id in product_ids:
            alert = self.check_product(product_id)
            if alert is not None:
                open_alerts.append(alert)
        return open_alerts

    def update_alert(
        self,
        alert_id: UUID,
        status: AlertStatus | str,
        actor_id: UUID,
        notes: str | None = None,
    ) -> AlertView:
        """
        Acknowledge, resolve or dismiss an open alert.

        Raises:
            ValidationError: target status is not a review status.
            AlertNotFoundError.
            InvalidStateError: the alert is already resolved or dismissed.
        """
        try:
            status = AlertStatus(status)
        except ValueError:
            status = None
        if status not in _REVIEW_STATUSES:
            allowed = ", ".join(s.value for s in _REVIEW_STATUSES)
            raise ValidationError(f"status must be one of: {allowed}", field="status")

        alert = self.session.get(ReorderAlert, alert_id)
        if alert is None:
            raise AlertNotFoundError(str(alert_id))
        if not alert.is_open:
            raise InvalidStateError("ReorderAlert", str(alert_id), alert.alert_status, status.value)

        now = self._clock.now()
        alert.alert_status = status.value
        if status is AlertStatus.ACKNOWLEDGED:
            alert.acknowledged_by_id = actor_id
            alert.acknowledged_at = now
        else:
            alert.resolved_at = now
        if notes is not None:
            alert.notes = notes
        self.session.flush()

        logger.info(
            "reorder_alert_updated",
            extra={"alert_id": str(alert_id), "alert_status": status.value, "actor_id": str(actor_id)},
        )
        return AlertView.from_model(alert)
