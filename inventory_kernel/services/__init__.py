"""Services for the inventory kernel (write side)."""

from inventory_kernel.services.adjustment_service import AdjustmentService
from inventory_kernel.services.audit_logger import AuditLogger
from inventory_kernel.services.bulk_coordinator import BulkOperationCoordinator
from inventory_kernel.services.movement_recorder import MovementRecorder, RecordedMovement
from inventory_kernel.services.reorder_alert_service import ReorderAlertService
from inventory_kernel.services.reservation_manager import ReservationManager
from inventory_kernel.services.return_processor import ReturnProcessor
from inventory_kernel.services.sequence_service import SequenceService
from inventory_kernel.services.stock_ledger import MutationResult, StockLedger
from inventory_kernel.services.sync_reconciler import SyncReconciler

__all__ = [
    "AdjustmentService",
    "AuditLogger",
    "BulkOperationCoordinator",
    "MovementRecorder",
    "MutationResult",
    "RecordedMovement",
    "ReorderAlertService",
    "ReservationManager",
    "ReturnProcessor",
    "SequenceService",
    "StockLedger",
    "SyncReconciler",
]
