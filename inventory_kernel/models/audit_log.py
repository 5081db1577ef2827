"""
Module: inventory_kernel.models.audit_log
Responsibility: ORM persistence for the tamper-evident inventory audit log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listeners in db/immutability.py).
    - Hash chain: hash = H(product_id | operation_type | payload_hash | prev_hash),
      validated by AuditLogger.validate_chain().
    - seq is monotonically increasing, allocated by SequenceService.
    - Exactly one entry per stock ledger mutation, flushed in the same
      transaction as the mutation it describes.

Audit relevance:
    This IS the inventory audit trail.  Each entry carries the complete
    before/after snapshot of physical, reserved and available stock plus the
    version transition, so any stock level can be reconstructed.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UUIDString


class OperationType(str, Enum):
    """Kinds of stock-affecting operations recorded in the audit log."""

    RESERVATION = "reservation"
    RELEASE = "release"
    FULFILLMENT = "fulfillment"
    RETURN_PROCESSING = "return_processing"
    BULK_UPDATE = "bulk_update"
    MANUAL_ADJUSTMENT = "manual_adjustment"


class AuditLogEntry(Base):
    """
    One audited stock mutation.

    Contract:
        Rows are append-only.  Each row's hash includes the previous row's
        hash, so retroactive edits are detectable.

    Non-goals:
        - Does NOT compute its own hash; that is AuditLogger's job.
    """

    __tablename__ = "inventory_audit_log"

    __table_args__ = (
        Index("idx_inv_audit_product", "product_id"),
        Index("idx_inv_audit_order", "related_order_id"),
        Index("idx_inv_audit_operation", "operation_type"),
        Index("idx_inv_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    operation_type: Mapped[str] = mapped_column(String(40), nullable=False)

    physical_before: Mapped[int] = mapped_column(Integer, nullable=False)
    physical_after: Mapped[int] = mapped_column(Integer, nullable=False)
    reserved_before: Mapped[int] = mapped_column(Integer, nullable=False)
    reserved_after: Mapped[int] = mapped_column(Integer, nullable=False)
    available_before: Mapped[int] = mapped_column(Integer, nullable=False)
    available_after: Mapped[int] = mapped_column(Integer, nullable=False)
    version_before: Mapped[int] = mapped_column(Integer, nullable=False)
    version_after: Mapped[int] = mapped_column(Integer, nullable=False)

    quantity_affected: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    related_order_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    related_adjustment_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Null only for the genesis entry
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLogEntry #{self.seq} {self.operation_type} product={self.product_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    def hashable_payload(self) -> dict:
        """Fields covered by payload_hash."""
        return {
            "product_id": str(self.product_id),
            "operation_type": self.operation_type,
            "physical": [self.physical_before, self.physical_after],
            "reserved": [self.reserved_before, self.reserved_after],
            "available": [self.available_before, self.available_after],
            "version": [self.version_before, self.version_after],
            "quantity_affected": self.quantity_affected,
            "related_order_id": str(self.related_order_id) if self.related_order_id else None,
            "related_adjustment_id": (
                str(self.related_adjustment_id) if self.related_adjustment_id else None
            ),
            "actor_id": str(self.actor_id),
            "notes": self.notes,
        }
