"""
AuditLogger -- tamper-evident inventory audit trail.

Responsibility:
    Writes one hash-chained AuditLogEntry per stock ledger mutation and
    validates the chain on demand.

Architecture position:
    Kernel > Services.  Called by StockLedger only; peers never write audit
    entries directly, so "one mutation, one entry" holds by construction.

Invariants enforced:
    - seq allocated from SequenceService (never max+1).
    - hash = H(product_id | operation_type | seq | payload_hash | prev_hash).
    - Append-only (ORM listeners on AuditLogEntry).
    - The entry is flushed in the caller's transaction; if the mutation rolls
      back, so does its entry.

Failure modes:
    - AuditChainBrokenError from validate_chain() when a stored hash or a
      prev_hash link does not match.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.stock_levels import StockLevels
from inventory_kernel.exceptions import AuditChainBrokenError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.audit_log import AuditLogEntry, OperationType
from inventory_kernel.services.sequence_service import SequenceService
from inventory_kernel.utils.hashing import hash_audit_entry, hash_payload

logger = get_logger("services.audit")


class AuditLogger:
    """
    Hash-chained audit writer.

    Guarantees:
        - Every returned entry is flushed and linked to its predecessor.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT query entries for reporting; see AuditSelector.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        return self._session.execute(
            select(AuditLogEntry.hash).order_by(AuditLogEntry.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def record_mutation(
        self,
        *,
        product_id: UUID,
        operation_type: OperationType,
        before: StockLevels,
        after: StockLevels,
        actor_id: UUID,
        quantity_affected: int = 0,
        related_order_id: UUID | None = None,
        related_adjustment_id: UUID | None = None,
        notes: str | None = None,
    ) -> AuditLogEntry:
        """
        Append the audit entry describing one stock mutation.

        Preconditions:
            - Called inside the transaction that performed the mutation.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_LOG)
        prev_hash = self._get_last_hash()

        entry = AuditLogEntry(
            seq=seq,
            product_id=product_id,
            operation_type=operation_type.value,
            physical_before=before.physical,
            physical_after=after.physical,
            reserved_before=before.reserved,
            reserved_after=after.reserved,
            available_before=before.available,
            available_after=after.available,
            version_before=before.version,
            version_after=after.version,
            quantity_affected=quantity_affected,
            related_order_id=related_order_id,
            related_adjustment_id=related_adjustment_id,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            notes=notes,
            prev_hash=prev_hash,
        )
        entry.payload_hash = hash_payload(entry.hashable_payload())
        entry.hash = hash_audit_entry(
            product_id=str(product_id),
            operation_type=operation_type.value,
            seq=seq,
            payload_hash=entry.payload_hash,
            prev_hash=prev_hash,
        )

        self._session.add(entry)
        self._session.flush()

        logger.info(
            "audit_entry_created",
            extra={
                "product_id": str(product_id),
                "operation_type": operation_type.value,
                "seq": seq,
                "quantity_affected": quantity_affected,
            },
        )
        return entry

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: If any stored hash or link is wrong.
        """
        entries = self._session.execute(
            select(AuditLogEntry).order_by(AuditLogEntry.seq)
        ).scalars().all()

        prev_hash: str | None = None
        for entry in entries:
            if entry.prev_hash != prev_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"entry_id": str(entry.id), "seq": entry.seq, "check": "link"},
                )
                raise AuditChainBrokenError(str(entry.id), str(prev_hash), str(entry.prev_hash))

            payload_hash = hash_payload(entry.hashable_payload())
            expected_hash = hash_audit_entry(
                product_id=str(entry.product_id),
                operation_type=entry.operation_type,
                seq=entry.seq,
                payload_hash=payload_hash,
                prev_hash=entry.prev_hash,
            )
            if payload_hash != entry.payload_hash or expected_hash != entry.hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"entry_id": str(entry.id), "seq": entry.seq, "check": "hash"},
                )
                raise AuditChainBrokenError(str(entry.id), expected_hash, entry.hash)

            prev_hash = entry.hash

        logger.info("audit_chain_validated", extra={"entry_count": len(entries)})
        return True
