"""
SequenceService -- gap-free counters for the audit log.

Each named sequence is one ``sequence_counters`` row.  Allocation locks that
row for the rest of the transaction (``FOR UPDATE`` on PostgreSQL; SQLite
already holds the database write lock from BEGIN IMMEDIATE), so two
transactions can never draw the same number and a rollback gives the number
back.  ``MAX(seq) + 1`` is never used.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.exceptions import InternalError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """Allocates the next value of a named sequence inside the caller's transaction."""

    AUDIT_LOG = "inventory_audit_log"

    def __init__(self, session: Session):
        self._session = session

    def _lock(self, name: str) -> SequenceCounter | None:
        stmt = (
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def _create(self, name: str) -> SequenceCounter | None:
        """Insert the counter at zero; None if another transaction got there first."""
        try:
            with self._session.begin_nested():
                counter = SequenceCounter(name=name, current_value=0)
                self._session.add(counter)
            return counter
        except IntegrityError:
            logger.debug("sequence_counter_exists", extra={"sequence_name": name})
            return None

    def next_value(self, name: str) -> int:
        """Return a value strictly greater than any earlier one for ``name``."""
        counter = self._lock(name) or self._create(name) or self._lock(name)
        if counter is None:
            raise InternalError("next_value", f"sequence counter {name!r} could not be created or locked")

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value
