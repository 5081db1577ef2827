"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract for every write-side
    service.  Services use ``session.flush()``, never ``session.commit()``;
    the caller (InventoryService or a test harness) owns commit/rollback so
    that a stock mutation, its audit entry and any order bookkeeping land in
    one transaction.
"""

from abc import ABC

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or ``session.rollback()``
          on the outer transaction; it may open and close SAVEPOINTs.

    Non-goals:
        - Does NOT provide query-only read paths; those live in
          ``inventory_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()
