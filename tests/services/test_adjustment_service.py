"""
Tests for the adjustment request / review workflow.
"""

from uuid import uuid4

import pytest

from inventory_kernel.exceptions import (
    AdjustmentNotFoundError,
    InvalidStateError,
    OptimisticLockError,
    ValidationError,
)
from inventory_kernel.models.adjustment import ApprovalStatus
from inventory_kernel.models.audit_log import AuditLogEntry

REVIEWER_ID = uuid4()


class TestRequestAdjustment:
    """Creating pending requests."""

    def test_captures_current_stock(self, adjustment_service, ledger, make_stock, test_actor_id):
        product_id = make_stock(physical=10)
        version = ledger.get(product_id).version

        view = adjustment_service.request_adjustment(
            product_id, "decrease", "damaged", 3, test_actor_id, description="Shelf collapse"
        )

        assert view.approval_status == ApprovalStatus.PENDING.value
        assert view.previous_physical == 10
        assert view.proposed_physical == 7
        assert view.expected_version == version
        assert view.requested_by_id == test_actor_id
        assert ledger.get(product_id).physical_stock == 10

    def test_unknown_reason(self, adjustment_service, make_stock, test_actor_id):
        with pytest.raises(ValidationError) as exc_info:
            adjustment_service.request_adjustment(make_stock(), "increase", "gift", 1, test_actor_id)

        assert exc_info.value.field == "reason_code"

    def test_no_change_rejected(self, adjustment_service, make_stock, test_actor_id):
        with pytest.raises(ValidationError):
            adjustment_service.request_adjustment(make_stock(physical=4), "set", "correction", 4, test_actor_id)

    def test_decrease_beyond_stock(self, adjustment_service, make_stock, test_actor_id):
        with pytest.raises(ValidationError):
            adjustment_service.request_adjustment(make_stock(physical=1), "decrease", "lost", 2, test_actor_id)


class TestReviewAdjustment:
    """Approving and rejecting."""

    def test_approve_applies_change(self, adjustment_service, ledger, make_stock, session, test_actor_id):
        product_id = make_stock(physical=10)
        request = adjustment_service.request_adjustment(product_id, "set", "correction", 12, test_actor_id)

        view = adjustment_service.review_adjustment(request.adjustment_id, True, REVIEWER_ID, notes="Counted twice")

        assert ledger.get(product_id).physical_stock == 12
        assert view.approval_status == ApprovalStatus.APPROVED.value
        assert view.reviewed_by_id == REVIEWER_ID
        assert view.reviewed_at is not None
        assert view.review_notes == "Counted twice"
        entry = session.get(AuditLogEntry, view.audit_entry_id)
        assert entry.related_adjustment_id == request.adjustment_id
        assert entry.actor_id == REVIEWER_ID
        assert entry.notes == "adjustment: Adjustment (correction)"

    def test_reject_leaves_stock(self, adjustment_service, ledger, make_stock, test_actor_id):
        product_id = make_stock(physical=10)
        request = adjustment_service.request_adjustment(product_id, "increase", "received", 5, test_actor_id)

        view = adjustment_service.review_adjustment(request.adjustment_id, False, REVIEWER_ID)

        assert view.approval_status == ApprovalStatus.REJECTED.value
        assert view.audit_entry_id is None
        assert ledger.get(product_id).physical_stock == 10

    def test_review_only_once(self, adjustment_service, make_stock, test_actor_id):
        request = adjustment_service.request_adjustment(make_stock(), "increase", "received", 1, test_actor_id)
        adjustment_service.review_adjustment(request.adjustment_id, False, REVIEWER_ID)

        with pytest.raises(InvalidStateError):
            adjustment_service.review_adjustment(request.adjustment_id, True, REVIEWER_ID)

    def test_stock_moved_since_request(
        self, adjustment_service, movement_recorder, ledger, make_stock, test_actor_id
    ):
        product_id = make_stock(physical=10)
        request = adjustment_service.request_adjustment(product_id, "set", "correction", 2, test_actor_id)
        movement_recorder.adjust(product_id, "increase", 1, test_actor_id)

        with pytest.raises(OptimisticLockError):
            adjustment_service.review_adjustment(request.adjustment_id, True, REVIEWER_ID)

        assert ledger.get(product_id).physical_stock == 11

    def test_unknown_adjustment(self, adjustment_service):
        with pytest.raises(AdjustmentNotFoundError):
            adjustment_service.review_adjustment(uuid4(), True, REVIEWER_ID)
