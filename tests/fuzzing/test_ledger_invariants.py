"""
Property-based fuzzing of the stock ledger.

Random sequences of physical/reserved deltas are applied to one record and
checked against the pure StockLevels model:

- a mutation succeeds exactly when the model says it is legal
- physical >= 0, reserved >= 0 and reserved <= physical after every step
- the audit trail replays to the final counts
"""

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy import select

from inventory_kernel.domain.stock_levels import StockLevels
from inventory_kernel.exceptions import InvalidMutationError
from inventory_kernel.models.audit_log import AuditLogEntry, OperationType

_OPERATIONS = {
    "receive": OperationType.MANUAL_ADJUSTMENT,
    "ship": OperationType.FULFILLMENT,
    "reserve": OperationType.RESERVATION,
    "release": OperationType.RELEASE,
}


@st.composite
def ledger_steps(draw):
    kind = draw(st.sampled_from(sorted(_OPERATIONS)))
    amount = draw(st.integers(min_value=1, max_value=20))
    if kind == "receive":
        return kind, amount, 0
    if kind == "ship":
        return kind, -amount, -draw(st.integers(min_value=0, max_value=amount))
    if kind == "reserve":
        return kind, 0, amount
    return kind, 0, -amount


_SETTINGS = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)


class TestLedgerInvariants:
    @given(initial=st.integers(min_value=0, max_value=30), steps=st.lists(ledger_steps(), max_size=25))
    @_SETTINGS
    def test_mutations_match_model(self, ledger, make_stock, initial, steps, test_actor_id):
        product_id = make_stock(physical=initial)
        record = ledger.get(product_id)
        model = StockLevels(physical=initial, reserved=0, version=record.version)

        for kind, physical_delta, reserved_delta in steps:
            legal = model.can_apply(physical_delta, reserved_delta)
            try:
                result = ledger.mutate(
                    product_id,
                    physical_delta=physical_delta,
                    reserved_delta=reserved_delta,
                    operation_type=_OPERATIONS[kind],
                    actor_id=test_actor_id,
                )
            except InvalidMutationError:
                assert not legal
                continue

            assert legal
            model = model.apply(physical_delta, reserved_delta)
            assert (result.after.physical, result.after.reserved, result.after.version) == (
                model.physical,
                model.reserved,
                model.version,
            )
            assert result.after.physical >= 0
            assert 0 <= result.after.reserved <= result.after.physical

        record = ledger.get(product_id)
        assert (record.physical_stock, record.reserved_stock) == (model.physical, model.reserved)

    @given(steps=st.lists(ledger_steps(), min_size=1, max_size=15))
    @_SETTINGS
    def test_audit_trail_replays(self, ledger, make_stock, session, steps, test_actor_id):
        product_id = make_stock(physical=15)
        for kind, physical_delta, reserved_delta in steps:
            try:
                ledger.mutate(
                    product_id,
                    physical_delta=physical_delta,
                    reserved_delta=reserved_delta,
                    operation_type=_OPERATIONS[kind],
                    actor_id=test_actor_id,
                )
            except InvalidMutationError:
                pass

        entries = session.execute(
            select(AuditLogEntry).where(AuditLogEntry.product_id == product_id).order_by(AuditLogEntry.seq)
        ).scalars().all()
        physical, reserved = 0, 0
        for entry in entries:
            assert (entry.physical_before, entry.reserved_before) == (physical, reserved)
            assert entry.available_after == max(0, entry.physical_after - entry.reserved_after)
            physical, reserved = entry.physical_after, entry.reserved_after

        record = ledger.get(product_id)
        assert (record.physical_stock, record.reserved_stock) == (physical, reserved)
