"""
Property-based tests for the ledger's balance and status rules.

- Any sequence of individually valid mutations keeps the total paid within
  [min(0, amount_due), max(0, amount_due)].
- The status calculator is a pure function of its inputs.
"""

from datetime import date, timedelta
from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from letably_kernel.domain.balance import check_payment_fits, settlement_bounds
from letably_kernel.domain.schedule_status import derive_status
from letably_kernel.domain.values import ScheduleStatus
from letably_kernel.exceptions import BalanceExceededError

amounts = st.decimals(
    min_value=Decimal("-5000.00"),
    max_value=Decimal("5000.00"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
).filter(lambda d: d != 0)

operations = st.lists(
    st.tuples(st.sampled_from(["record", "update", "delete"]), amounts, st.integers(min_value=0, max_value=20)),
    max_size=30,
)


def _apply(amount_due: Decimal, ops) -> list[Decimal]:
    """Replay ``ops`` the way the ledger does, keeping accepted ones only."""
    payments: list[Decimal] = []
    for kind, amount, index in ops:
        if kind == "record":
            try:
                check_payment_fits(amount_due, sum(payments, Decimal("0")), amount)
            except BalanceExceededError:
                continue
            payments.append(amount)
        elif kind == "update" and payments:
            i = index % len(payments)
            others = sum(payments[:i] + payments[i + 1:], Decimal("0"))
            try:
                check_payment_fits(amount_due, others, amount, editing=True)
            except BalanceExceededError:
                continue
            payments[i] = amount
        elif kind == "delete" and payments:
            candidate = payments[: index % len(payments)] + payments[index % len(payments) + 1:]
            # Deleting is unconditional in the ledger; the property covers
            # sequences of mutations that each keep the invariant
            low, high = settlement_bounds(amount_due)
            if low <= sum(candidate, Decimal("0")) <= high:
                payments = candidate
    return payments


class TestBalanceInvariant:
    @given(amount_due=amounts, ops=operations)
    @settings(max_examples=300, suppress_health_check=[HealthCheck.too_slow])
    def test_total_stays_within_bounds(self, amount_due, ops):
        payments = _apply(amount_due, ops)
        low, high = settlement_bounds(amount_due)
        assert low <= sum(payments, Decimal("0")) <= high

    @given(amount_due=amounts, paid=amounts)
    @settings(max_examples=300)
    def test_accepted_payment_returns_new_total(self, amount_due, paid):
        try:
            total = check_payment_fits(amount_due, Decimal("0"), paid)
        except BalanceExceededError as exc:
            assert exc.remaining_balance == amount_due
            return
        assert total == paid
        assert abs(paid) <= abs(amount_due)
        assert (paid > 0) == (amount_due > 0)


class TestStatusPurity:
    @given(
        amount_due=amounts,
        total=st.decimals(min_value=Decimal("-5000"), max_value=Decimal("5000"), places=2,
                          allow_nan=False, allow_infinity=False),
        due=st.dates(min_value=date(2024, 1, 1), max_value=date(2027, 12, 31)),
        offset=st.integers(min_value=-400, max_value=400),
    )
    @settings(max_examples=300)
    def test_same_inputs_same_status(self, amount_due, total, due, offset):
        today = due + timedelta(days=offset)
        first = derive_status(amount_due, total, due, today)
        assert derive_status(amount_due, total, due, today) is first

        if first is ScheduleStatus.PAID:
            # paid wins over overdue whatever the date
            assert derive_status(amount_due, total, due, due + timedelta(days=999)) is ScheduleStatus.PAID
        if due >= today:
            assert first is not ScheduleStatus.OVERDUE


class TestLedgerSequences:
    """The same invariant, driven through the real ledger and database."""

    @given(
        due=st.decimals(min_value=Decimal("1.00"), max_value=Decimal("900.00"), places=2,
                        allow_nan=False, allow_infinity=False),
        payments=st.lists(
            st.decimals(min_value=Decimal("-300.00"), max_value=Decimal("600.00"), places=2,
                        allow_nan=False, allow_infinity=False).filter(lambda d: d != 0),
            max_size=8,
        ),
    )
    @settings(
        max_examples=25,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
    )
    def test_recorded_total_never_leaves_bounds(self, ledger, tenancy_a, due, payments):
        agency = tenancy_a.agency_id
        schedule = ledger.create_manual_schedule(
            tenancy_a.tenancy_id, tenancy_a.member_id, date(2025, 9, 1), due, "rent", None, agency
        )
        for amount in payments:
            try:
                ledger.record_payment(schedule.id, amount, "2025-08-01", None, agency)
            except BalanceExceededError:
                pass

        stored = ledger.get_schedule(schedule.id, agency)
        assert Decimal("0") <= stored.amount_paid <= due
        assert stored.amount_paid == sum((p.amount for p in stored.payments), Decimal("0"))
        assert stored.remaining_balance == due - stored.amount_paid

    @given(count=st.integers(min_value=0, max_value=4))
    @settings(
        max_examples=10,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    def test_revert_is_idempotent(self, ledger, tenancy_a, count):
        agency = tenancy_a.agency_id
        schedule = ledger.create_manual_schedule(
            tenancy_a.tenancy_id, tenancy_a.member_id, date(2025, 9, 1), "400.00", "rent", None, agency
        )
        for _ in range(count):
            ledger.record_payment(schedule.id, "100.00", "2025-08-01", None, agency)

        first = ledger.revert_schedule(schedule.id, agency)
        second = ledger.revert_schedule(schedule.id, agency)

        for result in (first, second):
            assert result.stored_status == "pending"
            assert result.amount_paid == Decimal("0")
            assert result.payments == ()
