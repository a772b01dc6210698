"""
Tests for the schedule engine through PaymentLedger.

Covers:
- Manual schedule creation and its preconditions
- Amount edits and the one-way automated -> manual downgrade
- Deletion guard and revert
- Automated deposit, rent and deposit-return generation
- Monthly billing of rolling tenancies
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from letably_kernel.domain.values import ScheduleStatus
from letably_kernel.exceptions import (
    ConflictError,
    InvalidInputError,
    InvalidPaymentTypeError,
    InvalidStateError,
    MissingFieldError,
    ScheduleHasPaymentsError,
    ScheduleNotFoundError,
    SchedulesAlreadyGeneratedError,
    TenancyMemberNotFoundError,
    TenancyNotActiveError,
    TenancyNotFoundError,
    ZeroAmountError,
)
from tests.factories import seed_tenancy


def _create(ledger, tenancy, **overrides):
    args = {
        "tenancy_id": tenancy.tenancy_id,
        "member_id": tenancy.member_id,
        "due_date": date(2025, 9, 1),
        "amount_due": Decimal("500.00"),
        "payment_type": "rent",
        "description": "September rent",
        "agency_id": tenancy.agency_id,
    }
    args.update(overrides)
    return ledger.create_manual_schedule(**args)


class TestCreateManualSchedule:
    def test_creates_pending_manual_schedule(self, ledger, tenancy_a):
        schedule = _create(ledger, tenancy_a)

        assert schedule.schedule_type == "manual"
        assert schedule.stored_status == "pending"
        assert schedule.status is ScheduleStatus.PENDING
        assert schedule.amount_due == Decimal("500.00")
        assert schedule.amount_paid == Decimal("0.00")
        assert schedule.payments == ()
        assert schedule.agency_id == tenancy_a.agency_id
        assert schedule.tenancy_member_id == tenancy_a.member_id

    def test_accepts_string_ids_and_values(self, ledger, tenancy_a):
        schedule = _create(
            ledger,
            tenancy_a,
            tenancy_id=str(tenancy_a.tenancy_id),
            member_id=str(tenancy_a.member_id),
            due_date="2025-10-01",
            amount_due="120.50",
            agency_id=str(tenancy_a.agency_id),
        )
        assert schedule.due_date == date(2025, 10, 1)
        assert schedule.amount_due == Decimal("120.50")

    def test_expired_tenancy_rejected(self, ledger, agency_a):
        """An expired tenancy cannot receive schedules."""
        expired = seed_tenancy(agency_a, status="expired")
        with pytest.raises(TenancyNotActiveError) as exc_info:
            _create(ledger, expired)
        assert isinstance(exc_info.value, InvalidStateError)
        assert exc_info.value.status == "expired"

    @pytest.mark.parametrize("status", ["pending", "awaiting_signatures"])
    def test_not_yet_active_tenancy_rejected(self, ledger, agency_a, status):
        tenancy = seed_tenancy(agency_a, status=status)
        with pytest.raises(TenancyNotActiveError):
            _create(ledger, tenancy)

    def test_zero_amount_rejected(self, ledger, tenancy_a):
        with pytest.raises(ZeroAmountError):
            _create(ledger, tenancy_a, amount_due="0.00")

    def test_huge_amount_rejected_as_invalid_input(self, ledger, tenancy_a):
        with pytest.raises(InvalidInputError):
            _create(ledger, tenancy_a, amount_due="1e30")
        with pytest.raises(InvalidInputError):
            _create(ledger, tenancy_a, amount_due=Decimal("1E+10"))

    def test_unknown_payment_type_rejected(self, ledger, tenancy_a):
        with pytest.raises(InvalidPaymentTypeError):
            _create(ledger, tenancy_a, payment_type="parking")

    def test_missing_member_rejected(self, ledger, tenancy_a):
        with pytest.raises(MissingFieldError):
            _create(ledger, tenancy_a, member_id=None)

    def test_unknown_tenancy(self, ledger, tenancy_a):
        with pytest.raises(TenancyNotFoundError):
            _create(ledger, tenancy_a, tenancy_id=uuid4())

    def test_malformed_tenancy_id_reads_as_not_found(self, ledger, tenancy_a):
        with pytest.raises(TenancyNotFoundError):
            _create(ledger, tenancy_a, tenancy_id="not-a-uuid")

    def test_member_of_another_tenancy_rejected(self, ledger, agency_a, tenancy_a):
        other = seed_tenancy(agency_a, address="99 Other Road")
        with pytest.raises(TenancyMemberNotFoundError):
            _create(ledger, tenancy_a, member_id=other.member_id)

    def test_validation_happens_before_any_write(self, ledger, tenancy_a):
        with pytest.raises(InvalidInputError):
            _create(ledger, tenancy_a, amount_due="zero")
        assert ledger.tenancy_schedules(tenancy_a.tenancy_id, tenancy_a.agency_id) == []


class TestUpdateScheduleAmount:
    def test_updates_fields(self, ledger, schedule_a, tenancy_a):
        updated = ledger.update_schedule_amount(
            schedule_a.id, "550.00", "2025-09-05", "fees", "Admin fee", tenancy_a.agency_id
        )
        assert updated.amount_due == Decimal("550.00")
        assert updated.due_date == date(2025, 9, 5)
        assert updated.payment_type == "fees"
        assert updated.description == "Admin fee"
        assert updated.schedule_type == "manual"

    def test_automated_schedule_becomes_manual(self, ledger, tenancy_a):
        generated = ledger.generate_for_tenancy(tenancy_a.tenancy_id, tenancy_a.agency_id)
        target = generated.schedules[0]
        assert target.schedule_type == "automated"

        updated = ledger.update_schedule_amount(
            target.id, "400.00", target.due_date, "rent", target.description, tenancy_a.agency_id
        )
        assert updated.schedule_type == "manual"

        # Restoring the original values does not restore "automated"
        again = ledger.update_schedule_amount(
            target.id, target.amount_due, target.due_date, "rent", target.description, tenancy_a.agency_id
        )
        assert again.schedule_type == "manual"

    def test_description_required(self, ledger, schedule_a, tenancy_a):
        with pytest.raises(MissingFieldError):
            ledger.update_schedule_amount(
                schedule_a.id, "550.00", "2025-09-01", "rent", "  ", tenancy_a.agency_id
            )

    def test_unknown_schedule(self, ledger, tenancy_a):
        with pytest.raises(ScheduleNotFoundError):
            ledger.update_schedule_amount(
                uuid4(), "550.00", "2025-09-01", "rent", "Rent", tenancy_a.agency_id
            )

    def test_lowering_below_paid_keeps_payments_and_logs(
        self, ledger, schedule_a, tenancy_a, captured_logs
    ):
        """Existing payments are not revalidated against the new amount."""
        ledger.record_payment(schedule_a.id, "400.00", "2025-08-10", None, tenancy_a.agency_id)

        updated = ledger.update_schedule_amount(
            schedule_a.id, "300.00", "2025-09-01", "rent", "Reduced rent", tenancy_a.agency_id
        )

        assert updated.amount_paid == Decimal("400.00")
        assert updated.status is ScheduleStatus.PAID
        assert updated.stored_status == "paid"
        assert any(r["event"] == "schedule_amount_below_paid" for r in captured_logs())

    def test_raising_amount_recomputes_status(self, ledger, schedule_a, tenancy_a, notifier):
        ledger.record_payment(schedule_a.id, "500.00", "2025-08-10", None, tenancy_a.agency_id)
        updated = ledger.update_schedule_amount(
            schedule_a.id, "600.00", "2025-09-01", "rent", "September rent", tenancy_a.agency_id
        )
        assert updated.status is ScheduleStatus.PARTIAL
        assert notifier.transitions[-1].cause == "schedule_amount_updated"
        assert notifier.transitions[-1].new_status == "partial"


class TestDeleteAndRevert:
    def test_delete_unpaid_schedule(self, ledger, schedule_a, tenancy_a):
        ledger.delete_schedule(schedule_a.id, tenancy_a.agency_id)
        with pytest.raises(ScheduleNotFoundError):
            ledger.get_schedule(schedule_a.id, tenancy_a.agency_id)

    def test_delete_with_payments_rejected(self, ledger, schedule_a, tenancy_a):
        ledger.record_payment(schedule_a.id, "100.00", "2025-08-10", None, tenancy_a.agency_id)
        with pytest.raises(ScheduleHasPaymentsError) as exc_info:
            ledger.delete_schedule(schedule_a.id, tenancy_a.agency_id)
        err = exc_info.value
        assert isinstance(err, ConflictError)
        assert isinstance(err, InvalidStateError)
        assert err.payment_count == 1
        assert err.total_paid == Decimal("100.00")
        assert "revert" in str(err)

    def test_delete_with_netting_payments_still_rejected(self, ledger, schedule_a, tenancy_a):
        """Payments that sum to zero still count as linked payments."""
        ledger.record_payment(schedule_a.id, "100.00", "2025-08-10", None, tenancy_a.agency_id)
        ledger.record_payment(schedule_a.id, "-100.00", "2025-08-11", "correction", tenancy_a.agency_id)
        with pytest.raises(ScheduleHasPaymentsError):
            ledger.delete_schedule(schedule_a.id, tenancy_a.agency_id)

    def test_revert_then_delete(self, ledger, schedule_a, tenancy_a):
        ledger.record_payment(schedule_a.id, "500.00", "2025-08-10", None, tenancy_a.agency_id)

        reverted = ledger.revert_schedule(schedule_a.id, tenancy_a.agency_id)
        assert reverted.payments == ()
        assert reverted.stored_status == "pending"
        assert reverted.status is ScheduleStatus.PENDING

        ledger.delete_schedule(schedule_a.id, tenancy_a.agency_id)

    def test_revert_is_idempotent(self, ledger, schedule_a, tenancy_a):
        ledger.record_payment(schedule_a.id, "200.00", "2025-08-10", None, tenancy_a.agency_id)
        once = ledger.revert_schedule(schedule_a.id, tenancy_a.agency_id)
        twice = ledger.revert_schedule(schedule_a.id, tenancy_a.agency_id)

        assert once.payments == twice.payments == ()
        assert once.stored_status == twice.stored_status == "pending"
        assert twice.amount_paid == Decimal("0.00")

    def test_revert_overdue_schedule_stores_pending(self, ledger, tenancy_a):
        """Revert is the one explicit reset; display still says overdue."""
        past = _create(ledger, tenancy_a, due_date=date(2025, 8, 1))
        ledger.record_payment(past.id, "100.00", "2025-08-02", None, tenancy_a.agency_id)

        reverted = ledger.revert_schedule(past.id, tenancy_a.agency_id)
        assert reverted.stored_status == "pending"
        assert reverted.status is ScheduleStatus.OVERDUE

    def test_revert_unknown_schedule(self, ledger, tenancy_a):
        with pytest.raises(ScheduleNotFoundError):
            ledger.revert_schedule(uuid4(), tenancy_a.agency_id)


class TestGenerateForTenancy:
    def test_deposit_and_monthly_rent(self, ledger, agency_a):
        tenancy = seed_tenancy(
            agency_a,
            members=[{"first_name": "Sam", "surname": "Jones", "deposit_amount": Decimal("500.00")}],
        )
        result = ledger.generate_for_tenancy(tenancy.tenancy_id, agency_a)

        assert result.members_processed == 1
        assert result.schedules_created == 13
        deposit = result.schedules[0]
        assert deposit.payment_type == "deposit"
        assert deposit.description == "Security Deposit"
        assert deposit.due_date == date(2025, 6, 24)
        assert deposit.amount_due == Decimal("500.00")

        rent = [s for s in result.schedules if s.payment_type == "rent"]
        assert len(rent) == 12
        assert rent[0].description == "Rent - July 2025"
        assert rent[0].covers_from == date(2025, 7, 1)
        assert all(s.schedule_type == "automated" and s.stored_status == "pending" for s in result.schedules)

    def test_landlord_not_managing_rent_gets_deposits_only(self, ledger, agency_a):
        tenancy = seed_tenancy(
            agency_a,
            manage_rent=False,
            members=[{"first_name": "Sam", "surname": "Jones", "deposit_amount": Decimal("300.00")}],
        )
        result = ledger.generate_for_tenancy(tenancy.tenancy_id, agency_a)
        assert [s.payment_type for s in result.schedules] == ["deposit"]

    def test_property_without_landlord_manages_rent(self, ledger, agency_a):
        tenancy = seed_tenancy(agency_a, with_landlord=False)
        result = ledger.generate_for_tenancy(tenancy.tenancy_id, agency_a)
        assert result.schedules_created == 12

    def test_rolling_tenancy_gets_first_month_only(self, ledger, agency_a):
        tenancy = seed_tenancy(
            agency_a, start_date=date(2025, 7, 15), end_date=None, is_rolling_monthly=True
        )
        result = ledger.generate_for_tenancy(tenancy.tenancy_id, agency_a)

        assert result.is_rolling_monthly is True
        assert result.schedules_created == 1
        first = result.schedules[0]
        assert first.due_date == date(2025, 8, 1)
        assert first.amount_due == Decimal("670.96")
        assert first.description == "Rent - July 2025 (partial) & August 2025"

    def test_fixed_term_without_end_date_rejected(self, ledger, agency_a):
        tenancy = seed_tenancy(agency_a, end_date=None)
        with pytest.raises(MissingFieldError) as exc_info:
            ledger.generate_for_tenancy(tenancy.tenancy_id, agency_a)
        assert exc_info.value.field == "end_date"

    def test_member_without_payment_option_skipped(self, ledger, agency_a, captured_logs):
        tenancy = seed_tenancy(
            agency_a,
            members=[
                {"first_name": "Ann", "surname": "Able", "payment_option": "quarterly"},
                {"first_name": "Bob", "surname": "Baker", "payment_option": None,
                 "deposit_amount": Decimal("250.00")},
            ],
        )
        result = ledger.generate_for_tenancy(tenancy.tenancy_id, agency_a)

        assert result.members_processed == 2
        assert {s.tenancy_member_id for s in result.schedules} == {tenancy.member_ids[0]}
        assert result.schedules_created == 4
        assert any(r["event"] == "member_without_payment_option" for r in captured_logs())

    def test_generating_twice_rejected(self, ledger, tenancy_a):
        ledger.generate_for_tenancy(tenancy_a.tenancy_id, tenancy_a.agency_id)
        with pytest.raises(SchedulesAlreadyGeneratedError):
            ledger.generate_for_tenancy(tenancy_a.tenancy_id, tenancy_a.agency_id)

    def test_inactive_tenancy_rejected(self, ledger, agency_a):
        tenancy = seed_tenancy(agency_a, status="pending")
        with pytest.raises(TenancyNotActiveError):
            ledger.generate_for_tenancy(tenancy.tenancy_id, agency_a)

    def test_zero_rent_periods_never_written(self, ledger, agency_a):
        tenancy = seed_tenancy(
            agency_a, members=[{"first_name": "Zed", "surname": "Zero", "rent_pppw": Decimal("0")}]
        )
        result = ledger.generate_for_tenancy(tenancy.tenancy_id, agency_a)
        assert result.schedules_created == 0


class TestDepositReturns:
    def test_creates_credit_per_member_with_deposit(self, ledger, agency_a):
        tenancy = seed_tenancy(
            agency_a,
            members=[
                {"first_name": "Ann", "surname": "Able", "deposit_amount": Decimal("400.00")},
                {"first_name": "Bob", "surname": "Baker"},
            ],
        )
        result = ledger.create_deposit_returns(tenancy.tenancy_id, "2026-07-01", agency_a)

        assert result.schedules_created == 1
        credit = result.schedules[0]
        assert credit.amount_due == Decimal("-400.00")
        assert credit.is_credit
        assert credit.due_date == date(2026, 7, 15)
        assert credit.description == "Deposit Return"
        assert credit.payment_type == "deposit"

    def test_refund_flow(self, ledger, agency_a):
        tenancy = seed_tenancy(
            agency_a,
            members=[{"first_name": "Ann", "surname": "Able", "deposit_amount": Decimal("400.00")}],
        )
        credit = ledger.create_deposit_returns(tenancy.tenancy_id, "2026-07-01", agency_a).schedules[0]

        partial = ledger.record_payment(credit.id, "-150.00", "2026-07-10", "BACS", agency_a)
        assert partial.status is ScheduleStatus.PARTIAL
        paid = ledger.record_payment(credit.id, "-250.00", "2026-07-12", "BACS", agency_a)
        assert paid.status is ScheduleStatus.PAID

    def test_twice_rejected(self, ledger, agency_a):
        tenancy = seed_tenancy(
            agency_a,
            members=[{"first_name": "Ann", "surname": "Able", "deposit_amount": Decimal("400.00")}],
        )
        ledger.create_deposit_returns(tenancy.tenancy_id, "2026-07-01", agency_a)
        with pytest.raises(SchedulesAlreadyGeneratedError):
            ledger.create_deposit_returns(tenancy.tenancy_id, "2026-07-01", agency_a)

    def test_generation_after_deposit_returns_still_allowed(self, ledger, agency_a):
        tenancy = seed_tenancy(
            agency_a,
            members=[{"first_name": "Ann", "surname": "Able", "deposit_amount": Decimal("400.00")}],
        )
        ledger.create_deposit_returns(tenancy.tenancy_id, "2026-07-01", agency_a)
        result = ledger.generate_for_tenancy(tenancy.tenancy_id, agency_a)
        assert result.schedules_created == 13


class TestRollingMonth:
    def test_mid_month_start_later_months(self, ledger, agency_a):
        tenancy = seed_tenancy(
            agency_a, start_date=date(2025, 7, 15), end_date=None, is_rolling_monthly=True
        )
        ledger.generate_for_tenancy(tenancy.tenancy_id, agency_a)

        august = ledger.generate_rolling_month(2025, 8, agency_a)
        assert august.schedules_created == 0
        assert august.skipped == 1

        september = ledger.generate_rolling_month(2025, 9, agency_a)
        assert september.tenancies_processed == 1
        assert september.schedules_created == 1
        rent = september.schedules[0]
        assert rent.due_date == date(2025, 9, 1)
        assert rent.amount_due == Decimal("433.33")
        assert rent.description == "Rent - September 2025"
        assert (rent.covers_from, rent.covers_to) == (date(2025, 9, 1), date(2025, 9, 30))
        assert rent.schedule_type == "automated"

    def test_rerunning_a_month_creates_nothing(self, ledger, agency_a):
        tenancy = seed_tenancy(
            agency_a, start_date=date(2025, 7, 1), end_date=None, is_rolling_monthly=True
        )
        ledger.generate_rolling_month(2025, 9, agency_a)
        again = ledger.generate_rolling_month(2025, 9, agency_a)

        assert again.schedules_created == 0
        assert again.skipped == 1
        assert len(ledger.tenancy_schedules(tenancy.tenancy_id, agency_a)) == 1

    def test_missing_first_payment_is_generated_combined(self, ledger, agency_a):
        tenancy = seed_tenancy(
            agency_a, start_date=date(2025, 7, 15), end_date=None, is_rolling_monthly=True
        )
        result = ledger.generate_rolling_month(2025, 7, agency_a)

        assert result.schedules_created == 1
        first = result.schedules[0]
        assert first.due_date == date(2025, 8, 1)
        assert first.amount_due == Decimal("670.96")
        assert ledger.generate_rolling_month(2025, 8, agency_a).schedules_created == 0
        assert len(ledger.tenancy_schedules(tenancy.tenancy_id, agency_a)) == 1

    def test_terminating_tenancy_billed_to_end_date(self, ledger, agency_a):
        seed_tenancy(
            agency_a,
            start_date=date(2025, 7, 1),
            end_date=date(2025, 10, 20),
            is_rolling_monthly=True,
        )
        october = ledger.generate_rolling_month(2025, 10, agency_a)
        rent = october.schedules[0]
        assert rent.amount_due == Decimal("279.57")
        assert rent.covers_to == date(2025, 10, 20)

        november = ledger.generate_rolling_month(2025, 11, agency_a)
        assert november.tenancies_processed == 0
        assert november.schedules_created == 0

    def test_only_managed_rolling_tenancies_of_the_agency(self, ledger, agency_a, agency_b, tenancy_a):
        seed_tenancy(agency_a, end_date=None, is_rolling_monthly=True, manage_rent=False)
        seed_tenancy(agency_a, end_date=None, is_rolling_monthly=True, status="expired")
        seed_tenancy(agency_b, end_date=None, is_rolling_monthly=True)

        result = ledger.generate_rolling_month(2025, 9, agency_a)

        assert result.tenancies_processed == 0
        assert result.schedules_created == 0
        assert ledger.tenancy_schedules(tenancy_a.tenancy_id, agency_a) == []

    @pytest.mark.parametrize("year, month", [(2025, 13), (2025, 0), (0, 5), ("2025", 5)])
    def test_invalid_target_month(self, ledger, agency_a, year, month):
        with pytest.raises(InvalidInputError):
            ledger.generate_rolling_month(year, month, agency_a)

    def test_rolling_summary(self, ledger, agency_a, agency_b):
        seed_tenancy(agency_a, end_date=None, is_rolling_monthly=True)
        seed_tenancy(agency_a, end_date=date(2025, 12, 31), is_rolling_monthly=True)
        seed_tenancy(agency_a, end_date=None, is_rolling_monthly=True, status="expired")
        seed_tenancy(agency_b, end_date=None, is_rolling_monthly=True)

        summary = ledger.rolling_summary(agency_a)

        assert (summary.total_rolling, summary.ongoing, summary.terminating) == (2, 1, 1)
