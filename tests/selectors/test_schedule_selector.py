"""
Tests for ScheduleSelector: enriched reads, the payment calendar listing,
the overdue summary and tenancy statistics.

Today is 13 August 2025 (see conftest.TODAY).
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from letably_config.schema import PaginationConfig
from letably_kernel.domain.dtos import ScheduleFilter
from letably_kernel.domain.values import ScheduleStatus
from letably_kernel.exceptions import (
    InvalidInputError,
    InvalidPaginationError,
    TenancyMemberNotFoundError,
    TenancyNotFoundError,
)
from letably_kernel.selectors.schedule_selector import parse_pagination
from tests.factories import seed_tenancy


def _schedule(ledger, tenancy, due, amount="500.00", member_index=0, description="Rent"):
    return ledger.create_manual_schedule(
        tenancy.tenancy_id,
        tenancy.member_ids[member_index],
        due,
        amount,
        "rent",
        description,
        tenancy.agency_id,
    )


class TestReads:
    def test_past_due_unpaid_schedule_reads_as_overdue(self, ledger, tenancy_a):
        created = _schedule(ledger, tenancy_a, date(2025, 8, 1))
        assert created.stored_status == "pending"

        read = ledger.get_schedule(created.id, tenancy_a.agency_id)
        assert read.status is ScheduleStatus.OVERDUE
        assert read.settlement is ScheduleStatus.PENDING
        # Reads never write the stored status
        assert ledger.get_schedule(created.id, tenancy_a.agency_id).stored_status == "pending"

    def test_status_follows_the_clock(self, ledger, clock, tenancy_a):
        created = _schedule(ledger, tenancy_a, date(2025, 9, 1))
        assert ledger.get_schedule(created.id, tenancy_a.agency_id).status is ScheduleStatus.PENDING

        clock.set_time(clock.now().replace(month=9, day=2))
        assert ledger.get_schedule(created.id, tenancy_a.agency_id).status is ScheduleStatus.OVERDUE

    def test_tenancy_schedules_ordered_by_due_date_then_surname(self, ledger, agency_a):
        tenancy = seed_tenancy(
            agency_a,
            members=[
                {"first_name": "Zoe", "surname": "Young"},
                {"first_name": "Adam", "surname": "Brown"},
            ],
        )
        _schedule(ledger, tenancy, date(2025, 10, 1), member_index=0)
        _schedule(ledger, tenancy, date(2025, 9, 1), member_index=0)
        _schedule(ledger, tenancy, date(2025, 9, 1), member_index=1)

        rows = ledger.tenancy_schedules(tenancy.tenancy_id, agency_a)
        assert [(r.due_date, r.tenant_name) for r in rows] == [
            (date(2025, 9, 1), "Adam Brown"),
            (date(2025, 9, 1), "Zoe Young"),
            (date(2025, 10, 1), "Zoe Young"),
        ]
        assert rows[0].property_address == "12 Park Road"
        assert rows[0].tenancy_status == "active"

    def test_unknown_tenancy(self, ledger, tenancy_a):
        with pytest.raises(TenancyNotFoundError):
            ledger.tenancy_schedules(uuid4(), tenancy_a.agency_id)

    def test_member_schedules(self, ledger, agency_a):
        tenancy = seed_tenancy(
            agency_a,
            members=[
                {"first_name": "Zoe", "surname": "Young"},
                {"first_name": "Adam", "surname": "Brown"},
            ],
        )
        _schedule(ledger, tenancy, date(2025, 9, 1), member_index=0)
        _schedule(ledger, tenancy, date(2025, 9, 1), member_index=1)

        rows = ledger.member_schedules(tenancy.tenancy_id, tenancy.member_ids[1], agency_a)
        assert [r.tenancy_member_id for r in rows] == [tenancy.member_ids[1]]

        with pytest.raises(TenancyMemberNotFoundError):
            ledger.member_schedules(tenancy.tenancy_id, uuid4(), agency_a)

    def test_my_schedules_uses_active_tenancy(self, ledger, agency_a):
        user_id = uuid4()
        old = seed_tenancy(
            agency_a,
            status="expired",
            start_date=date(2024, 7, 1),
            end_date=date(2025, 6, 30),
            members=[{"first_name": "Pat", "surname": "Lee", "user_id": user_id}],
        )
        current = seed_tenancy(
            agency_a, members=[{"first_name": "Pat", "surname": "Lee", "user_id": user_id}]
        )
        _schedule(ledger, current, date(2025, 9, 1))

        rows = ledger.my_schedules(user_id, agency_a)
        assert [r.tenancy_id for r in rows] == [current.tenancy_id]
        assert old.tenancy_id not in {r.tenancy_id for r in rows}

    def test_my_schedules_without_active_tenancy(self, ledger, agency_a):
        with pytest.raises(TenancyNotFoundError):
            ledger.my_schedules(uuid4(), agency_a)


class TestListSchedules:
    @pytest.fixture
    def calendar(self, ledger, agency_a):
        """Two properties of agency A with schedules spread over three months."""
        first = seed_tenancy(agency_a, address="1 First Street")
        second = seed_tenancy(agency_a, address="2 Second Street", manage_rent=True)
        july = _schedule(ledger, first, date(2025, 7, 1), "400.00")
        aug_paid = _schedule(ledger, first, date(2025, 8, 1), "400.00")
        ledger.record_payment(aug_paid.id, "400.00", "2025-08-01", None, agency_a)
        aug_partial = _schedule(ledger, second, date(2025, 8, 5), "300.00")
        ledger.record_payment(aug_partial.id, "100.00", "2025-08-05", None, agency_a)
        sept = _schedule(ledger, second, date(2025, 9, 1), "300.00")
        return {
            "first": first,
            "second": second,
            "july": july,
            "aug_paid": aug_paid,
            "aug_partial": aug_partial,
            "sept": sept,
        }

    def test_unfiltered_listing_with_summary(self, ledger, agency_a, calendar):
        page = ledger.list_schedules(agency_a)

        assert page.total == 4
        assert [s.id for s in page.items] == [
            calendar["july"].id,
            calendar["aug_paid"].id,
            calendar["aug_partial"].id,
            calendar["sept"].id,
        ]
        # July unpaid and the August partial are overdue
        assert page.summary.overdue == 2
        assert page.summary.overdue_previous_months == 1
        assert page.summary.overdue_amount == Decimal("600.00")

    def test_month_filter(self, ledger, agency_a, calendar):
        page = ledger.list_schedules(agency_a, ScheduleFilter(year=2025, month=8))
        assert page.total == 2
        assert {s.id for s in page.items} == {calendar["aug_paid"].id, calendar["aug_partial"].id}
        # The summary is agency-wide, not limited by the filter
        assert page.summary.overdue == 2

    def test_invalid_month(self, ledger, agency_a, calendar):
        with pytest.raises(InvalidInputError):
            ledger.list_schedules(agency_a, ScheduleFilter(year=2025, month=13))

    @pytest.mark.parametrize("year", [0, 10000, -1])
    def test_invalid_year(self, ledger, agency_a, calendar, year):
        with pytest.raises(InvalidInputError, match="year must be between"):
            ledger.list_schedules(agency_a, ScheduleFilter(year=year, month=1))

    def test_date_range_filter(self, ledger, agency_a, calendar):
        page = ledger.list_schedules(
            agency_a, ScheduleFilter(date_from=date(2025, 8, 2), date_to=date(2025, 9, 30))
        )
        assert [s.id for s in page.items] == [calendar["aug_partial"].id, calendar["sept"].id]

    def test_property_and_landlord_filters(self, ledger, agency_a, calendar):
        second = calendar["second"]
        by_property = ledger.list_schedules(agency_a, ScheduleFilter(property_id=second.property_id))
        assert by_property.total == 2
        assert all(s.property_address == "2 Second Street" for s in by_property.items)

        by_landlord = ledger.list_schedules(agency_a, ScheduleFilter(landlord_id=calendar["first"].landlord_id))
        assert by_landlord.total == 2

    def test_pagination(self, ledger, agency_a, calendar):
        page = ledger.list_schedules(agency_a, page=2, limit=3)
        assert page.page == 2
        assert page.limit == 3
        assert page.total == 4
        assert page.total_pages == 2
        assert [s.id for s in page.items] == [calendar["sept"].id]

    def test_to_dict_shape(self, ledger, agency_a, calendar):
        data = ledger.list_schedules(agency_a, limit="2").to_dict()
        assert data["pagination"] == {"page": 1, "limit": 2, "total": 4, "total_pages": 2}
        assert data["summary"]["total"] == 2
        assert data["summary"]["overdue"] == 2
        assert data["schedules"][0]["tenant_name"] == "Alex Smith"

    def test_overdue_schedules(self, ledger, agency_a, calendar):
        overdue = ledger.overdue_schedules(agency_a)
        assert [s.id for s in overdue] == [calendar["july"].id, calendar["aug_partial"].id]


class TestPagination:
    config = PaginationConfig(default_limit=100, max_limit=500)

    def test_defaults(self):
        assert parse_pagination(None, None, self.config) == (1, 100)

    def test_clamping(self):
        assert parse_pagination(0, 10_000, self.config) == (1, 500)
        assert parse_pagination("-3", "0", self.config) == (1, 1)

    def test_strings(self):
        assert parse_pagination("2", " 25 ", self.config) == (2, 25)

    @pytest.mark.parametrize("page, limit", [("two", None), (None, "1.5"), (True, None)])
    def test_non_integers_rejected(self, page, limit):
        with pytest.raises(InvalidPaginationError):
            parse_pagination(page, limit, self.config)


class TestTenancyStats:
    def test_counts_and_totals(self, ledger, tenancy_a):
        _schedule(ledger, tenancy_a, date(2025, 8, 1), "400.00")
        paid = _schedule(ledger, tenancy_a, date(2025, 8, 1), "400.00")
        ledger.record_payment(paid.id, "400.00", "2025-08-01", None, tenancy_a.agency_id)
        partial = _schedule(ledger, tenancy_a, date(2025, 9, 1), "400.00")
        ledger.record_payment(partial.id, "150.00", "2025-08-10", None, tenancy_a.agency_id)
        _schedule(ledger, tenancy_a, date(2025, 10, 1), "400.00")

        stats = ledger.tenancy_stats(tenancy_a.tenancy_id, tenancy_a.agency_id)

        assert stats.total_schedules == 4
        assert stats.overdue_count == 1
        assert stats.paid_count == 1
        assert stats.partial_count == 1
        assert stats.pending_count == 1
        assert stats.total_due == Decimal("1600.00")
        assert stats.total_paid == Decimal("550.00")
        assert stats.total_outstanding == Decimal("1050.00")
