"""
Rent -- Calendar Month (PCM) rent calculation and schedule generation.

Responsibility:
    Turns a member's weekly rent (per person per week) and the tenancy dates
    into the list of rent periods an automated schedule is built from.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Returns RentPeriod
    value objects; the schedule service turns them into rows.

Method:
    monthly rate = rent_pppw * 52 / 12.  A full calendar month costs the
    monthly rate; a partial month costs days / days_in_month * monthly rate.
    Every month is rounded to pennies (half-up) before periods spanning
    several months are summed.  Day counts are inclusive.

Payment options:
    monthly               one period per calendar month, partial first month
    quarterly             academic quarters starting Jul/Oct/Jan/Apr, with an
                          "Until quarter start" period before the first one
    monthly_to_quarterly  Jul/Aug/Sep monthly, then Oct/Jan/Apr quarterly;
                          other months are not billed separately
    upfront               one period for the whole tenancy

Rolling monthly tenancies bill their first period with
``first_month_payment`` and every later month with ``rolling_month_payment``,
one month per call.
"""

from __future__ import annotations

import calendar
import math
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from letably_kernel.domain.money import ZERO, round_money
from letably_kernel.domain.values import PaymentOption
from letably_kernel.exceptions import InvalidPaymentOptionError

# Quarter start months in academic-year order
QUARTER_MONTHS = (7, 10, 1, 4)

QUARTER_NAMES = {
    7: "July-September",
    10: "October-December",
    1: "January-March",
    4: "April-June",
}

_WEEKS_PER_YEAR = Decimal(52)
_MONTHS_PER_YEAR = Decimal(12)


@dataclass(frozen=True)
class RentAmount:
    days: int
    weeks: int
    amount: Decimal


@dataclass(frozen=True)
class RentPeriod:
    """One generated rent obligation."""

    due_date: date
    amount_due: Decimal
    weeks: int
    period_description: str
    covers_from: date
    covers_to: date

    @property
    def description(self) -> str:
        return f"Rent - {self.period_description}"


_NO_RENT = RentAmount(days=0, weeks=0, amount=ZERO)


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def add_months(first_of_month: date, months: int) -> date:
    """First day of the month ``months`` after ``first_of_month``."""
    years, month_index = divmod(first_of_month.month - 1 + months, 12)
    return date(first_of_month.year + years, month_index + 1, 1)


def days_inclusive(start: date, end: date) -> int:
    return (end - start).days + 1


def month_year(d: date) -> str:
    """``July 2025``."""
    return f"{calendar.month_name[d.month]} {d.year}"


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------


def monthly_rate(rent_pppw: Decimal) -> Decimal:
    """Unrounded calendar-month rate for a weekly rent."""
    return rent_pppw * _WEEKS_PER_YEAR / _MONTHS_PER_YEAR


def rent_for_days(days: int, rent_pppw: Decimal, days_in_month: int) -> RentAmount:
    """Rent for ``days`` days of a month that has ``days_in_month`` days."""
    monthly = monthly_rate(rent_pppw)
    if days == days_in_month:
        amount = round_money(monthly)
    else:
        amount = round_money(Decimal(days) / Decimal(days_in_month) * monthly)
    return RentAmount(days=days, weeks=math.ceil(days / 7), amount=amount)


def month_rent(
    year: int,
    month: int,
    tenancy_start: date,
    tenancy_end: date,
    rent_pppw: Decimal,
) -> RentAmount:
    """Rent for the part of one calendar month inside the tenancy."""
    first = date(year, month, 1)
    last = month_end(year, month)
    effective_start = max(first, tenancy_start)
    effective_end = min(last, tenancy_end)
    if effective_start > effective_end:
        return _NO_RENT
    return rent_for_days(
        days_inclusive(effective_start, effective_end),
        rent_pppw,
        last.day,
    )


def multi_month_rent(start: date, end: date, rent_pppw: Decimal) -> RentAmount:
    """Sum of per-month rounded rents for ``start``..``end`` inclusive."""
    total_amount = ZERO
    total_days = 0
    current = date(start.year, start.month, 1)
    while current <= end:
        last = month_end(current.year, current.month)
        period_start = max(current, start)
        period_end = min(last, end)
        if period_start <= period_end:
            days = days_inclusive(period_start, period_end)
            total_amount += rent_for_days(days, rent_pppw, last.day).amount
            total_days += days
        current = add_months(current, 1)
    return RentAmount(
        days=total_days,
        weeks=math.ceil(total_days / 7),
        amount=round_money(total_amount),
    )


def quarter_rent(
    start_month: int,
    year: int,
    tenancy_start: date,
    tenancy_end: date,
    rent_pppw: Decimal,
) -> RentAmount:
    """Rent for the part of a three-month quarter inside the tenancy."""
    quarter_start, quarter_end = _quarter_bounds(year, start_month)
    effective_start = max(quarter_start, tenancy_start)
    effective_end = min(quarter_end, tenancy_end)
    if effective_start > effective_end:
        return _NO_RENT
    return multi_month_rent(effective_start, effective_end, rent_pppw)


def _quarter_bounds(year: int, start_month: int) -> tuple[date, date]:
    first = date(year, start_month, 1)
    third = add_months(first, 2)
    return first, month_end(third.year, third.month)


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------


def _partial_first_month(start: date, end: date, rent_pppw: Decimal) -> RentPeriod | None:
    rent = month_rent(start.year, start.month, start, end, rent_pppw)
    if rent.amount <= 0:
        return None
    return RentPeriod(
        due_date=start,
        amount_due=rent.amount,
        weeks=rent.weeks,
        period_description=f"{month_year(start)} (partial)",
        covers_from=start,
        covers_to=min(month_end(start.year, start.month), end),
    )


def _month_period(current: date, start: date, end: date, rent_pppw: Decimal) -> RentPeriod | None:
    rent = month_rent(current.year, current.month, start, end, rent_pppw)
    if rent.amount <= 0:
        return None
    return RentPeriod(
        due_date=current,
        amount_due=rent.amount,
        weeks=rent.weeks,
        period_description=month_year(current),
        covers_from=max(current, start),
        covers_to=min(month_end(current.year, current.month), end),
    )


def _quarter_period(
    current: date,
    start: date,
    end: date,
    rent_pppw: Decimal,
    due_date: date,
) -> RentPeriod | None:
    rent = quarter_rent(current.month, current.year, start, end, rent_pppw)
    if rent.amount <= 0:
        return None
    quarter_start, quarter_end = _quarter_bounds(current.year, current.month)
    return RentPeriod(
        due_date=due_date,
        amount_due=rent.amount,
        weeks=rent.weeks,
        period_description=f"{QUARTER_NAMES[current.month]} {current.year}",
        covers_from=max(quarter_start, start),
        covers_to=min(quarter_end, end),
    )


def generate_monthly(start: date, end: date, rent_pppw: Decimal) -> list[RentPeriod]:
    periods: list[RentPeriod] = []
    current = date(start.year, start.month, 1)

    if start.day > 1:
        partial = _partial_first_month(start, end, rent_pppw)
        if partial:
            periods.append(partial)
        current = add_months(current, 1)

    while current <= end:
        period = _month_period(current, start, end, rent_pppw)
        if period:
            periods.append(period)
        current = add_months(current, 1)

    return periods


def first_quarter_start(start: date) -> date:
    """
    Start of the first full academic quarter billed for a tenancy.

    A tenancy starting on the 1st of a quarter's first month bills that
    quarter; one starting on the 1st of November or December still bills
    the October quarter (from its start date).  Anything else waits for the
    next quarter, billing the gap as "Until quarter start".
    """
    month, day = start.month, start.day
    year = start.year
    if 7 <= month <= 9:
        first_month = 7 if (month == 7 and day == 1) else 10
    elif 10 <= month <= 12:
        if day == 1:
            first_month = 10
        else:
            first_month = 1
            year += 1
    elif 1 <= month <= 3:
        first_month = 1 if (month == 1 and day == 1) else 4
    else:
        first_month = 4 if (month == 4 and day == 1) else 7
    return date(year, first_month, 1)


def _next_quarter(current: date) -> date:
    index = QUARTER_MONTHS.index(current.month)
    next_month = QUARTER_MONTHS[(index + 1) % 4]
    next_year = current.year + 1 if (next_month == 1 and current.month != 1) else current.year
    return date(next_year, next_month, 1)


def generate_quarterly(start: date, end: date, rent_pppw: Decimal) -> list[RentPeriod]:
    periods: list[RentPeriod] = []
    quarter_start = first_quarter_start(start)

    if start < quarter_start:
        period_end = min(quarter_start - timedelta(days=1), end)
        rent = multi_month_rent(start, period_end, rent_pppw)
        if rent.amount > 0:
            periods.append(
                RentPeriod(
                    due_date=start,
                    amount_due=rent.amount,
                    weeks=rent.weeks,
                    period_description="Until quarter start",
                    covers_from=start,
                    covers_to=period_end,
                )
            )

    current = quarter_start
    is_first = True
    while current <= end:
        # First quarter is due no earlier than the tenancy itself
        due = start if (is_first and start > current) else current
        period = _quarter_period(current, start, end, rent_pppw, due)
        if period:
            periods.append(period)
            is_first = False
        current = _next_quarter(current)

    return periods


def generate_monthly_to_quarterly(
    start: date, end: date, rent_pppw: Decimal
) -> list[RentPeriod]:
    periods: list[RentPeriod] = []
    current = date(start.year, start.month, 1)

    if start.day > 1:
        partial = _partial_first_month(start, end, rent_pppw)
        if partial:
            periods.append(partial)
        current = add_months(current, 1)

    while current <= end:
        if current.month in (7, 8, 9):
            period = _month_period(current, start, end, rent_pppw)
            if period:
                periods.append(period)
            current = add_months(current, 1)
        elif current.month in (10, 1, 4):
            period = _quarter_period(current, start, end, rent_pppw, current)
            if period:
                periods.append(period)
            current = add_months(current, 3)
        else:
            current = add_months(current, 1)

    return periods


def generate_upfront(start: date, end: date, rent_pppw: Decimal) -> list[RentPeriod]:
    rent = multi_month_rent(start, end, rent_pppw)
    if rent.amount <= 0:
        return []
    return [
        RentPeriod(
            due_date=start,
            amount_due=rent.amount,
            weeks=rent.weeks,
            period_description="Full tenancy (upfront)",
            covers_from=start,
            covers_to=end,
        )
    ]


_GENERATORS = {
    PaymentOption.MONTHLY.value: generate_monthly,
    PaymentOption.QUARTERLY.value: generate_quarterly,
    PaymentOption.MONTHLY_TO_QUARTERLY.value: generate_monthly_to_quarterly,
    PaymentOption.UPFRONT.value: generate_upfront,
}


def generate_rent_schedule(
    start: date,
    end: date,
    payment_option: str,
    rent_pppw: Decimal,
) -> list[RentPeriod]:
    """
    Rent periods for a fixed-term tenancy.

    Raises:
        InvalidPaymentOptionError: unknown ``payment_option``.
    """
    generator = _GENERATORS.get(payment_option)
    if generator is None:
        raise InvalidPaymentOptionError(payment_option)
    return generator(start, end, rent_pppw)


def first_month_payment(start: date, rent_pppw: Decimal) -> RentPeriod | None:
    """
    First rent period of a rolling monthly tenancy.

    Rolling rent is always due on the 1st.  A tenancy starting on the 1st
    pays that month on its start date; one starting mid-month pays the
    partial month together with the whole next month on the 1st of the
    next month.
    """
    last = month_end(start.year, start.month)

    if start.day == 1:
        rent = month_rent(start.year, start.month, start, last, rent_pppw)
        if rent.amount <= 0:
            return None
        return RentPeriod(
            due_date=start,
            amount_due=rent.amount,
            weeks=rent.weeks,
            period_description=month_year(start),
            covers_from=start,
            covers_to=last,
        )

    next_start = add_months(date(start.year, start.month, 1), 1)
    next_end = month_end(next_start.year, next_start.month)
    partial = month_rent(start.year, start.month, start, last, rent_pppw)
    full = month_rent(next_start.year, next_start.month, next_start, next_end, rent_pppw)
    total = round_money(partial.amount + full.amount)
    if total <= 0:
        return None
    days = partial.days + full.days
    return RentPeriod(
        due_date=next_start,
        amount_due=total,
        weeks=math.ceil(days / 7),
        period_description=f"{month_year(start)} (partial) & {month_year(next_start)}",
        covers_from=start,
        covers_to=next_end,
    )


def first_payment_months(start: date) -> tuple[date, ...]:
    """
    Months (as their 1st) billed by the first rolling payment.

    Empty for a tenancy starting on the 1st: its first payment is an
    ordinary month.
    """
    if start.day == 1:
        return ()
    start_month = date(start.year, start.month, 1)
    return (start_month, add_months(start_month, 1))


def rolling_month_payment(
    year: int,
    month: int,
    start: date,
    end: date | None,
    rent_pppw: Decimal,
) -> RentPeriod | None:
    """
    Rent for one later month of a rolling tenancy, due on the 1st.

    A terminating tenancy (``end`` set) pays only the days up to its end.
    Months before the start or after the end produce nothing.
    """
    first = date(year, month, 1)
    last = month_end(year, month)
    if last < start or (end is not None and first > end):
        return None
    effective_start = max(first, start)
    effective_end = last if end is None else min(last, end)
    rent = month_rent(year, month, effective_start, effective_end, rent_pppw)
    if rent.amount <= 0:
        return None
    return RentPeriod(
        due_date=first,
        amount_due=rent.amount,
        weeks=rent.weeks,
        period_description=month_year(first),
        covers_from=effective_start,
        covers_to=effective_end,
    )
