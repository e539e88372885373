"""Tests for services.billing_calendar - rolling billing dates forward."""

from datetime import date, datetime, timezone

import pytest

from exceptions import DateArithmeticError
from models.subscription import BillingCycle
from services.billing_calendar import advance, first_billing_date, local_today, normalize

MONTHLY = BillingCycle.MONTHLY
YEARLY = BillingCycle.YEARLY


def test_month_end_rollover_in_leap_year():
    assert advance(date(2024, 1, 31), MONTHLY) == date(2024, 2, 29)
    assert advance(date(2024, 1, 31), MONTHLY, cycles=2) == date(2024, 3, 29)
    assert normalize(date(2024, 1, 31), MONTHLY, date(2024, 3, 15)) == date(2024, 3, 29)


def test_month_end_rollover_in_common_year():
    assert advance(date(2023, 1, 31), MONTHLY) == date(2023, 2, 28)


@pytest.mark.parametrize("billing_date", [date(2025, 6, 10), date(2025, 7, 1)])
def test_current_or_future_date_is_unchanged(billing_date):
    assert normalize(billing_date, MONTHLY, date(2025, 6, 10)) == billing_date


def test_yearly_feb_29_clamps_to_feb_28():
    assert normalize(date(2024, 2, 29), YEARLY, date(2025, 1, 1)) == date(2025, 2, 28)
    # The clamped day sticks on later steps, even in the next leap year.
    assert normalize(date(2024, 2, 29), YEARLY, date(2028, 1, 1)) == date(2028, 2, 28)


def test_yearly_rolls_past_several_years():
    assert normalize(date(2019, 9, 1), YEARLY, date(2025, 6, 9)) == date(2025, 9, 1)


@pytest.mark.parametrize(
    "billing_date, cycle, today",
    [
        (date(2024, 1, 31), MONTHLY, date(2024, 3, 15)),
        (date(2020, 5, 31), MONTHLY, date(2025, 6, 9)),
        (date(2024, 2, 29), YEARLY, date(2031, 3, 1)),
        (date(2025, 6, 9), MONTHLY, date(2025, 6, 9)),
    ],
)
def test_normalize_is_idempotent(billing_date, cycle, today):
    once = normalize(billing_date, cycle, today)
    assert normalize(once, cycle, today) == once


@pytest.mark.parametrize(
    "billing_date, cycle, today",
    [
        (date(2024, 1, 31), MONTHLY, date(2024, 3, 15)),
        (date(2023, 12, 15), MONTHLY, date(2024, 12, 16)),
        (date(2016, 2, 29), YEARLY, date(2025, 6, 9)),
    ],
)
def test_stale_dates_land_on_or_after_today_by_whole_cycles(billing_date, cycle, today):
    result = normalize(billing_date, cycle, today)
    assert result >= today

    steps = 0
    while advance(billing_date, cycle, steps) < result:
        steps += 1
    assert advance(billing_date, cycle, steps) == result
    assert steps > 0


def test_cycle_given_as_string():
    assert normalize(date(2025, 1, 10), "Monthly", date(2025, 3, 1)) == date(2025, 3, 10)


def test_unknown_cycle_fails_fast():
    with pytest.raises(DateArithmeticError):
        normalize(date(2025, 1, 10), "weekly", date(2025, 3, 1))


def test_non_date_input_fails_fast():
    with pytest.raises(DateArithmeticError):
        normalize("2025-01-10", MONTHLY, date(2025, 3, 1))


def test_datetime_input_ignores_time_of_day():
    assert normalize(datetime(2025, 3, 1, 23, 59), MONTHLY, date(2025, 3, 1)) == date(2025, 3, 1)


def test_first_billing_date_is_one_cycle_from_today():
    assert first_billing_date(MONTHLY, date(2025, 1, 31)) == date(2025, 2, 28)
    assert first_billing_date(YEARLY, date(2025, 6, 9)) == date(2026, 6, 9)


def test_local_today_follows_the_billing_timezone():
    late_evening_utc = datetime(2025, 6, 9, 23, 30, tzinfo=timezone.utc)

    assert local_today("Europe/Paris", now=late_evening_utc) == date(2025, 6, 10)
    assert local_today("UTC", now=late_evening_utc) == date(2025, 6, 9)
