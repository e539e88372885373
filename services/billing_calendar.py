"""
services/billing_calendar.py
----------------------------
Billing date arithmetic. Pure functions, apart from reading the clock in
``local_today``.

Months are added with ``relativedelta`` so month ends clamp to the last
valid day (Jan 31 + 1 month -> Feb 29 in a leap year, Feb 28 otherwise).
Each step starts from the previous result, so a clamped day sticks:
Jan 31 -> Feb 29 -> Mar 29.
"""

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from config import TIMEZONE
from exceptions import DateArithmeticError
from models.subscription import BillingCycle

_CYCLE_STEP = {
    BillingCycle.MONTHLY: relativedelta(months=1),
    BillingCycle.YEARLY: relativedelta(years=1),
}


def _as_date(value, field_name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise DateArithmeticError(
        f"Expected a date for {field_name}, got {type(value).__name__}",
        context={field_name: value},
    )


def advance(billing_date: date, cycle: BillingCycle, cycles: int = 1) -> date:
    """Move ``billing_date`` forward by ``cycles`` steps of ``cycle``, one step at a time."""
    billing_date = _as_date(billing_date, "billing_date")
    step = _CYCLE_STEP[BillingCycle.parse(cycle)]
    for _ in range(cycles):
        billing_date = billing_date + step
    return billing_date


def normalize(billing_date: date, cycle: BillingCycle, today: date) -> date:
    """
    Roll a stale billing date forward until it is today or later.

    Args:
        billing_date: Last known billing date of the subscription.
        cycle: The subscription's billing cycle.
        today: The reference day (same-day counts as not past).

    Returns:
        ``billing_date`` unchanged when it is not in the past, otherwise the
        first date reached by whole cycle steps that is ``>= today``.

    Raises:
        DateArithmeticError: Unknown cycle or non-date input.
    """
    billing_date = _as_date(billing_date, "billing_date")
    today = _as_date(today, "today")
    step = _CYCLE_STEP[BillingCycle.parse(cycle)]
    while billing_date < today:
        billing_date = billing_date + step
    return billing_date


def first_billing_date(cycle: BillingCycle, today: date) -> date:
    """Default first charge for a subscription added without a date."""
    return advance(today, cycle)


def local_today(timezone_name: str = TIMEZONE, now: Optional[datetime] = None) -> date:
    """Calendar day in the billing timezone, whatever the host's zone is."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(ZoneInfo(timezone_name)).date()
