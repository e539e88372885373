"""
services/due_window.py
----------------------
Decides which subscriptions are inside the reminder window.
"""

from datetime import date, timedelta
from typing import Iterable

from models.subscription import Subscription


def window_end(today: date, lookahead_days: int) -> date:
    """Exclusive end of the window starting at ``today``."""
    if lookahead_days < 0:
        raise ValueError(f"lookahead_days must be >= 0, got {lookahead_days}")
    return today + timedelta(days=lookahead_days)


def is_due(subscription: Subscription, today: date, lookahead_days: int) -> bool:
    """True when ``today <= next_billing_date < today + lookahead_days``."""
    return today <= subscription.next_billing_date < window_end(today, lookahead_days)


def select_due(
    subscriptions: Iterable[Subscription],
    today: date,
    lookahead_days: int,
) -> list[Subscription]:
    """
    Filter the subscriptions whose next charge falls in the reminder window.

    Subscriptions without a notification target and inactive ones are left
    out. The input is not modified and input order is preserved.

    Args:
        subscriptions: Snapshot of subscriptions with normalized dates.
        today: First day of the window (inclusive).
        lookahead_days: Window length in days (end exclusive).

    Returns:
        A new list of the due subscriptions.
    """
    end = window_end(today, lookahead_days)
    return [
        sub for sub in subscriptions
        if sub.active and sub.has_target and today <= sub.next_billing_date < end
    ]
