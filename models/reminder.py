"""
models/reminder.py
------------------
Bookkeeping for reminders already owed, sent or dead-lettered.
One record exists per (subscription, billing instance).
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional


class ReminderStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED_PERMANENT = "failed_permanent"


def billing_instance_key(billing_date: date) -> str:
    """
    Key identifying one concrete charge of a subscription.

    Derived only from the billing date, so rolling the subscription to its
    next cycle yields a new key and a new reminder is owed.
    """
    if isinstance(billing_date, datetime):
        billing_date = billing_date.date()
    return billing_date.isoformat()


@dataclass
class ReminderRecord:
    """
    Attributes:
        subscription_id: The subscription the reminder is about.
        instance_key: ISO date of the billing instance.
        status: PENDING until dispatched, then SENT or FAILED_PERMANENT.
        attempts: Transport attempts made for this instance.
        last_error: Last failure message, if any.
        sent_at: When the successful send was confirmed.
        claimed_at: When a pass last claimed the PENDING record for sending.
    """
    subscription_id: int
    instance_key: str
    status: ReminderStatus = ReminderStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    sent_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def billing_date(self) -> date:
        return date.fromisoformat(self.instance_key)

    def __str__(self) -> str:
        line = f"#{self.subscription_id} @ {self.instance_key}: {self.status.value}"
        if self.last_error:
            line += f" ({self.last_error})"
        return line
