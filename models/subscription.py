"""
models/subscription.py
----------------------
Domain model for recurring subscriptions (Netflix, rent, insurance...).
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from exceptions import DateArithmeticError


class BillingCycle(str, Enum):
    """How often a subscription is charged."""
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, value) -> "BillingCycle":
        """Coerce a cycle name (any case) to a BillingCycle."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise DateArithmeticError(
                f"Unknown billing cycle {value!r}",
                context={"allowed": [c.value for c in cls]},
            ) from None


@dataclass
class Subscription:
    """
    Represents a recurring subscription tracked for a user.

    Attributes:
        id: Database primary key (None for new records).
        owner_user_id: Telegram user ID of the owner.
        name: Display name (e.g., 'Netflix'). Never empty.
        price: Amount charged per cycle. Never negative.
        billing_cycle: MONTHLY or YEARLY.
        next_billing_date: Date of the next charge.
        notification_target: Delivery handle (chat id or Expo push token).
            None means reminders are not delivered, dates still roll forward.
        currency: ISO currency code (default: EUR).
        active: Whether this subscription is still tracked.
        created_at: Timestamp when the record was created.
    """
    owner_user_id: int
    name: str
    price: Decimal
    billing_cycle: BillingCycle
    next_billing_date: date
    notification_target: Optional[str] = None
    currency: str = "EUR"
    active: bool = True
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Subscription name must not be empty.")
        try:
            self.price = Decimal(str(self.price))
        except InvalidOperation:
            raise ValueError(f"Invalid price {self.price!r}") from None
        if self.price < 0:
            raise ValueError(f"Subscription price must be non-negative, got {self.price}.")
        self.billing_cycle = BillingCycle.parse(self.billing_cycle)
        # Time of day is not significant for billing.
        if isinstance(self.next_billing_date, datetime):
            self.next_billing_date = self.next_billing_date.date()
        if self.notification_target is not None:
            self.notification_target = str(self.notification_target).strip() or None

    @property
    def has_target(self) -> bool:
        return self.notification_target is not None

    def __str__(self) -> str:
        status = "✅" if self.active else "❌"
        bell = "🔔" if self.has_target else "🔕"
        return (
            f"{status}{bell} {self.name}: {self.price:.2f} {self.currency} "
            f"({self.billing_cycle.value}) - Next: {self.next_billing_date}"
        )
