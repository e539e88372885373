"""
Shared fixtures.

The engine is wired exactly as in production, with the PostgreSQL
repositories and the network transport replaced by in-memory fakes.
"""

import os
from datetime import date
from decimal import Decimal

# Deterministic settings; config reads them at import time.
os.environ.update({
    "ALLOWED_USER_IDS": "",
    "OPERATOR_USER_IDS": "42",
    "NOTIFICATION_TRANSPORT": "telegram",
    "DUE_LOOKAHEAD_DAYS": "2",
    "RATE_LIMIT_MESSAGES": "1000",
})

import pytest  # noqa: E402

from models.subscription import BillingCycle, Subscription  # noqa: E402
from services.notification_dispatcher import NotificationDispatcher  # noqa: E402
from services.reminder_deduplicator import ReminderDeduplicator  # noqa: E402
from services.scheduler import ReminderScheduler  # noqa: E402
from tests.fakes import (  # noqa: E402
    InMemoryReminderRepository,
    InMemorySubscriptionRepository,
    RecordingSleep,
    ScriptedTransport,
)


@pytest.fixture
def make_subscription():
    """Factory for valid subscriptions with overridable fields."""
    def _make(**overrides) -> Subscription:
        fields = dict(
            owner_user_id=1001,
            name="Netflix",
            price=Decimal("15.99"),
            billing_cycle=BillingCycle.MONTHLY,
            next_billing_date=date(2025, 6, 10),
            notification_target="chat-1001",
        )
        fields.update(overrides)
        return Subscription(**fields)
    return _make


@pytest.fixture
def subscription_repo() -> InMemorySubscriptionRepository:
    return InMemorySubscriptionRepository()


@pytest.fixture
def reminder_repo() -> InMemoryReminderRepository:
    return InMemoryReminderRepository()


@pytest.fixture
def deduplicator(reminder_repo) -> ReminderDeduplicator:
    return ReminderDeduplicator(reminder_repo)


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def dispatcher(transport, deduplicator, sleep) -> NotificationDispatcher:
    return NotificationDispatcher(
        transport,
        deduplicator,
        max_retries=3,
        backoff_base=1.0,
        backoff_factor=2.0,
        backoff_cap=30.0,
        timeout=5.0,
        sleep=sleep,
    )


@pytest.fixture
def scheduler(dispatcher, subscription_repo) -> ReminderScheduler:
    return ReminderScheduler(
        dispatcher,
        subscription_repo,
        lookahead_days=2,
        timezone_name="UTC",
        concurrency=3,
        retention_days=90,
        clear_invalid_targets=True,
    )
