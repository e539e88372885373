"""In-memory stand-ins for the repositories and the notification transport."""

import copy
import threading
from dataclasses import replace
from datetime import date, datetime
from typing import Optional

from exceptions import StorageUnavailable
from models.notification import PushMessage
from models.reminder import ReminderRecord, ReminderStatus
from models.subscription import Subscription
from transports.base import NotificationTransport


class InMemorySubscriptionRepository:
    """Same interface as SubscriptionRepository, backed by a dict."""

    def __init__(self, subscriptions=()):
        self.rows: dict[int, Subscription] = {}
        self.updates: list[tuple[int, date, date]] = []
        self.unavailable = False
        self._next_id = 1
        for subscription in subscriptions:
            self.add(subscription)

    def _check(self) -> None:
        if self.unavailable:
            raise StorageUnavailable("database is down")

    def add(self, subscription: Subscription) -> Subscription:
        self._check()
        if subscription.id is None:
            subscription.id = self._next_id
        self._next_id = max(self._next_id, subscription.id) + 1
        self.rows[subscription.id] = copy.copy(subscription)
        return subscription

    def get_all(self, owner_user_id: int, active_only: bool = True) -> list[Subscription]:
        self._check()
        rows = [
            copy.copy(s) for s in self.rows.values()
            if s.owner_user_id == owner_user_id and (s.active or not active_only)
        ]
        return sorted(rows, key=lambda s: (s.next_billing_date, s.id))

    def get_by_id(self, subscription_id: int, owner_user_id: Optional[int] = None) -> Optional[Subscription]:
        self._check()
        row = self.rows.get(subscription_id)
        if row is None or (owner_user_id is not None and row.owner_user_id != owner_user_id):
            return None
        return copy.copy(row)

    def list_due_for_check(self, until: date) -> list[Subscription]:
        self._check()
        rows = [copy.copy(s) for s in self.rows.values() if s.active and s.next_billing_date < until]
        return sorted(rows, key=lambda s: (s.next_billing_date, s.id))

    def update_next_billing_date(self, subscription_id: int, new_date: date, expected: date) -> bool:
        self._check()
        row = self.rows.get(subscription_id)
        if row is None or row.next_billing_date != expected:
            return False
        row.next_billing_date = new_date
        self.updates.append((subscription_id, expected, new_date))
        return True

    def clear_notification_target(self, subscription_id: int) -> bool:
        self._check()
        row = self.rows.get(subscription_id)
        if row is None:
            return False
        row.notification_target = None
        return True

    def set_target_for_owner(self, owner_user_id: int, target: Optional[str]) -> int:
        self._check()
        count = 0
        for row in self.rows.values():
            if row.owner_user_id == owner_user_id:
                row.notification_target = target
                count += 1
        return count

    def delete(self, subscription_id: int, owner_user_id: int) -> bool:
        self._check()
        row = self.rows.get(subscription_id)
        if row is None or row.owner_user_id != owner_user_id:
            return False
        del self.rows[subscription_id]
        return True


class InMemoryReminderRepository:
    """Same interface as ReminderRepository; a lock stands in for row-level atomicity."""

    def __init__(self):
        self.records: dict[tuple[int, str], ReminderRecord] = {}
        self.unavailable = False
        self._lock = threading.Lock()

    def _check(self) -> None:
        if self.unavailable:
            raise StorageUnavailable("database is down")

    def get(self, subscription_id: int, instance_key: str) -> Optional[ReminderRecord]:
        self._check()
        record = self.records.get((subscription_id, instance_key))
        return replace(record) if record else None

    def claim_pending(
        self, subscription_id: int, instance_key: str, claimed_at: datetime, stale_before: datetime
    ) -> bool:
        self._check()
        with self._lock:
            key = (subscription_id, instance_key)
            record = self.records.get(key)
            if record is None:
                self.records[key] = ReminderRecord(subscription_id, instance_key, claimed_at=claimed_at)
                return True
            if record.status != ReminderStatus.PENDING:
                return False
            if record.claimed_at is not None and record.claimed_at >= stale_before:
                return False
            record.claimed_at = claimed_at
            return True

    def release_claim(self, subscription_id: int, instance_key: str) -> bool:
        self._check()
        with self._lock:
            record = self.records.get((subscription_id, instance_key))
            if record is None or record.status != ReminderStatus.PENDING:
                return False
            record.claimed_at = None
            return True

    def mark_sent(self, subscription_id: int, instance_key: str, sent_at: datetime, attempts: int) -> bool:
        self._check()
        with self._lock:
            key = (subscription_id, instance_key)
            record = self.records.get(key)
            if record is not None and record.status == ReminderStatus.SENT:
                return False
            if record is None:
                record = self.records[key] = ReminderRecord(subscription_id, instance_key)
            record.status = ReminderStatus.SENT
            record.sent_at = sent_at
            record.attempts += attempts
            record.last_error = None
            return True

    def mark_failed(self, subscription_id: int, instance_key: str, error: str, attempts: int) -> bool:
        self._check()
        with self._lock:
            record = self.records.get((subscription_id, instance_key))
            if record is None or record.status != ReminderStatus.PENDING:
                return False
            record.status = ReminderStatus.FAILED_PERMANENT
            record.last_error = error
            record.attempts += attempts
            return True

    def reset_failed(self, subscription_id: int, instance_key: str) -> bool:
        self._check()
        with self._lock:
            record = self.records.get((subscription_id, instance_key))
            if record is None or record.status != ReminderStatus.FAILED_PERMANENT:
                return False
            record.status = ReminderStatus.PENDING
            record.claimed_at = None
            return True

    def list_failed(self, limit: int = 20) -> list[ReminderRecord]:
        self._check()
        failed = [r for r in self.records.values() if r.status == ReminderStatus.FAILED_PERMANENT]
        return [replace(r) for r in failed[:limit]]

    def status_counts(self) -> dict[ReminderStatus, int]:
        self._check()
        counts = {status: 0 for status in ReminderStatus}
        for record in self.records.values():
            counts[record.status] += 1
        return counts

    def purge_older_than(self, cutoff: date) -> int:
        self._check()
        old = [k for k in self.records if k[1] < cutoff.isoformat()]
        for key in old:
            del self.records[key]
        return len(old)


class ScriptedTransport(NotificationTransport):
    """
    Records every message; per-target scripts decide each call's outcome.

    A script entry is either an exception instance (raised) or a receipt
    (returned). Targets without a script always succeed.
    """

    name = "scripted"

    def __init__(self, script: Optional[dict[str, list]] = None):
        self.script = {target: list(outcomes) for target, outcomes in (script or {}).items()}
        self.calls: list[PushMessage] = []
        self.closed = False

    async def send(self, message: PushMessage) -> Optional[str]:
        self.calls.append(message)
        outcomes = self.script.get(message.target)
        if outcomes:
            outcome = outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return f"receipt-{len(self.calls)}"

    def sent_to(self, target: str) -> int:
        return sum(1 for m in self.calls if m.target == target)

    async def close(self) -> None:
        self.closed = True


class RecordingSleep:
    """Replaces asyncio.sleep; remembers requested delays without waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
