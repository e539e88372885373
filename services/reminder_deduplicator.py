"""
services/reminder_deduplicator.py
---------------------------------
Guarantees at most one reminder per (subscription, billing instance).

The dispatcher follows check -> claim -> send -> mark. Only the pass that
holds the claim sends, so overlapping passes (the daily job and a CLI
run, two triggers in different processes) cannot both deliver. A claim
left behind by a crashed pass expires after ``lease_seconds``; if that
crash happened between a confirmed send and ``mark_sent``, the instance
is sent once more.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from config import CLAIM_LEASE_SECONDS
from models.reminder import ReminderRecord, ReminderStatus
from repositories.reminder_repo import ReminderRepository
from utils.logger import get_logger

logger = get_logger(__name__)


class ReminderDeduplicator:
    """
    Tracks which billing instances have already been reminded.

    Permanent failures are not resubmitted automatically; an operator
    re-arms them with ``rearm``.
    """

    def __init__(self, repo: Optional[ReminderRepository] = None, lease_seconds: float = CLAIM_LEASE_SECONDS):
        self.repo = repo or ReminderRepository()
        self.lease = timedelta(seconds=lease_seconds)

    def should_send(self, subscription_id: int, instance_key: str) -> bool:
        """
        True if no reminder was recorded yet, or the recorded one is still PENDING.

        A cheap pre-check; ``claim`` decides who actually sends.
        """
        record = self.repo.get(subscription_id, instance_key)
        if record is None:
            return True
        return record.status == ReminderStatus.PENDING

    def claim(self, subscription_id: int, instance_key: str, now: Optional[datetime] = None) -> bool:
        """
        Reserve the instance for this caller.

        Creates the PENDING record the first time the instance is seen due,
        or takes over a PENDING record whose claim was released or expired.

        Returns:
            True if this caller may send. False when another pass holds a
            live claim or the instance is no longer PENDING.
        """
        now = now or datetime.now(timezone.utc)
        claimed = self.repo.claim_pending(subscription_id, instance_key, now, now - self.lease)
        if not claimed:
            logger.info(f"Reminder #{subscription_id} @ {instance_key} is claimed by another pass")
        return claimed

    def release(self, subscription_id: int, instance_key: str) -> None:
        """Give up a claim without a verdict, so the next pass retries at once."""
        self.repo.release_claim(subscription_id, instance_key)

    def mark_sent(
        self,
        subscription_id: int,
        instance_key: str,
        sent_at: Optional[datetime] = None,
        attempts: int = 1,
    ) -> bool:
        """
        Record a confirmed send.

        Returns:
            True if this caller recorded it. A concurrent caller that lost
            the race gets False; that is not an error.
        """
        sent_at = sent_at or datetime.now(timezone.utc)
        won = self.repo.mark_sent(subscription_id, instance_key, sent_at, attempts)
        if not won:
            logger.info(f"Reminder #{subscription_id} @ {instance_key} was already recorded as sent")
        return won

    def mark_failed(self, subscription_id: int, instance_key: str, error: str, attempts: int) -> bool:
        """Dead-letter the instance. A record that is already SENT stays SENT."""
        failed = self.repo.mark_failed(subscription_id, instance_key, error, attempts)
        if failed:
            logger.warning(f"Reminder #{subscription_id} @ {instance_key} dead-lettered: {error}")
        return failed

    def rearm(self, subscription_id: int, instance_key: str) -> bool:
        """Allow a dead-lettered reminder to be sent again on the next pass."""
        return self.repo.reset_failed(subscription_id, instance_key)

    def failed(self, limit: int = 20) -> list[ReminderRecord]:
        return self.repo.list_failed(limit)

    def status_counts(self) -> dict[ReminderStatus, int]:
        return self.repo.status_counts()

    def purge_expired(self, today: date, retention_days: int) -> int:
        """Drop records of billing instances older than the retention window."""
        cutoff = today - timedelta(days=retention_days)
        removed = self.repo.purge_older_than(cutoff)
        if removed:
            logger.info(f"Purged {removed} reminder records older than {cutoff}")
        return removed
