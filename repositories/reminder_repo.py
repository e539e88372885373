"""
repositories/reminder_repo.py
-----------------------------
Data access layer for reminder records.

Every state change is a single conditional statement, so concurrent
callers for the same (subscription, instance) resolve to one winner
without any application-level lock.
"""

from datetime import date, datetime
from typing import Optional

from db.connection import transaction
from models.reminder import ReminderRecord, ReminderStatus
from utils.logger import get_logger

logger = get_logger(__name__)

_COLUMNS = (
    "subscription_id, instance_key, status, attempts, last_error, "
    "sent_at, claimed_at, created_at, updated_at"
)


class ReminderRepository:
    """Repository for the reminder_records table."""

    # ── READ ──────────────────────────────────────────────

    def get(self, subscription_id: int, instance_key: str) -> Optional[ReminderRecord]:
        sql = f"SELECT {_COLUMNS} FROM reminder_records WHERE subscription_id = %s AND instance_key = %s;"
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (subscription_id, instance_key))
                row = cur.fetchone()
        return self._row_to_record(row) if row else None

    def list_failed(self, limit: int = 20) -> list[ReminderRecord]:
        """Most recent dead-lettered reminders."""
        sql = f"""
            SELECT {_COLUMNS} FROM reminder_records
            WHERE status = %s
            ORDER BY updated_at DESC
            LIMIT %s;
        """
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (ReminderStatus.FAILED_PERMANENT.value, limit))
                return [self._row_to_record(r) for r in cur.fetchall()]

    def status_counts(self) -> dict[ReminderStatus, int]:
        sql = "SELECT status, COUNT(*) FROM reminder_records GROUP BY status;"
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql)
                rows = cur.fetchall()
        counts = {status: 0 for status in ReminderStatus}
        for status, count in rows:
            counts[ReminderStatus(status)] = count
        return counts

    # ── WRITE ─────────────────────────────────────────────

    def claim_pending(
        self,
        subscription_id: int,
        instance_key: str,
        claimed_at: datetime,
        stale_before: datetime,
    ) -> bool:
        """
        Take the right to send one billing instance.

        Inserts the PENDING record, or re-takes an existing PENDING one
        whose claim is absent or older than ``stale_before``. SENT and
        FAILED_PERMANENT rows are never claimed.

        Returns:
            True if this caller holds the claim.
        """
        sql = """
            INSERT INTO reminder_records (subscription_id, instance_key, status, claimed_at)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (subscription_id, instance_key) DO UPDATE
                SET claimed_at = EXCLUDED.claimed_at,
                    updated_at = NOW()
                WHERE reminder_records.status = %s
                  AND (reminder_records.claimed_at IS NULL OR reminder_records.claimed_at < %s)
            RETURNING subscription_id;
        """
        pending = ReminderStatus.PENDING.value
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (subscription_id, instance_key, pending, claimed_at, pending, stale_before))
                return cur.fetchone() is not None

    def release_claim(self, subscription_id: int, instance_key: str) -> bool:
        """Drop the claim on a still-PENDING record so the next pass can retry it."""
        sql = """
            UPDATE reminder_records SET claimed_at = NULL, updated_at = NOW()
            WHERE subscription_id = %s AND instance_key = %s AND status = %s;
        """
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (subscription_id, instance_key, ReminderStatus.PENDING.value))
                return cur.rowcount > 0

    def mark_sent(self, subscription_id: int, instance_key: str, sent_at: datetime, attempts: int) -> bool:
        """
        Record a confirmed send.

        A SENT record is never touched again: the conflict branch only
        applies while the row is not SENT yet.

        Returns:
            True if this call recorded the send, False if another writer won.
        """
        sql = """
            INSERT INTO reminder_records
                (subscription_id, instance_key, status, attempts, sent_at, last_error)
            VALUES (%s, %s, %s, %s, %s, NULL)
            ON CONFLICT (subscription_id, instance_key) DO UPDATE
                SET status = EXCLUDED.status,
                    attempts = reminder_records.attempts + EXCLUDED.attempts,
                    sent_at = EXCLUDED.sent_at,
                    last_error = NULL,
                    updated_at = NOW()
                WHERE reminder_records.status <> %s
            RETURNING subscription_id;
        """
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (
                    subscription_id, instance_key, ReminderStatus.SENT.value,
                    attempts, sent_at, ReminderStatus.SENT.value,
                ))
                return cur.fetchone() is not None

    def mark_failed(self, subscription_id: int, instance_key: str, error: str, attempts: int) -> bool:
        """
        Dead-letter a reminder. Only a PENDING record can fail.

        Returns:
            True if the record moved to FAILED_PERMANENT.
        """
        sql = """
            UPDATE reminder_records
            SET status = %s, last_error = %s, attempts = attempts + %s, updated_at = NOW()
            WHERE subscription_id = %s AND instance_key = %s AND status = %s;
        """
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (
                    ReminderStatus.FAILED_PERMANENT.value, error[:500], attempts,
                    subscription_id, instance_key, ReminderStatus.PENDING.value,
                ))
                return cur.rowcount > 0

    def reset_failed(self, subscription_id: int, instance_key: str) -> bool:
        """Re-arm a dead-lettered reminder (operator action)."""
        sql = """
            UPDATE reminder_records
            SET status = %s, claimed_at = NULL, updated_at = NOW()
            WHERE subscription_id = %s AND instance_key = %s AND status = %s;
        """
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (
                    ReminderStatus.PENDING.value, subscription_id, instance_key,
                    ReminderStatus.FAILED_PERMANENT.value,
                ))
                reset = cur.rowcount > 0
        if reset:
            logger.info(f"Re-armed reminder #{subscription_id} @ {instance_key}")
        return reset

    # ── DELETE ────────────────────────────────────────────

    def purge_older_than(self, cutoff: date) -> int:
        """Delete records for billing instances before ``cutoff``."""
        sql = "DELETE FROM reminder_records WHERE instance_key < %s;"
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (cutoff.isoformat(),))
                return cur.rowcount

    # ── HELPERS ───────────────────────────────────────────

    @staticmethod
    def _row_to_record(row: tuple) -> ReminderRecord:
        return ReminderRecord(
            subscription_id=row[0],
            instance_key=row[1],
            status=ReminderStatus(row[2]),
            attempts=row[3],
            last_error=row[4],
            sent_at=row[5],
            claimed_at=row[6],
            created_at=row[7],
            updated_at=row[8],
        )
