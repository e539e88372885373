"""
repositories/subscription_repo.py
---------------------------------
Data access layer for subscriptions.
All SQL queries related to the `subscriptions` table live here.
"""

from datetime import date
from typing import Optional

from db.connection import transaction
from models.subscription import Subscription
from utils.logger import get_logger

logger = get_logger(__name__)

_COLUMNS = (
    "id, owner_user_id, name, price, currency, billing_cycle, "
    "next_billing_date, notification_target, active, created_at"
)


class SubscriptionRepository:
    """Repository for CRUD operations on the subscriptions table."""

    # ── CREATE ────────────────────────────────────────────

    def add(self, subscription: Subscription) -> Subscription:
        """
        Insert a new subscription.

        Returns:
            The same object with its `id` and `created_at` populated.
        """
        sql = """
            INSERT INTO subscriptions
                (owner_user_id, name, price, currency, billing_cycle,
                 next_billing_date, notification_target, active)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id, created_at;
        """
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (
                    subscription.owner_user_id, subscription.name, subscription.price,
                    subscription.currency, subscription.billing_cycle.value,
                    subscription.next_billing_date, subscription.notification_target,
                    subscription.active,
                ))
                row = cur.fetchone()
        subscription.id = row[0]
        subscription.created_at = row[1]
        logger.info(f"Added subscription '{subscription.name}' #{subscription.id}")
        return subscription

    # ── READ ──────────────────────────────────────────────

    def get_all(self, owner_user_id: int, active_only: bool = True) -> list[Subscription]:
        """Get all subscriptions of a user, soonest charge first."""
        sql = f"SELECT {_COLUMNS} FROM subscriptions WHERE owner_user_id = %s"
        if active_only:
            sql += " AND active = TRUE"
        sql += " ORDER BY next_billing_date ASC, id ASC;"
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (owner_user_id,))
                return [self._row_to_subscription(r) for r in cur.fetchall()]

    def get_by_id(self, subscription_id: int, owner_user_id: Optional[int] = None) -> Optional[Subscription]:
        """Fetch a single subscription, optionally scoped to its owner."""
        sql = f"SELECT {_COLUMNS} FROM subscriptions WHERE id = %s"
        params: list = [subscription_id]
        if owner_user_id is not None:
            sql += " AND owner_user_id = %s"
            params.append(owner_user_id)
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql + ";", params)
                row = cur.fetchone()
        return self._row_to_subscription(row) if row else None

    def list_due_for_check(self, until: date) -> list[Subscription]:
        """
        Active subscriptions whose next charge is before ``until``.

        Covers both stale rows (date already past, needing a roll-forward)
        and rows inside the reminder window. Rows at or after ``until``
        cannot be due because normalization only moves dates forward.
        """
        sql = f"""
            SELECT {_COLUMNS} FROM subscriptions
            WHERE active = TRUE AND next_billing_date < %s
            ORDER BY next_billing_date ASC, id ASC;
        """
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (until,))
                return [self._row_to_subscription(r) for r in cur.fetchall()]

    # ── UPDATE ────────────────────────────────────────────

    def update_next_billing_date(self, subscription_id: int, new_date: date, expected: date) -> bool:
        """
        Write back a rolled-forward billing date.

        Compare-and-set on the date the caller read, so a concurrent edit
        made by the owner is never overwritten.

        Returns:
            True if the row was updated.
        """
        sql = """
            UPDATE subscriptions SET next_billing_date = %s
            WHERE id = %s AND next_billing_date = %s;
        """
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (new_date, subscription_id, expected))
                updated = cur.rowcount > 0
        if updated:
            logger.info(f"Advanced subscription #{subscription_id} next billing date {expected} -> {new_date}")
        else:
            logger.warning(f"Subscription #{subscription_id} changed since it was read; date not advanced.")
        return updated

    def clear_notification_target(self, subscription_id: int) -> bool:
        """Forget a dead delivery handle so the subscription stops being dispatched."""
        sql = "UPDATE subscriptions SET notification_target = NULL WHERE id = %s;"
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (subscription_id,))
                updated = cur.rowcount > 0
        if updated:
            logger.info(f"Cleared notification target of subscription #{subscription_id}")
        return updated

    def set_target_for_owner(self, owner_user_id: int, target: Optional[str]) -> int:
        """Point every subscription of a user at ``target`` (None mutes them)."""
        sql = "UPDATE subscriptions SET notification_target = %s WHERE owner_user_id = %s;"
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (target, owner_user_id))
                return cur.rowcount

    # ── DELETE ────────────────────────────────────────────

    def delete(self, subscription_id: int, owner_user_id: int) -> bool:
        """Delete a subscription by ID, scoped to its owner."""
        sql = "DELETE FROM subscriptions WHERE id = %s AND owner_user_id = %s;"
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (subscription_id, owner_user_id))
                deleted = cur.rowcount > 0
        if deleted:
            logger.info(f"Deleted subscription #{subscription_id}")
        return deleted

    # ── HELPERS ───────────────────────────────────────────

    @staticmethod
    def _row_to_subscription(row: tuple) -> Subscription:
        """Convert a database row tuple to a Subscription domain object."""
        return Subscription(
            id=row[0],
            owner_user_id=row[1],
            name=row[2],
            price=row[3],
            currency=row[4],
            billing_cycle=row[5],
            next_billing_date=row[6],
            notification_target=row[7],
            active=row[8],
            created_at=row[9],
        )
