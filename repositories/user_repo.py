"""
repositories/user_repo.py
--------------------------
Data access layer for user records.
"""

from typing import Optional

from db.connection import transaction
from utils.logger import get_logger

logger = get_logger(__name__)


class UserRepository:
    """Repository for the users table."""

    def ensure_user(self, telegram_id: int, first_name: Optional[str] = None) -> dict:
        """
        Insert a user if they don't exist, or refresh their first name.
        Uses PostgreSQL's ON CONFLICT (upsert) for atomicity.

        Returns:
            Dict with user data: {'id', 'telegram_id', 'first_name', 'currency'}.
        """
        sql = """
            INSERT INTO users (telegram_id, first_name)
            VALUES (%s, %s)
            ON CONFLICT (telegram_id) DO UPDATE SET first_name = EXCLUDED.first_name
            RETURNING id, telegram_id, first_name, currency;
        """
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (telegram_id, first_name))
                row = cur.fetchone()
        return {
            "id": row[0],
            "telegram_id": row[1],
            "first_name": row[2],
            "currency": row[3],
        }
