"""
db/init_db.py
-------------
Creates the database schema (tables) if they do not already exist.
Run this module directly to initialize a fresh database:
    python -m db.init_db
"""

from db.connection import transaction
from utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
-- Users table: Telegram users owning subscriptions
CREATE TABLE IF NOT EXISTS users (
    id              SERIAL PRIMARY KEY,
    telegram_id     BIGINT UNIQUE NOT NULL,
    first_name      VARCHAR(100),
    currency        VARCHAR(5) DEFAULT 'EUR',
    created_at      TIMESTAMPTZ DEFAULT NOW()
);

-- Subscriptions table: recurring charges and where to send their reminders
CREATE TABLE IF NOT EXISTS subscriptions (
    id                  SERIAL PRIMARY KEY,
    owner_user_id       BIGINT NOT NULL REFERENCES users(telegram_id) ON DELETE CASCADE,
    name                VARCHAR(100) NOT NULL CHECK (length(trim(name)) > 0),
    price               NUMERIC(12,2) NOT NULL CHECK (price >= 0),
    currency            VARCHAR(5) DEFAULT 'EUR',
    billing_cycle       VARCHAR(10) NOT NULL CHECK (billing_cycle IN ('monthly', 'yearly')),
    next_billing_date   DATE NOT NULL,
    notification_target TEXT,
    active              BOOLEAN DEFAULT TRUE,
    created_at          TIMESTAMPTZ DEFAULT NOW()
);

-- Reminder records: one row per (subscription, billing instance).
-- The primary key is what makes a reminder at-most-once; claimed_at is the
-- lease a pass holds on a PENDING row while it sends.
CREATE TABLE IF NOT EXISTS reminder_records (
    subscription_id INT NOT NULL REFERENCES subscriptions(id) ON DELETE CASCADE,
    instance_key    VARCHAR(10) NOT NULL,
    status          VARCHAR(20) NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'sent', 'failed_permanent')),
    attempts        INT NOT NULL DEFAULT 0,
    last_error      TEXT,
    sent_at         TIMESTAMPTZ,
    claimed_at      TIMESTAMPTZ,
    created_at      TIMESTAMPTZ DEFAULT NOW(),
    updated_at      TIMESTAMPTZ DEFAULT NOW(),
    PRIMARY KEY (subscription_id, instance_key)
);

-- Indexes for faster queries
CREATE INDEX IF NOT EXISTS idx_subscriptions_owner ON subscriptions(owner_user_id);
CREATE INDEX IF NOT EXISTS idx_subscriptions_due ON subscriptions(next_billing_date) WHERE active = TRUE;
CREATE INDEX IF NOT EXISTS idx_reminders_status ON reminder_records(status);
"""


def create_tables() -> None:
    """
    Execute the schema SQL to create all tables.
    Safe to call multiple times (uses IF NOT EXISTS).
    """
    with transaction() as conn:
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
    logger.info("Database schema initialized successfully.")


if __name__ == "__main__":
    from db.connection import init_pool
    init_pool()
    create_tables()
    print("✅ Database schema created successfully.")
