"""
config.py
---------
Central configuration module. Loads all environment variables
from the .env file and exposes them as typed constants.
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _id_list(raw: str) -> list[int]:
    return [int(uid.strip()) for uid in raw.split(",") if uid.strip()]


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# ── Telegram ──────────────────────────────────────────────
TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")

# ── PostgreSQL ────────────────────────────────────────────
DB_HOST: str = os.getenv("DB_HOST", "localhost")
DB_PORT: int = int(os.getenv("DB_PORT", "5432"))
DB_NAME: str = os.getenv("DB_NAME", "submate")
DB_USER: str = os.getenv("DB_USER", "submate_user")
DB_PASS: str = os.getenv("DB_PASS", "")

DATABASE_URL: str = (
    f"postgresql://{DB_USER}:{DB_PASS}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)

# ── Security ──────────────────────────────────────────────
ALLOWED_USER_IDS: list[int] = _id_list(os.getenv("ALLOWED_USER_IDS", ""))
OPERATOR_USER_IDS: list[int] = _id_list(os.getenv("OPERATOR_USER_IDS", ""))

# ── Rate Limiting ─────────────────────────────────────────
RATE_LIMIT_MESSAGES: int = int(os.getenv("RATE_LIMIT_MESSAGES", "30"))
RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# ── Currency ──────────────────────────────────────────────
DEFAULT_CURRENCY: str = "EUR"

# ── Reminder schedule ─────────────────────────────────────
TIMEZONE: str = os.getenv("TIMEZONE", "Europe/Paris")
REMINDER_HOUR: int = int(os.getenv("REMINDER_HOUR", "8"))
REMINDER_MINUTE: int = int(os.getenv("REMINDER_MINUTE", "0"))
# Half-open window [today, today + N days). With 1 only charges due today are
# selected, so a charge due tomorrow (the usual day-before reminder) needs 2.
DUE_LOOKAHEAD_DAYS: int = int(os.getenv("DUE_LOOKAHEAD_DAYS", "2"))
REMINDER_RETENTION_DAYS: int = int(os.getenv("REMINDER_RETENTION_DAYS", "90"))

# ── Notification transport ────────────────────────────────
NOTIFICATION_TRANSPORT: str = os.getenv("NOTIFICATION_TRANSPORT", "telegram").lower()
EXPO_PUSH_URL: str = os.getenv("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")
EXPO_ACCESS_TOKEN: str = os.getenv("EXPO_ACCESS_TOKEN", "")

# ── Dispatch policy ───────────────────────────────────────
DISPATCH_MAX_RETRIES: int = int(os.getenv("DISPATCH_MAX_RETRIES", "3"))
DISPATCH_BACKOFF_BASE: float = float(os.getenv("DISPATCH_BACKOFF_BASE", "1.0"))
DISPATCH_BACKOFF_FACTOR: float = float(os.getenv("DISPATCH_BACKOFF_FACTOR", "2.0"))
DISPATCH_BACKOFF_CAP: float = float(os.getenv("DISPATCH_BACKOFF_CAP", "30.0"))
DISPATCH_TIMEOUT_SECONDS: float = float(os.getenv("DISPATCH_TIMEOUT_SECONDS", "10.0"))
DISPATCH_CONCURRENCY: int = int(os.getenv("DISPATCH_CONCURRENCY", "5"))
CLEAR_TARGET_ON_INVALID: bool = _flag("CLEAR_TARGET_ON_INVALID", "true")
# A PENDING claim older than this is considered abandoned (crashed pass)
# and may be taken over. Must exceed the longest retry sequence.
CLAIM_LEASE_SECONDS: int = int(os.getenv("CLAIM_LEASE_SECONDS", "600"))

# ── Logging ───────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
