"""
security/auth.py
-----------------
Access control for the Telegram bot.

    - ``authorized_only``: user commands, gated by ALLOWED_USER_IDS
      (empty list = everyone, dev mode).
    - ``operator_only``: scheduler tooling, gated by OPERATOR_USER_IDS
      (empty list = nobody).
"""

from functools import wraps
from typing import Callable, Iterable

from telegram import Update
from telegram.ext import ContextTypes

from config import ALLOWED_USER_IDS, OPERATOR_USER_IDS
from utils.logger import get_logger

logger = get_logger(__name__)


def _guard(allowed: Iterable[int], open_when_empty: bool, denial: str, label: str):
    allowed = set(allowed)

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
            user = update.effective_user
            if not user:
                return

            if not allowed and open_when_empty:
                return await func(update, context, *args, **kwargs)

            if user.id not in allowed:
                logger.warning(
                    f"🚫 Unauthorized {label} attempt: user_id={user.id}, "
                    f"username={user.username}, name={user.first_name}"
                )
                await update.message.reply_text(denial)
                return

            return await func(update, context, *args, **kwargs)

        return wrapper

    return decorator


authorized_only = _guard(
    ALLOWED_USER_IDS,
    open_when_empty=True,
    denial="⛔ Sorry, this bot is private.",
    label="access",
)

operator_only = _guard(
    OPERATOR_USER_IDS,
    open_when_empty=False,
    denial="⛔ This command is reserved for operators.",
    label="operator",
)
