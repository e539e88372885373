"""
handlers/start_handler.py
--------------------------
Handles /start, /help and /myid.
Registers the user and shows available commands.
"""

from telegram import Update
from telegram.ext import ContextTypes

from repositories.user_repo import UserRepository
from security.auth import authorized_only
from security.rate_limiter import rate_limited
from utils.logger import get_logger

logger = get_logger(__name__)
user_repo = UserRepository()

HELP_TEXT = """
🤖 *SubMate* - never get surprised by a subscription charge again.
You get a reminder the day before each charge.

*🔁 Subscriptions:*
/subscriptions - list your subscriptions
/add\\_subscription - add one (`Netflix | 15.99 | monthly`)
/delete\\_subscription - delete one (e.g. /delete\\_subscription 3)

*🔔 Reminders:*
/notify\\_here - send my reminders to this chat
/mute - stop my reminders

/myid - show your Telegram ID
"""


@authorized_only
@rate_limited
async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start command - register user and show welcome message."""
    user = update.effective_user
    user_repo.ensure_user(user.id, user.first_name)
    logger.info(f"User {user.id} ({user.first_name}) started the bot.")

    await update.message.reply_text(
        f"Hi {user.first_name}! 👋\n"
        f"I keep track of your subscriptions and remind you before each charge.\n\n"
        f"Send /help to see every command.",
    )


@authorized_only
@rate_limited
async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help command - show all available commands."""
    await update.message.reply_text(HELP_TEXT, parse_mode="Markdown")


@authorized_only
async def myid_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /myid command - show user's Telegram ID for whitelisting."""
    user = update.effective_user
    await update.message.reply_text(
        f"🆔 Your ID: `{user.id}`\n"
        f"Add it to `ALLOWED_USER_IDS` (or `OPERATOR_USER_IDS`) in `.env`.",
        parse_mode="Markdown",
    )
