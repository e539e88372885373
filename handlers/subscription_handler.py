"""
handlers/subscription_handler.py
--------------------------------
Handles subscription commands from users.
Structured input only: fields separated by "|".
"""

import re
from datetime import date

from telegram import Update
from telegram.ext import ContextTypes

from config import NOTIFICATION_TRANSPORT
from repositories.user_repo import UserRepository
from security.auth import authorized_only
from security.rate_limiter import rate_limited
from services.subscription_service import SubscriptionService
from utils.logger import get_logger

logger = get_logger(__name__)
subscription_service = SubscriptionService()
user_repo = UserRepository()

_CYCLE_MAP = {
    "monthly": "monthly", "month": "monthly", "m": "monthly", "mensuel": "monthly",
    "yearly": "yearly", "year": "yearly", "annual": "yearly", "y": "yearly", "annuel": "yearly",
}

USAGE = (
    "📝 *Add a subscription*\n\n"
    "`/add_subscription name | price | cycle`\n"
    "`/add_subscription name | price | cycle | YYYY-MM-DD`\n\n"
    "*Examples:*\n"
    "• `/add_subscription Netflix | 15.99 | monthly`\n"
    "• `/add_subscription Car insurance | 600 | yearly | 2026-03-01`\n\n"
    "*Cycle:* monthly or yearly"
)


def parse_subscription_args(text: str) -> dict | None:
    """
    Parse ``name | price | cycle [| YYYY-MM-DD]``.

    Returns:
        Dict with name, price (str), billing_cycle and next_billing_date
        (None when omitted), or None if the text does not match.
    """
    parts = [p.strip() for p in text.split("|")]
    if len(parts) < 3 or not parts[0]:
        return None

    price = re.sub(r"[^\d.]", "", parts[1].replace(",", "."))
    if not price or price.count(".") > 1:
        return None

    cycle = _CYCLE_MAP.get(parts[2].lower())
    if not cycle:
        return None

    next_billing_date = None
    if len(parts) >= 4 and parts[3]:
        try:
            next_billing_date = date.fromisoformat(parts[3])
        except ValueError:
            return None

    return {
        "name": parts[0],
        "price": price,
        "billing_cycle": cycle,
        "next_billing_date": next_billing_date,
    }


@authorized_only
@rate_limited
async def subscriptions_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /subscriptions - list active subscriptions."""
    user = update.effective_user
    await update.message.reply_text(subscription_service.list_active(user.id))


@authorized_only
@rate_limited
async def add_subscription_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /add_subscription name | price | cycle [| date]."""
    user = update.effective_user
    if not context.args:
        await update.message.reply_text(USAGE, parse_mode="Markdown")
        return

    parsed = parse_subscription_args(" ".join(context.args))
    if not parsed:
        await update.message.reply_text(USAGE, parse_mode="Markdown")
        return

    user_repo.ensure_user(user.id, user.first_name)
    # With the Telegram transport, this chat is where reminders go.
    target = str(update.effective_chat.id) if NOTIFICATION_TRANSPORT == "telegram" else None
    result = subscription_service.add_manual(
        owner_user_id=user.id,
        notification_target=target,
        **parsed,
    )
    if result["success"]:
        await update.message.reply_text(result["message"])
    else:
        await update.message.reply_text(f"⚠️ {result['error']}")


@authorized_only
@rate_limited
async def delete_subscription_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /delete_subscription <id>."""
    user = update.effective_user
    if not context.args:
        await update.message.reply_text("⚠️ Usage: /delete_subscription <id>\nExample: /delete_subscription 3")
        return
    try:
        subscription_id = int(context.args[0])
    except ValueError:
        await update.message.reply_text("⚠️ The subscription ID must be a number.")
        return
    await update.message.reply_text(subscription_service.delete_subscription(subscription_id, user.id))


@authorized_only
@rate_limited
async def notify_here_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /notify_here - route the user's reminders to this chat."""
    if NOTIFICATION_TRANSPORT != "telegram":
        await update.message.reply_text("ℹ️ Reminders are delivered as push notifications by the mobile app.")
        return
    user = update.effective_user
    msg = subscription_service.route_reminders(user.id, str(update.effective_chat.id))
    await update.message.reply_text(msg)


@authorized_only
@rate_limited
async def mute_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /mute - stop reminders for all of the user's subscriptions."""
    user = update.effective_user
    await update.message.reply_text(subscription_service.route_reminders(user.id, None))
