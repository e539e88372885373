"""
handlers/ops_handler.py
-----------------------
Operator commands for the reminder scheduler.
The scheduler instance lives in ``bot_data["scheduler"]``.
"""

from datetime import date

from telegram import Update
from telegram.ext import ContextTypes

from models.notification import PushMessage
from models.reminder import billing_instance_key
from security.auth import operator_only
from services.scheduler import ReminderScheduler
from utils.logger import get_logger

logger = get_logger(__name__)

_MAX_LISTED = 10


def _scheduler(context: ContextTypes.DEFAULT_TYPE) -> ReminderScheduler:
    return context.bot_data["scheduler"]


@operator_only
async def run_now_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /run_now - run a reminder pass immediately."""
    user = update.effective_user
    logger.info(f"Operator {user.id} triggered a reminder pass.")
    await update.message.reply_text("⏳ Running reminder pass...")

    report = await _scheduler(context).run_pass()
    lines = [("✅ " if report.completed and not report.coalesced else "⚠️ ") + report.summary()]
    for failure in report.failures[:_MAX_LISTED]:
        lines.append(f"  ❌ {failure}")
    await update.message.reply_text("\n".join(lines))


@operator_only
async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /status - scheduler state, last pass and reminder counters."""
    scheduler = _scheduler(context)
    state = scheduler.state
    lines = [
        f"🗓️ Scheduler: {state.status.value} (passes run: {state.runs})",
        f"  Today ({scheduler.tz.key}): {scheduler.today()}",
    ]
    if state.last_report is not None:
        lines.append(f"  Last pass: {state.last_report.summary()}")
        lines.append(f"  Finished at: {state.last_finished_at:%Y-%m-%d %H:%M:%S} UTC")
    counts = scheduler.deduplicator.status_counts()
    lines.append("📊 Reminders: " + ", ".join(f"{s.value}={n}" for s, n in counts.items()))
    await update.message.reply_text("\n".join(lines))


@operator_only
async def failed_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /failed - list dead-lettered reminders."""
    records = _scheduler(context).deduplicator.failed(limit=_MAX_LISTED)
    if not records:
        await update.message.reply_text("📭 No failed reminders.")
        return
    lines = ["💀 Failed reminders (re-arm with /retry_reminder <id> <date>):\n"]
    lines.extend(f"  {record}" for record in records)
    await update.message.reply_text("\n".join(lines))


@operator_only
async def retry_reminder_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /retry_reminder <subscription_id> <YYYY-MM-DD>."""
    if not context.args or len(context.args) < 2:
        await update.message.reply_text("⚠️ Usage: /retry_reminder <subscription_id> <YYYY-MM-DD>")
        return
    try:
        subscription_id = int(context.args[0])
        key = billing_instance_key(date.fromisoformat(context.args[1]))
    except ValueError:
        await update.message.reply_text("⚠️ Expected a numeric ID and a YYYY-MM-DD date.")
        return

    if _scheduler(context).deduplicator.rearm(subscription_id, key):
        await update.message.reply_text(
            f"🔁 Reminder #{subscription_id} @ {key} re-armed. It goes out on the next pass (/run_now)."
        )
    else:
        await update.message.reply_text(f"⚠️ No failed reminder #{subscription_id} @ {key}.")


@operator_only
async def test_notification_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /test_notification [target] - send a test message.

    Goes through the dispatcher's retry policy but not through dedup.
    Defaults to the current chat.
    """
    target = context.args[0] if context.args else str(update.effective_chat.id)
    message = PushMessage(
        target=target,
        title="🔔 Test notification",
        body="This is a SubMate test notification.",
        metadata={"type": "test"},
    )
    result = await _scheduler(context).dispatcher.send(message)
    if result.ok:
        await update.message.reply_text(f"✅ Delivered to {target} (attempts: {result.attempts}).")
    else:
        await update.message.reply_text(f"❌ Delivery to {target} failed: {result.error}")
