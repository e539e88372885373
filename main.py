"""
main.py
-------
Entry point for the SubMate reminder service.

Responsibilities:
    - Initialize the database connection pool and schema.
    - Build the notification transport and the reminder scheduler.
    - Run the Telegram bot with the daily reminder job (default), or
      run a single reminder pass and exit (``run-now``).
"""

import argparse
import asyncio
import sys
from datetime import date, time as dt_time
from typing import Optional
from zoneinfo import ZoneInfo

from telegram import Bot, BotCommand
from telegram.ext import Application, CommandHandler

from config import (
    NOTIFICATION_TRANSPORT,
    REMINDER_HOUR,
    REMINDER_MINUTE,
    TELEGRAM_BOT_TOKEN,
    TIMEZONE,
)
from db.connection import close_pool, init_pool
from db.init_db import create_tables
from exceptions import StorageUnavailable
from handlers.ops_handler import (
    failed_command,
    retry_reminder_command,
    run_now_command,
    status_command,
    test_notification_command,
)
from handlers.start_handler import help_command, myid_command, start_command
from handlers.subscription_handler import (
    add_subscription_command,
    delete_subscription_command,
    mute_command,
    notify_here_command,
    subscriptions_command,
)
from services.notification_dispatcher import NotificationDispatcher
from services.reminder_deduplicator import ReminderDeduplicator
from services.scheduler import PassReport, ReminderScheduler
from transports import build_transport
from transports.base import NotificationTransport
from utils.logger import configure as configure_logging
from utils.logger import get_logger

logger = get_logger(__name__)

# Retention purge runs away from the reminder hour.
PURGE_TIME = dt_time(hour=3, minute=30)


def build_scheduler(transport: NotificationTransport) -> ReminderScheduler:
    """Wire dispatcher, deduplicator and scheduler around a transport."""
    dispatcher = NotificationDispatcher(transport, ReminderDeduplicator())
    return ReminderScheduler(dispatcher)


async def set_bot_commands(application: Application) -> None:
    """Register bot commands menu in Telegram on startup."""
    commands = [
        BotCommand("start", "🚀 Start"),
        BotCommand("help", "📖 Help"),
        BotCommand("subscriptions", "🔁 My subscriptions"),
        BotCommand("add_subscription", "➕ Add a subscription"),
        BotCommand("delete_subscription", "❌ Delete a subscription"),
        BotCommand("notify_here", "🔔 Send reminders to this chat"),
        BotCommand("mute", "🔕 Stop reminders"),
        BotCommand("myid", "🆔 My Telegram ID"),
    ]
    await application.bot.set_my_commands(commands)
    logger.info("Bot commands menu registered successfully.")


async def close_transport(application: Application) -> None:
    scheduler: Optional[ReminderScheduler] = application.bot_data.get("scheduler")
    if scheduler is not None:
        await scheduler.dispatcher.transport.close()


async def on_error(update: object, context) -> None:
    """Log handler errors instead of letting them vanish."""
    logger.error(f"Error while handling an update: {context.error}", exc_info=context.error)


def run_bot() -> None:
    """Initialize and run the bot with the scheduled reminder jobs."""

    # ── 1. Database setup ─────────────────────────────────
    logger.info("Initializing database...")
    init_pool()
    create_tables()

    # ── 2. Build the Telegram application ─────────────────
    logger.info("Starting Telegram bot...")
    app = (
        Application.builder()
        .token(TELEGRAM_BOT_TOKEN)
        .post_init(set_bot_commands)
        .post_shutdown(close_transport)
        .build()
    )

    # ── 3. Reminder engine ────────────────────────────────
    scheduler = build_scheduler(build_transport(app.bot))
    app.bot_data["scheduler"] = scheduler
    logger.info(f"Reminders delivered via the '{NOTIFICATION_TRANSPORT}' transport.")

    # ── 4. Register command handlers ──────────────────────
    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("myid", myid_command))
    app.add_handler(CommandHandler("subscriptions", subscriptions_command))
    app.add_handler(CommandHandler("add_subscription", add_subscription_command))
    app.add_handler(CommandHandler("delete_subscription", delete_subscription_command))
    app.add_handler(CommandHandler("notify_here", notify_here_command))
    app.add_handler(CommandHandler("mute", mute_command))

    # Operator tooling
    app.add_handler(CommandHandler("run_now", run_now_command))
    app.add_handler(CommandHandler("status", status_command))
    app.add_handler(CommandHandler("failed", failed_command))
    app.add_handler(CommandHandler("retry_reminder", retry_reminder_command))
    app.add_handler(CommandHandler("test_notification", test_notification_command))
    app.add_error_handler(on_error)

    # ── 5. Schedule jobs ──────────────────────────────────
    tz = ZoneInfo(TIMEZONE)
    job_queue = app.job_queue
    if job_queue:
        job_queue.run_daily(
            scheduler.daily_job,
            time=dt_time(hour=REMINDER_HOUR, minute=REMINDER_MINUTE, tzinfo=tz),
            name="daily_reminders",
        )
        job_queue.run_daily(
            scheduler.purge_job,
            time=PURGE_TIME.replace(tzinfo=tz),
            name="reminder_purge",
        )
        logger.info(
            f"Scheduled daily reminders ({REMINDER_HOUR:02d}:{REMINDER_MINUTE:02d} {TIMEZONE}) "
            f"+ retention purge ({PURGE_TIME:%H:%M})"
        )
    else:
        logger.warning("JobQueue unavailable: install python-telegram-bot[job-queue]. Only /run_now will work.")

    # ── 6. Start polling ──────────────────────────────────
    logger.info("🚀 SubMate reminders are running! Press Ctrl+C to stop.")
    app.run_polling(drop_pending_updates=True, allowed_updates=["message"])

    # ── 7. Cleanup on shutdown ────────────────────────────
    close_pool()
    logger.info("SubMate stopped.")


async def run_single_pass(today: Optional[date] = None) -> PassReport:
    """Build a transport outside the bot's event loop and run one pass."""
    bot = Bot(TELEGRAM_BOT_TOKEN) if NOTIFICATION_TRANSPORT == "telegram" else None
    if bot is not None:
        await bot.initialize()
    transport = build_transport(bot)
    try:
        return await build_scheduler(transport).run_pass(today)
    finally:
        await transport.close()
        if bot is not None:
            await bot.shutdown()


def run_now(today: Optional[date] = None) -> int:
    """
    Run one reminder pass from the command line.

    Returns:
        Exit code: 0 when the pass completed, 1 when it was aborted.
    """
    try:
        init_pool()
    except StorageUnavailable as e:
        logger.error(f"Cannot run reminder pass: {e}")
        return 1
    try:
        report = asyncio.run(run_single_pass(today))
    finally:
        close_pool()

    print(report.summary())
    for failure in report.failures:
        print(f"  - {failure}")
    return 0 if report.completed else 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="submate-reminders",
        description="Subscription billing reminders.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="override LOG_LEVEL from the environment",
    )
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("bot", help="run the Telegram bot and the daily scheduler (default)")
    once = commands.add_parser("run-now", help="run a single reminder pass and exit")
    once.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="reference day YYYY-MM-DD (default: today in the configured timezone)",
    )
    args = parser.parse_args(argv)
    if args.log_level:
        configure_logging(args.log_level)

    if args.command == "run-now":
        return run_now(args.date)
    run_bot()
    return 0


if __name__ == "__main__":
    sys.exit(main())
