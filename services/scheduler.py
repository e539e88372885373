"""
services/scheduler.py
---------------------
The reminder pass and the controller that owns its state.

One pass:
    load subscriptions -> roll stale dates forward (written back)
    -> select the due window -> dedup-check, claim, send, record for each.

A failing subscription never stops the others. Only an unreachable
database aborts the pass; the next trigger starts over from durable state.
"""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from config import (
    CLEAR_TARGET_ON_INVALID,
    DISPATCH_CONCURRENCY,
    DUE_LOOKAHEAD_DAYS,
    REMINDER_RETENTION_DAYS,
    TIMEZONE,
)
from exceptions import DateArithmeticError, StorageUnavailable
from models.subscription import Subscription
from repositories.subscription_repo import SubscriptionRepository
from services.billing_calendar import local_today, normalize
from services.due_window import select_due
from services.notification_dispatcher import NotificationDispatcher, ReminderOutcome
from utils.logger import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SchedulerStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class PassReport:
    """Counters for one pass. For observability only."""
    today: date
    started_at: datetime
    finished_at: Optional[datetime] = None
    checked: int = 0
    rolled_forward: int = 0
    due: int = 0
    sent: int = 0
    duplicates: int = 0
    failed: int = 0
    errors: int = 0
    coalesced: bool = False
    aborted: bool = False
    failures: list[str] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        """False only when the pass was aborted by a storage outage."""
        return not self.aborted

    def summary(self) -> str:
        if self.coalesced:
            return f"Pass for {self.today} skipped: another pass is running."
        state = "aborted" if self.aborted else "completed"
        return (
            f"Pass for {self.today} {state}: checked={self.checked} "
            f"rolled_forward={self.rolled_forward} due={self.due} sent={self.sent} "
            f"duplicates={self.duplicates} failed={self.failed} errors={self.errors}"
        )


@dataclass
class SchedulerState:
    status: SchedulerStatus = SchedulerStatus.IDLE
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_report: Optional[PassReport] = None
    runs: int = 0


class ReminderScheduler:
    """
    Runs reminder passes, never two at once.

    The daily timer and operator tooling both call ``run_pass``. A trigger
    arriving while a pass is RUNNING is coalesced into a no-op.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        subscription_repo: Optional[SubscriptionRepository] = None,
        lookahead_days: int = DUE_LOOKAHEAD_DAYS,
        timezone_name: str = TIMEZONE,
        concurrency: int = DISPATCH_CONCURRENCY,
        retention_days: int = REMINDER_RETENTION_DAYS,
        clear_invalid_targets: bool = CLEAR_TARGET_ON_INVALID,
    ):
        self.dispatcher = dispatcher
        self.deduplicator = dispatcher.deduplicator
        self.subscription_repo = subscription_repo or SubscriptionRepository()
        self.lookahead_days = lookahead_days
        self.tz = ZoneInfo(timezone_name)
        self.concurrency = max(1, concurrency)
        self.retention_days = retention_days
        self.clear_invalid_targets = clear_invalid_targets
        self.state = SchedulerState()
        self._lock = asyncio.Lock()

    def today(self) -> date:
        """Current day in the configured billing timezone."""
        return local_today(self.tz.key)

    # ── Entry points ──────────────────────────────────────

    async def run_pass(self, today: Optional[date] = None) -> PassReport:
        """
        Run one full reminder pass.

        Args:
            today: Reference day; defaults to today in the billing timezone.

        Returns:
            The PassReport. ``coalesced`` is set when another pass was
            already running, ``aborted`` when storage was unavailable.
        """
        today = today or self.today()
        # No await between the check and the acquire, so this cannot race.
        if self._lock.locked():
            logger.warning(f"Reminder pass already running; trigger for {today} coalesced.")
            now = _utcnow()
            return PassReport(today=today, started_at=now, finished_at=now, coalesced=True)

        async with self._lock:
            report = PassReport(today=today, started_at=_utcnow())
            self.state.status = SchedulerStatus.RUNNING
            self.state.last_started_at = report.started_at
            logger.info(f"Reminder pass started for {today}")
            try:
                await self._execute(report)
            except StorageUnavailable as e:
                report.aborted = True
                logger.error(f"Reminder pass for {today} aborted, storage unavailable: {e}")
            finally:
                report.finished_at = _utcnow()
                self.state.status = SchedulerStatus.IDLE
                self.state.last_finished_at = report.finished_at
                self.state.last_report = report
                self.state.runs += 1
            logger.info(report.summary())
            return report

    def purge_expired(self, today: Optional[date] = None) -> int:
        """Delete reminder records past the retention window."""
        return self.deduplicator.purge_expired(today or self.today(), self.retention_days)

    async def daily_job(self, context) -> None:
        """JobQueue callback for the daily wall-clock trigger."""
        await self.run_pass()

    async def purge_job(self, context) -> None:
        """JobQueue callback for the retention purge."""
        try:
            self.purge_expired()
        except StorageUnavailable as e:
            logger.error(f"Reminder purge skipped, storage unavailable: {e}")

    # ── Pass internals ────────────────────────────────────

    async def _execute(self, report: PassReport) -> None:
        today = report.today
        until = today + timedelta(days=self.lookahead_days)
        subscriptions = self.subscription_repo.list_due_for_check(until)
        report.checked = len(subscriptions)

        current: list[Subscription] = []
        for subscription in subscriptions:
            normalized = self._normalize(subscription, today, report)
            if normalized is not None:
                current.append(normalized)

        due = select_due(current, today, self.lookahead_days)
        report.due = len(due)
        if not due:
            return

        semaphore = asyncio.Semaphore(self.concurrency)
        abort = asyncio.Event()
        await asyncio.gather(*(self._remind(sub, today, report, semaphore, abort) for sub in due))
        if abort.is_set():
            raise StorageUnavailable("Storage became unavailable during dispatch")

    def _normalize(self, subscription: Subscription, today: date, report: PassReport) -> Optional[Subscription]:
        """
        Return a copy with a current billing date, persisting any roll-forward.

        Returns None when the subscription must be skipped for this pass.
        """
        try:
            new_date = normalize(subscription.next_billing_date, subscription.billing_cycle, today)
        except DateArithmeticError as e:
            report.errors += 1
            logger.error(f"Skipping subscription #{subscription.id}: {e}")
            return None

        if new_date == subscription.next_billing_date:
            return subscription

        if not self.subscription_repo.update_next_billing_date(
            subscription.id, new_date, expected=subscription.next_billing_date
        ):
            # Edited since it was read; the next pass sees the new value.
            return None
        report.rolled_forward += 1
        return replace(subscription, next_billing_date=new_date)

    async def _remind(
        self,
        subscription: Subscription,
        today: date,
        report: PassReport,
        semaphore: asyncio.Semaphore,
        abort: asyncio.Event,
    ) -> None:
        async with semaphore:
            if abort.is_set():
                return
            try:
                result = await self.dispatcher.dispatch_reminder(subscription, today)
            except StorageUnavailable as e:
                logger.error(f"Storage lost while reminding #{subscription.id}: {e}")
                abort.set()
                return
            except Exception as e:
                report.errors += 1
                report.failures.append(f"#{subscription.id}: {e}")
                logger.exception(f"Unexpected error reminding subscription #{subscription.id}: {e}")
                return

            if result.outcome == ReminderOutcome.SENT:
                report.sent += 1
            elif result.outcome == ReminderOutcome.DUPLICATE:
                report.duplicates += 1
            else:
                report.failed += 1
                report.failures.append(f"#{subscription.id} @ {result.instance_key}: {result.dispatch.error}")
                if result.invalid_target and self.clear_invalid_targets:
                    try:
                        self.subscription_repo.clear_notification_target(subscription.id)
                    except StorageUnavailable as e:
                        logger.error(f"Storage lost while clearing target of #{subscription.id}: {e}")
                        abort.set()
