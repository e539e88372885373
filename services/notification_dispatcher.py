"""
services/notification_dispatcher.py
-----------------------------------
Sends reminders through the notification transport.

Responsibilities:
    - Build the reminder message for a due subscription.
    - Retry transient failures with capped exponential backoff.
    - Enforce the dedup ordering: check -> claim -> send -> mark.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional

from config import (
    DISPATCH_BACKOFF_BASE,
    DISPATCH_BACKOFF_CAP,
    DISPATCH_BACKOFF_FACTOR,
    DISPATCH_MAX_RETRIES,
    DISPATCH_TIMEOUT_SECONDS,
)
from exceptions import DispatchError, PermanentDispatchError, TransientDispatchError
from models.notification import PushMessage
from models.reminder import billing_instance_key
from models.subscription import Subscription
from services.reminder_deduplicator import ReminderDeduplicator
from transports.base import NotificationTransport
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class DispatchResult:
    """
    Outcome of one message after all retries.

    Attributes:
        ok: True when the transport confirmed delivery.
        attempts: Network calls made (1 + retries).
        receipt: Transport receipt id on success.
        error: The final error on failure, always permanent.
        delays: Backoff delays slept between attempts, in order.
    """
    ok: bool
    attempts: int
    receipt: Optional[str] = None
    error: Optional[DispatchError] = None
    delays: list[float] = field(default_factory=list)


class ReminderOutcome(str, Enum):
    SENT = "sent"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass
class ReminderResult:
    subscription_id: int
    instance_key: str
    outcome: ReminderOutcome
    dispatch: Optional[DispatchResult] = None

    @property
    def invalid_target(self) -> bool:
        error = self.dispatch.error if self.dispatch else None
        return isinstance(error, PermanentDispatchError) and error.invalid_target


def _when(billing_date: date, today: date) -> str:
    days = (billing_date - today).days
    if days == 0:
        return "today"
    if days == 1:
        return "tomorrow"
    return f"on {billing_date.isoformat()}"


def build_reminder_message(subscription: Subscription, today: date) -> PushMessage:
    """Reminder text for the next charge of ``subscription``."""
    when = _when(subscription.next_billing_date, today)
    return PushMessage(
        target=subscription.notification_target,
        title=f"⏰ Upcoming charge: {subscription.name}",
        body=(
            f"Your {subscription.name} subscription will be charged "
            f"{subscription.price:.2f} {subscription.currency} {when}."
        ),
        metadata={
            "type": "subscription_reminder",
            "subscription_id": subscription.id,
            "billing_date": subscription.next_billing_date.isoformat(),
        },
    )


class NotificationDispatcher:
    """
    Sends messages through a transport with retry-on-transient-failure.

    Transient errors (timeouts, 5xx, rate limits) are retried up to
    ``max_retries`` times, sleeping ``base * factor ** n`` seconds (capped)
    between attempts. Exhausted retries and permanent errors are returned
    as a permanent failure; nothing is retried after that.
    """

    def __init__(
        self,
        transport: NotificationTransport,
        deduplicator: Optional[ReminderDeduplicator] = None,
        max_retries: int = DISPATCH_MAX_RETRIES,
        backoff_base: float = DISPATCH_BACKOFF_BASE,
        backoff_factor: float = DISPATCH_BACKOFF_FACTOR,
        backoff_cap: float = DISPATCH_BACKOFF_CAP,
        timeout: float = DISPATCH_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.transport = transport
        self.deduplicator = deduplicator or ReminderDeduplicator()
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_factor = backoff_factor
        self.backoff_cap = backoff_cap
        self.timeout = timeout
        self._sleep = sleep

    def backoff_delay(self, retry_number: int, hint: Optional[float] = None) -> float:
        """
        Delay before retry number ``retry_number`` (1-based).

        A server-provided hint (Retry-After) raises the delay but never
        above the cap.
        """
        delay = self.backoff_base * (self.backoff_factor ** (retry_number - 1))
        if hint is not None:
            delay = max(delay, hint)
        return min(delay, self.backoff_cap)

    async def send(self, message: PushMessage) -> DispatchResult:
        """
        Deliver one message, retrying transient failures.

        Exactly one transport call is made per attempt; each attempt is
        bounded by ``timeout`` and a timeout counts as transient.
        """
        delays: list[float] = []
        attempt = 0
        while True:
            attempt += 1
            try:
                receipt = await asyncio.wait_for(self.transport.send(message), timeout=self.timeout)
                return DispatchResult(ok=True, attempts=attempt, receipt=receipt, delays=delays)
            except asyncio.TimeoutError as e:
                error: TransientDispatchError = TransientDispatchError(
                    f"No answer from {self.transport.name} within {self.timeout}s", original_error=e
                )
            except TransientDispatchError as e:
                error = e
            except PermanentDispatchError as e:
                logger.error(f"Permanent failure sending to {message.target}: {e}")
                return DispatchResult(ok=False, attempts=attempt, error=e, delays=delays)

            if attempt > self.max_retries:
                logger.error(f"Giving up on {message.target} after {attempt} attempts: {error}")
                exhausted = PermanentDispatchError(
                    f"Retries exhausted after {attempt} attempts: {error.message}",
                    context={"attempts": attempt},
                    original_error=error,
                )
                return DispatchResult(ok=False, attempts=attempt, error=exhausted, delays=delays)

            delay = self.backoff_delay(attempt, error.retry_after)
            delays.append(delay)
            logger.warning(
                f"Transient failure sending to {message.target} "
                f"(attempt {attempt}/{self.max_retries + 1}): {error}. Retrying in {delay:.1f}s"
            )
            await self._sleep(delay)

    async def dispatch_reminder(self, subscription: Subscription, today: date) -> ReminderResult:
        """
        Remind the owner of ``subscription`` about its next charge, once.

        Order is dedup-check, claim, send, dedup-mark. Only the claim holder
        sends, and the send is only recorded after the transport confirmed it.
        """
        key = billing_instance_key(subscription.next_billing_date)
        if not self.deduplicator.should_send(subscription.id, key):
            logger.info(f"Reminder for '{subscription.name}' #{subscription.id} @ {key} already handled")
            return ReminderResult(subscription.id, key, ReminderOutcome.DUPLICATE)
        if not self.deduplicator.claim(subscription.id, key):
            return ReminderResult(subscription.id, key, ReminderOutcome.DUPLICATE)

        message = build_reminder_message(subscription, today)
        try:
            result = await self.send(message)
        except Exception:
            self.deduplicator.release(subscription.id, key)
            raise

        if result.ok:
            recorded = self.deduplicator.mark_sent(
                subscription.id, key, datetime.now(timezone.utc), result.attempts
            )
            if not recorded:
                # A pass that took over an expired claim recorded it first.
                return ReminderResult(subscription.id, key, ReminderOutcome.DUPLICATE, result)
            logger.info(
                f"Sent reminder for '{subscription.name}' #{subscription.id} @ {key} "
                f"to user {subscription.owner_user_id} (attempts={result.attempts})"
            )
            return ReminderResult(subscription.id, key, ReminderOutcome.SENT, result)

        self.deduplicator.mark_failed(subscription.id, key, str(result.error), result.attempts)
        return ReminderResult(subscription.id, key, ReminderOutcome.FAILED, result)
