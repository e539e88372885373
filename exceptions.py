"""
exceptions.py
-------------
Error taxonomy for the reminder engine.

Per-item errors (bad dates, failed dispatches) are isolated by the scheduler
and logged. Only ``StorageUnavailable`` aborts a whole pass.
"""

from typing import Any, Optional


class ReminderEngineError(Exception):
    """
    Base class for all engine errors.

    Attributes:
        message: Human-readable description.
        context: Extra structured data for the logs.
        original_error: The library exception this one wraps, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        context: Optional[dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        base = self.message
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base = f"{base} ({ctx})"
        if self.original_error is not None:
            base = f"{base} [caused by: {type(self.original_error).__name__}]"
        return base


class DateArithmeticError(ReminderEngineError, ValueError):
    """Malformed billing cycle or date; the subscription is skipped for this pass."""


class DispatchError(ReminderEngineError):
    """A notification could not be delivered by the transport."""


class TransientDispatchError(DispatchError):
    """
    Delivery failed for a reason that may go away (timeout, 5xx, rate limit).

    ``retry_after`` carries the transport's hint in seconds, when it gives one.
    """

    def __init__(self, message: str, *, retry_after: Optional[float] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class PermanentDispatchError(DispatchError):
    """
    Delivery will not succeed on retry (bad target, malformed request).

    ``invalid_target`` is set when the delivery handle itself is dead
    (unregistered device, blocked chat).
    """

    def __init__(self, message: str, *, invalid_target: bool = False, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.invalid_target = invalid_target


class StorageUnavailable(ReminderEngineError):
    """The database cannot be reached; the current pass must stop."""
