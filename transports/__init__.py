"""
transports/ - Notification Delivery
===================================
Adapters for the external delivery APIs. Each one turns its library's
errors into transient or permanent dispatch errors and never retries.
"""

from config import NOTIFICATION_TRANSPORT
from transports.base import NotificationTransport
from transports.expo import ExpoPushTransport
from transports.telegram import TelegramTransport


def build_transport(bot=None, kind: str = NOTIFICATION_TRANSPORT) -> NotificationTransport:
    """
    Create the configured transport.

    Args:
        bot: The telegram Bot, required for the "telegram" transport.
        kind: "telegram" or "expo".
    """
    if kind == "expo":
        return ExpoPushTransport()
    if kind == "telegram":
        if bot is None:
            raise ValueError("The telegram transport needs a Bot instance.")
        return TelegramTransport(bot)
    raise ValueError(f"Unknown notification transport {kind!r} (expected 'telegram' or 'expo').")
