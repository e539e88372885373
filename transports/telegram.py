"""
transports/telegram.py
----------------------
Delivers reminders as Telegram chat messages through the bot.
The notification target is the chat id.
"""

from datetime import timedelta
from typing import Optional

from telegram import Bot
from telegram.error import (
    BadRequest,
    Forbidden,
    InvalidToken,
    NetworkError,
    RetryAfter,
    TelegramError,
    TimedOut,
)

from exceptions import PermanentDispatchError, TransientDispatchError
from models.notification import PushMessage
from transports.base import NotificationTransport

# BadRequest descriptions that mean the chat itself is gone.
_DEAD_CHAT_MARKERS = ("chat not found", "user not found", "chat_id is empty", "peer_id_invalid")


def _seconds(value) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


class TelegramTransport(NotificationTransport):
    """Sends ``title`` and ``body`` as one plain-text message."""

    name = "telegram"

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send(self, message: PushMessage) -> Optional[str]:
        text = f"{message.title}\n\n{message.body}"
        try:
            sent = await self.bot.send_message(chat_id=message.target, text=text)
        except RetryAfter as e:
            raise TransientDispatchError(
                "Telegram flood control", retry_after=_seconds(e.retry_after), original_error=e
            ) from e
        except TimedOut as e:
            raise TransientDispatchError("Telegram request timed out", original_error=e) from e
        # BadRequest subclasses NetworkError, so it must be handled first.
        except BadRequest as e:
            dead = any(marker in e.message.lower() for marker in _DEAD_CHAT_MARKERS)
            raise PermanentDispatchError(
                f"Telegram rejected the message: {e.message}", invalid_target=dead, original_error=e
            ) from e
        except Forbidden as e:
            raise PermanentDispatchError(
                f"Bot cannot message chat {message.target}: {e.message}",
                invalid_target=True,
                original_error=e,
            ) from e
        except InvalidToken as e:
            raise PermanentDispatchError("Telegram bot token is invalid", original_error=e) from e
        except NetworkError as e:
            raise TransientDispatchError(f"Telegram network error: {e.message}", original_error=e) from e
        except TelegramError as e:
            raise PermanentDispatchError(f"Telegram error: {e.message}", original_error=e) from e
        return str(sent.message_id)
