"""
transports/base.py
------------------
Interface every notification transport implements.
"""

from typing import Optional

from models.notification import PushMessage


class NotificationTransport:
    """
    Delivers one message per call, with no retries of its own.

    ``send`` returns a receipt id (or None) on success and raises
    ``TransientDispatchError`` or ``PermanentDispatchError`` on failure.
    """

    name = "base"

    async def send(self, message: PushMessage) -> Optional[str]:
        raise NotImplementedError

    async def close(self) -> None:
        """Release network resources owned by the transport."""
        return None
