"""
models/notification.py
----------------------
The message handed to a notification transport.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PushMessage:
    """
    A validated notification payload.

    Attributes:
        target: Opaque delivery handle (chat id, push token).
        title: Short headline.
        body: Message text.
        metadata: Extra data delivered alongside the message.
    """
    target: str
    title: str
    body: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("target", "title", "body"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"PushMessage.{name} must be a non-empty string.")
        if not isinstance(self.metadata, dict):
            raise ValueError("PushMessage.metadata must be a dict.")
        if any(not isinstance(k, str) for k in self.metadata):
            raise ValueError("PushMessage.metadata keys must be strings.")
        # Detach from the caller's dict.
        object.__setattr__(self, "metadata", dict(self.metadata))
