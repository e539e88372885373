"""
transports/expo.py
------------------
Expo push notification delivery over HTTP (httpx).

Failure classes:
    - timeouts, network errors, HTTP 429 and 5xx  -> transient
    - other HTTP 4xx                              -> permanent
    - push ticket errors: MessageRateExceeded is transient,
      DeviceNotRegistered marks the token as dead, the rest are permanent.
"""

from typing import Optional

import httpx

from config import DISPATCH_TIMEOUT_SECONDS, EXPO_ACCESS_TOKEN, EXPO_PUSH_URL
from exceptions import PermanentDispatchError, TransientDispatchError
from models.notification import PushMessage
from transports.base import NotificationTransport
from utils.logger import get_logger

logger = get_logger(__name__)

_TRANSIENT_TICKET_ERRORS = {"MessageRateExceeded"}
_INVALID_TARGET_ERRORS = {"DeviceNotRegistered"}


def _retry_after(response: httpx.Response) -> Optional[float]:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


class ExpoPushTransport(NotificationTransport):
    """Sends a message to an Expo push token (``ExponentPushToken[...]``)."""

    name = "expo"

    def __init__(
        self,
        url: str = EXPO_PUSH_URL,
        access_token: str = EXPO_ACCESS_TOKEN,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DISPATCH_TIMEOUT_SECONDS,
    ):
        self.url = url
        self.headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        if access_token:
            self.headers["Authorization"] = f"Bearer {access_token}"
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, message: PushMessage) -> Optional[str]:
        payload = {
            "to": message.target,
            "sound": "default",
            "title": message.title,
            "body": message.body,
            "data": message.metadata,
        }
        try:
            response = await self.client.post(self.url, json=payload, headers=self.headers)
        except httpx.TimeoutException as e:
            raise TransientDispatchError("Expo push request timed out", original_error=e) from e
        except httpx.TransportError as e:
            raise TransientDispatchError(f"Expo push network error: {e}", original_error=e) from e

        status = response.status_code
        if status == 429 or status >= 500:
            raise TransientDispatchError(
                f"Expo push returned HTTP {status}",
                retry_after=_retry_after(response),
                context={"status": status},
            )
        if status >= 400:
            raise PermanentDispatchError(
                f"Expo push rejected the request with HTTP {status}",
                context={"status": status, "body": response.text[:200]},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise TransientDispatchError("Expo push returned a non-JSON body", original_error=e) from e

        if not isinstance(body, dict):
            raise PermanentDispatchError("Unexpected Expo push response", context={"body": str(body)[:200]})
        if body.get("errors"):
            raise PermanentDispatchError(
                "Expo push request errors",
                context={"errors": body["errors"]},
            )

        ticket = body.get("data")
        # A single message yields a single ticket, a batch yields a list.
        if isinstance(ticket, list):
            ticket = ticket[0] if ticket else None
        if not isinstance(ticket, dict):
            raise PermanentDispatchError("Expo push returned no ticket", context={"body": str(body)[:200]})

        if ticket.get("status") == "ok":
            logger.debug(f"Expo push ticket {ticket.get('id')} for {message.target}")
            return ticket.get("id")

        error_code = (ticket.get("details") or {}).get("error")
        text = ticket.get("message", "unknown error")
        if error_code in _TRANSIENT_TICKET_ERRORS:
            raise TransientDispatchError(f"Expo push: {text}", context={"error": error_code})
        raise PermanentDispatchError(
            f"Expo push: {text}",
            invalid_target=error_code in _INVALID_TARGET_ERRORS,
            context={"error": error_code},
        )

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
