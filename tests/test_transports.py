"""Tests for the notification transports and their error classification."""

import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from telegram.error import BadRequest, Forbidden, NetworkError, RetryAfter, TimedOut

from exceptions import PermanentDispatchError, TransientDispatchError
from models.notification import PushMessage
from transports import build_transport
from transports.expo import ExpoPushTransport
from transports.telegram import TelegramTransport, _seconds

TOKEN = "ExponentPushToken[abc123]"
MESSAGE = PushMessage(TOKEN, "⏰ Upcoming charge: Netflix", "Charged tomorrow.", {"subscription_id": 3})


def _expo(handler, access_token: str = "") -> ExpoPushTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ExpoPushTransport(url="https://push.test/send", access_token=access_token, client=client)


def _respond(status: int = 200, body=None, headers=None):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=body, headers=headers)
    return handler


class TestExpoPushTransport:
    @pytest.mark.asyncio
    async def test_posts_expo_payload_and_returns_ticket_id(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"data": {"status": "ok", "id": "ticket-9"}})

        transport = _expo(handler, access_token="secret")

        assert await transport.send(MESSAGE) == "ticket-9"
        request = seen[0]
        assert json.loads(request.content) == {
            "to": TOKEN,
            "sound": "default",
            "title": MESSAGE.title,
            "body": MESSAGE.body,
            "data": {"subscription_id": 3},
        }
        assert request.headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_batch_shaped_ticket_is_accepted(self):
        transport = _expo(_respond(body={"data": [{"status": "ok", "id": "ticket-1"}]}))
        assert await transport.send(MESSAGE) == "ticket-1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_throttling_and_server_errors_are_transient(self, status):
        transport = _expo(_respond(status, body={}, headers={"Retry-After": "12"}))

        with pytest.raises(TransientDispatchError) as exc:
            await transport.send(MESSAGE)
        assert exc.value.retry_after == 12.0

    @pytest.mark.asyncio
    async def test_client_errors_are_permanent(self):
        transport = _expo(_respond(400, body={"errors": [{"code": "VALIDATION_ERROR"}]}))

        with pytest.raises(PermanentDispatchError) as exc:
            await transport.send(MESSAGE)
        assert not exc.value.invalid_target

    @pytest.mark.asyncio
    async def test_unregistered_device_is_an_invalid_target(self):
        ticket = {
            "status": "error",
            "message": f"{TOKEN} is not a registered push notification recipient",
            "details": {"error": "DeviceNotRegistered"},
        }
        transport = _expo(_respond(body={"data": ticket}))

        with pytest.raises(PermanentDispatchError) as exc:
            await transport.send(MESSAGE)
        assert exc.value.invalid_target

    @pytest.mark.asyncio
    async def test_ticket_rate_limit_is_transient(self):
        ticket = {"status": "error", "message": "slow down", "details": {"error": "MessageRateExceeded"}}
        transport = _expo(_respond(body={"data": ticket}))

        with pytest.raises(TransientDispatchError):
            await transport.send(MESSAGE)

    @pytest.mark.asyncio
    async def test_network_failure_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransientDispatchError):
            await _expo(handler).send(MESSAGE)

    @pytest.mark.asyncio
    async def test_read_timeout_is_transient(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransientDispatchError):
            await _expo(handler).send(MESSAGE)

    @pytest.mark.asyncio
    async def test_non_json_body_is_transient(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(TransientDispatchError):
            await _expo(handler).send(MESSAGE)

    @pytest.mark.asyncio
    async def test_missing_ticket_is_permanent(self):
        with pytest.raises(PermanentDispatchError):
            await _expo(_respond(body={"data": []})).send(MESSAGE)

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(_respond(body={})))
        transport = ExpoPushTransport(client=client)

        await transport.close()

        assert not client.is_closed
        await client.aclose()


def _bot(side_effect=None, message_id: int = 77) -> MagicMock:
    bot = MagicMock()
    bot.send_message = AsyncMock(side_effect=side_effect, return_value=MagicMock(message_id=message_id))
    return bot


class TestTelegramTransport:
    @pytest.mark.asyncio
    async def test_sends_title_and_body_to_the_chat(self):
        bot = _bot()
        message = PushMessage("555", "Title", "Body")

        receipt = await TelegramTransport(bot).send(message)

        assert receipt == "77"
        bot.send_message.assert_awaited_once_with(chat_id="555", text="Title\n\nBody")

    @pytest.mark.asyncio
    async def test_flood_control_carries_retry_after(self):
        transport = TelegramTransport(_bot(RetryAfter(5)))

        with pytest.raises(TransientDispatchError) as exc:
            await transport.send(PushMessage("555", "T", "B"))
        assert exc.value.retry_after == 5.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [TimedOut(), NetworkError("connection reset")])
    async def test_network_trouble_is_transient(self, error):
        with pytest.raises(TransientDispatchError):
            await TelegramTransport(_bot(error)).send(PushMessage("555", "T", "B"))

    @pytest.mark.asyncio
    async def test_blocked_bot_is_an_invalid_target(self):
        transport = TelegramTransport(_bot(Forbidden("bot was blocked by the user")))

        with pytest.raises(PermanentDispatchError) as exc:
            await transport.send(PushMessage("555", "T", "B"))
        assert exc.value.invalid_target

    @pytest.mark.asyncio
    async def test_missing_chat_is_an_invalid_target(self):
        transport = TelegramTransport(_bot(BadRequest("Chat not found")))

        with pytest.raises(PermanentDispatchError) as exc:
            await transport.send(PushMessage("555", "T", "B"))
        assert exc.value.invalid_target

    @pytest.mark.asyncio
    async def test_other_bad_requests_keep_the_target(self):
        transport = TelegramTransport(_bot(BadRequest("Message text is empty")))

        with pytest.raises(PermanentDispatchError) as exc:
            await transport.send(PushMessage("555", "T", "B"))
        assert not exc.value.invalid_target


def test_seconds_accepts_timedelta():
    assert _seconds(timedelta(seconds=3)) == 3.0
    assert _seconds(4) == 4.0
    assert _seconds(None) is None


class TestBuildTransport:
    def test_telegram_needs_a_bot(self):
        with pytest.raises(ValueError):
            build_transport(kind="telegram")

    def test_telegram(self):
        assert isinstance(build_transport(bot=_bot(), kind="telegram"), TelegramTransport)

    @pytest.mark.asyncio
    async def test_expo(self):
        transport = build_transport(kind="expo")
        assert isinstance(transport, ExpoPushTransport)
        await transport.close()
        assert transport.client.is_closed

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            build_transport(kind="carrier-pigeon")
