"""Tests for the Telegram channel."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from balance_watcher.alerter.channels.telegram import TelegramAPIError, TelegramChannel

BOT_TOKEN = "123456:ABC-DEF"


def mock_http(mock_client_class: MagicMock, *responses: dict) -> AsyncMock:
    """Wire httpx.AsyncClient to return the given JSON bodies in order."""
    mock_responses = []
    for body in responses:
        response = MagicMock()
        response.json.return_value = body
        mock_responses.append(response)

    mock_client = AsyncMock()
    mock_client.post.side_effect = mock_responses
    mock_client.__aenter__.return_value = mock_client
    mock_client.__aexit__.return_value = None
    mock_client_class.return_value = mock_client
    return mock_client


# ============================================================================
# send
# ============================================================================


class TestTelegramSend:
    """Tests for TelegramChannel.send."""

    def test_init(self) -> None:
        channel = TelegramChannel(BOT_TOKEN, rate_limit_per_minute=20)

        assert channel.name == "telegram"
        assert channel.rate_limit_per_minute == 20

    @pytest.mark.asyncio
    async def test_send_success(self) -> None:
        channel = TelegramChannel(BOT_TOKEN)

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock_http(mock_client_class, {"ok": True})

            result = await channel.send(42, "*hi*")

        assert result is True
        url = mock_client.post.call_args.args[0]
        assert url == f"https://api.telegram.org/bot{BOT_TOKEN}/sendMessage"
        payload = mock_client.post.call_args.kwargs["json"]
        assert payload["chat_id"] == 42
        assert payload["text"] == "*hi*"
        assert payload["parse_mode"] == "MarkdownV2"

    @pytest.mark.asyncio
    async def test_send_rate_limited(self) -> None:
        channel = TelegramChannel(BOT_TOKEN, max_retries=2, retry_delay=0.01)

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock_http(
                mock_client_class,
                {"ok": False, "error_code": 429, "parameters": {"retry_after": 0.01}},
                {"ok": True},
            )

            result = await channel.send(42, "hi")

        assert result is True
        assert mock_client.post.call_count == 2

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self) -> None:
        """A blocked bot or unknown chat fails immediately."""
        channel = TelegramChannel(BOT_TOKEN, max_retries=3, retry_delay=0.01)

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock_http(
                mock_client_class,
                {"ok": False, "error_code": 403, "description": "Forbidden: bot was blocked"},
            )

            result = await channel.send(42, "hi")

        assert result is False
        assert mock_client.post.call_count == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self) -> None:
        channel = TelegramChannel(BOT_TOKEN, max_retries=2, retry_delay=0.01)

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock_http(
                mock_client_class,
                {"ok": False, "error_code": 502, "description": "Bad Gateway"},
                {"ok": False, "error_code": 502, "description": "Bad Gateway"},
            )

            result = await channel.send(42, "hi")

        assert result is False
        assert mock_client.post.call_count == 2

    @pytest.mark.asyncio
    async def test_timeout_then_success(self) -> None:
        channel = TelegramChannel(BOT_TOKEN, max_retries=2, retry_delay=0.01)

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock_http(mock_client_class)
            success = MagicMock()
            success.json.return_value = {"ok": True}
            mock_client.post.side_effect = [httpx.ReadTimeout("slow"), success]

            result = await channel.send(42, "hi")

        assert result is True


# ============================================================================
# get_updates
# ============================================================================


class TestTelegramGetUpdates:
    """Tests for TelegramChannel.get_updates."""

    @pytest.mark.asyncio
    async def test_returns_updates(self) -> None:
        channel = TelegramChannel(BOT_TOKEN)
        updates = [{"update_id": 7, "message": {"text": "/start"}}]

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock_http(mock_client_class, {"ok": True, "result": updates})

            result = await channel.get_updates(offset=7, timeout=5)

        assert result == updates
        params = mock_client.post.call_args.kwargs["json"]
        assert params["offset"] == 7
        assert params["timeout"] == 5

    @pytest.mark.asyncio
    async def test_no_offset_on_first_poll(self) -> None:
        channel = TelegramChannel(BOT_TOKEN)

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock_http(mock_client_class, {"ok": True, "result": []})

            assert await channel.get_updates() == []

        assert "offset" not in mock_client.post.call_args.kwargs["json"]

    @pytest.mark.asyncio
    async def test_api_error_raises(self) -> None:
        channel = TelegramChannel(BOT_TOKEN)

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_http(
                mock_client_class,
                {"ok": False, "error_code": 409, "description": "Conflict"},
            )

            with pytest.raises(TelegramAPIError) as exc_info:
                await channel.get_updates()

        assert exc_info.value.error_code == 409

    @pytest.mark.asyncio
    async def test_network_error_raises(self) -> None:
        channel = TelegramChannel(BOT_TOKEN)

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock_http(mock_client_class)
            mock_client.post.side_effect = httpx.ConnectError("refused")

            with pytest.raises(TelegramAPIError):
                await channel.get_updates()
