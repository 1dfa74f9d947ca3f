"""Telegram Bot API channel implementation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org/bot{token}/{method}"

# Extra HTTP time on top of the long-poll timeout
LONG_POLL_GRACE_SECONDS = 10.0


class TelegramAPIError(Exception):
    """Raised when the Bot API rejects a request or cannot be reached."""

    def __init__(self, message: str, error_code: int | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code


class TelegramChannel:
    """Telegram Bot API channel.

    Sends MarkdownV2 messages to individual chats with rate limiting and
    retry support, and long-polls for incoming updates.
    """

    def __init__(
        self,
        bot_token: str,
        *,
        rate_limit_per_minute: int = 20,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 10.0,
    ) -> None:
        """Initialize Telegram channel.

        Args:
            bot_token: Telegram bot token.
            rate_limit_per_minute: Maximum messages per minute.
            max_retries: Maximum retry attempts on failure.
            retry_delay: Base delay between retries (exponential backoff).
            timeout: HTTP request timeout in seconds.
        """
        self.rate_limit_per_minute = rate_limit_per_minute
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.name = "telegram"

        self._bot_token = bot_token

        # Rate limiting state
        self._request_times: list[float] = []
        self._lock = asyncio.Lock()

    def _url(self, method: str) -> str:
        return TELEGRAM_API_BASE.format(token=self._bot_token, method=method)

    async def _wait_for_rate_limit(self) -> None:
        """Wait if rate limit is exceeded."""
        async with self._lock:
            now = asyncio.get_running_loop().time()
            # Remove requests older than 1 minute
            self._request_times = [t for t in self._request_times if now - t < 60]

            if len(self._request_times) >= self.rate_limit_per_minute:
                # Wait until the oldest request expires
                wait_time = 60 - (now - self._request_times[0])
                if wait_time > 0:
                    logger.debug("Telegram rate limit hit, waiting %.2fs", wait_time)
                    await asyncio.sleep(wait_time)

            self._request_times.append(asyncio.get_running_loop().time())

    async def send(self, chat_id: int, text: str) -> bool:
        """Send a message to one chat.

        Args:
            chat_id: Target chat.
            text: MarkdownV2 message body.

        Returns:
            True if delivery succeeded, False otherwise.
        """
        await self._wait_for_rate_limit()

        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "MarkdownV2",
            "disable_web_page_preview": True,
        }

        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self._url("sendMessage"), json=payload)

                    result = response.json()

                    if result.get("ok"):
                        logger.debug("Telegram message delivered to %s", chat_id)
                        return True

                    error_code = result.get("error_code", 0)
                    description = result.get("description", "Unknown error")

                    if error_code == 429:
                        retry_after = result.get("parameters", {}).get("retry_after", 1)
                        logger.warning("Telegram rate limited, retry after %ss", retry_after)
                        await asyncio.sleep(retry_after)
                        continue

                    logger.error(
                        "Telegram API error for chat %s: %s - %s",
                        chat_id,
                        error_code,
                        description,
                    )
                    if 400 <= error_code < 500:
                        # Blocked bot, unknown chat, malformed text: retrying won't help
                        return False

            except httpx.TimeoutException:
                logger.warning("Telegram API timeout (attempt %d)", attempt + 1)
            except httpx.HTTPError as e:
                logger.error("Telegram API error: %s", e)
            except ValueError as e:
                logger.error("Invalid Telegram API response: %s", e)

            # Exponential backoff
            if attempt < self.max_retries - 1:
                delay = self.retry_delay * (2**attempt)
                await asyncio.sleep(delay)

        logger.error("Telegram delivery to %s failed after all retries", chat_id)
        return False

    async def get_updates(self, offset: int | None = None, timeout: int = 30) -> list[dict[str, Any]]:
        """Long-poll for incoming updates.

        Args:
            offset: First update id to return; earlier ones are acknowledged.
            timeout: Long-poll timeout in seconds.

        Returns:
            Raw update objects, possibly empty.

        Raises:
            TelegramAPIError: If the request fails or the API reports an error.
        """
        params: dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message"]}
        if offset is not None:
            params["offset"] = offset

        try:
            async with httpx.AsyncClient(timeout=timeout + LONG_POLL_GRACE_SECONDS) as client:
                response = await client.post(self._url("getUpdates"), json=params)
                result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TelegramAPIError(f"getUpdates failed: {e}") from e

        if not result.get("ok"):
            raise TelegramAPIError(
                result.get("description", "Unknown error"),
                error_code=result.get("error_code"),
            )
        return list(result.get("result", []))
