"""Long-polling listener for bot commands."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from balance_watcher.alerter.channels.telegram import TelegramAPIError
from balance_watcher.alerter.commands import (
    CommandContext,
    CommandDeps,
    handle_command,
    parse_command,
)

if TYPE_CHECKING:
    from balance_watcher.alerter.channels.telegram import TelegramChannel

logger = logging.getLogger(__name__)

DEFAULT_POLL_TIMEOUT = 30
DEFAULT_ERROR_DELAY = 5.0


class CommandListener:
    """Receives bot updates and answers commands.

    Example:
        ```python
        listener = CommandListener(channel, deps)
        task = asyncio.create_task(listener.run_forever())
        ```
    """

    def __init__(
        self,
        channel: TelegramChannel,
        deps: CommandDeps,
        *,
        poll_timeout: int = DEFAULT_POLL_TIMEOUT,
        error_delay: float = DEFAULT_ERROR_DELAY,
    ) -> None:
        """Initialize the listener.

        Args:
            channel: Telegram transport used for polling and replies.
            deps: Collaborators passed to command handlers.
            poll_timeout: Long-poll timeout in seconds.
            error_delay: Pause after a failed poll.
        """
        self._channel = channel
        self._deps = deps
        self._poll_timeout = poll_timeout
        self._error_delay = error_delay
        self._offset: int | None = None

    @property
    def offset(self) -> int | None:
        """Next update id to request."""
        return self._offset

    async def handle_update(self, update: dict[str, Any]) -> bool:
        """Answer a single update if it carries a known command.

        Returns:
            True if a command was handled.
        """
        message = update.get("message") or {}
        text = message.get("text")
        sender = message.get("from")
        chat = message.get("chat")
        if not text or not sender or not chat:
            return False

        command = parse_command(text)
        if command is None:
            return False

        ctx = CommandContext(
            chat_id=int(chat["id"]),
            user_id=int(sender["id"]),
            username=sender.get("username"),
        )
        logger.debug("Received /%s from chat %s", command.value, ctx.chat_id)

        reply = await handle_command(command, ctx, self._deps)
        await self._channel.send(ctx.chat_id, reply)
        return True

    async def poll_once(self) -> int:
        """Fetch and process one batch of updates.

        Returns:
            Number of updates received.

        Raises:
            TelegramAPIError: If polling fails.
        """
        updates = await self._channel.get_updates(self._offset, timeout=self._poll_timeout)
        for update in updates:
            self._offset = int(update["update_id"]) + 1
            try:
                await self.handle_update(update)
            except Exception:
                logger.exception("Failed to handle update %s", update.get("update_id"))
        return len(updates)

    async def run_forever(self) -> None:
        """Poll for commands until cancelled."""
        logger.info("Listening for bot commands")
        while True:
            try:
                await self.poll_once()
            except TelegramAPIError as e:
                logger.warning(
                    "Polling for bot updates failed: %s, retrying in %.0fs",
                    e,
                    self._error_delay,
                )
                await asyncio.sleep(self._error_delay)
            except Exception:
                logger.exception("Unexpected error while polling for bot updates")
                await asyncio.sleep(self._error_delay)
