"""Message delivery channels."""

from balance_watcher.alerter.channels.telegram import TelegramAPIError, TelegramChannel

__all__ = [
    "TelegramAPIError",
    "TelegramChannel",
]
