"""Alerting - access control, formatting, delivery, and bot commands."""

from balance_watcher.alerter.access import AccessMode, AccessPolicy
from balance_watcher.alerter.bot import CommandListener
from balance_watcher.alerter.channels import TelegramAPIError, TelegramChannel
from balance_watcher.alerter.commands import (
    Command,
    CommandContext,
    CommandDeps,
    handle_command,
    parse_command,
)
from balance_watcher.alerter.dispatcher import AlertDispatcher, DispatchResult, MessageChannel
from balance_watcher.alerter.formatter import MessageFormatter, escape_markdown, truncate_address

__all__ = [
    "AccessMode",
    "AccessPolicy",
    "AlertDispatcher",
    "Command",
    "CommandContext",
    "CommandDeps",
    "CommandListener",
    "DispatchResult",
    "MessageChannel",
    "MessageFormatter",
    "TelegramAPIError",
    "TelegramChannel",
    "escape_markdown",
    "handle_command",
    "parse_command",
    "truncate_address",
]
