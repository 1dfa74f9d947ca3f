"""Bot command routing.

Commands are parsed into an explicit enum and each variant has its own
handler. Handlers only touch the stores and the formatter, so they can be
exercised without any transport.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from balance_watcher.storage.recipients import Recipient

if TYPE_CHECKING:
    from balance_watcher.alerter.access import AccessPolicy
    from balance_watcher.alerter.formatter import MessageFormatter
    from balance_watcher.monitor.report import DailyReporter
    from balance_watcher.storage.recipients import RecipientRegistry
    from balance_watcher.storage.snapshots import SnapshotStore

logger = logging.getLogger(__name__)


class Command(str, Enum):
    """Supported bot commands."""

    START = "start"
    STOP = "stop"
    BALANCE = "balance"
    REPORT = "report"
    HELP = "help"


@dataclass(frozen=True)
class CommandContext:
    """Who sent a command and where to answer.

    Attributes:
        chat_id: Chat the command came from.
        user_id: Sender's user id.
        username: Sender's username, None if they have not set one.
    """

    chat_id: int
    user_id: int
    username: str | None = None


@dataclass
class CommandDeps:
    """Collaborators shared by every handler."""

    registry: RecipientRegistry
    snapshots: SnapshotStore
    policy: AccessPolicy
    formatter: MessageFormatter
    reporter: DailyReporter


Handler = Callable[[CommandContext, CommandDeps], Awaitable[str]]


def parse_command(text: str) -> Command | None:
    """Parse a message into a command.

    Accepts ``/name`` and ``/name@botname`` with optional arguments.

    Returns:
        The command, or None for anything that is not a known command.
    """
    text = text.strip()
    if not text.startswith("/"):
        return None
    name = text[1:].split(maxsplit=1)[0] if len(text) > 1 else ""
    name = name.split("@", 1)[0].lower()
    try:
        return Command(name)
    except ValueError:
        return None


async def handle_start(ctx: CommandContext, deps: CommandDeps) -> str:
    """Register the caller for alerts and welcome them."""
    recipient = Recipient(chat_id=ctx.chat_id, user_id=ctx.user_id, username=ctx.username or "")
    if await deps.registry.register(recipient):
        logger.info("Registered chat %s (@%s)", ctx.chat_id, ctx.username or "-")
    return deps.formatter.format_welcome()


async def handle_stop(ctx: CommandContext, deps: CommandDeps) -> str:
    """Unregister the caller."""
    removed = await deps.registry.unregister(ctx.chat_id)
    if removed:
        logger.info("Unregistered chat %s (@%s)", ctx.chat_id, ctx.username or "-")
    return deps.formatter.format_stopped(removed)


async def handle_balance(ctx: CommandContext, deps: CommandDeps) -> str:
    """Current balances of every address, for registered callers."""
    if not await deps.registry.is_registered(ctx.chat_id):
        return deps.formatter.format_not_registered()
    snapshots = await deps.snapshots.all()
    return deps.formatter.format_balances(snapshots.values())


async def handle_report(ctx: CommandContext, deps: CommandDeps) -> str:
    """Changes since the last daily report, for registered callers."""
    if not await deps.registry.is_registered(ctx.chat_id):
        return deps.formatter.format_not_registered()
    report = await deps.reporter.build()
    return deps.formatter.format_report(report)


async def handle_help(ctx: CommandContext, deps: CommandDeps) -> str:
    """List the available commands."""
    return deps.formatter.format_help()


HANDLERS: dict[Command, Handler] = {
    Command.START: handle_start,
    Command.STOP: handle_stop,
    Command.BALANCE: handle_balance,
    Command.REPORT: handle_report,
    Command.HELP: handle_help,
}


async def handle_command(command: Command, ctx: CommandContext, deps: CommandDeps) -> str:
    """Authorize and run a command.

    Every command except help requires an authorized caller. An
    unauthorized caller is rejected and their chat de-registered if it
    was registered.

    Returns:
        The reply text.
    """
    if command is not Command.HELP and not deps.policy.allows(ctx.username):
        if await deps.registry.unregister(ctx.chat_id):
            logger.info("Unregistered unauthorized chat %s", ctx.chat_id)
        logger.warning(
            "Rejected /%s from user %s (@%s)",
            command.value,
            ctx.user_id,
            ctx.username or "-",
        )
        if not ctx.username:
            return deps.formatter.format_no_username()
        return deps.formatter.format_unauthorized()

    return await HANDLERS[command](ctx, deps)
