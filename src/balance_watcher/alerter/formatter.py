"""Message formatter for Telegram delivery.

This module turns change summaries, low-balance breaches, snapshots, and
daily reports into Telegram MarkdownV2 messages. Every dynamic value goes
through ``escape_markdown`` (or ``code`` inside backticks) before it is
embedded.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import timedelta
from typing import TYPE_CHECKING

from balance_watcher.monitor.models import ChangeKind, MetricChange
from balance_watcher.monitor.throttle import required_wait

if TYPE_CHECKING:
    from balance_watcher.monitor.models import BalanceSnapshot, Breach, ChangeSummary
    from balance_watcher.monitor.report import DiffReport

# Characters that must be escaped anywhere in MarkdownV2 text
MARKDOWN_SPECIAL_CHARS = "_*[]()~`>#+-=|{}.!\\"

CHANGE_EMOJI = {
    ChangeKind.INCREASE: "📈",
    ChangeKind.DECREASE: "📉",
    ChangeKind.NO_CHANGE: "➖",
}


def truncate_address(address: str, chars: int = 4) -> str:
    """Truncate an Ethereum address to 0x1234...5678 format."""
    if len(address) < chars * 2 + 4:
        return address
    return f"{address[: chars + 2]}...{address[-chars:]}"


def escape_markdown(text: str) -> str:
    """Escape special Telegram MarkdownV2 characters."""
    return "".join(f"\\{char}" if char in MARKDOWN_SPECIAL_CHARS else char for char in text)


def bold(text: str) -> str:
    """Escaped bold span."""
    return f"*{escape_markdown(text)}*"


def code(text: str) -> str:
    """Inline code span. Only backslash and backtick need escaping inside."""
    return "`" + text.replace("\\", "\\\\").replace("`", "\\`") + "`"


def format_duration(delta: timedelta) -> str:
    """Compact human duration (``10m``, ``1h``, ``20h``, ``1h 30m``)."""
    total_minutes = int(delta.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours and minutes:
        return f"{hours}h {minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"


class MessageFormatter:
    """Formats monitor events into Telegram messages."""

    def __init__(self, *, show_full_address: bool = False) -> None:
        """Initialize the formatter.

        Args:
            show_full_address: Render full addresses instead of 0x1234...5678.
        """
        self.show_full_address = show_full_address

    def _address(self, address: str) -> str:
        return code(address if self.show_full_address else truncate_address(address))

    def _header(self, network: str, alias: str, address: str) -> list[str]:
        return [
            f"📍 {bold(alias)} on {escape_markdown(network)}",
            self._address(address),
            "",
        ]

    def _metric_lines(self, metric: MetricChange) -> list[str]:
        percent = metric.percent_display
        change = bold(metric.signed_magnitude)
        if percent:
            change += f" \\({escape_markdown(percent)}\\)"
        return [
            f"💰 {bold(metric.symbol)}",
            f"{CHANGE_EMOJI[metric.kind]} {change}",
            f"{escape_markdown(metric.old_formatted)} → {escape_markdown(metric.new_formatted)}",
            "",
        ]

    def format_change(self, summary: ChangeSummary) -> str:
        """Format a balance change alert."""
        lines = ["🔔 *Balance Alert*", ""]
        lines.extend(self._header(summary.network, summary.alias, summary.address))
        for metric in summary.changed_metrics():
            lines.extend(self._metric_lines(metric))
        return "\n".join(lines).rstrip()

    def format_low_balance(self, breach: Breach, alert_count: int) -> str:
        """Format a low balance alert.

        Args:
            breach: The breached metric.
            alert_count: Alerts sent for this address including this one.
        """
        next_wait = format_duration(required_wait(alert_count))
        lines = ["⚠️ *Low Balance*", ""]
        lines.extend(self._header(breach.network, breach.alias, breach.address))
        lines.append(f"💵 {escape_markdown(breach.symbol)}: {bold(breach.formatted)}")
        lines.append(f"Threshold: {escape_markdown(str(breach.threshold))}")
        lines.append("")
        lines.append(
            escape_markdown(f"Alert #{alert_count}. Next reminder in {next_wait} if still low.")
        )
        return "\n".join(lines)

    def format_balances(self, snapshots: Iterable[BalanceSnapshot]) -> str:
        """Format the current balances of every address."""
        snapshots = sorted(snapshots, key=lambda s: (s.network, s.alias))
        if not snapshots:
            return escape_markdown("No balance data available yet.")

        lines = ["💰 *Current Balances*", ""]
        for snapshot in snapshots:
            lines.extend(self._header(snapshot.network, snapshot.alias, snapshot.address))
            lines.append(
                f"💵 {escape_markdown(snapshot.native_symbol)}: "
                f"{bold(snapshot.native_formatted)}"
            )
            for alias, token in sorted(snapshot.tokens.items()):
                lines.append(f"💵 {escape_markdown(alias)}: {bold(token.formatted)}")
            lines.append("")
        return "\n".join(lines).rstrip()

    def format_report(self, report: DiffReport) -> str:
        """Format a daily diff report."""
        stamp = report.generated_at.strftime("%Y-%m-%d %H:%M")
        lines = ["📊 *Balance Report*", escape_markdown(stamp), ""]

        if not report.has_changes:
            lines.append(escape_markdown("No balance changes since the last report."))
            return "\n".join(lines)

        for summary in report.summaries:
            lines.extend(self._header(summary.network, summary.alias, summary.address))
            for metric in summary.changed_metrics():
                lines.extend(self._metric_lines(metric))

        lines.append(
            f"Total: {bold(str(report.total_changes))} change\\(s\\) across "
            f"{bold(str(len(report.summaries)))} address\\(es\\)"
        )
        return "\n".join(lines)

    def format_welcome(self) -> str:
        """Reply to a successful /start."""
        return (
            "👋 *Welcome to Balance Watcher\\!*\n\n"
            "You will now receive alerts when balance changes are detected\\.\n\n"
            "Use /balance to see current balances\\.\n"
            "Use /help for more information\\."
        )

    def format_help(self) -> str:
        """Reply to /help."""
        return (
            "🤖 *Balance Watcher Bot*\n\n"
            "Available commands:\n"
            "/start \\- Register for balance alerts\n"
            "/stop \\- Stop receiving alerts\n"
            "/balance \\- Show current balances\n"
            "/report \\- Show changes since the last daily report\n"
            "/help \\- Show this message\n\n"
            "The bot sends alerts automatically when balances change or run low\\."
        )

    def format_unauthorized(self) -> str:
        """Reply to a caller outside the access policy."""
        return "❌ Sorry, you are not authorized to use this bot\\."

    def format_no_username(self) -> str:
        """Reply to a caller without a username in private mode."""
        return "❌ Sorry, you need to set a Telegram username to use this bot\\."

    def format_not_registered(self) -> str:
        """Reply to a command that requires /start first."""
        return "Please start the bot first with /start to receive updates\\."

    def format_stopped(self, was_registered: bool) -> str:
        """Reply to /stop."""
        if was_registered:
            return "🔕 You will no longer receive alerts\\. Use /start to subscribe again\\."
        return "You are not subscribed\\. Use /start to receive alerts\\."
