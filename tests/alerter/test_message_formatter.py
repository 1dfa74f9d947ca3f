"""Tests for Telegram message formatting."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from balance_watcher.alerter.formatter import (
    MessageFormatter,
    bold,
    code,
    escape_markdown,
    format_duration,
    truncate_address,
)
from balance_watcher.monitor.diff import diff
from balance_watcher.monitor.models import Breach
from balance_watcher.monitor.report import DiffReport, build_report

ETH = 10**18
ADDRESS = "0x742d35Cc6634C0532925a3b844Bc9e7595f5eaE2"


# ============================================================================
# Helper Function Tests
# ============================================================================


class TestHelpers:
    """Tests for formatting helpers."""

    def test_truncate_address(self) -> None:
        assert truncate_address(ADDRESS) == "0x742d...eaE2"

    def test_truncate_short_address_unchanged(self) -> None:
        assert truncate_address("0x1234") == "0x1234"

    def test_escape_markdown(self) -> None:
        assert escape_markdown("1.5 (ok)!") == "1\\.5 \\(ok\\)\\!"
        assert escape_markdown("a_b*c") == "a\\_b\\*c"

    def test_bold_escapes_content(self) -> None:
        assert bold("v1.0") == "*v1\\.0*"

    def test_code_escapes_backticks_only(self) -> None:
        assert code("a.b`c") == "`a.b\\`c`"

    @pytest.mark.parametrize(
        ("delta", "expected"),
        [
            (timedelta(minutes=10), "10m"),
            (timedelta(hours=1), "1h"),
            (timedelta(hours=20), "20h"),
            (timedelta(hours=1, minutes=30), "1h 30m"),
            (timedelta(0), "0m"),
        ],
    )
    def test_format_duration(self, delta: timedelta, expected: str) -> None:
        assert format_duration(delta) == expected


# ============================================================================
# MessageFormatter Tests
# ============================================================================


@pytest.fixture
def formatter() -> MessageFormatter:
    return MessageFormatter()


class TestFormatChange:
    """Tests for change alerts."""

    def test_decrease(self, formatter, make_snapshot) -> None:
        summary = diff(make_snapshot(100 * ETH), make_snapshot(80 * ETH))

        message = formatter.format_change(summary)

        assert message.startswith("🔔 *Balance Alert*")
        assert "*treasury* on mainnet" in message
        assert "`0x742d...eaE2`" in message
        assert "📉 *\\-20\\.000000000000000000* \\(\\-20\\.00%\\)" in message
        assert "100\\.000000000000000000 → 80\\.000000000000000000" in message

    def test_only_changed_metrics(self, formatter, make_snapshot) -> None:
        summary = diff(
            make_snapshot(ETH, {"USDT": 1, "DAI": 1}),
            make_snapshot(ETH, {"USDT": 2, "DAI": 1}),
        )

        message = formatter.format_change(summary)

        assert "*USDT*" in message
        assert "DAI" not in message
        assert "*ETH*" not in message

    def test_full_address(self, make_snapshot) -> None:
        summary = diff(make_snapshot(ETH), make_snapshot(2 * ETH))

        message = MessageFormatter(show_full_address=True).format_change(summary)

        assert f"`{ADDRESS}`" in message


class TestFormatLowBalance:
    """Tests for low balance alerts."""

    def make_breach(self) -> Breach:
        return Breach(
            network="mainnet",
            alias="treasury",
            address=ADDRESS,
            symbol="ETH",
            balance=ETH // 2,
            formatted="0.500000000000000000",
            threshold=Decimal("1.0"),
        )

    def test_first_alert(self, formatter) -> None:
        message = formatter.format_low_balance(self.make_breach(), alert_count=1)

        assert message.startswith("⚠️ *Low Balance*")
        assert "ETH: *0\\.500000000000000000*" in message
        assert "Threshold: 1\\.0" in message
        assert "Alert \\#1\\. Next reminder in 10m if still low\\." in message

    def test_steady_state_reminder(self, formatter) -> None:
        message = formatter.format_low_balance(self.make_breach(), alert_count=7)

        assert "Next reminder in 20h" in message


class TestFormatBalances:
    """Tests for the /balance reply."""

    def test_empty(self, formatter) -> None:
        assert formatter.format_balances([]) == "No balance data available yet\\."

    def test_lists_every_address_sorted(self, formatter, make_snapshot) -> None:
        snapshots = [
            make_snapshot(ETH, alias="zeta"),
            make_snapshot(2 * ETH, {"USDT": 5_000_000}, alias="alpha", token_decimals=6),
        ]

        message = formatter.format_balances(snapshots)

        assert message.startswith("💰 *Current Balances*")
        assert message.index("*alpha*") < message.index("*zeta*")
        assert "USDT: *5\\.000000*" in message
        assert "ETH: *2\\.000000000000000000*" in message


class TestFormatReport:
    """Tests for the daily report."""

    def test_no_changes(self, formatter) -> None:
        report = DiffReport(generated_at=datetime(2026, 3, 1, 9, 0))

        message = formatter.format_report(report)

        assert message.startswith("📊 *Balance Report*")
        assert "2026\\-03\\-01 09:00" in message
        assert message.endswith("No balance changes since the last report\\.")

    def test_with_changes(self, formatter, make_snapshot) -> None:
        report = build_report(
            {"mainnet:treasury": make_snapshot(ETH)},
            {"mainnet:treasury": make_snapshot(3 * ETH, {"USDT": 1})},
        )

        message = formatter.format_report(report)

        assert "*treasury* on mainnet" in message
        assert message.endswith("Total: *2* change\\(s\\) across *1* address\\(es\\)")


class TestFixedReplies:
    """Tests for the fixed command replies."""

    def test_help_lists_commands(self, formatter) -> None:
        message = formatter.format_help()

        for command in ("/start", "/stop", "/balance", "/report", "/help"):
            assert command in message

    def test_stopped(self, formatter) -> None:
        assert "no longer receive alerts" in formatter.format_stopped(True)
        assert "not subscribed" in formatter.format_stopped(False)

    def test_rejections(self, formatter) -> None:
        assert "not authorized" in formatter.format_unauthorized()
        assert "username" in formatter.format_no_username()
        assert "/start" in formatter.format_not_registered()
