"""Balance monitoring - change detection, alert throttling, and scheduling."""

from balance_watcher.monitor.diff import classify, diff, log_changes
from balance_watcher.monitor.models import (
    AlertState,
    BalanceSnapshot,
    Breach,
    ChangeKind,
    ChangeSummary,
    MetricChange,
    TokenBalance,
    make_key,
)
from balance_watcher.monitor.poller import BalanceReader, CycleResult, NetworkPoller
from balance_watcher.monitor.report import DailyReporter, DiffReport, build_report, seconds_until
from balance_watcher.monitor.throttle import (
    AlertThrottle,
    ThrottleDecision,
    advance,
    find_breaches,
    is_breach,
    required_wait,
)

__all__ = [
    "AlertState",
    "AlertThrottle",
    "BalanceReader",
    "BalanceSnapshot",
    "Breach",
    "ChangeKind",
    "ChangeSummary",
    "CycleResult",
    "DailyReporter",
    "DiffReport",
    "MetricChange",
    "NetworkPoller",
    "ThrottleDecision",
    "TokenBalance",
    "advance",
    "build_report",
    "classify",
    "diff",
    "find_breaches",
    "is_breach",
    "log_changes",
    "make_key",
    "required_wait",
    "seconds_until",
]
