"""Change detection between two balance snapshots."""

from __future__ import annotations

import logging

from balance_watcher.chain.units import NATIVE_DECIMALS
from balance_watcher.monitor.models import (
    BalanceSnapshot,
    ChangeKind,
    ChangeSummary,
    MetricChange,
)

logger = logging.getLogger(__name__)


def classify(old: int, new: int) -> ChangeKind:
    """Classify a balance change by exact integer comparison."""
    if new > old:
        return ChangeKind.INCREASE
    if new < old:
        return ChangeKind.DECREASE
    return ChangeKind.NO_CHANGE


def compare_metric(
    symbol: str,
    old_balance: int,
    new_balance: int,
    old_formatted: str,
    new_formatted: str,
    decimals: int = NATIVE_DECIMALS,
) -> MetricChange:
    """Build the comparison of one metric."""
    return MetricChange(
        symbol=symbol,
        old_balance=old_balance,
        new_balance=new_balance,
        old_formatted=old_formatted,
        new_formatted=new_formatted,
        kind=classify(old_balance, new_balance),
        decimals=decimals,
    )


def diff(prev: BalanceSnapshot | None, curr: BalanceSnapshot) -> ChangeSummary:
    """Compare the current observation of an address with the previous one.

    A missing previous snapshot is a baseline and reports no changes. A
    token seen for the first time is compared against zero, so it can
    only be an increase or unchanged.

    Args:
        prev: Previous snapshot, None on first observation.
        curr: Current snapshot.

    Returns:
        ChangeSummary covering the native balance and every token in curr.
    """
    if prev is None:
        return ChangeSummary(network=curr.network, alias=curr.alias, address=curr.address)

    native = compare_metric(
        curr.native_symbol,
        prev.native_balance,
        curr.native_balance,
        prev.native_formatted,
        curr.native_formatted,
    )

    tokens: list[MetricChange] = []
    for alias, current in curr.tokens.items():
        previous = prev.tokens.get(alias)
        if previous is not None:
            old_balance, old_formatted = previous.balance, previous.formatted
        else:
            old_balance, old_formatted = 0, "0"
        tokens.append(
            compare_metric(
                alias,
                old_balance,
                current.balance,
                old_formatted,
                current.formatted,
                current.decimals,
            )
        )

    return ChangeSummary(
        network=curr.network,
        alias=curr.alias,
        address=curr.address,
        native=native,
        tokens=tuple(tokens),
    )


def log_changes(summary: ChangeSummary) -> None:
    """Log one line per changed metric of a summary."""
    if not summary.has_changes():
        return

    logger.info(
        "Balance change on %s: %s (%s)",
        summary.network,
        summary.alias,
        summary.address,
    )
    for metric in summary.changed_metrics():
        percent = metric.percent_display
        logger.info(
            "  %s %s%s | %s -> %s",
            metric.symbol,
            metric.signed_magnitude,
            f" ({percent})" if percent else "",
            metric.old_formatted,
            metric.new_formatted,
        )
