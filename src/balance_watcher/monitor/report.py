"""Daily balance change report."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import TYPE_CHECKING

from balance_watcher.monitor.diff import diff
from balance_watcher.monitor.models import BalanceSnapshot, ChangeSummary

if TYPE_CHECKING:
    from balance_watcher.alerter.dispatcher import AlertDispatcher
    from balance_watcher.alerter.formatter import MessageFormatter
    from balance_watcher.storage.snapshots import SnapshotStore

logger = logging.getLogger(__name__)

# Pause after each report so a fast run cannot fire twice in the same minute
DEFAULT_GUARD_SECONDS = 60.0


@dataclass
class DiffReport:
    """Aggregated changes between the baseline and the current snapshots.

    Attributes:
        summaries: Per-address summaries that contain at least one change.
        total_changes: Number of changed metrics across all addresses.
        generated_at: When the report was built.
    """

    summaries: list[ChangeSummary] = field(default_factory=list)
    total_changes: int = 0
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def has_changes(self) -> bool:
        """Return True if any address changed."""
        return self.total_changes > 0


def build_report(
    baseline: Mapping[str, BalanceSnapshot],
    current: Mapping[str, BalanceSnapshot],
    now: datetime | None = None,
) -> DiffReport:
    """Diff every address present in both the baseline and the current state.

    Addresses are visited in key order so reports are stable.
    """
    report = DiffReport(generated_at=now or datetime.now())
    for key in sorted(current):
        previous = baseline.get(key)
        if previous is None:
            continue
        summary = diff(previous, current[key])
        if summary.has_changes():
            report.summaries.append(summary)
            report.total_changes += summary.change_count
    return report


def seconds_until(target: time, now: datetime) -> float:
    """Seconds from ``now`` until the next occurrence of ``target``.

    The occurrence is today if still ahead, tomorrow otherwise.
    """
    candidate = now.replace(
        hour=target.hour,
        minute=target.minute,
        second=0,
        microsecond=0,
    )
    if candidate <= now:
        candidate += timedelta(days=1)
    return (candidate - now).total_seconds()


class DailyReporter:
    """Sends a summary of balance changes once a day at a fixed local time.

    The baseline is the snapshot set captured at the previous daily
    report. At startup it is taken from the snapshot store as loaded from
    disk, so the first report covers everything since the last run.
    """

    def __init__(
        self,
        snapshots: SnapshotStore,
        dispatcher: AlertDispatcher | None,
        formatter: MessageFormatter,
        *,
        report_time: time,
        guard_seconds: float = DEFAULT_GUARD_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the reporter.

        Args:
            snapshots: Shared snapshot store.
            dispatcher: Delivery fan-out, None to only log reports.
            formatter: Message formatter.
            report_time: Local time of day to report at.
            guard_seconds: Pause after each report.
            clock: Source of the current local time.
        """
        self._snapshots = snapshots
        self._dispatcher = dispatcher
        self._formatter = formatter
        self._report_time = report_time
        self._guard_seconds = guard_seconds
        self._clock = clock
        self._baseline: dict[str, BalanceSnapshot] = {}

    @property
    def report_time(self) -> time:
        """Local time of day reports are sent at."""
        return self._report_time

    @property
    def baseline(self) -> dict[str, BalanceSnapshot]:
        """Copy of the current baseline."""
        return dict(self._baseline)

    async def capture_baseline(self) -> None:
        """Replace the baseline with the current snapshot store content."""
        self._baseline = await self._snapshots.all()
        logger.debug("Report baseline holds %d snapshot(s)", len(self._baseline))

    async def build(self) -> DiffReport:
        """Build a report against the baseline without advancing it."""
        current = await self._snapshots.all()
        return build_report(self._baseline, current, now=self._clock())

    async def send_daily_report(self) -> DiffReport:
        """Build, deliver, and advance the baseline."""
        current = await self._snapshots.all()
        report = build_report(self._baseline, current, now=self._clock())
        self._baseline = current

        logger.info(
            "Daily report: %d change(s) across %d address(es)",
            report.total_changes,
            len(report.summaries),
        )

        if self._dispatcher is not None:
            await self._dispatcher.dispatch(self._formatter.format_report(report))
        return report

    async def run_forever(self) -> None:
        """Send the report every day at the configured time until cancelled."""
        logger.info("Daily report scheduled at %s", self._report_time.strftime("%H:%M"))
        while True:
            delay = seconds_until(self._report_time, self._clock())
            logger.debug("Next daily report in %.0f seconds", delay)
            await asyncio.sleep(delay)

            try:
                await self.send_daily_report()
            except Exception:
                logger.exception("Daily report failed")

            await asyncio.sleep(self._guard_seconds)
