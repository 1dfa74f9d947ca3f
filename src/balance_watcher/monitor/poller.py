"""Per-network balance polling loop.

Each configured network gets its own NetworkPoller running forever on a
fixed interval. A cycle fetches every address, compares it with the
previous snapshot, raises change and low-balance alerts, and stores the
new snapshot. Networks never wait on each other.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

from balance_watcher.chain.units import NATIVE_DECIMALS, format_units
from balance_watcher.monitor.diff import diff, log_changes
from balance_watcher.monitor.models import BalanceSnapshot, TokenBalance
from balance_watcher.monitor.throttle import AlertThrottle, find_breaches

if TYPE_CHECKING:
    from balance_watcher.alerter.dispatcher import AlertDispatcher
    from balance_watcher.alerter.formatter import MessageFormatter
    from balance_watcher.config import AddressSettings, AlertSettings, NetworkSettings
    from balance_watcher.health import HealthMonitor
    from balance_watcher.storage.snapshots import SnapshotStore

logger = logging.getLogger(__name__)


class BalanceReader(Protocol):
    """Capability to read balances from one network."""

    async def get_native_balance(self, address: str) -> int:
        """Native currency balance in wei."""
        ...

    async def get_token_balance(self, token_address: str, holder: str) -> int:
        """Token balance in the token's smallest unit."""
        ...

    async def get_chain_id(self) -> int:
        """Chain id reported by the node."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...


@dataclass
class CycleResult:
    """Outcome of one poll cycle.

    Attributes:
        network: Network name.
        fetched: Aliases fetched successfully.
        failed: Aliases whose fetch failed.
        changed: Aliases with at least one balance change.
        alerts_sent: Messages dispatched during the cycle.
        duration_seconds: Wall time of the cycle.
    """

    network: str
    fetched: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)
    alerts_sent: int = 0
    duration_seconds: float = 0.0


class NetworkPoller:
    """Polls every address of one network on a fixed interval."""

    def __init__(
        self,
        network: NetworkSettings,
        reader: BalanceReader,
        snapshots: SnapshotStore,
        *,
        throttle: AlertThrottle,
        dispatcher: AlertDispatcher | None,
        formatter: MessageFormatter,
        alerts: AlertSettings,
        interval_seconds: float,
        health: HealthMonitor | None = None,
    ) -> None:
        """Initialize the poller.

        Args:
            network: Network configuration.
            reader: Balance source for this network.
            snapshots: Shared snapshot store.
            throttle: Low-balance alert throttle.
            dispatcher: Delivery fan-out, None when notifications are off.
            formatter: Message formatter.
            alerts: Which alert kinds are enabled.
            interval_seconds: Pause between cycles.
            health: Optional health monitor to report cycles to.
        """
        self._network = network
        self._reader = reader
        self._snapshots = snapshots
        self._throttle = throttle
        self._dispatcher = dispatcher
        self._formatter = formatter
        self._alerts = alerts
        self._interval = interval_seconds
        self._health = health
        self._cycle_lock = asyncio.Lock()

        self._token_thresholds: dict[str, Decimal] = {
            token.alias: token.min_balance
            for token in network.tokens
            if token.min_balance is not None
        }

        if health is not None:
            health.register_network(network.name)

    @property
    def name(self) -> str:
        """Network name."""
        return self._network.name

    @property
    def cycle_in_progress(self) -> bool:
        """Return True while a cycle is running."""
        return self._cycle_lock.locked()

    async def fetch_snapshot(self, target: AddressSettings) -> BalanceSnapshot:
        """Read the native and every token balance of one address.

        Raises:
            Exception: Whatever the reader raises; the whole address fails.
        """
        native = await self._reader.get_native_balance(target.address)

        tokens: dict[str, TokenBalance] = {}
        for token in self._network.tokens:
            balance = await self._reader.get_token_balance(token.address, target.address)
            tokens[token.alias] = TokenBalance(
                balance=balance,
                formatted=format_units(balance, token.decimals),
                decimals=token.decimals,
            )

        return BalanceSnapshot(
            network=self._network.name,
            chain_id=self._network.chain_id,
            alias=target.alias,
            address=target.address,
            native_balance=native,
            native_formatted=format_units(native, NATIVE_DECIMALS),
            tokens=tokens,
            native_symbol=self._network.native_symbol,
        )

    async def run_cycle(self) -> CycleResult | None:
        """Run one poll cycle over every address.

        Returns:
            The cycle outcome, or None if a cycle was already running.
        """
        if self._cycle_lock.locked():
            logger.warning("Previous cycle on %s still running, skipping", self.name)
            return None

        async with self._cycle_lock:
            started = time.monotonic()
            result = CycleResult(network=self.name)

            for target in self._network.addresses:
                try:
                    snapshot = await self.fetch_snapshot(target)
                except Exception as e:
                    logger.error(
                        "Failed to fetch balances of %s (%s) on %s: %s",
                        target.alias,
                        target.address,
                        self.name,
                        e,
                    )
                    result.failed.append(target.alias)
                    continue

                result.fetched.append(target.alias)
                await self._process(target, snapshot, result)

            await self._snapshots.persist()

            result.duration_seconds = time.monotonic() - started
            if self._health is not None:
                self._health.record_cycle(
                    self.name,
                    duration=result.duration_seconds,
                    fetched=len(result.fetched),
                    failed=len(result.failed),
                )

            logger.debug(
                "Cycle on %s done in %.2fs: %d fetched, %d failed, %d changed",
                self.name,
                result.duration_seconds,
                len(result.fetched),
                len(result.failed),
                len(result.changed),
            )
            return result

    async def _process(
        self,
        target: AddressSettings,
        snapshot: BalanceSnapshot,
        result: CycleResult,
    ) -> None:
        """Detect changes and threshold breaches, then store the snapshot."""
        previous = await self._snapshots.get(self.name, target.alias)
        summary = diff(previous, snapshot)

        if summary.has_changes():
            result.changed.append(target.alias)
            log_changes(summary)
            if self._alerts.balance_change:
                await self._send(self._formatter.format_change(summary), "balance_change")
                result.alerts_sent += 1

        if self._alerts.low_balance:
            breaches = find_breaches(snapshot, target.min_balance, self._token_thresholds)
            decision = await self._throttle.check(self.name, target.alias, breaches)
            for breach in decision.fired:
                logger.warning(
                    "Low balance on %s: %s %s %s below %s",
                    self.name,
                    target.alias,
                    breach.formatted,
                    breach.symbol,
                    breach.threshold,
                )
                await self._send(
                    self._formatter.format_low_balance(breach, decision.alert_count),
                    "low_balance",
                )
                result.alerts_sent += 1

        await self._snapshots.put(snapshot)

    async def _send(self, text: str, kind: str) -> None:
        """Dispatch a message if notifications are configured."""
        if self._dispatcher is None:
            return
        dispatch = await self._dispatcher.dispatch(text)
        if self._health is not None:
            self._health.record_alert(kind)
            self._health.record_deliveries(dispatch.success_count, dispatch.failure_count)

    async def verify_chain_id(self) -> None:
        """Warn if the node serves a different chain than configured."""
        try:
            chain_id = await self._reader.get_chain_id()
        except Exception as e:
            logger.warning("Could not verify chain id of %s: %s", self.name, e)
            return

        if chain_id != self._network.chain_id:
            logger.warning(
                "Network %s is configured with chain id %d but the node reports %d",
                self.name,
                self._network.chain_id,
                chain_id,
            )

    async def run_forever(self) -> None:
        """Poll until cancelled. Errors in one cycle never stop the loop."""
        logger.info(
            "Monitoring %d address(es) on %s every %ss",
            len(self._network.addresses),
            self.name,
            self._interval,
        )
        await self.verify_chain_id()

        while True:
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("Poll cycle on %s failed", self.name)
            await asyncio.sleep(self._interval)
