"""Service wiring: builds every component from settings and runs the tasks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from balance_watcher.alerter.access import AccessPolicy
from balance_watcher.alerter.bot import CommandListener
from balance_watcher.alerter.channels.telegram import TelegramChannel
from balance_watcher.alerter.commands import CommandDeps
from balance_watcher.alerter.dispatcher import AlertDispatcher
from balance_watcher.alerter.formatter import MessageFormatter
from balance_watcher.chain.client import ChainClient
from balance_watcher.config import ConfigError, DailyReportSettings
from balance_watcher.health import HealthMonitor
from balance_watcher.monitor.poller import BalanceReader, NetworkPoller
from balance_watcher.monitor.report import DailyReporter
from balance_watcher.monitor.throttle import AlertThrottle
from balance_watcher.storage import (
    ALERT_STATES_FILE,
    BALANCES_FILE,
    CHATS_FILE,
    AlertStateStore,
    RecipientRegistry,
    SnapshotStore,
)

if TYPE_CHECKING:
    from balance_watcher.config import NetworkSettings, Settings

logger = logging.getLogger(__name__)

ReaderFactory = Callable[["NetworkSettings"], BalanceReader]


class BalanceWatcher:
    """Owns the stores and the long-running tasks of the application.

    ``start`` loads state, builds the per-network pollers, the command
    listener, the daily reporter, and the health server, then returns
    with everything running in background tasks. ``stop`` cancels the
    tasks, flushes the stores, and closes the balance readers.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        dry_run: bool = False,
        reader_factory: ReaderFactory | None = None,
        channel: TelegramChannel | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            settings: Validated application settings.
            dry_run: Log messages instead of delivering them.
            reader_factory: Builds the balance reader of a network,
                defaults to an RPC ChainClient.
            channel: Telegram transport, built from settings when omitted.
        """
        self.settings = settings
        self.dry_run = dry_run
        self._reader_factory = reader_factory or self._create_chain_client
        self._channel = channel

        self.snapshots: SnapshotStore | None = None
        self.alert_states: AlertStateStore | None = None
        self.registry: RecipientRegistry | None = None
        self.dispatcher: AlertDispatcher | None = None
        self.reporter: DailyReporter | None = None
        self.health: HealthMonitor | None = None
        self.pollers: list[NetworkPoller] = []
        self._readers: list[BalanceReader] = []
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False

    @property
    def is_running(self) -> bool:
        """Return True between start and stop."""
        return self._running

    @property
    def tasks(self) -> list[asyncio.Task[None]]:
        """Background tasks started by the service."""
        return list(self._tasks)

    def _create_chain_client(self, network: NetworkSettings) -> BalanceReader:
        return ChainClient(
            network.rpc_urls,
            network=network.name,
            max_requests_per_second=self.settings.rpc_requests_per_second,
            max_retries=self.settings.rpc_max_retries,
        )

    async def start(self) -> None:
        """Load state and start every background task.

        Raises:
            ConfigError: If the data directory cannot be created.
            StoreCorruptedError: If the balance history is unreadable.
        """
        if self._running:
            return

        settings = self.settings
        data_dir = settings.data_dir
        try:
            data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"Cannot create data directory {data_dir}: {e}") from e

        self.snapshots = SnapshotStore.load(data_dir / BALANCES_FILE)
        self.alert_states = AlertStateStore.load(data_dir / ALERT_STATES_FILE)

        telegram = settings.telegram
        formatter = MessageFormatter(
            show_full_address=telegram.show_full_address if telegram else False
        )

        channel: TelegramChannel | None = None
        listener: CommandListener | None = None
        if telegram is not None and telegram.enabled and telegram.bot_token is not None:
            policy = AccessPolicy.from_allowed_users(telegram.allowed_users)
            if policy.is_public:
                logger.warning("Bot is open to every Telegram user")
            self.registry = RecipientRegistry.load(data_dir / CHATS_FILE, policy)
            channel = self._channel or TelegramChannel(telegram.bot_token.get_secret_value())
            self.dispatcher = AlertDispatcher(channel, self.registry, policy, dry_run=self.dry_run)
        else:
            logger.warning("Telegram is not configured, alerts will only be logged")

        report_time = (
            telegram.daily_report.report_time
            if telegram is not None and telegram.daily_report is not None
            else None
        )
        self.reporter = DailyReporter(
            self.snapshots,
            self.dispatcher,
            formatter,
            report_time=report_time or DailyReportSettings().report_time,
        )
        await self.reporter.capture_baseline()

        if channel is not None and self.dispatcher is not None and self.registry is not None:
            deps = CommandDeps(
                registry=self.registry,
                snapshots=self.snapshots,
                policy=self.dispatcher.policy,
                formatter=formatter,
                reporter=self.reporter,
            )
            listener = CommandListener(
                channel,
                deps,
                poll_timeout=telegram.poll_timeout_secs if telegram else 30,
            )

        if settings.health_enabled:
            self.health = HealthMonitor(settings.interval_secs)

        throttle = AlertThrottle(self.alert_states)
        self._readers = [self._reader_factory(network) for network in settings.networks]
        self.pollers = [
            NetworkPoller(
                network,
                reader,
                self.snapshots,
                throttle=throttle,
                dispatcher=self.dispatcher,
                formatter=formatter,
                alerts=settings.alerts,
                interval_seconds=settings.interval_secs,
                health=self.health,
            )
            for network, reader in zip(settings.networks, self._readers, strict=True)
        ]

        if self.health is not None:
            await self.health.start_http_server(port=settings.health_port)

        for poller in self.pollers:
            self._spawn(poller.run_forever(), f"poller-{poller.name}")
        if listener is not None:
            self._spawn(listener.run_forever(), "command-listener")
        if telegram is not None and telegram.daily_report_enabled and self.dispatcher is not None:
            self._spawn(self.reporter.run_forever(), "daily-report")

        self._running = True
        logger.info(
            "Balance watcher started: %d network(s), %d task(s)",
            len(self.pollers),
            len(self._tasks),
        )

    def _spawn(self, coro: Any, name: str) -> None:
        self._tasks.append(asyncio.create_task(coro, name=name))

    async def stop(self) -> None:
        """Cancel every task, flush the stores, and close the RPC clients."""
        if not self._running:
            return
        self._running = False

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        if self.snapshots is not None:
            await self.snapshots.persist()
        if self.alert_states is not None:
            await self.alert_states.persist()
        for reader in self._readers:
            await reader.close()
        self._readers.clear()
        if self.health is not None:
            await self.health.stop_http_server()

        logger.info("Balance watcher stopped")
