"""Poller health monitor with metrics and HTTP endpoints.

Tracks when each network poller last completed a cycle, flags networks
that fell behind, and exposes Prometheus metrics alongside liveness and
readiness probes.
"""

import copy
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from aiohttp import web
from prometheus_client import Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_STALE_FACTOR = 3  # missed intervals before a network is stale
DEFAULT_HTTP_PORT = 8080


class HealthStatus(Enum):
    """Overall health status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class NetworkStatus(Enum):
    """Status of an individual network poller."""

    STARTING = "starting"
    ACTIVE = "active"
    STALE = "stale"


@dataclass
class NetworkHealth:
    """Health status for one network poller."""

    name: str
    status: NetworkStatus = NetworkStatus.STARTING
    last_cycle_time: float | None = None
    cycles_completed: int = 0
    last_fetched: int = 0
    last_failed: int = 0
    registered_at: float = field(default_factory=time.time)


@dataclass
class HealthReport:
    """Health report covering every network."""

    status: HealthStatus
    networks: dict[str, NetworkHealth] = field(default_factory=dict)
    uptime_seconds: float = 0.0
    timestamp: float = field(default_factory=time.time)


# Prometheus metrics
POLL_CYCLES_TOTAL = Counter(
    "balance_watcher_poll_cycles_total",
    "Total number of completed poll cycles",
    ["network"],
)

FETCH_FAILURES_TOTAL = Counter(
    "balance_watcher_fetch_failures_total",
    "Total number of failed address balance fetches",
    ["network"],
)

LAST_CYCLE_TIMESTAMP = Gauge(
    "balance_watcher_last_cycle_timestamp",
    "Unix timestamp of the last completed poll cycle",
    ["network"],
)

CYCLE_DURATION = Histogram(
    "balance_watcher_cycle_duration_seconds",
    "Poll cycle duration in seconds",
    ["network"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

ALERTS_TOTAL = Counter(
    "balance_watcher_alerts_total",
    "Total number of alerts dispatched",
    ["kind"],
)

DELIVERIES_TOTAL = Counter(
    "balance_watcher_deliveries_total",
    "Total number of message deliveries by result",
    ["result"],
)

HEALTH_STATUS = Gauge(
    "balance_watcher_health_status",
    "Overall health status (1=healthy, 0.5=degraded, 0=unhealthy)",
)


class HealthMonitor:
    """Monitor poller liveness and expose metrics.

    A network is stale when it has not completed a cycle within
    ``stale_factor`` poll intervals, counted from its last cycle or from
    registration if it never completed one.

    Example:
        ```python
        monitor = HealthMonitor(interval_seconds=60)
        monitor.register_network("mainnet")
        monitor.record_cycle("mainnet", duration=0.8, fetched=3, failed=0)
        await monitor.start_http_server(port=8080)
        ```
    """

    def __init__(
        self,
        interval_seconds: float,
        *,
        stale_factor: float = DEFAULT_STALE_FACTOR,
    ) -> None:
        """Initialize the health monitor.

        Args:
            interval_seconds: Poll interval shared by every network.
            stale_factor: Missed intervals before a network is stale.
        """
        self._stale_threshold = interval_seconds * stale_factor
        self._networks: dict[str, NetworkHealth] = {}
        self._start_time = time.time()

        # HTTP server
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

    @property
    def stale_threshold(self) -> float:
        """Seconds without a completed cycle before a network is stale."""
        return self._stale_threshold

    def register_network(self, name: str) -> None:
        """Register a network for monitoring.

        Args:
            name: Network name.
        """
        if name not in self._networks:
            self._networks[name] = NetworkHealth(name=name)
            logger.info("Registered network for monitoring: %s", name)

    def record_cycle(
        self,
        name: str,
        *,
        duration: float | None = None,
        fetched: int = 0,
        failed: int = 0,
    ) -> None:
        """Record a completed poll cycle.

        Args:
            name: Network name.
            duration: Optional cycle duration in seconds.
            fetched: Addresses fetched successfully.
            failed: Addresses whose fetch failed.
        """
        self.register_network(name)
        now = time.time()

        network = self._networks[name]
        network.cycles_completed += 1
        network.last_cycle_time = now
        network.last_fetched = fetched
        network.last_failed = failed
        network.status = NetworkStatus.ACTIVE

        POLL_CYCLES_TOTAL.labels(network=name).inc()
        LAST_CYCLE_TIMESTAMP.labels(network=name).set(now)
        if failed:
            FETCH_FAILURES_TOTAL.labels(network=name).inc(failed)
        if duration is not None:
            CYCLE_DURATION.labels(network=name).observe(duration)

    def record_alert(self, kind: str) -> None:
        """Count a dispatched alert by kind."""
        ALERTS_TOTAL.labels(kind=kind).inc()

    def record_deliveries(self, succeeded: int, failed: int) -> None:
        """Count message deliveries by result."""
        if succeeded:
            DELIVERIES_TOTAL.labels(result="success").inc(succeeded)
        if failed:
            DELIVERIES_TOTAL.labels(result="failure").inc(failed)

    def _check_staleness(self) -> None:
        """Update every network's status from its last cycle time."""
        now = time.time()

        for network in self._networks.values():
            if network.last_cycle_time is None:
                if now - network.registered_at > self._stale_threshold:
                    network.status = NetworkStatus.STALE
                continue

            if now - network.last_cycle_time > self._stale_threshold:
                network.status = NetworkStatus.STALE
            else:
                network.status = NetworkStatus.ACTIVE

    def _determine_overall_status(self) -> HealthStatus:
        """Determine overall health status based on network states."""
        if not self._networks:
            return HealthStatus.HEALTHY

        statuses = [n.status for n in self._networks.values()]

        if all(s == NetworkStatus.STALE for s in statuses):
            return HealthStatus.UNHEALTHY

        if any(s == NetworkStatus.STALE for s in statuses):
            return HealthStatus.DEGRADED

        return HealthStatus.HEALTHY

    def get_health_report(self) -> HealthReport:
        """Generate a health report.

        Returns:
            HealthReport with the current status of every network.
        """
        self._check_staleness()

        overall_status = self._determine_overall_status()
        HEALTH_STATUS.set(
            1.0 if overall_status == HealthStatus.HEALTHY
            else 0.5 if overall_status == HealthStatus.DEGRADED
            else 0.0
        )

        networks_copy = {name: copy.copy(n) for name, n in self._networks.items()}

        return HealthReport(
            status=overall_status,
            networks=networks_copy,
            uptime_seconds=time.time() - self._start_time,
        )

    # HTTP Server methods

    async def _handle_health(self, _request: web.Request) -> web.Response:
        """Handle /health endpoint."""
        report = self.get_health_report()

        status_code = 200 if report.status == HealthStatus.HEALTHY else 503

        body: dict[str, Any] = {
            "status": report.status.value,
            "uptime_seconds": report.uptime_seconds,
            "networks": {},
        }

        for name, network in report.networks.items():
            body["networks"][name] = {
                "status": network.status.value,
                "cycles_completed": network.cycles_completed,
                "last_cycle_time": network.last_cycle_time,
                "last_fetched": network.last_fetched,
                "last_failed": network.last_failed,
            }

        return web.json_response(body, status=status_code)

    async def _handle_metrics(self, _request: web.Request) -> web.Response:
        """Handle /metrics endpoint (Prometheus format)."""
        self.get_health_report()

        metrics = generate_latest()
        return web.Response(
            body=metrics,
            content_type="text/plain",
            charset="utf-8",
        )

    async def _handle_ready(self, _request: web.Request) -> web.Response:
        """Handle /ready endpoint for k8s readiness probe."""
        report = self.get_health_report()

        if report.status == HealthStatus.UNHEALTHY:
            return web.json_response(
                {"ready": False, "reason": "unhealthy"},
                status=503,
            )

        return web.json_response({"ready": True}, status=200)

    async def _handle_live(self, _request: web.Request) -> web.Response:
        """Handle /live endpoint for k8s liveness probe."""
        return web.json_response({"live": True}, status=200)

    def create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/metrics", self._handle_metrics)
        app.router.add_get("/ready", self._handle_ready)
        app.router.add_get("/live", self._handle_live)
        return app

    async def start_http_server(self, port: int = DEFAULT_HTTP_PORT) -> None:
        """Start the HTTP server for health and metrics endpoints.

        Args:
            port: Port to listen on.
        """
        if self._runner:
            logger.warning("HTTP server already running")
            return

        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, "0.0.0.0", port)
        await site.start()

        logger.info("Health HTTP server started on port %d", port)

    async def stop_http_server(self) -> None:
        """Stop the HTTP server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._app = None
            logger.info("Health HTTP server stopped")
