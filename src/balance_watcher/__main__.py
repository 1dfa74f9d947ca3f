"""CLI entry point for Balance Watcher.

This module provides the main entry point for running the watcher
from the command line.

Usage:
    python -m balance_watcher [options]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import logging.config
import os
import sys
from typing import Any, NoReturn

from pydantic import ValidationError

from balance_watcher import __version__
from balance_watcher.config import (
    CONFIG_PATH_ENV,
    ConfigError,
    Settings,
    clear_settings_cache,
    get_settings,
)
from balance_watcher.service import BalanceWatcher
from balance_watcher.shutdown import GracefulShutdown
from balance_watcher.storage import StoreCorruptedError

# Application info
APP_NAME = "Balance Watcher"
APP_VERSION = __version__

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="balance-watcher",
        description="Watch native and token balances on EVM networks and alert on changes.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m balance_watcher                          Run with ./config.yaml
  python -m balance_watcher --config prod.yaml       Use another config file
  python -m balance_watcher --config-check           Validate config and exit
  python -m balance_watcher --dry-run                Run without sending alerts
  python -m balance_watcher --log-level DEBUG        Enable debug logging
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {APP_VERSION}",
    )

    parser.add_argument(
        "--config",
        metavar="PATH",
        default=None,
        help=f"YAML configuration file (default: ${CONFIG_PATH_ENV} or config.yaml)",
    )

    parser.add_argument(
        "--config-check",
        action="store_true",
        help="Validate configuration and exit without monitoring",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level (default: from settings)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Monitor balances but don't send alerts",
    )

    parser.add_argument(
        "--health-port",
        type=int,
        default=None,
        help="Override health check port (default: from settings)",
    )

    return parser


def configure_logging(level: str) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level string (DEBUG, INFO, etc.)
    """
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": (
                    "%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s"
                ),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "detailed" if level == "DEBUG" else "standard",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
        # Quieter logging for noisy libraries
        "loggers": {
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
            "web3": {"level": "WARNING"},
            "urllib3": {"level": "WARNING"},
            "aiohttp.access": {"level": "WARNING"},
        },
    }
    logging.config.dictConfig(config)


def print_banner() -> None:
    """Print the application startup banner."""
    banner = f"""
╔══════════════════════════════════════════════════════════════╗
║                                                              ║
║   {APP_NAME:^56}   ║
║   {"v" + APP_VERSION:^56}   ║
║                                                              ║
╚══════════════════════════════════════════════════════════════╝
"""
    print(banner)


def _on_off(flag: bool) -> str:
    return "enabled" if flag else "disabled"


def print_config_summary(settings: Settings, dry_run: bool) -> None:
    """Print a summary of the configuration.

    Args:
        settings: Application settings.
        dry_run: Whether dry-run mode is enabled.
    """
    summary: dict[str, Any] = settings.redacted_summary()
    telegram = summary["telegram"]

    print("Configuration:")
    print(f"  Interval: {summary['interval_secs']}s")
    print(f"  Data Dir: {summary['data_dir']}")
    print(f"  Log Level: {summary['log_level']}")
    print(f"  Health Port: {summary['health_port'] or 'disabled'}")
    print(f"  Dry Run: {dry_run}")
    print("  Networks:")
    for network in summary["networks"]:
        print(
            f"    - {network['name']} (chain {network['chain_id']}): "
            f"{network['addresses']} address(es), {network['tokens']} token(s), "
            f"{len(network['rpc_urls'])} RPC node(s)"
        )
    print(f"  Telegram: {_on_off(telegram['enabled'])}")
    if telegram["enabled"]:
        users = telegram["allowed_users"]
        print(f"    Allowed Users: {', '.join(users) if users else '(none)'}")
        print(f"    Balance Change Alerts: {_on_off(telegram['balance_change_alerts'])}")
        print(f"    Low Balance Alerts: {_on_off(telegram['low_balance_alerts'])}")
        print(f"    Daily Report: {telegram['daily_report'] or 'disabled'}")
    print()


def validate_config() -> Settings | None:
    """Validate and load configuration.

    Returns:
        Settings instance if valid, None if invalid.
    """
    try:
        # Clear cache to force reload
        clear_settings_cache()
        return get_settings()
    except ValidationError as e:
        print("Configuration validation failed:", file=sys.stderr)
        for error in e.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            msg = error["msg"]
            print(f"  {field}: {msg}", file=sys.stderr)
        return None


def run_config_check(settings: Settings) -> int:
    """Run configuration check and exit.

    Args:
        settings: Validated settings.

    Returns:
        Exit code (0 for success).
    """
    print("Configuration is valid!")
    print()
    print_config_summary(settings, dry_run=False)

    print("Checking thresholds...")
    for network in settings.networks:
        for address in network.addresses:
            if address.min_balance is not None:
                print(
                    f"  {network.name}/{address.alias}: alert below "
                    f"{address.min_balance} {network.native_symbol}"
                )
        for token in network.tokens:
            if token.min_balance is not None:
                print(f"  {network.name}/{token.alias}: alert below {token.min_balance}")

    print()
    print("All checks passed. Ready to run.")
    return EXIT_SUCCESS


async def run_watcher(
    settings: Settings,
    dry_run: bool,
    shutdown_timeout: float = 30.0,
) -> int:
    """Run the watcher with graceful shutdown handling.

    Args:
        settings: Application settings.
        dry_run: Whether to skip sending alerts.
        shutdown_timeout: Maximum time for each cleanup step.

    Returns:
        Exit code.
    """
    logger = logging.getLogger(__name__)
    shutdown = GracefulShutdown(timeout=shutdown_timeout)

    try:
        async with shutdown:
            watcher = BalanceWatcher(settings, dry_run=dry_run)
            shutdown.register_cleanup(watcher.stop)

            logger.info("Starting balance watcher...")
            await watcher.start()

            logger.info("Balance watcher running. Press Ctrl+C to stop.")

            await shutdown.wait()

            logger.info("Shutdown signal received, stopping balance watcher...")
            await watcher.stop()

        return EXIT_SUCCESS
    except StoreCorruptedError as e:
        logger.error("Refusing to start with corrupted balance history: %s", e)
        return EXIT_ERROR
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.exception("Balance watcher failed: %s", e)
        return EXIT_ERROR


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:]).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.config:
        os.environ[CONFIG_PATH_ENV] = args.config

    # Validate configuration first
    settings = validate_config()
    if settings is None:
        sys.exit(EXIT_CONFIG_ERROR)

    if args.health_port is not None:
        settings = settings.model_copy(update={"health_port": args.health_port})

    # Determine effective log level
    log_level = args.log_level or settings.log_level
    configure_logging(log_level)

    print_banner()

    if args.config_check:
        sys.exit(run_config_check(settings))

    dry_run = args.dry_run or settings.dry_run

    print_config_summary(settings, dry_run)

    exit_code = asyncio.run(run_watcher(settings, dry_run))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
