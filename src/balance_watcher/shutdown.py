"""Graceful shutdown handling.

Traps SIGTERM and SIGINT, exposes an event the main coroutine waits on,
and runs registered cleanup callbacks on exit.

Usage:
    ```python
    async with GracefulShutdown() as shutdown:
        shutdown.register_cleanup(watcher.stop)
        await watcher.start()
        await shutdown.wait()
    ```
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Callable
from contextlib import suppress
from types import FrameType
from typing import Any

logger = logging.getLogger(__name__)

# Default time allowed for each cleanup callback, in seconds
DEFAULT_SHUTDOWN_TIMEOUT = 30.0

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class GracefulShutdown:
    """Signal trap and cleanup coordinator.

    The first signal sets the shutdown event; a second one exits the
    process immediately.
    """

    def __init__(self, timeout: float = DEFAULT_SHUTDOWN_TIMEOUT) -> None:
        """Initialize the shutdown handler.

        Args:
            timeout: Maximum time in seconds for each cleanup callback.
        """
        self._timeout = timeout
        self._shutdown_event = asyncio.Event()
        self._shutdown_requested = False
        self._original_handlers: dict[signal.Signals, Any] = {}
        self._cleanup_callbacks: list[Callable[[], Any]] = []
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def timeout(self) -> float:
        """Per-callback cleanup timeout in seconds."""
        return self._timeout

    @property
    def is_shutdown_requested(self) -> bool:
        """Check if shutdown has been requested."""
        return self._shutdown_requested

    def register_cleanup(self, callback: Callable[[], Any]) -> None:
        """Register a cleanup callback (sync or async) to run on exit."""
        self._cleanup_callbacks.append(callback)

    def request_shutdown(self) -> None:
        """Trigger shutdown from application code."""
        if not self._shutdown_requested:
            self._shutdown_requested = True
            logger.info("Shutdown requested programmatically")
            self._shutdown_event.set()

    async def wait(self) -> None:
        """Block until a signal arrives or shutdown is requested."""
        await self._shutdown_event.wait()

    def install_signal_handlers(self) -> None:
        """Trap SIGTERM and SIGINT. Windows only supports signal.signal."""
        self._loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            try:
                if sys.platform == "win32":
                    self._original_handlers[sig] = signal.signal(sig, self._handle_signal_sync)
                else:
                    self._loop.add_signal_handler(sig, self._handle_signal, sig)
            except (ValueError, OSError, RuntimeError) as e:
                logger.warning("Could not install handler for %s: %s", sig.name, e)
        logger.debug("Signal handlers installed")

    def remove_signal_handlers(self) -> None:
        """Remove installed handlers and restore the originals."""
        if sys.platform == "win32":
            for sig, original in self._original_handlers.items():
                with suppress(ValueError, OSError):
                    signal.signal(sig, original)
            self._original_handlers.clear()
        elif self._loop is not None:
            for sig in SHUTDOWN_SIGNALS:
                with suppress(ValueError, OSError, RuntimeError):
                    self._loop.remove_signal_handler(sig)
        logger.debug("Signal handlers removed")

    def _handle_signal(self, sig: signal.Signals) -> None:
        if self._shutdown_requested:
            logger.warning("Received %s again - forcing exit!", sig.name)
            sys.exit(128 + sig.value)
        self._shutdown_requested = True
        logger.info("Received %s - initiating graceful shutdown...", sig.name)
        self._shutdown_event.set()

    def _handle_signal_sync(self, sig: int, _frame: FrameType | None) -> None:
        self._handle_signal(signal.Signals(sig))

    async def run_cleanup_callbacks(self) -> None:
        """Run every cleanup callback; failures are logged, never raised."""
        for callback in self._cleanup_callbacks:
            try:
                result = callback()
                if asyncio.iscoroutine(result):
                    await asyncio.wait_for(result, timeout=self._timeout)
            except TimeoutError:
                logger.error("Cleanup callback timed out after %.0fs", self._timeout)
            except Exception as e:
                logger.error("Cleanup callback failed: %s", e)

    async def __aenter__(self) -> GracefulShutdown:
        """Install signal handlers."""
        self.install_signal_handlers()
        return self

    async def __aexit__(self, *_args: Any) -> None:
        """Remove signal handlers and run cleanup."""
        self.remove_signal_handlers()
        await self.run_cleanup_callbacks()
