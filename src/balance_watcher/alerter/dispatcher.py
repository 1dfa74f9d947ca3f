"""Alert dispatcher for recipient fan-out."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from balance_watcher.alerter.access import AccessPolicy
    from balance_watcher.storage.recipients import Recipient, RecipientRegistry

logger = logging.getLogger(__name__)


class MessageChannel(Protocol):
    """Protocol for message delivery channels."""

    name: str

    async def send(self, chat_id: int, text: str) -> bool:
        """Send a message to one chat. Returns True on success."""
        ...


@dataclass
class DispatchResult:
    """Result of dispatching a message to every recipient."""

    success_count: int
    failure_count: int
    pruned: list[int] = field(default_factory=list)
    recipient_results: dict[int, bool] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def all_succeeded(self) -> bool:
        """Return True if every recipient succeeded."""
        return self.failure_count == 0 and self.success_count > 0


class AlertDispatcher:
    """Delivers one message to every authorized recipient.

    Before each fan-out the registry is re-checked against the access
    policy: in private mode, recipients whose identity is no longer
    allowed are de-registered and skipped. Deliveries run concurrently
    and a failing recipient never affects the others.
    """

    def __init__(
        self,
        channel: MessageChannel,
        registry: RecipientRegistry,
        policy: AccessPolicy,
        *,
        dry_run: bool = False,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            channel: Delivery transport.
            registry: Durable recipient registry.
            policy: Authorization policy.
            dry_run: Log messages instead of delivering them.
        """
        self.channel = channel
        self.registry = registry
        self.policy = policy
        self.dry_run = dry_run

    async def _send_to_recipient(self, recipient: Recipient, text: str) -> tuple[int, bool]:
        """Send to a single recipient, turning every failure into False."""
        try:
            success = await self.channel.send(recipient.chat_id, text)
        except Exception as e:
            logger.error("Error sending to chat %s: %s", recipient.chat_id, e)
            return (recipient.chat_id, False)

        if not success:
            logger.warning("Delivery to chat %s failed", recipient.chat_id)
        return (recipient.chat_id, success)

    async def dispatch(self, text: str) -> DispatchResult:
        """Dispatch a message to every authorized recipient concurrently.

        Args:
            text: Formatted message.

        Returns:
            DispatchResult with per-recipient status.
        """
        pruned = await self.registry.remove_unauthorized(self.policy)
        for recipient in pruned:
            logger.info(
                "Removed unauthorized recipient %s (@%s)",
                recipient.chat_id,
                recipient.username or "-",
            )

        recipients = await self.registry.recipients()
        pruned_ids = [r.chat_id for r in pruned]

        if not recipients:
            logger.debug("No recipients registered, message not sent")
            return DispatchResult(success_count=0, failure_count=0, pruned=pruned_ids)

        if self.dry_run:
            logger.info("[dry-run] Would send to %d recipient(s):\n%s", len(recipients), text)
            return DispatchResult(success_count=0, failure_count=0, pruned=pruned_ids)

        tasks = [self._send_to_recipient(r, text) for r in recipients]
        results = await asyncio.gather(*tasks)

        recipient_results = dict(results)
        success_count = sum(1 for success in recipient_results.values() if success)
        failure_count = len(recipient_results) - success_count

        logger.info(
            "Dispatch complete: %d/%d succeeded",
            success_count,
            len(recipient_results),
        )

        return DispatchResult(
            success_count=success_count,
            failure_count=failure_count,
            pruned=pruned_ids,
            recipient_results=recipient_results,
        )
