"""Low-balance alert throttling.

Each (network, alias) owns a small state machine described by
``(alert_count, last_sent)``. While any configured threshold is breached,
alerts fire with a slowing cadence: immediately, then after 10 minutes,
1 hour, 5 hours, and every 20 hours from then on. As soon as no threshold
is breached the state resets, so the next breach alerts immediately again.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from balance_watcher.chain.units import NATIVE_DECIMALS, to_base_units
from balance_watcher.monitor.models import AlertState, BalanceSnapshot, Breach

if TYPE_CHECKING:
    from balance_watcher.storage.alert_states import AlertStateStore

logger = logging.getLogger(__name__)

# Wait before alert number n+1, indexed by alerts already sent (n)
THROTTLE_SCHEDULE: tuple[timedelta, ...] = (
    timedelta(0),
    timedelta(minutes=10),
    timedelta(hours=1),
    timedelta(hours=5),
)
STEADY_STATE_WAIT = timedelta(hours=20)

Clock = Callable[[], float]


def required_wait(alert_count: int) -> timedelta:
    """Minimum time since the last alert before the next one may fire."""
    if alert_count < 0:
        raise ValueError(f"alert_count must be non-negative, got {alert_count}")
    if alert_count < len(THROTTLE_SCHEDULE):
        return THROTTLE_SCHEDULE[alert_count]
    return STEADY_STATE_WAIT


def is_breach(balance: int, threshold_units: int | None) -> bool:
    """Check a balance against a threshold in base units.

    A zero balance is never a breach: an address that was never funded
    should not page anyone.
    """
    if threshold_units is None:
        return False
    return 0 < balance < threshold_units


def find_breaches(
    snapshot: BalanceSnapshot,
    native_threshold: Decimal | None,
    token_thresholds: Mapping[str, Decimal],
) -> list[Breach]:
    """Evaluate every configured threshold against a snapshot.

    Args:
        snapshot: Current observation.
        native_threshold: Minimum native balance in whole units, if any.
        token_thresholds: Token alias -> minimum balance in whole units.

    Returns:
        One Breach per metric below its threshold, native first.
    """
    breaches: list[Breach] = []

    if native_threshold is not None:
        threshold_units = to_base_units(native_threshold, NATIVE_DECIMALS)
        if is_breach(snapshot.native_balance, threshold_units):
            breaches.append(
                Breach(
                    network=snapshot.network,
                    alias=snapshot.alias,
                    address=snapshot.address,
                    symbol=snapshot.native_symbol,
                    balance=snapshot.native_balance,
                    formatted=snapshot.native_formatted,
                    threshold=native_threshold,
                    is_native=True,
                )
            )

    for token_alias, threshold in token_thresholds.items():
        token = snapshot.tokens.get(token_alias)
        if token is None:
            continue
        if is_breach(token.balance, to_base_units(threshold, token.decimals)):
            breaches.append(
                Breach(
                    network=snapshot.network,
                    alias=snapshot.alias,
                    address=snapshot.address,
                    symbol=token_alias,
                    balance=token.balance,
                    formatted=token.formatted,
                    threshold=threshold,
                    is_native=False,
                )
            )

    return breaches


def advance(state: AlertState, breached: bool, now: float) -> tuple[AlertState, bool]:
    """Apply one evaluation to a throttle state.

    Args:
        state: Current state.
        breached: Whether any threshold is breached now.
        now: Current Unix timestamp.

    Returns:
        ``(new_state, fired)``. The state is returned unchanged when
        nothing happens.
    """
    if not breached:
        if state.alert_count > 0:
            return AlertState(), False
        return state, False

    if state.last_sent is not None:
        elapsed = now - state.last_sent
        if elapsed < required_wait(state.alert_count).total_seconds():
            return state, False

    return AlertState(last_sent=now, alert_count=state.alert_count + 1), True


@dataclass
class ThrottleDecision:
    """Outcome of one throttle evaluation.

    Attributes:
        fired: Breaches to alert on now (empty when suppressed).
        alert_count: Alert count after this evaluation.
        recovered: True if this evaluation reset a previously alerting state.
    """

    fired: list[Breach] = field(default_factory=list)
    alert_count: int = 0
    recovered: bool = False


class AlertThrottle:
    """Applies the throttle state machine against the alert state store."""

    def __init__(self, store: AlertStateStore, *, clock: Clock = time.time) -> None:
        """Initialize the throttle.

        Args:
            store: Durable alert state store.
            clock: Source of the current Unix timestamp.
        """
        self._store = store
        self._clock = clock

    async def check(
        self,
        network: str,
        alias: str,
        breaches: list[Breach],
    ) -> ThrottleDecision:
        """Evaluate the current breaches of one address.

        Persists the store whenever the state changes.

        Args:
            network: Network name.
            alias: Address alias.
            breaches: Breaches found in the current observation.

        Returns:
            ThrottleDecision describing what to alert on.
        """
        now = self._clock()
        state = await self._store.get_or_create(network, alias)
        new_state, fired = advance(state, bool(breaches), now)

        if new_state == state:
            if breaches:
                logger.debug(
                    "Low balance alert for %s:%s suppressed (alert #%d sent at %s)",
                    network,
                    alias,
                    state.alert_count,
                    state.last_sent,
                )
            return ThrottleDecision(alert_count=state.alert_count)

        await self._store.set(network, alias, new_state)
        await self._store.persist()

        if fired:
            return ThrottleDecision(fired=list(breaches), alert_count=new_state.alert_count)

        logger.info("Balance of %s:%s recovered above thresholds", network, alias)
        return ThrottleDecision(alert_count=0, recovered=True)
