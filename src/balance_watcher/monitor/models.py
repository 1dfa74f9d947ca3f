"""Data models for the monitor module."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from balance_watcher.chain.units import NATIVE_DECIMALS, format_units

# Smallest percent change worth rendering
PERCENT_DISPLAY_THRESHOLD = 0.01


def make_key(network: str, alias: str) -> str:
    """Build the store key for a (network, alias) pair."""
    return f"{network}:{alias}"


class ChangeKind(str, Enum):
    """Direction of a balance change."""

    INCREASE = "increase"
    DECREASE = "decrease"
    NO_CHANGE = "no_change"


@dataclass(frozen=True)
class TokenBalance:
    """Observed balance of one token for one address.

    Attributes:
        balance: Amount in the token's smallest unit.
        formatted: Fixed-point rendering of ``balance``.
        decimals: Token decimals used for ``formatted``.
    """

    balance: int
    formatted: str
    decimals: int = NATIVE_DECIMALS

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for storage."""
        return {
            "balance": str(self.balance),
            "formatted": self.formatted,
            "decimals": self.decimals,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenBalance:
        """Deserialize from dictionary."""
        decimals = int(data.get("decimals", NATIVE_DECIMALS))
        balance = int(data["balance"])
        return cls(
            balance=balance,
            formatted=data.get("formatted") or format_units(balance, decimals),
            decimals=decimals,
        )


@dataclass(frozen=True)
class BalanceSnapshot:
    """Most recent observation of one address on one network.

    Attributes:
        network: Network name.
        chain_id: Chain identifier.
        alias: Address alias, unique within the network.
        address: On-chain address.
        native_balance: Native currency balance in wei.
        native_formatted: Fixed-point rendering of ``native_balance``.
        tokens: Token alias -> observed token balance.
        native_symbol: Display symbol of the native currency.
        observed_at: Unix timestamp of the observation.
    """

    network: str
    chain_id: int
    alias: str
    address: str
    native_balance: int
    native_formatted: str
    tokens: dict[str, TokenBalance] = field(default_factory=dict)
    native_symbol: str = "ETH"
    observed_at: float = field(default_factory=time.time)

    @property
    def key(self) -> str:
        """Store key of this snapshot."""
        return make_key(self.network, self.alias)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for storage.

        Integers are written as decimal strings so readers that parse
        JSON numbers as doubles cannot lose precision.
        """
        return {
            "network": self.network,
            "chain_id": self.chain_id,
            "alias": self.alias,
            "address": self.address,
            "native_balance": str(self.native_balance),
            "native_formatted": self.native_formatted,
            "native_symbol": self.native_symbol,
            "tokens": {alias: token.to_dict() for alias, token in self.tokens.items()},
            "observed_at": self.observed_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BalanceSnapshot:
        """Deserialize from dictionary."""
        native_balance = int(data["native_balance"])
        tokens = {
            alias: TokenBalance.from_dict(token)
            for alias, token in (data.get("tokens") or {}).items()
        }
        return cls(
            network=data["network"],
            chain_id=int(data["chain_id"]),
            alias=data["alias"],
            address=data["address"],
            native_balance=native_balance,
            native_formatted=data.get("native_formatted") or format_units(native_balance),
            tokens=tokens,
            native_symbol=data.get("native_symbol", "ETH"),
            observed_at=float(data.get("observed_at", 0.0)),
        )


@dataclass(frozen=True)
class MetricChange:
    """Comparison of one balance metric between two observations.

    Attributes:
        symbol: Native symbol or token alias.
        old_balance: Previous amount in base units.
        new_balance: Current amount in base units.
        old_formatted: Previous fixed-point rendering.
        new_formatted: Current fixed-point rendering.
        kind: Direction of the change.
        decimals: Decimals used for rendering amounts.
    """

    symbol: str
    old_balance: int
    new_balance: int
    old_formatted: str
    new_formatted: str
    kind: ChangeKind
    decimals: int = NATIVE_DECIMALS

    @property
    def is_change(self) -> bool:
        """Return True unless the balance is unchanged."""
        return self.kind is not ChangeKind.NO_CHANGE

    @property
    def magnitude(self) -> int:
        """Absolute difference in base units."""
        return abs(self.new_balance - self.old_balance)

    @property
    def magnitude_formatted(self) -> str:
        """Absolute difference as a fixed-point string."""
        return format_units(self.magnitude, self.decimals)

    @property
    def percent_change(self) -> float:
        """Relative change in percent, 0 when the previous balance was 0."""
        if self.old_balance == 0:
            return 0.0
        delta = Decimal(self.new_balance - self.old_balance)
        return float(delta / Decimal(self.old_balance) * 100)

    @property
    def percent_display(self) -> str | None:
        """Signed percent string, or None when too small to show."""
        percent = self.percent_change
        if abs(percent) < PERCENT_DISPLAY_THRESHOLD:
            return None
        return f"{percent:+.2f}%"

    @property
    def signed_magnitude(self) -> str:
        """Magnitude prefixed with the direction sign."""
        if self.kind is ChangeKind.INCREASE:
            return f"+{self.magnitude_formatted}"
        if self.kind is ChangeKind.DECREASE:
            return f"-{self.magnitude_formatted}"
        return self.magnitude_formatted


@dataclass(frozen=True)
class ChangeSummary:
    """Result of comparing two snapshots of the same address.

    Attributes:
        network: Network name.
        alias: Address alias.
        address: On-chain address.
        native: Native balance comparison, None for a first observation.
        tokens: Token comparisons, one per token in the current snapshot.
    """

    network: str
    alias: str
    address: str
    native: MetricChange | None = None
    tokens: tuple[MetricChange, ...] = ()

    def has_changes(self) -> bool:
        """Return True if any metric changed."""
        return bool(self.changed_metrics())

    def changed_metrics(self) -> list[MetricChange]:
        """Return the metrics whose balance changed, native first."""
        metrics = [self.native] if self.native is not None else []
        metrics.extend(self.tokens)
        return [metric for metric in metrics if metric.is_change]

    @property
    def change_count(self) -> int:
        """Number of changed metrics."""
        return len(self.changed_metrics())


@dataclass(frozen=True)
class AlertState:
    """Low-balance alert throttle state for one (network, alias).

    Attributes:
        last_sent: Unix timestamp of the last alert, None if never sent.
        alert_count: Alerts sent since the last recovery.
    """

    last_sent: float | None = None
    alert_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for storage."""
        return {"last_sent": self.last_sent, "alert_count": self.alert_count}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AlertState:
        """Deserialize from dictionary."""
        last_sent = data.get("last_sent")
        return cls(
            last_sent=float(last_sent) if last_sent is not None else None,
            alert_count=int(data.get("alert_count", 0)),
        )


@dataclass(frozen=True)
class Breach:
    """A balance that is positive but below its configured threshold.

    Attributes:
        network: Network name.
        alias: Address alias.
        address: On-chain address.
        symbol: Native symbol or token alias.
        balance: Observed amount in base units.
        formatted: Fixed-point rendering of ``balance``.
        threshold: Configured threshold in whole units.
        is_native: True for the native currency, False for a token.
    """

    network: str
    alias: str
    address: str
    symbol: str
    balance: int
    formatted: str
    threshold: Decimal
    is_native: bool = True
