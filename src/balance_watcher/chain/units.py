"""Fixed-point conversion between integer base units and decimal strings.

Balances are carried as Python integers end to end. Decimal strings exist
only for display and are never used for comparison.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, localcontext

NATIVE_DECIMALS = 18


def format_units(value: int, decimals: int = NATIVE_DECIMALS) -> str:
    """Render an amount of base units as a fixed-point decimal string.

    Args:
        value: Non-negative amount in the smallest unit (e.g. wei).
        decimals: Number of fractional digits of the unit.

    Returns:
        The amount with exactly ``decimals`` fractional digits,
        e.g. ``format_units(1_500_000_000_000_000_000)`` is
        ``"1.500000000000000000"``.

    Raises:
        ValueError: If value or decimals is negative.
    """
    if value < 0:
        raise ValueError(f"Balances are unsigned, got {value}")
    if decimals < 0:
        raise ValueError(f"Decimals must be non-negative, got {decimals}")
    if decimals == 0:
        return str(value)

    whole, fraction = divmod(value, 10**decimals)
    return f"{whole}.{fraction:0{decimals}d}"


def to_base_units(amount: Decimal | str | int, decimals: int = NATIVE_DECIMALS) -> int:
    """Convert a human-readable amount to integer base units.

    Digits beyond the unit's precision are truncated.

    Args:
        amount: Decimal amount, e.g. ``Decimal("1.5")``.
        decimals: Number of fractional digits of the unit.

    Returns:
        The amount in the smallest unit.
    """
    with localcontext() as ctx:
        ctx.prec = 100
        scaled = Decimal(amount).scaleb(decimals)
        return int(scaled.to_integral_value(rounding=ROUND_DOWN))
