"""Blockchain access layer - RPC client and unit conversion."""

from balance_watcher.chain.client import (
    ChainClient,
    ChainClientError,
    RateLimiter,
    RPCError,
)
from balance_watcher.chain.units import NATIVE_DECIMALS, format_units, to_base_units

__all__ = [
    "NATIVE_DECIMALS",
    "ChainClient",
    "ChainClientError",
    "RPCError",
    "RateLimiter",
    "format_units",
    "to_base_units",
]
