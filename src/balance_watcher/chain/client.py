"""EVM JSON-RPC client for balance queries.

This module provides the balance-reading capability used by the network
pollers:
- Native balance and ERC20 ``balanceOf`` queries, returned as integers
- Rate limiting to respect provider limits
- Retry logic with exponential backoff
- Failover across every configured RPC node
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from aiohttp import ClientError
from web3 import AsyncWeb3
from web3.exceptions import Web3Exception
from web3.providers import AsyncHTTPProvider

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_MAX_REQUESTS_PER_SECOND = 25
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0
DEFAULT_REQUEST_TIMEOUT = 30

ERC20_BALANCE_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    }
]

# Errors worth retrying on another attempt or another node
RETRYABLE_ERRORS = (Web3Exception, ClientError, TimeoutError, OSError, ValueError)

RPCCall = Callable[[AsyncWeb3], Awaitable[Any]]


class ChainClientError(Exception):
    """Base exception for chain client errors."""


class RPCError(ChainClientError):
    """Raised when an RPC call fails on every node."""


@dataclass
class RateLimiter:
    """Token bucket rate limiter."""

    max_tokens: float
    refill_rate: float  # tokens per second
    tokens: float
    last_refill: float

    @classmethod
    def create(cls, max_requests_per_second: float) -> "RateLimiter":
        """Create a rate limiter with specified max requests per second."""
        return cls(
            max_tokens=max_requests_per_second,
            refill_rate=max_requests_per_second,
            tokens=max_requests_per_second,
            last_refill=time.monotonic(),
        )

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Acquire tokens, waiting if necessary."""
        while True:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return
            wait_time = (tokens - self.tokens) / self.refill_rate
            await asyncio.sleep(wait_time)


class ChainClient:
    """Balance reader for one EVM network.

    Every call goes to the node that last answered successfully. When it
    keeps failing after all retries, the remaining nodes are tried in
    configuration order and the first one that answers becomes preferred.

    Example:
        ```python
        client = ChainClient(
            ["https://ethereum.publicnode.com", "https://eth.llamarpc.com"],
            network="Ethereum",
        )

        wei = await client.get_native_balance("0x...")
        usdt = await client.get_token_balance("0xdAC1...", "0x...")
        ```
    """

    def __init__(
        self,
        rpc_urls: Sequence[str],
        *,
        network: str = "",
        max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        """Initialize the client.

        Args:
            rpc_urls: RPC endpoints, in order of preference.
            network: Network name, used in log messages.
            max_requests_per_second: Rate limit for RPC calls.
            max_retries: Attempts per node before moving to the next one.
            retry_delay_seconds: Initial delay between retries.
            request_timeout: HTTP timeout per request in seconds.

        Raises:
            ChainClientError: If no RPC URL is given.
        """
        if not rpc_urls:
            raise ChainClientError(f"No RPC nodes configured for network '{network}'")

        self._rpc_urls = list(rpc_urls)
        self._network = network
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds

        self._nodes: list[AsyncWeb3] = [
            AsyncWeb3(AsyncHTTPProvider(url, request_kwargs={"timeout": request_timeout}))
            for url in self._rpc_urls
        ]
        self._preferred = 0

        self._rate_limiter = RateLimiter.create(max_requests_per_second)

    @property
    def rpc_urls(self) -> list[str]:
        """Configured RPC endpoints."""
        return list(self._rpc_urls)

    def _node_order(self) -> list[int]:
        count = len(self._nodes)
        return [(self._preferred + offset) % count for offset in range(count)]

    async def _execute_with_retry(self, description: str, call: RPCCall) -> Any:
        """Execute an RPC call with retry and failover logic.

        Args:
            description: Short name of the call for logging.
            call: Coroutine factory receiving the node to query.

        Returns:
            Result from the RPC call.

        Raises:
            RPCError: If all retries on all nodes fail.
        """
        await self._rate_limiter.acquire()

        last_error: Exception | None = None

        for index in self._node_order():
            node = self._nodes[index]
            delay = self._retry_delay
            for attempt in range(self._max_retries):
                try:
                    result = await call(node)
                except RETRYABLE_ERRORS as e:
                    last_error = e
                    logger.warning(
                        "[%s] RPC %s failed on %s (attempt %d/%d): %s",
                        self._network,
                        description,
                        self._rpc_urls[index],
                        attempt + 1,
                        self._max_retries,
                        e,
                    )
                    if attempt < self._max_retries - 1:
                        await asyncio.sleep(delay)
                        delay *= 2
                    continue

                if index != self._preferred:
                    logger.info(
                        "[%s] Switched to RPC node %s", self._network, self._rpc_urls[index]
                    )
                    self._preferred = index
                return result

        raise RPCError(f"RPC call {description} failed on all nodes: {last_error}")

    async def get_native_balance(self, address: str) -> int:
        """Get the native currency balance of an address.

        Args:
            address: Account address.

        Returns:
            Balance in the smallest unit (wei).
        """
        checksum = AsyncWeb3.to_checksum_address(address)
        balance = await self._execute_with_retry(
            "get_balance",
            lambda w3: w3.eth.get_balance(checksum),
        )
        return int(balance)

    async def get_token_balance(self, token_address: str, holder: str) -> int:
        """Get an ERC20 token balance.

        Args:
            token_address: ERC20 token contract address.
            holder: Account whose balance is read.

        Returns:
            Token balance in the token's smallest unit.
        """
        token = AsyncWeb3.to_checksum_address(token_address)
        owner = AsyncWeb3.to_checksum_address(holder)

        def balance_of(w3: AsyncWeb3) -> Awaitable[Any]:
            contract = w3.eth.contract(address=token, abi=ERC20_BALANCE_ABI)
            return contract.functions.balanceOf(owner).call()

        balance = await self._execute_with_retry("balanceOf", balance_of)
        return int(balance)

    async def get_chain_id(self) -> int:
        """Get the chain id reported by the node."""
        chain_id = await self._execute_with_retry("chain_id", lambda w3: w3.eth.chain_id)
        return int(chain_id)

    async def close(self) -> None:
        """Close the HTTP session of every node."""
        for w3 in self._nodes:
            try:
                await w3.provider.disconnect()
            except Exception as e:
                logger.warning("Failed to close RPC session on %s: %s", self._network, e)
