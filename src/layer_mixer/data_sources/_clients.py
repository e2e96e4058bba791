"""
Singleton client management for the layered transfer mixer.

Provides lazy-initialised clients for the Solana RPC endpoint and the
program history feed.

``init_clients`` / ``close_clients`` should be called by the driver at
startup/shutdown.  Nothing is created at import time.
"""

from __future__ import annotations

import logging
from typing import Optional

from config import (
    CONFIRM_POLL_INTERVAL,
    HISTORY_PAGE_SIZE,
    HISTORY_RPC_ENDPOINT,
    MIXER_PROGRAM_ID,
    REQUEST_TIMEOUT,
    RPC_BACKOFF_BASE,
    RPC_MAX_RETRIES,
    SOLANA_RPC_ENDPOINT,
)
from ._retry import RetryPolicy
from .history import HistoryFeed
from .solana_rpc import SolanaRpcClient

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singletons (created once, reused)
# ---------------------------------------------------------------------------
_rpc_client: Optional[SolanaRpcClient] = None
_history_feed: Optional[HistoryFeed] = None


def default_retry_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=RPC_MAX_RETRIES, backoff_base=RPC_BACKOFF_BASE)


def get_rpc_client() -> SolanaRpcClient:
    global _rpc_client
    if _rpc_client is None:
        _rpc_client = SolanaRpcClient(
            endpoint=SOLANA_RPC_ENDPOINT,
            timeout=REQUEST_TIMEOUT,
            retry_policy=default_retry_policy(),
            poll_interval=CONFIRM_POLL_INTERVAL,
        )
    return _rpc_client


def get_history_feed() -> HistoryFeed:
    global _history_feed
    if _history_feed is None:
        _history_feed = HistoryFeed(
            endpoint=HISTORY_RPC_ENDPOINT,
            program_address=MIXER_PROGRAM_ID,
            page_size=HISTORY_PAGE_SIZE,
            timeout=REQUEST_TIMEOUT * 2,
            retry_policy=default_retry_policy(),
        )
    return _history_feed


async def init_clients() -> None:
    """Eagerly create the shared clients."""
    get_rpc_client()
    get_history_feed()
    logger.info("Clients initialised (rpc=%s)", SOLANA_RPC_ENDPOINT.split("?")[0])


async def close_clients() -> None:
    """Close every shared client and drop the singletons."""
    global _rpc_client, _history_feed
    if _rpc_client is not None:
        await _rpc_client.close()
        _rpc_client = None
    if _history_feed is not None:
        await _history_feed.close()
        _history_feed = None
