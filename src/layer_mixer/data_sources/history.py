"""
Paginated transaction history for the mixer program.

Backed by Helius' ``getTransactionsForAddress`` JSON-RPC extension, which
returns full transactions in ascending block-time order together with an
opaque ``paginationToken``.  A response without a token is the last page.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..models import HistoryPage
from ._retry import RetryPolicy, async_rpc_post

logger = logging.getLogger(__name__)


class HistoryFeed:
    """Fetches one page of a program's successful transactions at a time."""

    def __init__(
        self,
        endpoint: str,
        program_address: str,
        *,
        page_size: int = 100,
        timeout: int = 30,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self.program_address = str(program_address)
        self.page_size = page_size
        self._timeout = timeout
        self._policy = retry_policy or RetryPolicy()
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def build_request(
        self, start_time: int, end_time: int, cursor: Optional[str] = None
    ) -> dict[str, Any]:
        options: dict[str, Any] = {
            "transactionDetails": "full",
            "encoding": "json",
            "maxSupportedTransactionVersion": 0,
            "sortOrder": "asc",
            "limit": self.page_size,
            "filters": {
                "blockTime": {"gte": start_time, "lte": end_time},
                "status": "succeeded",
            },
        }
        if cursor:
            options["paginationToken"] = cursor
        return {
            "jsonrpc": "2.0",
            "id": "mixer-sweep",
            "method": "getTransactionsForAddress",
            "params": [self.program_address, options],
        }

    async def fetch_page(
        self, start_time: int, end_time: int, cursor: Optional[str] = None
    ) -> HistoryPage:
        client = await self._get_client()
        result = await async_rpc_post(
            client,
            self._endpoint,
            json_payload=self.build_request(start_time, end_time, cursor),
            policy=self._policy,
            label="History feed",
        )
        result = result or {}
        items = result.get("data") or []
        next_cursor = result.get("paginationToken") or None
        logger.debug(
            "History page: %d transaction(s), more=%s", len(items), next_cursor is not None
        )
        return HistoryPage(items=items, next_cursor=next_cursor)
