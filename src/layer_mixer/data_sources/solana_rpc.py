"""
Solana RPC client for the layered transfer mixer.

Uses the standard JSON-RPC interface over ``httpx`` with retry and
exponential backoff for reads.  Transactions are built and signed with
``solders`` and shipped base64-encoded.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Optional, Sequence

import httpx
from solders.transaction import Transaction

from ..errors import ConfirmationError, ConfirmationTimeoutError, NetworkError, SubmissionError
from ..models import AccountInfo, LatestBlockhash, SimulationResult
from ._retry import NO_RETRY, RetryPolicy, async_rpc_post

logger = logging.getLogger(__name__)

# Commitment levels in increasing strength
_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


def _account_from_value(value: Optional[dict[str, Any]]) -> Optional[AccountInfo]:
    if not value:
        return None
    return AccountInfo(
        lamports=int(value.get("lamports", 0)),
        owner=value.get("owner", ""),
        data=value.get("data"),
        executable=bool(value.get("executable", False)),
    )


class SolanaRpcClient:
    """Async Solana JSON-RPC client."""

    def __init__(
        self,
        endpoint: str,
        timeout: int = 15,
        retry_policy: Optional[RetryPolicy] = None,
        poll_interval: float = 0.5,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._id_counter = 0
        self._policy = retry_policy or RetryPolicy()
        self._poll_interval = poll_interval

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

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def get_account_info(self, address: str) -> Optional[AccountInfo]:
        """Return the account at *address*, or ``None`` if it does not exist."""
        result = await self._call(
            "getAccountInfo",
            [str(address), {"encoding": "base64", "commitment": "confirmed"}],
        )
        return _account_from_value((result or {}).get("value"))

    async def get_multiple_accounts(
        self, addresses: Sequence[str]
    ) -> list[Optional[AccountInfo]]:
        """Batch variant of ``get_account_info`` (at most 100 per call)."""
        out: list[Optional[AccountInfo]] = []
        keys = [str(a) for a in addresses]
        for start in range(0, len(keys), 100):
            result = await self._call(
                "getMultipleAccounts",
                [keys[start:start + 100], {"encoding": "base64", "commitment": "confirmed"}],
            )
            values = (result or {}).get("value") or []
            out.extend(_account_from_value(v) for v in values)
        return out

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        result = await self._call("getMinimumBalanceForRentExemption", [size])
        return int(result)

    async def wait_for_account(
        self, address: str, policy: RetryPolicy
    ) -> Optional[AccountInfo]:
        """Poll until a freshly created account becomes visible.

        Gives up after ``policy.max_attempts`` lookups and returns ``None``.
        """
        for attempt in range(policy.max_attempts):
            info = await self.get_account_info(address)
            if info is not None:
                return info
            if attempt < policy.max_attempts - 1:
                wait = policy.delay(attempt)
                logger.debug("Account %s not visible yet, retry in %.1fs", address, wait)
                await asyncio.sleep(wait)
        return None

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def get_latest_blockhash(self, commitment: str = "confirmed") -> LatestBlockhash:
        result = await self._call("getLatestBlockhash", [{"commitment": commitment}])
        value = result["value"]
        return LatestBlockhash(
            blockhash=value["blockhash"],
            last_valid_block_height=int(value.get("lastValidBlockHeight", 0)),
        )

    async def simulate_transaction(self, tx: Transaction) -> SimulationResult:
        result = await self._call(
            "simulateTransaction",
            [_encode_tx(tx), {"encoding": "base64", "commitment": "processed"}],
        )
        value = (result or {}).get("value") or {}
        return SimulationResult(
            err=value.get("err"),
            logs=value.get("logs") or [],
            units_consumed=value.get("unitsConsumed"),
        )

    async def send_transaction(self, tx: Transaction, *, skip_preflight: bool = False) -> str:
        """Submit a signed transaction once.  No automatic resend."""
        try:
            result = await self._call(
                "sendTransaction",
                [
                    _encode_tx(tx),
                    {
                        "encoding": "base64",
                        "skipPreflight": skip_preflight,
                        "preflightCommitment": "processed",
                        "maxRetries": 0,
                    },
                ],
                policy=NO_RETRY,
            )
        except NetworkError as exc:
            raise SubmissionError(str(exc)) from exc
        return str(result)

    async def get_signature_status(self, signature: str) -> Optional[dict[str, Any]]:
        result = await self._call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": False}],
        )
        values = (result or {}).get("value") or [None]
        return values[0]

    async def confirm_transaction(
        self,
        signature: str,
        commitment: str = "processed",
        *,
        timeout: float = 60.0,
    ) -> None:
        """Wait until *signature* reaches *commitment*.

        Raises ``ConfirmationError`` carrying the network's error verbatim
        when the transaction failed, ``ConfirmationTimeoutError`` when it is
        not seen within *timeout* seconds.
        """
        wanted = _COMMITMENT_RANK.get(commitment, 0)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            status = await self.get_signature_status(signature)
            if status is not None:
                if status.get("err") is not None:
                    raise ConfirmationError(signature, status["err"])
                reached = _COMMITMENT_RANK.get(status.get("confirmationStatus") or "processed", 0)
                if reached >= wanted:
                    return
            if loop.time() >= deadline:
                raise ConfirmationTimeoutError(signature, timeout)
            await asyncio.sleep(self._poll_interval)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _call(
        self,
        method: str,
        params: list[Any] | dict,
        *,
        policy: Optional[RetryPolicy] = None,
    ) -> Any:
        """JSON-RPC call.  Errors propagate as ``NetworkError`` / ``RpcError``."""
        self._id_counter += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._id_counter,
            "method": method,
            "params": params,
        }
        client = await self._get_client()
        return await async_rpc_post(
            client, self._endpoint, json_payload=payload,
            policy=policy or self._policy,
            label=f"Solana RPC ({method})",
        )


def _encode_tx(tx: Transaction) -> str:
    return base64.b64encode(bytes(tx)).decode()
