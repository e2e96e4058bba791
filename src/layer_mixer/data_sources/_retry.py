"""
Shared async JSON-RPC transport with a caller-supplied retry policy.

Used by the ledger client and the history feed.  Read calls retry on
HTTP 429 / 5xx and transport errors with exponential backoff; callers
that must not resend (``sendTransaction``) pass ``NO_RETRY``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..errors import NetworkError, RpcError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with exponential backoff.

    ``delay(n)`` is the wait after the *n*-th failed attempt (0-based):
    ``backoff_base * 2**n`` capped at ``max_delay``.
    """

    max_attempts: int = 3
    backoff_base: float = 1.5
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        return min(self.max_delay, self.backoff_base * (2 ** attempt))


NO_RETRY = RetryPolicy(max_attempts=1, backoff_base=0.0)


def _parse_retry_after(resp: httpx.Response, default: float) -> float:
    """Extract wait time from a ``Retry-After`` header, or use *default*.

    Only the integer-seconds form is handled.
    """
    raw = resp.headers.get("retry-after")
    if raw is not None:
        try:
            return max(float(raw), 0.5)
        except (ValueError, TypeError):
            pass
    return default


async def async_rpc_post(
    client: httpx.AsyncClient,
    url: str,
    *,
    json_payload: dict[str, Any],
    policy: RetryPolicy = RetryPolicy(),
    label: str = "RPC",
) -> Any:
    """POST a JSON-RPC *json_payload* and return its ``result``.

    Raises ``RpcError`` for an error body (never retried) and
    ``NetworkError`` once the policy's attempts are exhausted or the
    endpoint refuses the request (HTTP 4xx).
    """
    method = json_payload.get("method", "?")
    last_error = "no attempt made"
    for attempt in range(policy.max_attempts):
        final = attempt == policy.max_attempts - 1
        try:
            resp = await client.post(url, json=json_payload)
            if resp.status_code == 429:
                last_error = "rate-limited (429)"
                if final:
                    break
                wait = _parse_retry_after(resp, policy.delay(attempt))
                logger.warning("%s rate-limited, retry in %.1fs", label, wait)
                await asyncio.sleep(wait)
                continue
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            last_error = f"HTTP {status}"
            if status < 500:
                raise NetworkError(f"{label}: HTTP {status} for {method}") from exc
            logger.warning("%s HTTP %s", label, status)
        except httpx.RequestError as exc:
            last_error = str(exc) or type(exc).__name__
            logger.warning("%s request failed: %s", label, last_error)
        except ValueError:
            last_error = "response body is not JSON"
            logger.warning("%s returned a non-JSON body for %s", label, method)
        else:
            if isinstance(body, dict) and "error" in body:
                raise RpcError(method, body["error"])
            if isinstance(body, dict) and "result" in body:
                return body["result"]
            return body
        if not final:
            await asyncio.sleep(policy.delay(attempt))
    raise NetworkError(f"{label}: {method} failed after {policy.max_attempts} attempt(s): {last_error}")
