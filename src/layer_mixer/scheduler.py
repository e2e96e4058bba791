"""
Batch scheduler — fans many mediated transfers out in bounded waves.

Within a wave every transfer runs concurrently and in isolation: a failed
transfer is recorded, never cancels its siblings.  Wave N+1 starts only
after every task of wave N has settled and a fixed cool-down has elapsed.

Round ids are ``base_timestamp_ms + index`` so transfers issued from the
same clock reading still derive distinct staging accounts.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional, Sequence, Union

from pydantic import ValidationError
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from config import (
    BATCH_CONCURRENCY,
    BATCH_COOLDOWN_MS,
    BATCH_FEE_PER_TRANSFER_LAMPORTS,
    DEFAULT_LAYER_COUNT,
)
from .errors import FunderNotFoundError, InsufficientBalanceError, MixerError, MixerInputError
from .logging_config import batch_id_ctx, generate_batch_id
from .models import BatchError, BatchResult, TransferOutcome, TransferRequest
from .orchestrator import TransferOrchestrator, now_round_id
from .utils import lamports_to_sol

logger = logging.getLogger(__name__)


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        original = (err.get("ctx") or {}).get("error")
        parts.append(str(original) if original else err.get("msg", "invalid value"))
    return "; ".join(parts)


class BatchScheduler:
    """Runs batches of transfers through a ``TransferOrchestrator``."""

    def __init__(
        self,
        orchestrator: TransferOrchestrator,
        *,
        concurrency: int = BATCH_CONCURRENCY,
        cooldown_ms: int = BATCH_COOLDOWN_MS,
        fee_per_transfer: int = BATCH_FEE_PER_TRANSFER_LAMPORTS,
    ) -> None:
        self.orchestrator = orchestrator
        self.concurrency = concurrency
        self.cooldown_ms = cooldown_ms
        self.fee_per_transfer = fee_per_transfer

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run_batch(
        self,
        funder: Keypair,
        recipients: Sequence[Union[str, Pubkey]],
        amounts: Sequence[int],
        *,
        layer_count: int = DEFAULT_LAYER_COUNT,
        concurrency: Optional[int] = None,
        cooldown_ms: Optional[int] = None,
        base_round_id: Optional[int] = None,
        log_id: Optional[str] = None,
        preflight: bool = True,
    ) -> BatchResult:
        """Send ``amounts[i]`` lamports to ``recipients[i]`` for every *i*.

        Invalid entries fail at their index without affecting the rest.
        With *preflight* the funder must exist and cover the whole batch
        up front, otherwise every entry fails with that reason.
        """
        if len(recipients) != len(amounts):
            raise MixerInputError(
                f"{len(recipients)} recipients but {len(amounts)} amounts"
            )
        token = batch_id_ctx.set(log_id or generate_batch_id())
        try:
            started = time.perf_counter()
            base = base_round_id if base_round_id is not None else now_round_id()
            outcomes: dict[int, TransferOutcome] = {}
            pending: list[tuple[int, TransferRequest]] = []

            for index, (recipient, amount) in enumerate(zip(recipients, amounts)):
                try:
                    request = TransferRequest(
                        funder=funder,
                        recipient=recipient,
                        amount_lamports=amount,
                        round_id=base + index,
                        layer_count=layer_count,
                    )
                except ValidationError as exc:
                    message = _validation_message(exc)
                    logger.error("Transfer %d/%d rejected: %s", index + 1, len(amounts), message)
                    outcomes[index] = TransferOutcome(success=False, error=message, index=index)
                    continue
                pending.append((index, request))

            if preflight and pending:
                reason = await self._preflight(funder, [req for _, req in pending])
                if reason is not None:
                    for index, request in pending:
                        outcomes[index] = TransferOutcome(
                            success=False, error=reason, index=index, round_id=request.round_id
                        )
                    pending = []

            outcomes.update(
                await self._run_waves(
                    pending,
                    concurrency or self.concurrency,
                    self.cooldown_ms if cooldown_ms is None else cooldown_ms,
                    len(amounts),
                )
            )
            return self._aggregate(outcomes, len(amounts), started)
        finally:
            batch_id_ctx.reset(token)

    async def run_requests(
        self,
        requests: Sequence[TransferRequest],
        *,
        concurrency: Optional[int] = None,
        cooldown_ms: Optional[int] = None,
        base_round_id: Optional[int] = None,
        log_id: Optional[str] = None,
    ) -> BatchResult:
        """Run pre-built requests; those without a round id get ``base + index``."""
        token = batch_id_ctx.set(log_id or generate_batch_id())
        try:
            started = time.perf_counter()
            base = base_round_id if base_round_id is not None else now_round_id()
            indexed = [
                (
                    index,
                    req if req.round_id is not None
                    else req.model_copy(update={"round_id": base + index}),
                )
                for index, req in enumerate(requests)
            ]
            outcomes = await self._run_waves(
                indexed,
                concurrency or self.concurrency,
                self.cooldown_ms if cooldown_ms is None else cooldown_ms,
                len(requests),
            )
            return self._aggregate(outcomes, len(requests), started)
        finally:
            batch_id_ctx.reset(token)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _preflight(self, funder: Keypair, requests: list[TransferRequest]) -> Optional[str]:
        """Whole-batch funding check.  Returns a failure reason or ``None``."""
        payer = str(funder.pubkey())
        try:
            info = await self.orchestrator.rpc.get_account_info(payer)
            if info is None:
                raise FunderNotFoundError(payer)
            rent = await self.orchestrator.staging_rent()
            n = len(requests)
            required = (
                sum(r.amount_lamports for r in requests)
                + rent * n
                + self.fee_per_transfer * n
            )
            logger.info(
                "Funding account balance: %.6f SOL, total required: %.6f SOL",
                lamports_to_sol(info.lamports), lamports_to_sol(required),
            )
            if info.lamports < required:
                raise InsufficientBalanceError(required, info.lamports)
        except MixerError as exc:
            logger.error("Batch preflight failed: %s", exc)
            return str(exc)
        return None

    async def _run_waves(
        self,
        items: list[tuple[int, TransferRequest]],
        concurrency: int,
        cooldown_ms: int,
        total: int,
    ) -> dict[int, TransferOutcome]:
        outcomes: dict[int, TransferOutcome] = {}
        if not items:
            return outcomes
        concurrency = max(1, concurrency)
        waves = (len(items) + concurrency - 1) // concurrency
        logger.info(
            "Processing %d transfers in parallel batches of %d", len(items), concurrency
        )

        for start in range(0, len(items), concurrency):
            wave = items[start:start + concurrency]
            logger.info(
                "Processing batch %d/%d (%d transfers)",
                start // concurrency + 1, waves, len(wave),
            )
            results = await asyncio.gather(
                *(self.orchestrator.execute(req, index=index) for index, req in wave),
                return_exceptions=True,
            )
            for (index, req), result in zip(wave, results):
                if isinstance(result, BaseException):
                    result = TransferOutcome(
                        success=False,
                        error=str(result) or type(result).__name__,
                        index=index,
                        round_id=req.round_id,
                    )
                outcomes[index] = result
                if result.success:
                    logger.info("Transfer %d/%d succeeded: %s", index + 1, total, result.signature)
                else:
                    logger.error("Transfer %d/%d failed: %s", index + 1, total, result.error)

            if start + concurrency < len(items) and cooldown_ms > 0:
                await asyncio.sleep(cooldown_ms / 1000)
        return outcomes

    @staticmethod
    def _aggregate(
        outcomes: dict[int, TransferOutcome], total: int, started: float
    ) -> BatchResult:
        signatures: list[str] = []
        errors: list[BatchError] = []
        for index in sorted(outcomes):
            outcome = outcomes[index]
            if outcome.success and outcome.signature:
                signatures.append(outcome.signature)
            else:
                errors.append(BatchError(index=index, error=outcome.error or "Unknown error"))
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "Completed %d/%d transfers successfully in %.2fs",
            len(signatures), total, elapsed_ms / 1000,
        )
        return BatchResult(
            success=len(signatures) == total,
            signatures=signatures,
            success_count=len(signatures),
            failure_count=len(errors),
            errors=errors,
            total_time_ms=elapsed_ms,
        )
