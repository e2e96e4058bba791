"""
Transfer orchestrator — drives one mediated transfer through its staging layers.

A transfer moves through::

    VALIDATING → DERIVING → SUBMITTING → CONFIRMING → SETTLED
                                                   ↘ FAILED

- VALIDATING: the funder must exist on-chain and hold
  ``amount + 4 × rent_exempt_minimum + fee_buffer`` lamports.
- DERIVING: the ``layer_count - 1`` staging PDAs are computed and, if
  enabled, probed for leftover balances (warning only).
- SUBMITTING: one ``multi_layer_transfer`` instruction signed by the funder.
- CONFIRMING: wait for ``processed`` commitment, bounded by a timeout.

Nothing here retries.  ``transfer`` raises, ``execute`` captures the
failure into a ``TransferOutcome``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from config import DEFAULT_LAYER_COUNT, FEE_BUFFER_LAMPORTS, MIXER_PROGRAM_ID
from .constants import STAGING_ACCOUNT_SIZE, STAGING_RENT_MULTIPLIER
from .data_sources.solana_rpc import SolanaRpcClient
from .derivation import to_pubkey
from .errors import FunderNotFoundError, InsufficientBalanceError, MixerError
from .models import TransferOutcome, TransferRequest
from .program import build_multi_layer_transfer_ix, staging_slots
from .submitter import TransactionSubmitter

logger = logging.getLogger(__name__)


class TransferState(str, Enum):
    VALIDATING = "validating"
    DERIVING = "deriving"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    SETTLED = "settled"
    FAILED = "failed"


def now_round_id() -> int:
    """Round id for a one-off transfer: current epoch milliseconds."""
    return int(time.time() * 1000)


class TransferOrchestrator:
    """Runs single mediated transfers against one RPC endpoint."""

    def __init__(
        self,
        rpc: SolanaRpcClient,
        submitter: Optional[TransactionSubmitter] = None,
        *,
        program_id: str = MIXER_PROGRAM_ID,
        fee_buffer: int = FEE_BUFFER_LAMPORTS,
        probe_staging: bool = True,
    ) -> None:
        self.rpc = rpc
        self.submitter = submitter or TransactionSubmitter(rpc)
        self.program_id = to_pubkey(program_id)
        self.fee_buffer = fee_buffer
        self.probe_staging = probe_staging

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def transfer(self, request: TransferRequest, *, index: Optional[int] = None) -> str:
        """Run *request* to settlement and return its signature.

        Raises ``PreconditionError`` or ``NetworkError`` on failure.
        """
        tag = f"Transfer {index}" if index is not None else "Transfer"
        round_id = request.round_id if request.round_id is not None else now_round_id()
        state = TransferState.VALIDATING
        try:
            self._enter(tag, state)
            await self.validate(request)

            state = self._enter(tag, TransferState.DERIVING)
            payer = request.funder.pubkey()
            slots = staging_slots(payer, request.recipient, round_id, self.program_id)
            staging = slots[:request.layer_count - 1]
            logger.info("[%s]: roundId: %d, recipient: %s", tag, round_id, request.recipient)
            if self.probe_staging:
                await self._probe_staging(tag, staging)

            state = self._enter(tag, TransferState.SUBMITTING)
            ix = build_multi_layer_transfer_ix(
                payer,
                slots,
                request.recipient,
                request.amount_lamports,
                request.layer_count,
                round_id,
                request.layers_data,
                self.program_id,
            )
            signature = await self.submitter.send([ix], request.funder, label=tag)
            logger.info("[%s]: Mediated Transfer Signature: %s", tag, signature)

            state = self._enter(tag, TransferState.CONFIRMING)
            await self.submitter.confirm(signature)
        except MixerError as exc:
            logger.error("[%s]: failed while %s: %s", tag, state.value, exc)
            self._enter(tag, TransferState.FAILED)
            raise

        self._enter(tag, TransferState.SETTLED)
        return signature

    async def execute(
        self, request: TransferRequest, *, index: Optional[int] = None
    ) -> TransferOutcome:
        """Like ``transfer`` but never raises a mixer error."""
        if request.round_id is None:
            request = request.model_copy(update={"round_id": now_round_id()})
        try:
            signature = await self.transfer(request, index=index)
        except MixerError as exc:
            return TransferOutcome(
                success=False, error=str(exc), index=index, round_id=request.round_id
            )
        return TransferOutcome(
            success=True, signature=signature, index=index, round_id=request.round_id
        )

    async def mediated_transfer(
        self,
        funder: Keypair,
        recipient: str | Pubkey,
        amount_lamports: int,
        *,
        layer_count: int = DEFAULT_LAYER_COUNT,
    ) -> str:
        """One-off transfer with a timestamp round id."""
        request = TransferRequest(
            funder=funder,
            recipient=recipient,
            amount_lamports=amount_lamports,
            round_id=now_round_id(),
            layer_count=layer_count,
        )
        return await self.transfer(request)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def staging_rent(self) -> int:
        rent = await self.rpc.get_minimum_balance_for_rent_exemption(STAGING_ACCOUNT_SIZE)
        return rent * STAGING_RENT_MULTIPLIER

    async def validate(self, request: TransferRequest) -> None:
        payer = request.funder.pubkey()
        info = await self.rpc.get_account_info(str(payer))
        if info is None:
            raise FunderNotFoundError(str(payer))

        required = request.amount_lamports + await self.staging_rent() + self.fee_buffer
        if info.lamports < required:
            raise InsufficientBalanceError(required, info.lamports)

    async def _probe_staging(self, tag: str, staging: list[Pubkey]) -> None:
        infos = await asyncio.gather(*(self.rpc.get_account_info(str(pk)) for pk in staging))
        for layer, info in enumerate(infos, start=1):
            if info is not None and info.lamports > 0:
                logger.warning(
                    "[%s]: Warning: staging%d already exists with %d lamports",
                    tag, layer, info.lamports,
                )

    @staticmethod
    def _enter(tag: str, state: TransferState) -> TransferState:
        logger.debug("[%s]: -> %s", tag, state.value)
        return state
