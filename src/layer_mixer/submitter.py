"""
Transaction submission pipeline shared by the orchestrator and the sweeper.

build → (optional simulate) → send → confirm.  No step retries on its
own; failures surface as ``NetworkError`` subclasses for the caller to
handle.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.transaction import Transaction

from config import CONFIRM_COMMITMENT, CONFIRM_TIMEOUT_SECONDS
from .data_sources.solana_rpc import SolanaRpcClient
from .errors import SimulationError

logger = logging.getLogger(__name__)


class TransactionSubmitter:
    """Signs, sends and confirms transactions through one RPC client."""

    def __init__(
        self,
        rpc: SolanaRpcClient,
        *,
        commitment: str = CONFIRM_COMMITMENT,
        confirm_timeout: float = CONFIRM_TIMEOUT_SECONDS,
        simulate_first: bool = False,
    ) -> None:
        self.rpc = rpc
        self.commitment = commitment
        self.confirm_timeout = confirm_timeout
        self.simulate_first = simulate_first

    async def build(
        self,
        instructions: Sequence[Instruction],
        payer: Keypair,
        signers: Optional[Sequence[Keypair]] = None,
    ) -> Transaction:
        latest = await self.rpc.get_latest_blockhash()
        blockhash = Hash.from_string(latest.blockhash)
        msg = Message.new_with_blockhash(list(instructions), payer.pubkey(), blockhash)
        tx = Transaction.new_unsigned(msg)
        tx.sign([payer, *(signers or [])], blockhash)
        return tx

    async def send(
        self,
        instructions: Sequence[Instruction],
        payer: Keypair,
        signers: Optional[Sequence[Keypair]] = None,
        *,
        label: str = "tx",
    ) -> str:
        """Build and send; return the signature without waiting."""
        tx = await self.build(instructions, payer, signers)

        if self.simulate_first:
            sim = await self.rpc.simulate_transaction(tx)
            if sim.err is not None:
                logger.error("[%s] simulation failed: %s", label, sim.err)
                for line in sim.logs:
                    logger.debug("[%s]   %s", label, line)
                raise SimulationError(sim.err, sim.logs)

        signature = await self.rpc.send_transaction(tx)
        logger.debug("[%s] sent %s", label, signature)
        return signature

    async def confirm(self, signature: str) -> None:
        await self.rpc.confirm_transaction(
            signature, self.commitment, timeout=self.confirm_timeout
        )

    async def submit(
        self,
        instructions: Sequence[Instruction],
        payer: Keypair,
        signers: Optional[Sequence[Keypair]] = None,
        *,
        label: str = "tx",
    ) -> str:
        """Build, send and confirm; return the transaction signature."""
        signature = await self.send(instructions, payer, signers, label=label)
        await self.confirm(signature)
        return signature
