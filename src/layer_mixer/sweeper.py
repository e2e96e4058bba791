"""
Reconciliation sweeper — closes staging accounts left open by past transfers.

Walks the mixer program's successful transactions in a block-time window,
recovers every ``multi_layer_transfer`` call, re-derives its staging PDAs
and closes them in grouped transactions to reclaim their rent.

A record that cannot be parsed is logged and skipped; a group that fails
to land is recorded in the report.  Neither stops the sweep.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import base58
from solders.instruction import Instruction
from solders.keypair import Keypair

from config import CLOSE_IXS_PER_TX, MIXER_PROGRAM_ID
from .codec import NOT_RECOGNIZED, decode_mediated_transfer
from .data_sources.history import HistoryFeed
from .data_sources.solana_rpc import SolanaRpcClient
from .derivation import derive_staging_addresses, to_pubkey
from .errors import DecodeError, MalformedInstructionError, MixerError
from .logging_config import batch_id_ctx, generate_batch_id
from .models import ProtocolCall, SweepGroupError, SweepReport
from .program import build_close_staging_ix
from .submitter import TransactionSubmitter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Account layout of multi_layer_transfer
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AccountLayout:
    """Where the transfer instruction keeps the accounts the sweeper needs.

    v1 ordering: payer, staging1..4, recipient, system_program.  The
    recipient position is read off observed transactions; re-check it
    against the program source after any program upgrade.
    """

    version: str
    sender_index: int
    recipient_index: int
    min_accounts: int


ACCOUNT_LAYOUT_V1 = AccountLayout(version="v1", sender_index=0, recipient_index=-2, min_accounts=7)


def _account_keys(raw_tx: dict[str, Any]) -> list[str]:
    message = raw_tx["transaction"]["message"]
    keys = [k["pubkey"] if isinstance(k, dict) else k for k in message.get("accountKeys", [])]
    loaded = (raw_tx.get("meta") or {}).get("loadedAddresses") or {}
    keys.extend(loaded.get("writable") or [])
    keys.extend(loaded.get("readonly") or [])
    return keys


def _instruction_bytes(data: Any) -> bytes:
    """Instruction data as bytes: base58 (``json``), ``[b64, "base64"]`` or hex."""
    if isinstance(data, (list, tuple)) and len(data) == 2 and data[1] == "base64":
        try:
            return base64.b64decode(data[0], validate=True)
        except (ValueError, TypeError) as exc:
            raise MalformedInstructionError(f"Instruction data is not valid base64: {exc}") from exc
    if not isinstance(data, str):
        raise MalformedInstructionError(f"Unsupported instruction data: {type(data).__name__}")
    try:
        return base58.b58decode(data)
    except ValueError:
        pass
    try:
        return bytes.fromhex(data)
    except ValueError as exc:
        raise MalformedInstructionError("Instruction data is neither base58 nor hex") from exc


def parse_protocol_calls(
    raw_tx: dict[str, Any],
    program_id: str = MIXER_PROGRAM_ID,
    layout: AccountLayout = ACCOUNT_LAYOUT_V1,
) -> list[ProtocolCall]:
    """Return every ``multi_layer_transfer`` call in one historical transaction.

    Instructions of other programs, and mixer instructions with another
    discriminator (``initialize``, ``close_multi_layer_staging``), are
    ignored.  Raises ``DecodeError`` for a transfer whose payload or
    account list is malformed.
    """
    program_id = str(program_id)
    try:
        keys = _account_keys(raw_tx)
        message = raw_tx["transaction"]["message"]
        signatures = raw_tx["transaction"].get("signatures") or [""]
    except (KeyError, TypeError) as exc:
        raise DecodeError(f"Unexpected transaction shape: {exc}") from exc

    calls: list[ProtocolCall] = []
    for ix in message.get("instructions", []):
        try:
            program = ix.get("programId") or keys[ix["programIdIndex"]]
        except (KeyError, IndexError, TypeError):
            continue
        if program != program_id:
            continue

        decoded = decode_mediated_transfer(_instruction_bytes(ix.get("data", "")))
        if decoded is NOT_RECOGNIZED:
            continue

        try:
            accounts = [a if isinstance(a, str) else keys[a] for a in ix.get("accounts", [])]
        except (IndexError, TypeError) as exc:
            raise DecodeError(f"Account index out of range: {exc}") from exc
        if len(accounts) < layout.min_accounts:
            raise DecodeError(
                f"Transfer lists {len(accounts)} accounts, layout {layout.version} "
                f"needs {layout.min_accounts}"
            )

        calls.append(
            ProtocolCall(
                signature=signatures[0],
                sender=accounts[layout.sender_index],
                recipient=accounts[layout.recipient_index],
                transfer_lamports=decoded.transfer_lamports,
                layers=decoded.layers,
                round_id=decoded.round_id,
                block_time=raw_tx.get("blockTime"),
            )
        )
    return calls


def chunked(items: list, size: int) -> list[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]


# ---------------------------------------------------------------------------
# Sweeper
# ---------------------------------------------------------------------------

class ReconciliationSweeper:
    """Finds and closes abandoned staging accounts."""

    def __init__(
        self,
        rpc: SolanaRpcClient,
        feed: HistoryFeed,
        closer: Keypair,
        submitter: Optional[TransactionSubmitter] = None,
        *,
        program_id: str = MIXER_PROGRAM_ID,
        ixs_per_tx: int = CLOSE_IXS_PER_TX,
        skip_closed: bool = True,
        layout: AccountLayout = ACCOUNT_LAYOUT_V1,
    ) -> None:
        self.rpc = rpc
        self.feed = feed
        self.closer = closer
        self.submitter = submitter or TransactionSubmitter(rpc)
        self.program_id = str(to_pubkey(program_id))
        self.ixs_per_tx = max(1, ixs_per_tx)
        self.skip_closed = skip_closed
        self.layout = layout

    async def iter_history(self, start_time: int, end_time: int) -> AsyncIterator[dict[str, Any]]:
        """Yield raw transactions page by page until the feed has no cursor."""
        cursor: Optional[str] = None
        seen: set[str] = set()
        while True:
            page = await self.feed.fetch_page(start_time, end_time, cursor)
            for item in page.items:
                yield item
            if not page.next_cursor:
                return
            if page.next_cursor in seen:
                logger.warning("History feed repeated cursor %s – stopping", page.next_cursor)
                return
            seen.add(page.next_cursor)
            cursor = page.next_cursor

    def close_instructions(self, call: ProtocolCall) -> list[tuple[str, Instruction]]:
        """``(staging_address, close_ix)`` for each intermediate layer of *call*."""
        staging = derive_staging_addresses(
            call.layers, call.sender, call.recipient, call.round_id, self.program_id
        )
        return [
            (
                str(address),
                build_close_staging_ix(
                    self.closer.pubkey(),
                    address,
                    call.sender,
                    call.recipient,
                    layer,
                    call.round_id,
                    self.program_id,
                ),
            )
            for layer, address in enumerate(staging, start=1)
        ]

    async def collect(
        self, start_time: int, end_time: int, report: SweepReport
    ) -> list[tuple[str, Instruction]]:
        """Scan history and build close instructions, one entry per staging account."""
        pending: dict[str, Instruction] = {}
        async for raw_tx in self.iter_history(start_time, end_time):
            report.transactions_scanned += 1
            try:
                calls = parse_protocol_calls(raw_tx, self.program_id, self.layout)
                if not calls:
                    report.skipped += 1
                    continue
                for call in calls:
                    report.transfers_found += 1
                    for address, ix in self.close_instructions(call):
                        pending.setdefault(address, ix)
            except MixerError as exc:
                report.skipped += 1
                logger.warning("Skipping transaction %s: %s", _signature_of(raw_tx), exc)
        return list(pending.items())

    async def _drop_closed(
        self, entries: list[tuple[str, Instruction]], report: SweepReport
    ) -> list[tuple[str, Instruction]]:
        try:
            infos = await self.rpc.get_multiple_accounts([addr for addr, _ in entries])
        except MixerError as exc:
            logger.warning("Could not probe staging accounts, closing all: %s", exc)
            return entries
        live = [entry for entry, info in zip(entries, infos) if info is not None]
        report.already_closed += len(entries) - len(live)
        return live

    async def sweep(
        self,
        start_time: int,
        end_time: int,
        *,
        dry_run: bool = False,
        log_id: Optional[str] = None,
    ) -> SweepReport:
        token = batch_id_ctx.set(log_id or generate_batch_id())
        try:
            report = SweepReport()
            entries = await self.collect(start_time, end_time, report)
            if entries and self.skip_closed:
                entries = await self._drop_closed(entries, report)

            report.staging_addresses = [addr for addr, _ in entries]
            report.close_instructions = len(entries)
            groups = chunked([ix for _, ix in entries], self.ixs_per_tx)
            logger.info(
                "Sweep found %d transfer(s), %d account(s) to close in %d transaction(s)",
                report.transfers_found, len(entries), len(groups),
            )
            if not dry_run:
                await self._submit_groups(groups, report)
            return report
        finally:
            batch_id_ctx.reset(token)

    async def _submit_groups(self, groups: list[list[Instruction]], report: SweepReport) -> None:
        for number, group in enumerate(groups, start=1):
            label = f"close {number}/{len(groups)}"
            try:
                signature = await self.submitter.submit(group, self.closer, label=label)
            except MixerError as exc:
                report.groups_failed += 1
                report.errors.append(SweepGroupError(group=number, error=str(exc)))
                logger.warning("[%s] failed: %s", label, exc)
                continue
            report.groups_submitted += 1
            report.signatures.append(signature)
            logger.info("[%s] closed %d account(s): %s", label, len(group), signature)


def _signature_of(raw_tx: Any) -> str:
    try:
        return raw_tx["transaction"]["signatures"][0]
    except (KeyError, IndexError, TypeError):
        return "?"
