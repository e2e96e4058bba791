"""
Command line interface for the layered transfer mixer.

Usage::

    python src/main.py transfer --recipient <ADDRESS> --amount 0.57
    python src/main.py batch --recipients-file payouts.csv
    python src/main.py sweep --start 1700000000 --end 1700086400 --dry-run

The signing key is read from the ``PRIVATE_KEY`` environment variable
(base58 or a solana-keygen JSON array).
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
import time

# Ensure ``src/`` is on the import path
sys.path.insert(0, os.path.dirname(__file__))

from pydantic import ValidationError

from config import BATCH_CONCURRENCY, BATCH_COOLDOWN_MS, DEFAULT_LAYER_COUNT
from layer_mixer import BatchScheduler, ReconciliationSweeper, TransferOrchestrator
from layer_mixer.data_sources._clients import (
    close_clients,
    get_history_feed,
    get_rpc_client,
    init_clients,
)
from layer_mixer.errors import InvalidAmountError, MixerError
from layer_mixer.logging_config import init_error_tracking, setup_logging
from layer_mixer.utils import load_keypair, sol_to_lamports


def _load_signer():
    secret = os.getenv("PRIVATE_KEY", "")
    if not secret:
        raise SystemExit("PRIVATE_KEY is not set")
    return load_keypair(secret)


def _read_recipients(path: str) -> tuple[list[str], list]:
    """Parse ``address,amount`` lines; ``#`` starts a comment.

    An unparseable amount is passed through as-is so the batch fails that
    entry alone.
    """
    recipients: list[str] = []
    amounts: list = []
    with open(path, encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, 1):
            line = line.split("#", 1)[0].strip()
            if not line:
                continue
            try:
                address, amount = (part.strip() for part in line.split(","))
            except ValueError:
                raise SystemExit(f"{path}:{lineno}: expected 'address,amount'")
            recipients.append(address)
            try:
                amounts.append(sol_to_lamports(amount))
            except InvalidAmountError:
                amounts.append(amount)
    return recipients, amounts


async def _run(args: argparse.Namespace) -> int:
    """Async entry point.  Returns the process exit code."""
    signer = _load_signer()
    await init_clients()
    try:
        rpc = get_rpc_client()
        orchestrator = TransferOrchestrator(rpc)

        if args.command == "transfer":
            try:
                signature = await orchestrator.mediated_transfer(
                    signer,
                    args.recipient,
                    sol_to_lamports(args.amount),
                    layer_count=args.layers,
                )
            except (MixerError, ValidationError) as exc:
                print(f"Transfer failed: {exc}", file=sys.stderr)
                return 1
            print(signature)
            return 0

        if args.command == "batch":
            recipients, amounts = _read_recipients(args.recipients_file)
            scheduler = BatchScheduler(orchestrator)
            result = await scheduler.run_batch(
                signer,
                recipients,
                amounts,
                layer_count=args.layers,
                concurrency=args.concurrency,
                cooldown_ms=args.cooldown_ms,
            )
            if args.as_json:
                print(result.model_dump_json(indent=2))
            else:
                print("=" * 60)
                print("  Batch transfer – Results")
                print("=" * 60)
                print(f"  Status    : {result.status}")
                print(f"  Succeeded : {result.success_count}/{result.total}")
                print(f"  Time      : {result.total_time_ms / 1000:.2f}s")
                for err in result.errors:
                    print(f"    #{err.index:<4} {err.error}")
                print("=" * 60)
            return 0 if result.success else 1

        sweeper = ReconciliationSweeper(rpc, get_history_feed(), signer)
        end = args.end if args.end is not None else int(time.time())
        report = await sweeper.sweep(args.start, end, dry_run=args.dry_run)
        if args.as_json:
            print(report.model_dump_json(indent=2))
        else:
            print("=" * 60)
            print("  Staging sweep – Results")
            print("=" * 60)
            print(f"  Transactions scanned : {report.transactions_scanned}")
            print(f"  Transfers found      : {report.transfers_found}")
            print(f"  Already closed       : {report.already_closed}")
            print(f"  Accounts to close    : {report.close_instructions}")
            print(f"  Groups ok / failed   : {report.groups_submitted} / {report.groups_failed}")
            print("=" * 60)
        return 0 if report.groups_failed == 0 else 1
    finally:
        await close_clients()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Route SOL through layered staging accounts and sweep leftovers"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_transfer = sub.add_parser("transfer", help="Send one mediated transfer")
    p_transfer.add_argument("--recipient", required=True, help="Recipient address")
    p_transfer.add_argument("--amount", required=True, help="Amount in SOL")
    p_transfer.add_argument("--layers", type=int, default=DEFAULT_LAYER_COUNT)

    p_batch = sub.add_parser("batch", help="Send many transfers in waves")
    p_batch.add_argument(
        "--recipients-file", required=True, help="CSV of 'address,amount_sol' lines"
    )
    p_batch.add_argument("--layers", type=int, default=DEFAULT_LAYER_COUNT)
    p_batch.add_argument("--concurrency", type=int, default=BATCH_CONCURRENCY)
    p_batch.add_argument("--cooldown-ms", type=int, default=BATCH_COOLDOWN_MS)

    p_sweep = sub.add_parser("sweep", help="Close staging accounts left by past transfers")
    p_sweep.add_argument("--start", type=int, required=True, help="Window start (unix seconds)")
    p_sweep.add_argument("--end", type=int, default=None, help="Window end (default: now)")
    p_sweep.add_argument("--dry-run", action="store_true", help="Build but do not submit")

    for p in (p_batch, p_sweep):
        p.add_argument(
            "--json", action="store_true", dest="as_json", help="Output result as raw JSON"
        )
    return parser


def main() -> None:
    """Entry point for the CLI."""
    args = build_parser().parse_args()

    setup_logging()
    init_error_tracking()
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
