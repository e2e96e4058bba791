"""
Shared utilities for the layered transfer mixer.

- ``sol_to_lamports``: amount normalisation used by the CLI
- ``load_keypair``: base58 / JSON-array secret key loading
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Union

import base58
from solders.keypair import Keypair

from .constants import LAMPORTS_PER_SOL
from .errors import InvalidAmountError, MixerInputError


def sol_to_lamports(amount: Union[int, float, str, Decimal]) -> int:
    """Convert a SOL amount to lamports.

    Values of at least one billion are taken to be lamports already, so
    both ``0.57`` and ``570000000`` mean 0.57 SOL.
    """
    try:
        value = Decimal(str(amount))
    except ArithmeticError as exc:
        raise InvalidAmountError(f"Invalid transfer amount supplied: {amount!r}") from exc
    if not value.is_finite() or value <= 0:
        raise InvalidAmountError(f"Invalid transfer amount supplied: {amount!r}")
    if value >= LAMPORTS_PER_SOL:
        lamports = int(value.to_integral_value())
    else:
        lamports = int((value * LAMPORTS_PER_SOL).to_integral_value())
    if lamports <= 0:
        raise InvalidAmountError(f"Amount {amount!r} rounds to zero lamports")
    return lamports


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL


def load_keypair(secret: str) -> Keypair:
    """Load a keypair from a base58 secret or a JSON byte array (solana-keygen)."""
    secret = secret.strip()
    if not secret:
        raise MixerInputError("Empty secret key")
    try:
        if secret.startswith("["):
            raw = bytes(json.loads(secret))
        else:
            raw = base58.b58decode(secret)
        return Keypair.from_bytes(raw)
    except (ValueError, TypeError) as exc:
        raise MixerInputError(f"Invalid secret key: {exc}") from exc
