"""
Staging account derivation.

Each intermediate hop of a layered transfer lands in a program derived
address seeded by::

    [b"staging", u8 layer, payer (32 bytes), recipient (32 bytes), u64-LE round_id]

The derivation is pure, so the orchestrator (to open the accounts) and the
sweeper (to close them) recompute the same addresses independently.  The
round id is what keeps two transfers between the same pair of wallets from
colliding.
"""

from __future__ import annotations

from typing import Union

from solders.pubkey import Pubkey

from config import MIXER_PROGRAM_ID
from .constants import STAGING_SEED, U64_MAX
from .errors import InvalidAddressError, InvalidLayerCountError, InvalidRoundIdError

AddressLike = Union[Pubkey, str, bytes]


def to_pubkey(value: AddressLike) -> Pubkey:
    """Coerce a base58 string, raw 32 bytes or ``Pubkey`` into a ``Pubkey``."""
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 32:
            raise InvalidAddressError(f"Address must be 32 bytes, got {len(value)}")
        return Pubkey.from_bytes(bytes(value))
    if isinstance(value, str):
        try:
            return Pubkey.from_string(value)
        except ValueError as exc:
            raise InvalidAddressError(f"Invalid address: {value!r}") from exc
    raise InvalidAddressError(f"Unsupported address type: {type(value).__name__}")


def staging_seeds(layer: int, payer: Pubkey, recipient: Pubkey, round_id: int) -> list[bytes]:
    if not 1 <= layer <= 255:
        raise InvalidLayerCountError(f"Staging layer {layer} out of range")
    if not 0 <= round_id <= U64_MAX:
        raise InvalidRoundIdError(f"Round id {round_id} does not fit in u64")
    return [
        STAGING_SEED,
        bytes([layer]),
        bytes(payer),
        bytes(recipient),
        round_id.to_bytes(8, "little"),
    ]


def derive_staging_address(
    layer: int,
    payer: AddressLike,
    recipient: AddressLike,
    round_id: int,
    program_id: AddressLike = MIXER_PROGRAM_ID,
) -> tuple[Pubkey, int]:
    """Return ``(address, bump)`` of the staging account for one layer."""
    seeds = staging_seeds(layer, to_pubkey(payer), to_pubkey(recipient), round_id)
    return Pubkey.find_program_address(seeds, to_pubkey(program_id))


def derive_staging_addresses(
    layer_count: int,
    payer: AddressLike,
    recipient: AddressLike,
    round_id: int,
    program_id: AddressLike = MIXER_PROGRAM_ID,
) -> list[Pubkey]:
    """Return the staging addresses for layers ``1..layer_count-1``.

    The last hop is the recipient itself and has no staging account.
    """
    if layer_count < 2:
        raise InvalidLayerCountError(f"Invalid layer count {layer_count}")
    payer_pk = to_pubkey(payer)
    recipient_pk = to_pubkey(recipient)
    program_pk = to_pubkey(program_id)
    return [
        Pubkey.find_program_address(
            staging_seeds(layer, payer_pk, recipient_pk, round_id), program_pk
        )[0]
        for layer in range(1, layer_count)
    ]
