"""
Instruction builders for the mixer on-chain program.

Account ordering mirrors the program's Anchor account structs and must not
be reordered.  ``multi_layer_transfer`` always carries four staging
slots; transfers with fewer layers fill the spare slots with the staging
addresses of the unused layer indices, which the program never opens.
"""

from __future__ import annotations

from typing import Optional, Sequence

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from config import MIXER_PROGRAM_ID
from .codec import encode_close_staging, encode_mediated_transfer
from .constants import INITIALIZE_DISCRIMINATOR, STAGING_SLOTS, SYSTEM_PROGRAM
from .derivation import AddressLike, derive_staging_addresses, to_pubkey
from .errors import InvalidLayerCountError

_SYSTEM_PROGRAM = Pubkey.from_string(SYSTEM_PROGRAM)


def staging_slots(
    payer: AddressLike,
    recipient: AddressLike,
    round_id: int,
    program_id: AddressLike = MIXER_PROGRAM_ID,
) -> list[Pubkey]:
    """Addresses for the four staging slots of a transfer instruction.

    Slot ``i`` holds the layer ``i + 1`` staging PDA, so the first
    ``layer_count - 1`` slots are the accounts a transfer actually uses.
    """
    return derive_staging_addresses(STAGING_SLOTS + 1, payer, recipient, round_id, program_id)


def build_multi_layer_transfer_ix(
    payer: AddressLike,
    staging: Sequence[Pubkey],
    recipient: AddressLike,
    transfer_lamports: int,
    layers: int,
    round_id: int,
    layers_data: Optional[bytes] = None,
    program_id: AddressLike = MIXER_PROGRAM_ID,
) -> Instruction:
    if len(staging) != STAGING_SLOTS:
        raise InvalidLayerCountError(
            f"Transfer instruction needs {STAGING_SLOTS} staging accounts, got {len(staging)}"
        )
    accounts = [AccountMeta(to_pubkey(payer), is_signer=True, is_writable=True)]
    accounts += [AccountMeta(pk, is_signer=False, is_writable=True) for pk in staging]
    accounts += [
        AccountMeta(to_pubkey(recipient), is_signer=False, is_writable=True),
        AccountMeta(_SYSTEM_PROGRAM, is_signer=False, is_writable=False),
    ]
    data = encode_mediated_transfer(transfer_lamports, layers, round_id, layers_data)
    return Instruction(to_pubkey(program_id), data, accounts)


def build_close_staging_ix(
    closer: AddressLike,
    staging: AddressLike,
    original_payer: AddressLike,
    recipient: AddressLike,
    layer: int,
    round_id: int,
    program_id: AddressLike = MIXER_PROGRAM_ID,
) -> Instruction:
    """Close one staging account.

    The program re-derives the staging PDA from *original_payer* and
    *recipient*, so those must be the accounts of the original transfer.
    Only *closer* is writable besides the staging account itself.
    """
    accounts = [
        AccountMeta(to_pubkey(closer), is_signer=True, is_writable=True),
        AccountMeta(to_pubkey(staging), is_signer=False, is_writable=True),
        AccountMeta(to_pubkey(original_payer), is_signer=False, is_writable=False),
        AccountMeta(to_pubkey(recipient), is_signer=False, is_writable=False),
        AccountMeta(_SYSTEM_PROGRAM, is_signer=False, is_writable=False),
    ]
    return Instruction(to_pubkey(program_id), encode_close_staging(layer, round_id), accounts)


def build_initialize_ix(program_id: AddressLike = MIXER_PROGRAM_ID) -> Instruction:
    return Instruction(to_pubkey(program_id), INITIALIZE_DISCRIMINATOR, [])
