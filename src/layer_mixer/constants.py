"""
Centralized constants for the layered transfer mixer.

This file contains:
- Solana program addresses (immutable protocol constants)
- The mixer program's instruction discriminators and PDA seeds
- Protocol bounds that MUST stay synchronized with the on-chain program

Import from this module rather than duplicating values across modules.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Solana program addresses (part of the Solana protocol, never change)
# ---------------------------------------------------------------------------

SYSTEM_PROGRAM = "11111111111111111111111111111111"

LAMPORTS_PER_SOL = 1_000_000_000

# ---------------------------------------------------------------------------
# Mixer program ABI
# ---------------------------------------------------------------------------

# Anchor discriminators: sha256("global:<ix_name>")[:8]
MULTI_LAYER_TRANSFER_DISCRIMINATOR = bytes([33, 180, 115, 143, 95, 176, 164, 18])
CLOSE_STAGING_DISCRIMINATOR = bytes([129, 160, 206, 72, 166, 109, 70, 78])
INITIALIZE_DISCRIMINATOR = bytes([175, 175, 109, 31, 13, 152, 155, 237])

STAGING_SEED = b"staging"

MIN_LAYERS = 2
MAX_LAYERS = 5
# The transfer instruction always carries four staging account slots
STAGING_SLOTS = MAX_LAYERS - 1

# Encrypted layers_data payloads must be exactly this long
LAYERS_DATA_LENGTH = 96

U64_MAX = 2**64 - 1

# Staging accounts hold no data, so rent is quoted for a zero-byte account
STAGING_ACCOUNT_SIZE = 0
# Rent reserved per transfer for its staging accounts
STAGING_RENT_MULTIPLIER = 4
