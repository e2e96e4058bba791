"""
Project configuration file for the layered transfer mixer.

This module centralises all user-modifiable settings such as RPC
endpoints, the mixer program id, batching limits and logging options.
You can edit these values directly or set environment variables to
override them.
"""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _parse_float(name: str, default: str, *, low: float = 0.0, high: float = 1.0) -> float:
    """Parse an env var as a float and validate it within [low, high]."""
    raw = os.getenv(name, default)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.error("Invalid value for %s: %r – using default %s", name, raw, default)
        value = float(default)
    if not (low <= value <= high):
        logger.warning("%s=%.4f is outside [%.1f, %.1f] – clamped", name, value, low, high)
        value = max(low, min(value, high))
    return value


def _parse_int(name: str, default: str, *, minimum: int = 1) -> int:
    """Parse an env var as an int and enforce a minimum."""
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.error("Invalid value for %s: %r – using default %s", name, raw, default)
        value = int(default)
    if value < minimum:
        logger.warning("%s=%d is below minimum %d – clamped", name, value, minimum)
        value = minimum
    return value


# ---------------------------------------------------------------------------
# Solana RPC
# ---------------------------------------------------------------------------
SOLANA_RPC_ENDPOINT: str = os.getenv(
    "SOLANA_RPC_ENDPOINT",
    "https://api.mainnet-beta.solana.com",
)
# getTransactionsForAddress is a Helius extension; point this at a Helius URL
HISTORY_RPC_ENDPOINT: str = os.getenv("HISTORY_RPC_ENDPOINT", SOLANA_RPC_ENDPOINT)

REQUEST_TIMEOUT: int = _parse_int("REQUEST_TIMEOUT", "15", minimum=1)
RPC_MAX_RETRIES: int = _parse_int("RPC_MAX_RETRIES", "3", minimum=1)
RPC_BACKOFF_BASE: float = _parse_float("RPC_BACKOFF_BASE", "1.5", low=0.0, high=30.0)

# ---------------------------------------------------------------------------
# Mixer program
# ---------------------------------------------------------------------------
MIXER_PROGRAM_ID: str = os.getenv(
    "MIXER_PROGRAM_ID",
    "BhdU135mdBb1V7jcKdAZoFueNMLMeAtAbBgUZehqRte7",
)

# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------
DEFAULT_LAYER_COUNT: int = _parse_int("DEFAULT_LAYER_COUNT", "5", minimum=2)
FEE_BUFFER_LAMPORTS: int = _parse_int("FEE_BUFFER_LAMPORTS", "20000", minimum=0)
BATCH_FEE_PER_TRANSFER_LAMPORTS: int = _parse_int(
    "BATCH_FEE_PER_TRANSFER_LAMPORTS", "10000", minimum=0
)
BATCH_CONCURRENCY: int = _parse_int("BATCH_CONCURRENCY", "20", minimum=1)
BATCH_COOLDOWN_MS: int = _parse_int("BATCH_COOLDOWN_MS", "500", minimum=0)

# ---------------------------------------------------------------------------
# Confirmation
# ---------------------------------------------------------------------------
CONFIRM_COMMITMENT: str = os.getenv("CONFIRM_COMMITMENT", "processed")
CONFIRM_TIMEOUT_SECONDS: float = _parse_float(
    "CONFIRM_TIMEOUT_SECONDS", "60", low=1.0, high=600.0
)
CONFIRM_POLL_INTERVAL: float = _parse_float(
    "CONFIRM_POLL_INTERVAL", "0.5", low=0.05, high=10.0
)

# ---------------------------------------------------------------------------
# Reconciliation sweep
# ---------------------------------------------------------------------------
# Empirical cap that keeps a close transaction under the packet size limit
CLOSE_IXS_PER_TX: int = _parse_int("CLOSE_IXS_PER_TX", "14", minimum=1)
HISTORY_PAGE_SIZE: int = _parse_int("HISTORY_PAGE_SIZE", "100", minimum=1)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# ---------------------------------------------------------------------------
# Sentry (error tracking)
# ---------------------------------------------------------------------------
SENTRY_DSN: str = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT: str = os.getenv("SENTRY_ENVIRONMENT", "production")
SENTRY_TRACES_SAMPLE_RATE: float = _parse_float(
    "SENTRY_TRACES_SAMPLE_RATE", "0.1", low=0.0, high=1.0
)
