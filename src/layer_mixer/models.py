"""
Pydantic models used throughout the layered transfer mixer.
"""

from __future__ import annotations

import math
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from config import DEFAULT_LAYER_COUNT
from .constants import LAYERS_DATA_LENGTH, MAX_LAYERS, MIN_LAYERS, U64_MAX
from .errors import (
    InvalidAddressError,
    InvalidAmountError,
    InvalidLayerCountError,
    InvalidRoundIdError,
)


# ---------------------------------------------------------------------------
# Transfer input
# ---------------------------------------------------------------------------
class TransferRequest(BaseModel):
    """One mediated transfer to be driven by the orchestrator."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    funder: Keypair = Field(..., description="Keypair paying for and signing the transfer")
    recipient: str = Field(..., description="Final recipient address (base58)")
    amount_lamports: int = Field(..., description="Amount delivered to the recipient")
    round_id: Optional[int] = Field(
        None, description="Scopes the staging accounts; assigned by the caller or scheduler"
    )
    layer_count: int = Field(DEFAULT_LAYER_COUNT, description="Hops including the final one")
    layers_data: Optional[bytes] = Field(
        None, description="Optional encrypted per-layer metadata"
    )

    @field_validator("recipient", mode="before")
    @classmethod
    def _check_recipient(cls, v: Any) -> str:
        if isinstance(v, Pubkey):
            return str(v)
        try:
            return str(Pubkey.from_string(v))
        except (ValueError, TypeError) as exc:
            raise InvalidAddressError(f"Invalid recipient address: {v!r}") from exc

    @field_validator("amount_lamports", mode="before")
    @classmethod
    def _check_amount(cls, v: Any) -> int:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise InvalidAmountError(f"Invalid transfer amount supplied: {v!r}")
        if isinstance(v, float):
            if not math.isfinite(v) or not v.is_integer():
                raise InvalidAmountError(f"Invalid transfer amount supplied: {v!r}")
            v = int(v)
        if v <= 0 or v > U64_MAX:
            raise InvalidAmountError(f"Invalid transfer amount supplied: {v!r}")
        return v

    @field_validator("layer_count")
    @classmethod
    def _check_layers(cls, v: int) -> int:
        if not MIN_LAYERS <= v <= MAX_LAYERS:
            raise InvalidLayerCountError(
                f"Invalid layer count {v}, must be between {MIN_LAYERS} and {MAX_LAYERS}"
            )
        return v

    @field_validator("round_id")
    @classmethod
    def _check_round_id(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 0 <= v <= U64_MAX:
            raise InvalidRoundIdError(f"Round id {v} does not fit in u64")
        return v

    @field_validator("layers_data")
    @classmethod
    def _check_layers_data(cls, v: Optional[bytes]) -> Optional[bytes]:
        if v is not None and len(v) != LAYERS_DATA_LENGTH:
            raise ValueError(
                f"Invalid encrypted data length {len(v)}. Expected {LAYERS_DATA_LENGTH} bytes."
            )
        return v


# ---------------------------------------------------------------------------
# Transfer output
# ---------------------------------------------------------------------------
class TransferOutcome(BaseModel):
    """Result of a single orchestrated transfer."""

    success: bool
    signature: Optional[str] = None
    error: Optional[str] = None
    index: Optional[int] = Field(None, description="Position in the originating batch")
    round_id: Optional[int] = None


class BatchError(BaseModel):
    index: int
    error: str


class BatchResult(BaseModel):
    """Aggregate of a batch run.  One entry per request, success or failure."""

    success: bool = Field(..., description="True only when every transfer settled")
    signatures: list[str] = Field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0
    errors: list[BatchError] = Field(default_factory=list)
    total_time_ms: int = 0

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    @property
    def status(self) -> Literal["all_succeeded", "partial_failure", "total_failure"]:
        if self.failure_count == 0:
            return "all_succeeded"
        if self.success_count == 0:
            return "total_failure"
        return "partial_failure"


# ---------------------------------------------------------------------------
# Wire record
# ---------------------------------------------------------------------------
class MediatedTransferInstruction(BaseModel):
    """Decoded ``multi_layer_transfer`` instruction payload."""

    discriminator: bytes
    transfer_lamports: int
    layers: int
    round_id: int
    layers_data: Optional[bytes] = None


# ---------------------------------------------------------------------------
# Ledger responses
# ---------------------------------------------------------------------------
class AccountInfo(BaseModel):
    lamports: int = 0
    owner: str = ""
    data: Any = None
    executable: bool = False


class LatestBlockhash(BaseModel):
    blockhash: str
    last_valid_block_height: int = 0


class SimulationResult(BaseModel):
    err: Any = None
    logs: list[str] = Field(default_factory=list)
    units_consumed: Optional[int] = None


# ---------------------------------------------------------------------------
# History / sweep
# ---------------------------------------------------------------------------
class HistoryPage(BaseModel):
    """One page of the program's transaction history."""

    items: list[dict[str, Any]] = Field(default_factory=list)
    next_cursor: Optional[str] = None


class ProtocolCall(BaseModel):
    """A historical ``multi_layer_transfer`` call recovered from the ledger."""

    signature: str = ""
    sender: str
    recipient: str
    transfer_lamports: int
    layers: int
    round_id: int
    block_time: Optional[int] = None


class SweepGroupError(BaseModel):
    group: int
    error: str


class SweepReport(BaseModel):
    """Summary of one reconciliation sweep."""

    transactions_scanned: int = 0
    transfers_found: int = 0
    skipped: int = 0
    close_instructions: int = 0
    already_closed: int = 0
    groups_submitted: int = 0
    groups_failed: int = 0
    signatures: list[str] = Field(default_factory=list)
    errors: list[SweepGroupError] = Field(default_factory=list)
    staging_addresses: list[str] = Field(
        default_factory=list, description="Staging accounts targeted for closing"
    )
