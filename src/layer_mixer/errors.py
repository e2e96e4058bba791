"""Central exception hierarchy for the layered transfer mixer."""
from __future__ import annotations

from typing import Any, Optional


class MixerError(Exception):
    """Base exception for all custom errors raised by the mixer client."""


# ---------------------------------------------------------------------------
# Input errors (caller precondition violations)
# ---------------------------------------------------------------------------

class MixerInputError(MixerError, ValueError):
    """Raised when a caller supplies a malformed value."""


class InvalidAmountError(MixerInputError):
    """Raised when a transfer amount is not a positive, finite lamport count."""


class InvalidLayerCountError(MixerInputError):
    """Raised when a layer count falls outside the protocol bounds."""


class InvalidAddressError(MixerInputError):
    """Raised when an address is not a valid 32-byte public key."""


class InvalidRoundIdError(MixerInputError):
    """Raised when a round id does not fit in an unsigned 64-bit integer."""


# ---------------------------------------------------------------------------
# Precondition errors (fatal, never retried)
# ---------------------------------------------------------------------------

class PreconditionError(MixerError):
    """Raised when on-chain state rules out a transfer before submission."""


class FunderNotFoundError(PreconditionError):
    def __init__(self, address: str) -> None:
        super().__init__(
            f"Funding account {address} does not exist on-chain. "
            "Please fund this account first with SOL before attempting transfers."
        )
        self.address = address


class InsufficientBalanceError(PreconditionError):
    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        self.shortfall = required - available
        super().__init__(
            f"Insufficient balance. Required: {required / 1e9:.6f} SOL, "
            f"Available: {available / 1e9:.6f} SOL, "
            f"Shortfall: {self.shortfall / 1e9:.6f} SOL"
        )


# ---------------------------------------------------------------------------
# Network errors (surfaced to the caller, retry is the caller's business)
# ---------------------------------------------------------------------------

class NetworkError(MixerError):
    """Raised when the RPC endpoint fails or rejects a request."""


class RpcError(NetworkError):
    """A JSON-RPC error body returned by the endpoint."""

    def __init__(self, method: str, error: Any) -> None:
        self.method = method
        self.error = error
        if isinstance(error, dict):
            self.code: Optional[int] = error.get("code")
            message = error.get("message", error)
        else:
            self.code = None
            message = error
        super().__init__(f"RPC error for {method}: {message}")


class SubmissionError(NetworkError):
    """Raised when a signed transaction could not be submitted."""


class SimulationError(NetworkError):
    """Raised when a transaction simulation reports an error."""

    def __init__(self, err: Any, logs: Optional[list[str]] = None) -> None:
        self.err = err
        self.logs = logs or []
        super().__init__(f"Simulation failed: {describe_program_error(err)}")


class ConfirmationError(NetworkError):
    """Raised when the network reports the transaction as failed."""

    def __init__(self, signature: str, err: Any) -> None:
        self.signature = signature
        self.err = err
        raw = str(err)
        friendly = describe_program_error(err)
        detail = raw if friendly == raw else f"{friendly} {raw}"
        super().__init__(f"Transaction {signature} failed: {detail}")


class ConfirmationTimeoutError(NetworkError):
    """Raised when a transaction is not confirmed within the allowed time."""

    def __init__(self, signature: str, timeout: float) -> None:
        self.signature = signature
        self.timeout = timeout
        super().__init__(f"Transaction {signature} not confirmed after {timeout:.1f}s")


# ---------------------------------------------------------------------------
# Decode errors (sweeper-local, skip and continue)
# ---------------------------------------------------------------------------

class DecodeError(MixerError):
    """Raised when a historical instruction cannot be interpreted."""


class MalformedInstructionError(DecodeError):
    """Raised when an instruction payload is shorter than its fixed layout."""


# ---------------------------------------------------------------------------
# On-chain program error codes
# ---------------------------------------------------------------------------

PROGRAM_ERRORS: dict[int, tuple[str, str]] = {
    6000: ("ZeroTransferAmount", "Transfer amount must be greater than zero"),
    6001: ("RecipientMustBeSystemProgramOwned", "Recipient account must be owned by the System Program"),
    6002: ("StagingAccountInUse", "Provided staging account is already in use"),
    6003: ("InvalidStagingAccount", "Invalid staging account"),
    6004: ("StagingMustSign", "Staging account must sign the transaction"),
    6005: ("InsufficientStagingBalance", "Insufficient balance in staging account"),
    6006: ("ArithmeticOverflow", "Arithmetic overflow"),
    6007: ("ArithmeticUnderflow", "Arithmetic underflow"),
    6008: ("InvalidLayerCount", "Invalid layer count, must be between 2 and 5"),
    6009: ("InvalidEncryptedDataLength", "Invalid encrypted data length. Expected 96 bytes."),
}


def describe_program_error(err: Any) -> str:
    """Render a transaction error, naming mixer program error codes.

    ``{"InstructionError": [0, {"Custom": 6008}]}`` becomes
    ``InvalidLayerCount: Invalid layer count, must be between 2 and 5
    (instruction 0)``.  Anything else is returned as ``str(err)``.
    """
    if isinstance(err, dict):
        ix_err = err.get("InstructionError")
        if isinstance(ix_err, (list, tuple)) and len(ix_err) == 2:
            index, detail = ix_err
            if isinstance(detail, dict) and detail.get("Custom") in PROGRAM_ERRORS:
                name, msg = PROGRAM_ERRORS[detail["Custom"]]
                return f"{name}: {msg} (instruction {index})"
    return str(err)
