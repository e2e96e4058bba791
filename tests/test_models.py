"""Tests for request validation and result models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError
from solders.pubkey import Pubkey

from layer_mixer.models import BatchError, BatchResult, TransferRequest


class TestTransferRequest:

    def test_defaults(self, funder, recipient):
        req = TransferRequest(funder=funder, recipient=recipient, amount_lamports=1000)
        assert req.layer_count == 5
        assert req.round_id is None
        assert req.layers_data is None

    def test_pubkey_recipient_normalised(self, funder, recipient):
        req = TransferRequest(
            funder=funder, recipient=Pubkey.from_string(recipient), amount_lamports=1
        )
        assert req.recipient == recipient

    def test_integral_float_amount_accepted(self, funder, recipient):
        req = TransferRequest(funder=funder, recipient=recipient, amount_lamports=5e8)
        assert req.amount_lamports == 500_000_000

    @pytest.mark.parametrize("amount", [0, -5, 1.5, float("nan"), "100", True, 2**64])
    def test_invalid_amount(self, funder, recipient, amount):
        with pytest.raises(ValidationError, match="Invalid transfer amount"):
            TransferRequest(funder=funder, recipient=recipient, amount_lamports=amount)

    @pytest.mark.parametrize("layers", [0, 1, 6, 255])
    def test_invalid_layer_count(self, funder, recipient, layers):
        with pytest.raises(ValidationError, match="Invalid layer count"):
            TransferRequest(
                funder=funder, recipient=recipient, amount_lamports=1, layer_count=layers
            )

    def test_invalid_recipient(self, funder):
        with pytest.raises(ValidationError, match="Invalid recipient address"):
            TransferRequest(funder=funder, recipient="nope", amount_lamports=1)

    def test_round_id_must_fit_u64(self, funder, recipient):
        with pytest.raises(ValidationError, match="does not fit in u64"):
            TransferRequest(
                funder=funder, recipient=recipient, amount_lamports=1, round_id=2**64
            )

    def test_layers_data_length(self, funder, recipient):
        with pytest.raises(ValidationError, match="Expected 96 bytes"):
            TransferRequest(
                funder=funder, recipient=recipient, amount_lamports=1, layers_data=b"\x00" * 95
            )


class TestBatchResult:

    def test_all_succeeded(self):
        result = BatchResult(success=True, signatures=["a", "b"], success_count=2)
        assert result.status == "all_succeeded"
        assert result.total == 2

    def test_partial_failure(self):
        result = BatchResult(
            success=False,
            signatures=["a"],
            success_count=1,
            failure_count=1,
            errors=[BatchError(index=1, error="boom")],
        )
        assert result.status == "partial_failure"

    def test_total_failure(self):
        result = BatchResult(
            success=False, failure_count=1, errors=[BatchError(index=0, error="boom")]
        )
        assert result.status == "total_failure"
        assert result.model_dump()["errors"] == [{"index": 0, "error": "boom"}]
