"""Tests for the single-transfer orchestrator."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock

import pytest

from layer_mixer.codec import decode_mediated_transfer
from layer_mixer.errors import (
    ConfirmationError,
    FunderNotFoundError,
    InsufficientBalanceError,
    SubmissionError,
)
from layer_mixer.models import AccountInfo, TransferRequest
from layer_mixer.orchestrator import TransferOrchestrator
from layer_mixer.program import staging_slots

from conftest import RENT_EXEMPT_MIN


def _request(funder, recipient, **overrides):
    fields = dict(
        funder=funder, recipient=recipient, amount_lamports=10_000_000, round_id=1700000000000
    )
    fields.update(overrides)
    return TransferRequest(**fields)


@pytest.fixture
def orchestrator(mock_rpc, program_id):
    return TransferOrchestrator(
        mock_rpc, program_id=program_id, fee_buffer=20_000, probe_staging=False
    )


class TestTransfer:

    @pytest.mark.asyncio
    async def test_settles_and_returns_signature(self, orchestrator, mock_rpc, funder, recipient):
        signature = await orchestrator.transfer(_request(funder, recipient))

        assert signature == "sig-1"
        mock_rpc.send_transaction.assert_awaited_once()
        mock_rpc.confirm_transaction.assert_awaited_once()
        assert mock_rpc.confirm_transaction.call_args.args[:2] == ("sig-1", "processed")

    @pytest.mark.asyncio
    async def test_transaction_carries_one_signed_instruction(
        self, orchestrator, mock_rpc, funder, recipient, program_id
    ):
        await orchestrator.transfer(_request(funder, recipient, layer_count=3))

        tx = mock_rpc.send_transaction.call_args.args[0]
        assert len(tx.message.instructions) == 1
        assert tx.message.account_keys[0] == funder.pubkey()
        slots = staging_slots(funder.pubkey(), recipient, 1700000000000, program_id)
        for slot in slots:
            assert slot in tx.message.account_keys
        decoded = decode_mediated_transfer(bytes(tx.message.instructions[0].data))
        assert decoded.layers == 3
        assert decoded.round_id == 1700000000000
        assert decoded.transfer_lamports == 10_000_000

    @pytest.mark.asyncio
    async def test_missing_funder(self, orchestrator, mock_rpc, funder, recipient):
        mock_rpc.get_account_info = AsyncMock(return_value=None)

        with pytest.raises(FunderNotFoundError, match="does not exist on-chain"):
            await orchestrator.transfer(_request(funder, recipient))
        mock_rpc.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_insufficient_balance_reports_shortfall(
        self, orchestrator, mock_rpc, funder, recipient
    ):
        mock_rpc.get_account_info = AsyncMock(return_value=AccountInfo(lamports=1_000_000))

        with pytest.raises(InsufficientBalanceError) as excinfo:
            await orchestrator.transfer(_request(funder, recipient))

        required = 10_000_000 + 4 * RENT_EXEMPT_MIN + 20_000
        assert excinfo.value.required == required
        assert excinfo.value.shortfall == required - 1_000_000
        mock_rpc.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exact_balance_is_enough(self, orchestrator, mock_rpc, funder, recipient):
        required = 10_000_000 + 4 * RENT_EXEMPT_MIN + 20_000
        mock_rpc.get_account_info = AsyncMock(return_value=AccountInfo(lamports=required))

        assert await orchestrator.transfer(_request(funder, recipient)) == "sig-1"

    @pytest.mark.asyncio
    async def test_submission_failure_propagates(self, orchestrator, mock_rpc, funder, recipient):
        mock_rpc.send_transaction = AsyncMock(side_effect=SubmissionError("blockhash not found"))

        with pytest.raises(SubmissionError):
            await orchestrator.transfer(_request(funder, recipient))
        mock_rpc.confirm_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_confirmation_failure_names_program_error(
        self, orchestrator, mock_rpc, funder, recipient
    ):
        mock_rpc.confirm_transaction = AsyncMock(
            side_effect=ConfirmationError("sig-1", {"InstructionError": [0, {"Custom": 6002}]})
        )

        with pytest.raises(ConfirmationError, match="StagingAccountInUse"):
            await orchestrator.transfer(_request(funder, recipient))


class TestStagingProbe:

    @pytest.mark.asyncio
    async def test_existing_staging_logs_warning(self, mock_rpc, program_id, funder, recipient, caplog):
        orchestrator = TransferOrchestrator(mock_rpc, program_id=program_id, probe_staging=True)

        with caplog.at_level(logging.WARNING, logger="layer_mixer.orchestrator"):
            signature = await orchestrator.transfer(_request(funder, recipient, layer_count=3))

        assert signature == "sig-1"
        warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 2
        assert "staging1 already exists" in warnings[0]
        assert "staging2 already exists" in warnings[1]

    @pytest.mark.asyncio
    async def test_clean_staging_is_quiet(self, mock_rpc, program_id, funder, recipient, caplog):
        funded = AccountInfo(lamports=10 * 10**9)

        async def lookup(address):
            return funded if address == str(funder.pubkey()) else None

        mock_rpc.get_account_info = AsyncMock(side_effect=lookup)
        orchestrator = TransferOrchestrator(mock_rpc, program_id=program_id, probe_staging=True)

        with caplog.at_level(logging.WARNING, logger="layer_mixer.orchestrator"):
            await orchestrator.transfer(_request(funder, recipient))

        assert not [r for r in caplog.records if r.levelno == logging.WARNING]
        # funder lookup plus four staging probes
        assert mock_rpc.get_account_info.await_count == 5


class TestExecute:

    @pytest.mark.asyncio
    async def test_success_outcome(self, orchestrator, funder, recipient):
        outcome = await orchestrator.execute(_request(funder, recipient), index=3)

        assert outcome.success is True
        assert outcome.signature == "sig-1"
        assert outcome.index == 3
        assert outcome.round_id == 1700000000000

    @pytest.mark.asyncio
    async def test_failure_captured(self, orchestrator, mock_rpc, funder, recipient):
        mock_rpc.get_account_info = AsyncMock(return_value=None)

        outcome = await orchestrator.execute(_request(funder, recipient), index=0)

        assert outcome.success is False
        assert outcome.signature is None
        assert "does not exist on-chain" in outcome.error

    @pytest.mark.asyncio
    async def test_assigns_round_id(self, orchestrator, funder, recipient):
        outcome = await orchestrator.execute(_request(funder, recipient, round_id=None))

        assert outcome.success is True
        assert outcome.round_id is not None and outcome.round_id > 0


@pytest.mark.asyncio
async def test_mediated_transfer_uses_timestamp_round(orchestrator, mock_rpc, funder, recipient):
    signature = await orchestrator.mediated_transfer(funder, recipient, 5_000, layer_count=2)

    assert signature == "sig-1"
    tx = mock_rpc.send_transaction.call_args.args[0]
    decoded = decode_mediated_transfer(bytes(tx.message.instructions[0].data))
    assert decoded.layers == 2
    assert decoded.round_id > 1_600_000_000_000
