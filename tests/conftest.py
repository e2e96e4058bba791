"""Shared test fixtures for the layered transfer mixer test suite."""

from __future__ import annotations

import sys
import os

# Ensure src/ is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from unittest.mock import AsyncMock, MagicMock

import pytest
from solders.keypair import Keypair

from layer_mixer.models import AccountInfo, LatestBlockhash

PROGRAM_ID = "BhdU135mdBb1V7jcKdAZoFueNMLMeAtAbBgUZehqRte7"
RECIPIENT = "mAWPeEHpPm7KpYKAdfmNJ8wme8fQdo5JJbdSsH83e2q"
BLOCKHASH = "11111111111111111111111111111111"
RENT_EXEMPT_MIN = 890_880


@pytest.fixture
def funder():
    return Keypair.from_seed(bytes(range(32)))


@pytest.fixture
def closer():
    return Keypair.from_seed(bytes([7] * 32))


@pytest.fixture
def recipient():
    return RECIPIENT


@pytest.fixture
def program_id():
    return PROGRAM_ID


@pytest.fixture
def mock_rpc():
    """A SolanaRpcClient stand-in with a funded payer and a clean ledger."""
    rpc = MagicMock()
    rpc.get_account_info = AsyncMock(return_value=AccountInfo(lamports=10 * 10**9))
    rpc.get_multiple_accounts = AsyncMock(return_value=[])
    rpc.get_minimum_balance_for_rent_exemption = AsyncMock(return_value=RENT_EXEMPT_MIN)
    rpc.get_latest_blockhash = AsyncMock(
        return_value=LatestBlockhash(blockhash=BLOCKHASH, last_valid_block_height=100)
    )
    rpc.send_transaction = AsyncMock(return_value="sig-1")
    rpc.confirm_transaction = AsyncMock(return_value=None)
    return rpc
