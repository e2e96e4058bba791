"""Tests for the shared client singletons."""

from __future__ import annotations

import pytest

from layer_mixer.data_sources import _clients
from layer_mixer.data_sources.history import HistoryFeed
from layer_mixer.data_sources.solana_rpc import SolanaRpcClient


@pytest.fixture(autouse=True)
def _reset_singletons():
    _clients._rpc_client = None
    _clients._history_feed = None
    yield
    _clients._rpc_client = None
    _clients._history_feed = None


def test_rpc_client_is_shared():
    first = _clients.get_rpc_client()
    assert isinstance(first, SolanaRpcClient)
    assert _clients.get_rpc_client() is first


def test_history_feed_targets_program():
    feed = _clients.get_history_feed()
    assert isinstance(feed, HistoryFeed)
    assert feed.program_address == "BhdU135mdBb1V7jcKdAZoFueNMLMeAtAbBgUZehqRte7"


def test_default_retry_policy_from_config():
    policy = _clients.default_retry_policy()
    assert policy.max_attempts == 3
    assert policy.backoff_base == 1.5


@pytest.mark.asyncio
async def test_init_then_close():
    await _clients.init_clients()
    assert _clients._rpc_client is not None
    assert _clients._history_feed is not None

    await _clients.close_clients()
    assert _clients._rpc_client is None
    assert _clients._history_feed is None
