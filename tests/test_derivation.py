"""Tests for staging account derivation."""

from __future__ import annotations

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from layer_mixer.derivation import (
    derive_staging_address,
    derive_staging_addresses,
    staging_seeds,
    to_pubkey,
)
from layer_mixer.errors import InvalidAddressError, InvalidLayerCountError, InvalidRoundIdError


class TestToPubkey:

    def test_accepts_string(self, recipient):
        assert str(to_pubkey(recipient)) == recipient

    def test_accepts_bytes(self, recipient):
        raw = bytes(Pubkey.from_string(recipient))
        assert str(to_pubkey(raw)) == recipient

    def test_passthrough(self, funder):
        pk = funder.pubkey()
        assert to_pubkey(pk) is pk

    def test_wrong_length_bytes(self):
        with pytest.raises(InvalidAddressError):
            to_pubkey(b"\x01" * 31)

    def test_bad_base58(self):
        with pytest.raises(InvalidAddressError):
            to_pubkey("not-a-valid-address-0OIl")

    def test_unsupported_type(self):
        with pytest.raises(InvalidAddressError):
            to_pubkey(12345)  # type: ignore[arg-type]


class TestStagingSeeds:

    def test_layout(self, funder, recipient):
        payer = funder.pubkey()
        seeds = staging_seeds(3, payer, Pubkey.from_string(recipient), 1700000000)
        assert seeds[0] == b"staging"
        assert seeds[1] == b"\x03"
        assert seeds[2] == bytes(payer)
        assert seeds[3] == bytes(Pubkey.from_string(recipient))
        assert seeds[4] == (1700000000).to_bytes(8, "little")

    def test_layer_out_of_range(self, funder, recipient):
        with pytest.raises(InvalidLayerCountError):
            staging_seeds(0, funder.pubkey(), Pubkey.from_string(recipient), 1)

    def test_round_id_out_of_range(self, funder, recipient):
        with pytest.raises(InvalidRoundIdError):
            staging_seeds(1, funder.pubkey(), Pubkey.from_string(recipient), 2**64)


class TestDeriveStagingAddress:

    def test_deterministic(self, funder, recipient, program_id):
        a = derive_staging_address(1, funder.pubkey(), recipient, 42, program_id)
        b = derive_staging_address(1, str(funder.pubkey()), recipient, 42, program_id)
        assert a == b

    def test_matches_find_program_address(self, funder, recipient, program_id):
        payer = funder.pubkey()
        rcpt = Pubkey.from_string(recipient)
        expected = Pubkey.find_program_address(
            [b"staging", bytes([2]), bytes(payer), bytes(rcpt), (99).to_bytes(8, "little")],
            Pubkey.from_string(program_id),
        )
        assert derive_staging_address(2, payer, rcpt, 99, program_id) == expected

    def test_address_is_off_curve(self, funder, recipient, program_id):
        address, bump = derive_staging_address(1, funder.pubkey(), recipient, 7, program_id)
        assert not address.is_on_curve()
        assert 0 <= bump <= 255

    def test_distinct_round_ids_never_collide(self, funder, recipient, program_id):
        seen: set[Pubkey] = set()
        for round_id in range(1700000000000, 1700000000020):
            for address in derive_staging_addresses(5, funder.pubkey(), recipient, round_id, program_id):
                assert address not in seen
                seen.add(address)
        assert len(seen) == 20 * 4

    def test_payer_and_recipient_scope_address(self, funder, recipient, program_id):
        other = Keypair.from_seed(bytes([9] * 32)).pubkey()
        mine = derive_staging_address(1, funder.pubkey(), recipient, 5, program_id)[0]
        theirs = derive_staging_address(1, other, recipient, 5, program_id)[0]
        swapped = derive_staging_address(1, recipient, funder.pubkey(), 5, program_id)[0]
        assert len({mine, theirs, swapped}) == 3


class TestDeriveStagingAddresses:

    @pytest.mark.parametrize("layer_count", [2, 3, 4, 5])
    def test_one_address_per_intermediate_layer(self, funder, recipient, program_id, layer_count):
        addresses = derive_staging_addresses(layer_count, funder.pubkey(), recipient, 1, program_id)
        assert len(addresses) == layer_count - 1
        assert len(set(addresses)) == layer_count - 1

    def test_order_follows_layer_index(self, funder, recipient, program_id):
        addresses = derive_staging_addresses(5, funder.pubkey(), recipient, 11, program_id)
        for layer, address in enumerate(addresses, start=1):
            assert address == derive_staging_address(layer, funder.pubkey(), recipient, 11, program_id)[0]

    def test_shorter_chain_is_prefix(self, funder, recipient, program_id):
        full = derive_staging_addresses(5, funder.pubkey(), recipient, 3, program_id)
        short = derive_staging_addresses(3, funder.pubkey(), recipient, 3, program_id)
        assert short == full[:2]

    def test_rejects_single_layer(self, funder, recipient, program_id):
        with pytest.raises(InvalidLayerCountError):
            derive_staging_addresses(1, funder.pubkey(), recipient, 3, program_id)
