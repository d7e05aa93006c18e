"""
Ballot Signature Tests

Tests for the EIP-712 ballot message and signer verification.
"""

import json

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import Web3

from rpgf.errors import InvalidSignatureError
from rpgf.services.ballot_signature import (
    ballot_typed_data,
    canonical_ballot_json,
    hash_ballot_votes,
    recover_ballot_signer,
    verify_ballot_signature,
)

ALLOCATIONS = {"app-2": 30, "app-1": 20, "app-3": 5}


@pytest.fixture
def voter_account():
    return Account.create()


def sign_ballot(account, allocations, chain_id=10) -> str:
    signable = encode_typed_data(full_message=ballot_typed_data(allocations, chain_id))
    return Web3.to_hex(account.sign_message(signable).signature)


# =============================================================================
# Message
# =============================================================================


class TestBallotMessage:
    """Tests for the signed ballot summary."""

    def test_canonical_json_sorts_keys(self):
        assert canonical_ballot_json(ALLOCATIONS) == '{"app-1":20,"app-2":30,"app-3":5}'

    def test_canonical_json_round_trips(self):
        assert json.loads(canonical_ballot_json(ALLOCATIONS)) == ALLOCATIONS

    def test_hash_independent_of_insertion_order(self):
        reordered = dict(sorted(ALLOCATIONS.items()))
        assert hash_ballot_votes(ALLOCATIONS) == hash_ballot_votes(reordered)

    def test_hash_is_keccak_of_canonical_json(self):
        expected = Web3.to_hex(Web3.keccak(text=canonical_ballot_json(ALLOCATIONS)))
        assert hash_ballot_votes(ALLOCATIONS) == expected

    def test_typed_data_summary(self):
        typed = ballot_typed_data(ALLOCATIONS, 10)

        assert typed["primaryType"] == "Ballot"
        assert typed["domain"] == {"name": "Sign votes", "version": "1", "chainId": 10}
        assert typed["message"]["total_votes"] == 55
        assert typed["message"]["project_count"] == 3
        assert typed["message"]["hashed_votes"] == hash_ballot_votes(ALLOCATIONS)


# =============================================================================
# Verification
# =============================================================================


class TestVerifyBallotSignature:
    """Tests for verify_ballot_signature."""

    def test_valid_signature(self, voter_account):
        signature = sign_ballot(voter_account, ALLOCATIONS)

        recovered = verify_ballot_signature(voter_account.address, ALLOCATIONS, signature, 10)

        assert recovered == voter_account.address

    def test_address_comparison_ignores_case(self, voter_account):
        signature = sign_ballot(voter_account, ALLOCATIONS)
        verify_ballot_signature(voter_account.address.lower(), ALLOCATIONS, signature, 10)

    def test_recover_signer(self, voter_account):
        signature = sign_ballot(voter_account, ALLOCATIONS)
        assert recover_ballot_signer(ALLOCATIONS, signature, 10) == voter_account.address

    def test_other_wallet_rejected(self, voter_account):
        signature = sign_ballot(voter_account, ALLOCATIONS)
        other = Account.create()

        with pytest.raises(InvalidSignatureError) as exc_info:
            verify_ballot_signature(other.address, ALLOCATIONS, signature, 10)
        assert exc_info.value.details["recovered"] == voter_account.address

    def test_changed_allocations_rejected(self, voter_account):
        signature = sign_ballot(voter_account, ALLOCATIONS)
        tampered = {**ALLOCATIONS, "app-3": 6}

        with pytest.raises(InvalidSignatureError):
            verify_ballot_signature(voter_account.address, tampered, signature, 10)

    def test_other_chain_rejected(self, voter_account):
        signature = sign_ballot(voter_account, ALLOCATIONS, chain_id=10)

        with pytest.raises(InvalidSignatureError):
            verify_ballot_signature(voter_account.address, ALLOCATIONS, signature, 8453)

    def test_malformed_signature_rejected(self, voter_account):
        with pytest.raises(InvalidSignatureError):
            verify_ballot_signature(voter_account.address, ALLOCATIONS, "0x1234", 10)
