"""
Ballot Signatures

Voters sign an EIP-712 summary of their ballot: the vote total, the
number of applications voted for, and a keccak256 hash of the canonical
JSON encoding of the allocations.
"""

import json
from collections.abc import Mapping
from typing import Any

import structlog
from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import Web3

from rpgf.config import settings
from rpgf.errors import InvalidSignatureError

logger = structlog.get_logger(__name__)

BALLOT_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
    ],
    "Ballot": [
        {"name": "total_votes", "type": "uint256"},
        {"name": "project_count", "type": "uint256"},
        {"name": "hashed_votes", "type": "string"},
    ],
}


def canonical_ballot_json(allocations: Mapping[str, int]) -> str:
    """Compact JSON with keys in sorted order."""
    return json.dumps(
        {key: allocations[key] for key in sorted(allocations)},
        separators=(",", ":"),
        ensure_ascii=False,
    )


def hash_ballot_votes(allocations: Mapping[str, int]) -> str:
    """0x-prefixed keccak256 of the canonical ballot JSON."""
    return Web3.to_hex(Web3.keccak(text=canonical_ballot_json(allocations)))


def ballot_typed_data(allocations: Mapping[str, int], chain_id: int) -> dict[str, Any]:
    """The full EIP-712 message a voter signs for ``allocations``."""
    return {
        "types": BALLOT_TYPES,
        "primaryType": "Ballot",
        "domain": {
            "name": settings.ballot_signature_domain_name,
            "version": settings.ballot_signature_domain_version,
            "chainId": chain_id,
        },
        "message": {
            "total_votes": sum(allocations.values()),
            "project_count": len(allocations),
            "hashed_votes": hash_ballot_votes(allocations),
        },
    }


def recover_ballot_signer(
    allocations: Mapping[str, int],
    signature: str,
    chain_id: int,
) -> str:
    """Recover the address that produced ``signature`` over the ballot."""
    signable = encode_typed_data(full_message=ballot_typed_data(allocations, chain_id))
    return str(Account.recover_message(signable, signature=signature))


def verify_ballot_signature(
    wallet_address: str,
    allocations: Mapping[str, int],
    signature: str,
    chain_id: int,
) -> str:
    """
    Verify that ``wallet_address`` signed the ballot.

    Returns:
        The recovered signer address

    Raises:
        InvalidSignatureError: If the signature is malformed or recovers
            to a different address
    """
    try:
        recovered = recover_ballot_signer(allocations, signature, chain_id)
    except Exception as e:
        logger.warning("ballot_signature_unrecoverable", error=str(e))
        raise InvalidSignatureError("Ballot signature could not be verified") from e

    if recovered.lower() != wallet_address.lower():
        logger.warning(
            "ballot_signature_mismatch",
            expected=wallet_address,
            recovered=recovered,
        )
        raise InvalidSignatureError(
            f"Signature verification failed: expected {wallet_address}, got {recovered}",
            expected=wallet_address,
            recovered=recovered,
        )

    return recovered
