"""
EAS Ledger Client

Reads attestations and transaction receipts from an EVM chain running the
Ethereum Attestation Service contract, using web3.py.
"""

from typing import Any

import structlog
from eth_abi import decode as abi_decode
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

from rpgf.chains.base import (
    AttestationRecord,
    BaseLedgerClient,
    ChainClientError,
    LedgerUnavailableError,
    LogEntry,
    TransactionReceipt,
)

logger = structlog.get_logger(__name__)

ZERO_UID = "0x" + "00" * 32

# keccak256("Attested(address,address,bytes32,bytes32)")
ATTESTED_EVENT_TOPIC = Web3.to_hex(Web3.keccak(text="Attested(address,address,bytes32,bytes32)"))

# Application attestations carry (content pointer, round slug)
APPLICATION_ATTESTATION_TYPES = ["string", "string"]

EAS_ABI: list[dict[str, Any]] = [
    {
        "inputs": [{"internalType": "bytes32", "name": "uid", "type": "bytes32"}],
        "name": "getAttestation",
        "outputs": [
            {
                "components": [
                    {"internalType": "bytes32", "name": "uid", "type": "bytes32"},
                    {"internalType": "bytes32", "name": "schema", "type": "bytes32"},
                    {"internalType": "uint64", "name": "time", "type": "uint64"},
                    {"internalType": "uint64", "name": "expirationTime", "type": "uint64"},
                    {"internalType": "uint64", "name": "revocationTime", "type": "uint64"},
                    {"internalType": "bytes32", "name": "refUID", "type": "bytes32"},
                    {"internalType": "address", "name": "recipient", "type": "address"},
                    {"internalType": "address", "name": "attester", "type": "address"},
                    {"internalType": "bool", "name": "revocable", "type": "bool"},
                    {"internalType": "bytes", "name": "data", "type": "bytes"},
                ],
                "internalType": "struct Attestation",
                "name": "",
                "type": "tuple",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
]


def _hex(value: Any) -> str:
    if isinstance(value, str):
        return value.lower()
    return Web3.to_hex(value).lower()


def topic_to_address(topic: str) -> str:
    """Indexed address topics are left-padded to 32 bytes."""
    return "0x" + topic[-40:].lower()


def decode_application_attestation_data(data: bytes) -> tuple[str, str]:
    """Decode attestation data into (content pointer, round slug)."""
    content_pointer, round_slug = abi_decode(APPLICATION_ATTESTATION_TYPES, data)
    return content_pointer, round_slug


class EASClient(BaseLedgerClient):
    """
    Ledger client for one chain's EAS deployment.

    The client is not connected until initialize() is called.
    """

    def __init__(self, chain_id: int, rpc_url: str, contract_address: str):
        self.chain_id = chain_id
        self._rpc_url = rpc_url
        self._contract_address = contract_address
        self._w3: AsyncWeb3 | None = None
        self._contract: Any = None

    async def initialize(self) -> None:
        self._w3 = AsyncWeb3(AsyncHTTPProvider(self._rpc_url))
        self._contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(self._contract_address),
            abi=EAS_ABI,
        )
        logger.info("eas_client_initialized", chain_id=self.chain_id)

    async def close(self) -> None:
        if self._w3 and hasattr(self._w3.provider, "disconnect"):
            await self._w3.provider.disconnect()
        self._w3 = None
        self._contract = None

    def _get_w3(self) -> AsyncWeb3:
        if self._w3 is None:
            raise ChainClientError(
                f"EAS client for chain {self.chain_id} not initialized. Call initialize() first."
            )
        return self._w3

    async def get_attestation(self, uid: str) -> AttestationRecord | None:
        self._get_w3()
        try:
            raw: Any = await self._contract.functions.getAttestation(uid).call()
        except ChainClientError:
            raise
        except Exception as e:
            logger.warning("eas_get_attestation_failed", chain_id=self.chain_id, uid=uid, error=str(e))
            raise LedgerUnavailableError(f"Failed to read attestation {uid}: {e}") from e

        record_uid = _hex(raw[0])
        if record_uid == ZERO_UID:
            return None

        return AttestationRecord(
            uid=record_uid,
            schema=_hex(raw[1]),
            time=int(raw[2]),
            revocation_time=int(raw[4]),
            recipient=str(raw[6]).lower(),
            attester=str(raw[7]).lower(),
            data=bytes(raw[9]),
        )

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        w3 = self._get_w3()
        try:
            receipt: Any = await w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except Exception as e:
            logger.warning("eas_get_receipt_failed", chain_id=self.chain_id, tx_hash=tx_hash, error=str(e))
            raise LedgerUnavailableError(f"Failed to read receipt {tx_hash}: {e}") from e

        if receipt is None:
            return None

        return TransactionReceipt(
            transaction_hash=_hex(receipt["transactionHash"]),
            status=int(receipt["status"]),
            block_number=receipt.get("blockNumber"),
            logs=[
                LogEntry(
                    address=str(log["address"]).lower(),
                    topics=[_hex(t) for t in log["topics"]],
                    data=_hex(log["data"]),
                )
                for log in receipt["logs"]
            ],
        )


def find_attested_event(
    receipt: TransactionReceipt,
    contract_address: str,
    schema_id: str,
) -> tuple[str, str] | None:
    """
    Find the Attested event for ``schema_id`` emitted by ``contract_address``.

    Returns:
        (attestation uid, attester address), or None if absent
    """
    contract_address = contract_address.lower()
    schema_id = schema_id.lower()
    for log in receipt.logs:
        if log.address != contract_address or len(log.topics) < 4:
            continue
        if log.topics[0] != ATTESTED_EVENT_TOPIC or log.topics[3] != schema_id:
            continue
        return "0x" + log.data[-64:], topic_to_address(log.topics[2])
    return None
