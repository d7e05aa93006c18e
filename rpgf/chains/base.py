"""
Ledger and Content Client Base

Abstract interfaces for the two external reads attestation verification
depends on: the attestation ledger of a chain and the content-addressed
store holding declared application payloads.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


class ChainClientError(Exception):
    """Base exception for ledger client errors."""
    pass


class LedgerUnavailableError(ChainClientError):
    """The ledger endpoint could not be reached or returned an error."""
    pass


class ContentFetchError(Exception):
    """The content store did not return the requested object."""
    pass


@dataclass
class AttestationRecord:
    """An attestation as stored by the EAS contract."""

    uid: str
    schema: str
    attester: str
    recipient: str
    time: int
    revocation_time: int
    data: bytes

    @property
    def revoked(self) -> bool:
        return self.revocation_time != 0


@dataclass
class LogEntry:
    address: str
    topics: list[str]
    data: str


@dataclass
class TransactionReceipt:
    transaction_hash: str
    status: int
    block_number: int | None = None
    logs: list[LogEntry] = field(default_factory=list)


class BaseLedgerClient(ABC):
    """
    Read-only access to a chain's attestation ledger.

    Implementations return None for records the ledger does not (yet) know
    and raise LedgerUnavailableError for transport failures, so callers can
    tell "not there yet" apart from "could not ask".
    """

    @abstractmethod
    async def get_attestation(self, uid: str) -> AttestationRecord | None:
        pass

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        pass

    async def close(self) -> None:
        pass


class BaseContentClient(ABC):
    """Fetches objects from a content-addressed store."""

    @abstractmethod
    async def get_by_hash(self, content_hash: str) -> bytes:
        pass

    async def close(self) -> None:
        pass
