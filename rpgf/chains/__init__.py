"""
Ledger and content clients used for attestation verification.
"""

from rpgf.chains.base import (
    AttestationRecord,
    BaseContentClient,
    BaseLedgerClient,
    ChainClientError,
    ContentFetchError,
    LedgerUnavailableError,
    LogEntry,
    TransactionReceipt,
)
from rpgf.chains.eas import EASClient
from rpgf.chains.ipfs import IpfsClient
from rpgf.chains.registry import ChainProviderRegistry

__all__ = [
    "AttestationRecord",
    "BaseContentClient",
    "BaseLedgerClient",
    "ChainClientError",
    "ContentFetchError",
    "LedgerUnavailableError",
    "LogEntry",
    "TransactionReceipt",
    "EASClient",
    "IpfsClient",
    "ChainProviderRegistry",
]
