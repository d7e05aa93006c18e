"""
Chain Provider Registry

One ledger client per configured chain, created on first use.
"""

import asyncio

import structlog

from rpgf.chains.base import BaseLedgerClient, ChainClientError
from rpgf.chains.eas import EASClient
from rpgf.models.round import Chain

logger = structlog.get_logger(__name__)


class ChainProviderRegistry:
    """Routes ledger reads to the client for a round's chain."""

    def __init__(self) -> None:
        self._clients: dict[int, BaseLedgerClient] = {}
        self._lock = asyncio.Lock()

    def register(self, chain_id: int, client: BaseLedgerClient) -> None:
        self._clients[chain_id] = client

    async def get_client(self, chain: Chain) -> BaseLedgerClient:
        """
        Get the ledger client for ``chain``.

        Raises:
            ChainClientError: If the chain has no attestation setup
        """
        if chain.chain_id in self._clients:
            return self._clients[chain.chain_id]

        if chain.attestation_setup is None:
            raise ChainClientError(f"Chain {chain.chain_id} has no attestation setup")

        async with self._lock:
            if chain.chain_id not in self._clients:
                client = EASClient(
                    chain_id=chain.chain_id,
                    rpc_url=chain.rpc_url,
                    contract_address=chain.attestation_setup.contract_address,
                )
                await client.initialize()
                self._clients[chain.chain_id] = client
                logger.info("ledger_client_registered", chain_id=chain.chain_id)

        return self._clients[chain.chain_id]

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
