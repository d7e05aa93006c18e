"""
IPFS Gateway Client

Fetches declared application payloads by CID through an HTTP gateway.
"""

import httpx
import structlog

from rpgf.chains.base import BaseContentClient, ContentFetchError
from rpgf.config import settings

logger = structlog.get_logger(__name__)


class IpfsClient(BaseContentClient):
    def __init__(
        self,
        gateway_url: str | None = None,
        timeout_seconds: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._gateway_url = (gateway_url or settings.ipfs_gateway_url).rstrip("/")
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout_seconds or settings.ipfs_request_timeout_seconds,
            follow_redirects=True,
        )

    async def get_by_hash(self, content_hash: str) -> bytes:
        """
        Fetch the object stored under ``content_hash``.

        Raises:
            ContentFetchError: On transport failure or a non-success status
        """
        url = f"{self._gateway_url}/{content_hash}"
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            logger.warning("ipfs_fetch_failed", cid=content_hash, error=str(e))
            raise ContentFetchError(f"Failed to fetch {content_hash}: {e}") from e

        if response.status_code != 200:
            logger.warning("ipfs_fetch_bad_status", cid=content_hash, status=response.status_code)
            raise ContentFetchError(
                f"Gateway returned {response.status_code} for {content_hash}"
            )

        return response.content

    async def close(self) -> None:
        await self._client.aclose()
