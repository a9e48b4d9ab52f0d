"""
sensor_pipeline/connectors/ipfs.py
──────────────────────────────────
IPFS HTTP API content store.
"""
from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)


class IpfsContentStore:
    """Client for an IPFS node's `/api/v0` HTTP API.

    Errors are not swallowed: `add` and `get` raise `httpx.HTTPError`
    (or `ValueError` on a response without a hash) and the dispatcher
    decides what to do with them.
    """

    def __init__(
        self,
        api_url: str = settings.IPFS_API_URL,
        timeout: float = settings.IPFS_TIMEOUT_S,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the client; pass `client` to supply a preconfigured transport."""
        self.api_url = api_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def add(self, document: dict[str, Any]) -> str:
        """Upload a JSON document and return its CID.

        Args:
            document: JSON-serializable dict (use `to_wire()` on models)

        Returns:
            The content identifier reported by the node
        """
        body = json.dumps(document, separators=(",", ":")).encode("utf-8")
        response = await self.client.post(
            f"{self.api_url}/api/v0/add",
            params={"pin": "true"},
            files={"file": ("data.json", body, "application/json")},
        )
        response.raise_for_status()

        cid = response.json().get("Hash")
        if not cid:
            raise ValueError("No CID returned from IPFS node")

        logger.info("Uploaded document to IPFS", cid=cid, size=len(body))
        return cid

    async def get(self, cid: str) -> dict[str, Any]:
        """Fetch a document previously stored with `add`."""
        response = await self.client.post(f"{self.api_url}/api/v0/cat", params={"arg": cid})
        response.raise_for_status()
        return response.json()

    async def version(self) -> str:
        """Node version string; useful as a connectivity check."""
        response = await self.client.post(f"{self.api_url}/api/v0/version")
        response.raise_for_status()
        return response.json().get("Version", "unknown")
