"""
Durable object storage for rehosted images
"""
import base64
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from core.errors import StorageError

logger = logging.getLogger(__name__)


class ObjectStorage(ABC):
    """
    Base interface for storage that returns public URLs for stored bytes.
    """

    name: str

    @abstractmethod
    async def get_existing_url(self, path: str) -> Optional[str]:
        """Public URL of the object at path, or None when nothing is stored there."""
        raise NotImplementedError

    @abstractmethod
    async def upload(self, content: bytes, path: str, message: str) -> str:
        """
        Store bytes at path and return the public URL.
        Must raise StorageError on failure (handled upstream).
        """
        raise NotImplementedError


class GitHubStorage(ObjectStorage):
    """
    Stores files in a GitHub repository through the contents API.
    """

    name = "github"
    API_URL = "https://api.github.com"

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        branch: str = "main",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _contents_url(self, path: str) -> str:
        return f"{self.API_URL}/repos/{self.owner}/{self.repo}/contents/{path}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers=self.headers,
            transport=self.transport,
        )

    async def get_existing_url(self, path: str) -> Optional[str]:
        async with self._client() as client:
            resp = await client.get(self._contents_url(path), params={"ref": self.branch})
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise StorageError(
                "GitHub content lookup failed",
                {"path": path, "status": resp.status_code},
            )
        return resp.json().get("download_url")

    async def upload(self, content: bytes, path: str, message: str) -> str:
        payload = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.branch,
        }
        async with self._client() as client:
            resp = await client.put(self._contents_url(path), json=payload)
        if resp.status_code not in (200, 201):
            raise StorageError(
                "GitHub upload failed",
                {"path": path, "status": resp.status_code, "body": resp.text[:200]},
            )
        download_url = resp.json().get("content", {}).get("download_url")
        if not download_url:
            raise StorageError("GitHub upload returned no download_url", {"path": path})
        logger.info(f"Uploaded {path} ({len(content)} bytes)")
        return download_url
