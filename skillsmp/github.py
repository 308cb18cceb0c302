"""
GitHub Fetching

Reads skill files from public GitHub repositories through the REST API.
Failures are returned as error strings, never raised.
"""

import asyncio
import base64
import binascii
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx
from loguru import logger

GITHUB_API_BASE = "https://api.github.com"
GITHUB_API_TIMEOUT_SECONDS = 30.0
FILE_FETCH_CONCURRENCY = 10
USER_AGENT = "skillsmp-mcp"


@dataclass
class TreeItem:
    """A file (blob) entry of a repository tree."""

    path: str
    type: str = "blob"
    sha: str = ""
    size: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> "TreeItem":
        return cls(
            path=data["path"],
            type=data.get("type", "blob"),
            sha=data.get("sha", ""),
            size=data.get("size"),
        )


class GitHubClient:
    """
    Minimal GitHub REST client for reading skill bundles.

    Usage:
        github = GitHubClient(token=os.environ.get("GITHUB_TOKEN"))
        items, error = await github.fetch_tree("owner/repo")
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = GITHUB_API_BASE,
        timeout: float = GITHUB_API_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport

    def headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers(),
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,
        )

    @staticmethod
    def _contents_path(repo: str, path: str) -> str:
        return f"/repos/{repo}/contents/{quote(path, safe='')}"

    @staticmethod
    def _decode_contents(payload: dict) -> Optional[bytes]:
        if not isinstance(payload, dict) or payload.get("encoding") != "base64" or not payload.get("content"):
            return None
        try:
            return base64.b64decode(payload["content"])
        except (binascii.Error, ValueError):
            return None

    async def fetch_tree(self, repo: str) -> Tuple[List[TreeItem], Optional[str]]:
        """
        Fetch all files of the default branch.

        Args:
            repo: Repository in "owner/repo" form

        Returns:
            (blob items, error). A truncated tree returns its blobs together
            with a warning in the error slot.
        """
        try:
            async with self._client() as client:
                response = await client.get(f"/repos/{repo}/git/trees/HEAD", params={"recursive": "1"})
            if not response.is_success:
                return [], f"GitHub API {response.status_code}: {response.text}"
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return [], f"GitHub API error: {e}"

        if not isinstance(payload, dict):
            return [], "GitHub API returned an unexpected tree payload"

        blobs = [
            TreeItem.from_dict(e)
            for e in payload.get("tree", [])
            if isinstance(e, dict) and e.get("type") == "blob" and e.get("path")
        ]
        if payload.get("truncated"):
            return blobs, "GitHub API tree response was truncated; results may be incomplete."
        return blobs, None

    async def fetch_file_content(self, repo: str, path: str) -> Tuple[str, Optional[str]]:
        """
        Read one text file through the contents API.

        Returns:
            (content, error)
        """
        try:
            async with self._client() as client:
                response = await client.get(self._contents_path(repo, path))
            if not response.is_success:
                return "", f"GitHub API {response.status_code}: {response.text}"
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return "", f"GitHub API error: {e}"

        data = self._decode_contents(payload)
        if data is None:
            return "", "Unexpected encoding or empty content"
        return data.decode("utf-8", errors="replace"), None

    async def fetch_files(self, repo: str, paths: List[str]) -> Dict[str, bytes]:
        """
        Fetch several files concurrently, in batches.

        Files that fail are logged and left out of the result.

        Returns:
            path -> raw bytes, in the order of ``paths``
        """
        fetched: Dict[str, bytes] = {}

        async with self._client() as client:

            async def fetch_one(path: str) -> Optional[bytes]:
                try:
                    response = await client.get(self._contents_path(repo, path))
                    if not response.is_success:
                        logger.warning(f"GitHub contents API returned {response.status_code} for \"{path}\"")
                        return None
                    return self._decode_contents(response.json())
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning(f"Failed to fetch \"{path}\": {e}")
                    return None

            for i in range(0, len(paths), FILE_FETCH_CONCURRENCY):
                batch = paths[i:i + FILE_FETCH_CONCURRENCY]
                results = await asyncio.gather(*(fetch_one(p) for p in batch))
                for path, data in zip(batch, results):
                    if data is not None:
                        fetched[path] = data

        return fetched
