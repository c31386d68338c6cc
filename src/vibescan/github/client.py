"""GitHub REST API client.

Implements the HostingClient protocol on top of ``httpx.AsyncClient``. HTTP
status codes are translated into the vibescan error hierarchy at this
boundary; callers never see httpx exceptions.
"""

import base64
import logging
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from vibescan.config import GitHubConfig
from vibescan.errors import (
    AccessDeniedError,
    FileFetchError,
    RepositoryEmptyError,
    RepositoryNotFoundError,
    VibescanError,
)
from vibescan.models.repository import (
    FetchedFile,
    FileTreeEntry,
    RepositoryMetadata,
    RepositoryReference,
)

logger = logging.getLogger(__name__)

ACCEPT_HEADER = "application/vnd.github+json"
API_VERSION = "2022-11-28"


class HostingClient(Protocol):
    """Read-only access to a hosted repository."""

    async def get_metadata(self, ref: RepositoryReference) -> RepositoryMetadata: ...

    async def get_tree(self, ref: RepositoryReference, branch: str) -> list[FileTreeEntry]: ...

    async def get_file_content(self, ref: RepositoryReference, path: str) -> FetchedFile: ...

    async def aclose(self) -> None: ...


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.headers.get("x-ratelimit-remaining") == "0":
        return True
    return "rate limit" in response.text.lower()


def _access_error(response: httpx.Response) -> AccessDeniedError:
    if _is_rate_limited(response):
        return AccessDeniedError(
            "GitHub API rate limit exceeded. Try again later or add a GITHUB_TOKEN.",
            rate_limited=True,
        )
    return AccessDeniedError("Access to the repository was denied")


class GitHubClient:
    """Async GitHub client.

    One instance carries one credential. The underlying connection pool is
    created on first use and released by ``aclose()``.

    Attributes:
        api_url: REST API base URL
        token: Bearer token, or None for anonymous access
    """

    def __init__(
        self,
        token: str | None = None,
        api_url: str = "https://api.github.com",
        user_agent: str = "vibescan/0.1.0",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.token = token or None
        self._user_agent = user_agent
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(
        cls,
        config: GitHubConfig,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "GitHubClient":
        """Create a client from config; an explicit token overrides the configured one."""
        return cls(
            token=token or config.token,
            api_url=config.api_url,
            user_agent=config.user_agent,
            timeout=config.timeout,
            transport=transport,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {
                "Accept": ACCEPT_HEADER,
                "User-Agent": self._user_agent,
                "X-GitHub-Api-Version": API_VERSION,
            }
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                headers=headers,
                timeout=httpx.Timeout(self._timeout),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _get(self, url: str, **params: Any) -> httpx.Response:
        try:
            return await self._get_client().get(url, params=params or None)
        except httpx.HTTPError as e:
            raise VibescanError(f"GitHub request failed: {e}") from e

    # =========================================================================
    # HostingClient
    # =========================================================================

    async def get_metadata(self, ref: RepositoryReference) -> RepositoryMetadata:
        """Fetch repository metadata.

        Raises:
            RepositoryNotFoundError: 404
            AccessDeniedError: 403/429 (rate limit or permission)
            VibescanError: Any other failure
        """
        response = await self._get(f"/repos/{ref.owner}/{ref.name}")

        if response.status_code == 404:
            raise RepositoryNotFoundError(f"Repository not found: {ref.full_name}")
        if response.status_code in (403, 429):
            raise _access_error(response)
        if response.is_error:
            raise VibescanError(
                f"Failed to fetch repository: HTTP {response.status_code}"
            )

        data = response.json()
        return RepositoryMetadata(
            owner=ref.owner,
            name=ref.name,
            full_name=data.get("full_name") or ref.full_name,
            description=data.get("description"),
            star_count=int(data.get("stargazers_count") or 0),
            primary_language=data.get("language"),
            last_update=data.get("updated_at") or "",
            default_branch=data.get("default_branch") or "main",
            is_private=bool(data.get("private", False)),
        )

    async def get_tree(self, ref: RepositoryReference, branch: str) -> list[FileTreeEntry]:
        """Fetch the full recursive tree of a branch, blobs only.

        Raises:
            RepositoryNotFoundError: Repository or branch missing (404)
            RepositoryEmptyError: Repository has no commits (409)
            AccessDeniedError: 403/429
        """
        response = await self._get(
            f"/repos/{ref.owner}/{ref.name}/git/trees/{quote(branch, safe='')}",
            recursive="1",
        )

        if response.status_code == 404:
            raise RepositoryNotFoundError(f"Repository or branch not found: {ref.full_name}")
        if response.status_code == 409:
            raise RepositoryEmptyError("Repository is empty")
        if response.status_code in (403, 429):
            raise _access_error(response)
        if response.is_error:
            raise VibescanError(f"Failed to get file tree: HTTP {response.status_code}")

        data = response.json()
        if data.get("truncated"):
            logger.warning("Tree listing for %s was truncated upstream", ref.full_name)

        return [
            FileTreeEntry(
                path=item["path"],
                size_bytes=int(item.get("size") or 0),
                content_hash=item["sha"],
            )
            for item in data.get("tree", [])
            if item.get("type") == "blob" and item.get("path") and item.get("sha")
        ]

    async def get_file_content(self, ref: RepositoryReference, path: str) -> FetchedFile:
        """Fetch and decode a single file.

        Raises:
            FileFetchError: Missing file, directory, non-file or undecodable body
            AccessDeniedError: 403/429
        """
        response = await self._get(
            f"/repos/{ref.owner}/{ref.name}/contents/{quote(path)}"
        )

        if response.status_code == 404:
            raise FileFetchError(f"File not found: {path}")
        if response.status_code in (403, 429):
            raise _access_error(response)
        if response.is_error:
            raise FileFetchError(
                f"Failed to get file content: {path} (HTTP {response.status_code})"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise FileFetchError(f"Unreadable response for {path}") from e
        if isinstance(data, list):
            raise FileFetchError(f"Path is a directory: {path}")
        if not isinstance(data, dict) or data.get("type") != "file" or "content" not in data:
            raise FileFetchError(f"Not a file: {path}")

        try:
            raw = base64.b64decode(data["content"])
        except (ValueError, TypeError) as e:
            raise FileFetchError(f"Invalid encoding for {path}") from e

        return FetchedFile(
            path=path,
            content=raw.decode("utf-8", errors="replace"),
            size_bytes=int(data.get("size") or len(raw)),
        )
