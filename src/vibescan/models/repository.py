"""Repository entities for the remote repository being analyzed.

- RepositoryReference: owner/name pair parsed from a hosting URL
- RepositoryMetadata: read-only metadata fetched once per run
- FileTreeEntry: one blob in the repository tree
- FetchedFile: a decoded file body ready for analysis
"""

import re
from dataclasses import dataclass
from typing import Any

from vibescan.errors import InvalidRepositoryUrlError

GITHUB_URL_PATTERN = re.compile(r"github\.com[/:]([^/\s]+)/([^/\s]+)")


@dataclass(frozen=True)
class RepositoryReference:
    """Owner and name of a hosted repository.

    Attributes:
        owner: Account or organization that owns the repository
        name: Repository name without a ``.git`` suffix
    """

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        """Return ``owner/name``."""
        return f"{self.owner}/{self.name}"

    @classmethod
    def from_url(cls, url: str) -> "RepositoryReference":
        """Parse a GitHub URL into a reference.

        Accepts https and ssh forms, with or without a ``.git`` suffix and
        trailing path, query or fragment segments.

        Args:
            url: Repository URL (e.g. ``https://github.com/octo/hello.git``)

        Returns:
            RepositoryReference instance

        Raises:
            InvalidRepositoryUrlError: If the URL does not name a GitHub repository
        """
        if not url or not isinstance(url, str):
            raise InvalidRepositoryUrlError("Invalid GitHub URL format")

        match = GITHUB_URL_PATTERN.search(url.strip())
        if not match:
            raise InvalidRepositoryUrlError(f"Invalid GitHub URL format: {url}")

        owner = match.group(1)
        name = re.split(r"[?#]", match.group(2))[0]
        if name.endswith(".git"):
            name = name[:-4]

        if not owner or not name:
            raise InvalidRepositoryUrlError(f"Invalid GitHub URL format: {url}")

        return cls(owner=owner, name=name)

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class RepositoryMetadata:
    """Repository metadata as reported by the hosting provider.

    Attributes:
        owner: Repository owner
        name: Repository name
        full_name: ``owner/name`` as reported upstream
        description: Free text description, if any
        star_count: Number of stars
        primary_language: Dominant language, if detected upstream
        last_update: ISO timestamp of the last update
        default_branch: Name of the default branch
        is_private: Whether the repository is private
    """

    owner: str
    name: str
    full_name: str
    star_count: int
    last_update: str
    default_branch: str
    is_private: bool
    description: str | None = None
    primary_language: str | None = None

    @property
    def reference(self) -> RepositoryReference:
        return RepositoryReference(owner=self.owner, name=self.name)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire format used by the API."""
        return {
            "owner": self.owner,
            "name": self.name,
            "fullName": self.full_name,
            "description": self.description,
            "stars": self.star_count,
            "language": self.primary_language,
            "lastUpdate": self.last_update,
            "defaultBranch": self.default_branch,
            "isPrivate": self.is_private,
        }


@dataclass(frozen=True)
class FileTreeEntry:
    """A single blob in the repository tree.

    Attributes:
        path: POSIX path relative to the repository root
        size_bytes: Blob size reported by the tree listing
        content_hash: Blob SHA
    """

    path: str
    size_bytes: int
    content_hash: str


@dataclass(frozen=True)
class FetchedFile:
    """A file whose content has been fetched and decoded.

    Attributes:
        path: POSIX path relative to the repository root
        content: Decoded text content
        size_bytes: Size reported by the hosting provider
    """

    path: str
    content: str
    size_bytes: int
