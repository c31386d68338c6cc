"""Repository content gateway.

Wraps a HostingClient with the operations the orchestrator needs:
- cached file tree listing (one recursive tree call per TTL window)
- tier-filtered path listings and per-tier counts
- batched, concurrent content fetching with per-file progress

Per-file fetch failures are logged and dropped; they never end a run.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass

from vibescan.analyzers.classifier import categorize, filter_by_tier
from vibescan.errors import VibescanError
from vibescan.github.cache import FileTreeCache
from vibescan.github.client import HostingClient
from vibescan.models.analysis import PriorityTier
from vibescan.models.repository import (
    FetchedFile,
    FileTreeEntry,
    RepositoryMetadata,
    RepositoryReference,
)

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5
DEFAULT_BATCH_DELAY = 0.2
DEFAULT_MAX_FILES = 20

ProgressCallback = Callable[[int, int, str], None]


@dataclass(frozen=True)
class FetchProgress:
    """One tick of a content fetch.

    Attributes:
        processed: Files processed so far, including this one (1-based)
        total: Files that will be processed
        path: Path just processed
        file: Fetched file, or None if the fetch failed
    """

    processed: int
    total: int
    path: str
    file: FetchedFile | None


@dataclass(frozen=True)
class ContentBatch:
    """Result of fetching the contents of a path list.

    Attributes:
        fetched: Successfully fetched files, in request order
        matched_count: Paths requested before truncation
    """

    fetched: list[FetchedFile]
    matched_count: int


class RepositoryGateway:
    """Fetches trees and file contents for one hosting credential.

    Attributes:
        client: Hosting API client
        cache: File tree cache (may be shared between gateways)
        batch_size: Files fetched concurrently per batch
        batch_delay: Seconds between batches
    """

    def __init__(
        self,
        client: HostingClient,
        cache: FileTreeCache | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive (got {batch_size})")
        self.client = client
        self.cache = cache if cache is not None else FileTreeCache()
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._sleep = sleep

    async def get_metadata(self, ref: RepositoryReference) -> RepositoryMetadata:
        return await self.client.get_metadata(ref)

    async def get_file_tree(
        self,
        ref: RepositoryReference,
        branch: str | None = None,
    ) -> list[FileTreeEntry]:
        """List every blob of the repository.

        Served from cache within the TTL. On a miss, the default branch is
        resolved through a metadata call when ``branch`` is None, then one
        recursive tree call is made.

        Raises:
            RepositoryNotFoundError: Repository or branch missing
            RepositoryEmptyError: Repository has no commits
            AccessDeniedError: Rate limited or forbidden
        """
        key = FileTreeCache.key(ref.full_name, branch)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Using cached file tree for %s (%d files)", ref.full_name, len(cached))
            return cached

        target_branch = branch or (await self.client.get_metadata(ref)).default_branch
        entries = await self.client.get_tree(ref, target_branch)

        logger.info("Fetched %d files from %s", len(entries), ref.full_name)
        self.cache.put(key, entries)
        return entries

    async def _fetch_one(self, ref: RepositoryReference, path: str) -> FetchedFile | None:
        try:
            return await self.client.get_file_content(ref, path)
        except VibescanError as e:
            logger.warning("Skipping file %s: %s", path, e.message)
            return None

    async def iter_file_contents(
        self,
        ref: RepositoryReference,
        paths: list[str],
        max_files: int = DEFAULT_MAX_FILES,
    ) -> AsyncIterator[FetchProgress]:
        """Fetch file contents lazily, yielding one progress tick per path.

        Paths are truncated to ``max_files`` without reordering and fetched in
        concurrent batches. Ticks within a batch follow request order.

        Args:
            ref: Repository reference
            paths: Paths to fetch
            max_files: Maximum number of paths to fetch

        Yields:
            FetchProgress for every requested path, exactly once
        """
        to_fetch = paths[:max_files]
        total = len(to_fetch)
        processed = 0

        for start in range(0, total, self.batch_size):
            batch = to_fetch[start : start + self.batch_size]
            results = await asyncio.gather(*(self._fetch_one(ref, path) for path in batch))

            for path, fetched in zip(batch, results, strict=True):
                processed += 1
                yield FetchProgress(processed=processed, total=total, path=path, file=fetched)

            if start + self.batch_size < total:
                await self._sleep(self.batch_delay)

    async def get_file_contents(
        self,
        ref: RepositoryReference,
        paths: list[str],
        max_files: int = DEFAULT_MAX_FILES,
        on_progress: ProgressCallback | None = None,
    ) -> ContentBatch:
        """Fetch file contents eagerly.

        Args:
            ref: Repository reference
            paths: Paths to fetch
            max_files: Maximum number of paths to fetch
            on_progress: Called as ``(processed, total, path)`` once per requested path

        Returns:
            ContentBatch with the files that were fetched
        """
        fetched: list[FetchedFile] = []
        async for tick in self.iter_file_contents(ref, paths, max_files):
            if tick.file is not None:
                fetched.append(tick.file)
            if on_progress is not None:
                on_progress(tick.processed, tick.total, tick.path)

        logger.info(
            "Successfully fetched %d/%d files", len(fetched), min(len(paths), max_files)
        )
        return ContentBatch(fetched=fetched, matched_count=len(paths))

    async def get_tier_paths(self, ref: RepositoryReference, tier: PriorityTier) -> list[str]:
        """List every tree path that classifies into ``tier``."""
        tree = await self.get_file_tree(ref)
        return filter_by_tier([entry.path for entry in tree], tier)

    async def get_tier_counts(self, ref: RepositoryReference) -> dict[str, int]:
        """Count tree paths per tier, plus ignored and total."""
        tree = await self.get_file_tree(ref)
        return categorize(entry.path for entry in tree).counts()
