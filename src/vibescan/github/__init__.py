"""Hosting provider access: API client, tree cache and content gateway."""

from vibescan.github.cache import FileTreeCache
from vibescan.github.client import GitHubClient, HostingClient
from vibescan.github.gateway import ContentBatch, FetchProgress, RepositoryGateway

__all__ = [
    "ContentBatch",
    "FetchProgress",
    "FileTreeCache",
    "GitHubClient",
    "HostingClient",
    "RepositoryGateway",
]
