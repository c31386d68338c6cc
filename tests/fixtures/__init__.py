"""Test fixtures for vibescan.

This package provides in-memory collaborators and sample data for unit and
integration tests:
- fakes: FakeHostingClient and FakeLLMClient standing in for GitHub and the AI service
- SAMPLE_TREE: a small repository tree covering every tier plus ignored files
"""

from tests.fixtures.fakes import (
    FakeHostingClient,
    FakeLLMClient,
    issues_json,
    make_finding,
    make_metadata,
    no_sleep,
)

# Paths of a small repository, with the tier each one classifies into
SAMPLE_TREE: dict[str, int | None] = {
    ".env": 1,
    "src/auth/login.ts": 1,
    "src/config/database.ts": 1,
    "src/api/users.ts": 2,
    "src/services/billing.ts": 2,
    "src/utils/format.ts": 3,
    "README.md": 3,
    "node_modules/lodash/index.js": None,
    "assets/logo.png": None,
    "Makefile": None,
}

SAMPLE_PATHS: list[str] = list(SAMPLE_TREE)

__all__ = [
    "SAMPLE_PATHS",
    "SAMPLE_TREE",
    "FakeHostingClient",
    "FakeLLMClient",
    "issues_json",
    "make_finding",
    "make_metadata",
    "no_sleep",
]
