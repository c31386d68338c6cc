"""Shared pytest fixtures for vibescan tests.

This module provides common fixtures used across unit and integration tests.
Fixtures are organized by category:
- Repository fixtures: references, metadata and fake hosting clients
- Configuration fixtures: config dictionaries and files
- Analysis fixtures: engines, gateways and orchestrators wired to fakes
- Summary fixtures: pre-built run summaries for the renderer and history
"""

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from tests.fixtures import (
    SAMPLE_PATHS,
    FakeHostingClient,
    FakeLLMClient,
    make_finding,
    make_metadata,
    no_sleep,
)
from vibescan.config import AnalysisConfig
from vibescan.github.cache import FileTreeCache
from vibescan.github.gateway import RepositoryGateway
from vibescan.llm.engine import AnalysisEngine
from vibescan.models.analysis import (
    FindingCategory,
    PriorityTier,
    RunSummary,
    Severity,
    TierResult,
)
from vibescan.models.repository import RepositoryMetadata, RepositoryReference
from vibescan.orchestrator import AnalysisOrchestrator

REPO_URL = "https://github.com/octo/hello"

# Fixed clock for deterministic finding ids
FIXED_TIME = 1_700_000_000.0


# =============================================================================
# Repository Fixtures
# =============================================================================


@pytest.fixture
def repo_url() -> str:
    """Return the URL of the sample repository."""
    return REPO_URL


@pytest.fixture
def reference() -> RepositoryReference:
    """Return a reference to the sample repository."""
    return RepositoryReference(owner="octo", name="hello")


@pytest.fixture
def metadata() -> RepositoryMetadata:
    """Return public repository metadata."""
    return make_metadata()


@pytest.fixture
def hosting_client() -> FakeHostingClient:
    """Return a fake hosting client serving the sample tree."""
    return FakeHostingClient(paths=SAMPLE_PATHS)


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def minimal_config() -> dict[str, Any]:
    """Return a minimal valid vibescan configuration."""
    return {
        "llm": {
            "provider": "deepseek",
            "model": "deepseek-chat",
        }
    }


@pytest.fixture
def full_config() -> dict[str, Any]:
    """Return a configuration with every section populated."""
    return {
        "github": {
            "token": "ghp_test",
            "api_url": "https://github.example.com/api/v3",
            "timeout": 10,
        },
        "llm": {
            "provider": "openai",
            "model": "gpt-4o-mini",
            "temperature": 0.1,
            "max_tokens": 6000,
        },
        "pricing": {
            "input_per_million": 0.5,
            "output_per_million": 1.5,
        },
        "analysis": {
            "max_files_per_tier": 10,
            "batch_size": 3,
            "batch_delay": 0,
            "tree_cache_ttl": 60,
            "approval_timeout": 30,
        },
        "service": {
            "host": "127.0.0.1",
            "port": 8080,
            "heartbeat_interval": 5,
        },
    }


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write a small config file and return its path."""
    path = tmp_path / "vibescan.yaml"
    path.write_text(
        "llm:\n"
        "  provider: deepseek\n"
        "  model: deepseek-chat\n"
        "analysis:\n"
        "  max_files_per_tier: 5\n"
        "  batch_delay: 0\n"
    )
    return path


# =============================================================================
# Analysis Fixtures
# =============================================================================


@pytest.fixture
def llm_client() -> FakeLLMClient:
    """Return a fake LLM client answering with no issues."""
    return FakeLLMClient()


@pytest.fixture
def make_gateway():
    """Factory for gateways over a fake client with an injectable clock."""

    def _make(client: FakeHostingClient, ttl: float = 300.0, clock=None, **kwargs: Any):
        cache = FileTreeCache(ttl=ttl, clock=clock) if clock else FileTreeCache(ttl=ttl)
        return RepositoryGateway(client, cache, sleep=no_sleep, **kwargs)

    return _make


@pytest.fixture
def make_orchestrator(make_gateway):
    """Factory for orchestrators wired to fakes.

    Run ids are ``run-1``, ``run-2``, ... in creation order.
    """

    def _make(
        client: FakeHostingClient,
        llm: FakeLLMClient | None = None,
        config: AnalysisConfig | None = None,
        **kwargs: Any,
    ) -> AnalysisOrchestrator:
        counter = iter(range(1, 1000))
        engine = AnalysisEngine(llm or FakeLLMClient(), clock=lambda: FIXED_TIME)
        kwargs.setdefault("caller_token", client.token)
        return AnalysisOrchestrator(
            make_gateway(client),
            engine,
            config=config,
            id_factory=lambda: f"run-{next(counter)}",
            **kwargs,
        )

    return _make


# =============================================================================
# Summary Fixtures
# =============================================================================


@pytest.fixture
def run_summary(metadata: RepositoryMetadata) -> RunSummary:
    """Return a summary of a run stopped after tier 2."""
    started = datetime(2026, 1, 31, 19, 45, 0, tzinfo=UTC)
    finished = datetime(2026, 1, 31, 19, 45, 12, tzinfo=UTC)
    tier1 = TierResult(
        tier=PriorityTier.SECURITY,
        files_scanned=3,
        files_requested=3,
        findings=(
            make_finding(
                0,
                Severity.CRITICAL,
                title="Hardcoded database password",
                impact="Anyone with read access can log in to the database",
                fix="Load the password from the environment",
                code_example="const password = process.env.DB_PASSWORD;",
            ),
            make_finding(1, Severity.HIGH, title="Missing rate limiting on login", line=None),
        ),
        input_tokens=1200,
        output_tokens=300,
        cost_usd=0.000252,
    )
    tier2 = TierResult(
        tier=PriorityTier.CORE,
        files_scanned=2,
        files_requested=2,
        findings=(
            make_finding(
                2,
                Severity.LOW,
                FindingCategory.PERFORMANCE,
                file="src/api/users.ts",
                title="N+1 query when listing users",
            ),
        ),
        input_tokens=800,
        output_tokens=100,
        cost_usd=0.00014,
    )
    return RunSummary(
        run_id="run-1",
        metadata=metadata,
        tier_results=(tier1, tier2),
        skipped_tiers=(PriorityTier.SUPPORTING,),
        started_at=started,
        finished_at=finished,
    )
