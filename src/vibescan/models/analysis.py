"""Analysis result entities.

This module contains entities related to a tiered analysis run:
- PriorityTier: The three ordered file buckets
- Severity / FindingCategory: Closed vocabularies for findings
- Finding: One AI-reported observation
- TierResult: Outcome of one completed tier
- TierEstimate / RepositoryEstimate: Pre-flight cost estimates
- RunState: The orchestrator's mutable aggregate for one run
- RunSummary: Final, immutable aggregate handed to persistence
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, IntEnum
from typing import Any

from vibescan.models.repository import RepositoryMetadata


class PriorityTier(IntEnum):
    """Priority bucket a file is analyzed in. Lower runs first."""

    SECURITY = 1
    CORE = 2
    SUPPORTING = 3

    @property
    def next(self) -> "PriorityTier | None":
        """Return the following tier, or None for the last one."""
        if self is PriorityTier.SUPPORTING:
            return None
        return PriorityTier(self.value + 1)

    @property
    def is_last(self) -> bool:
        return self is PriorityTier.SUPPORTING


class Severity(Enum):
    """Severity of a finding."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class FindingCategory(Enum):
    """Category of a finding."""

    SECURITY = "security"
    BUG = "bug"
    PERFORMANCE = "performance"
    QUALITY = "quality"


class RunStatus(Enum):
    """State of the orchestrator for one run."""

    IDLE = "idle"
    VALIDATING = "validating"
    FETCHING = "fetching"
    ANALYZING = "analyzing"
    AWAITING_APPROVAL = "awaiting_approval"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {RunStatus.COMPLETE, RunStatus.FAILED}


@dataclass(frozen=True)
class Finding:
    """A single issue reported by the analysis engine.

    Attributes:
        id: Identifier unique within the run
        severity: CRITICAL, HIGH, MEDIUM or LOW
        category: security, bug, performance or quality
        file: Repository-relative path the finding refers to
        title: Short title (at most 100 characters)
        description: What is wrong
        line: 1-based line number, if known
        impact: Consequences if left unfixed
        fix: Suggested remediation
        code_example: Example of corrected code
    """

    id: str
    severity: Severity
    category: FindingCategory
    file: str
    title: str
    description: str
    line: int | None = None
    impact: str | None = None
    fix: str | None = None
    code_example: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the ``issue`` event payload (optional fields omitted when unset)."""
        data: dict[str, Any] = {
            "id": self.id,
            "severity": self.severity.value,
            "category": self.category.value,
            "file": self.file,
            "title": self.title,
            "description": self.description,
        }
        if self.line is not None:
            data["line"] = self.line
        if self.impact is not None:
            data["impact"] = self.impact
        if self.fix is not None:
            data["fix"] = self.fix
        if self.code_example is not None:
            data["codeExample"] = self.code_example
        return data


@dataclass(frozen=True)
class TierResult:
    """Outcome of one completed tier.

    Attributes:
        tier: Tier that was analyzed
        files_scanned: Files successfully fetched and sent to the engine
        findings: Findings in the order the engine reported them
        input_tokens: Prompt tokens used
        output_tokens: Completion tokens used
        cost_usd: Cost of the AI call
        files_requested: Files selected for the tier before fetch failures
    """

    tier: PriorityTier
    files_scanned: int
    findings: tuple[Finding, ...] = ()
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    files_requested: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class TierEstimate:
    """Forward-looking estimate for a tier.

    Attributes:
        files: Matching files (capped at the per-tier maximum)
        estimated_tokens: Estimated input tokens
        estimated_cost: Estimated cost in USD
    """

    files: int
    estimated_tokens: int
    estimated_cost: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": self.files,
            "estimatedTokens": self.estimated_tokens,
            "estimatedCost": self.estimated_cost,
        }


@dataclass(frozen=True)
class RepositoryEstimate:
    """Pre-flight estimate for all three tiers of a repository."""

    metadata: RepositoryMetadata
    tiers: dict[PriorityTier, TierEstimate]

    @property
    def total_files(self) -> int:
        return sum(t.files for t in self.tiers.values())

    @property
    def total_estimated_tokens(self) -> int:
        return sum(t.estimated_tokens for t in self.tiers.values())

    @property
    def total_estimated_cost(self) -> float:
        return sum(t.estimated_cost for t in self.tiers.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire format used by the estimate endpoint."""
        data: dict[str, Any] = {"repoInfo": self.metadata.to_dict()}
        for tier in PriorityTier:
            data[f"priority{tier.value}"] = self.tiers[tier].to_dict()
        data["totalFiles"] = self.total_files
        data["totalEstimatedTokens"] = self.total_estimated_tokens
        data["totalEstimatedCost"] = self.total_estimated_cost
        return data


def calculate_vibe_score(findings: list[Finding] | tuple[Finding, ...]) -> int:
    """Score a set of findings from 0 to 100.

    Each CRITICAL finding costs 20 points and each HIGH finding costs 5.

    Args:
        findings: Findings of a run

    Returns:
        Score clamped to [0, 100]
    """
    critical = sum(1 for f in findings if f.severity is Severity.CRITICAL)
    high = sum(1 for f in findings if f.severity is Severity.HIGH)
    return max(0, 100 - critical * 20 - high * 5)


@dataclass(frozen=True)
class RunSummary:
    """Final aggregate of a run, available once the run reaches Complete.

    Attributes:
        run_id: Run identifier
        metadata: Repository metadata
        tier_results: Results of the tiers that ran, in tier order
        skipped_tiers: Tiers the caller declined to run
        started_at: Run start time (UTC)
        finished_at: Run end time (UTC)
    """

    run_id: str
    metadata: RepositoryMetadata
    tier_results: tuple[TierResult, ...]
    skipped_tiers: tuple[PriorityTier, ...]
    started_at: datetime
    finished_at: datetime

    @property
    def findings(self) -> list[Finding]:
        return [f for result in self.tier_results for f in result.findings]

    @property
    def files_scanned(self) -> int:
        return sum(r.files_scanned for r in self.tier_results)

    @property
    def input_tokens(self) -> int:
        return sum(r.input_tokens for r in self.tier_results)

    @property
    def output_tokens(self) -> int:
        return sum(r.output_tokens for r in self.tier_results)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def cost_usd(self) -> float:
        return sum(r.cost_usd for r in self.tier_results)

    @property
    def duration_ms(self) -> int:
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    @property
    def severity_counts(self) -> dict[str, int]:
        counts = {severity.value: 0 for severity in Severity}
        for finding in self.findings:
            counts[finding.severity.value] += 1
        return counts

    @property
    def vibe_score(self) -> int:
        return calculate_vibe_score(self.findings)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for persistence and the history endpoint."""
        return {
            "runId": self.run_id,
            "repoInfo": self.metadata.to_dict(),
            "tiers": [
                {
                    "priority": r.tier.value,
                    "filesScanned": r.files_scanned,
                    "filesRequested": r.files_requested,
                    "issuesFound": len(r.findings),
                    "tokensUsed": r.total_tokens,
                    "cost": r.cost_usd,
                }
                for r in self.tier_results
            ],
            "skippedPriorities": [t.value for t in self.skipped_tiers],
            "issues": [f.to_dict() for f in self.findings],
            "filesScanned": self.files_scanned,
            "tokensUsed": self.total_tokens,
            "cost": self.cost_usd,
            "durationMs": self.duration_ms,
            "severityCounts": self.severity_counts,
            "vibeScore": self.vibe_score,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat(),
        }


@dataclass
class RunState:
    """Mutable aggregate owned by the orchestrator for a single run.

    Entries in ``tier_results`` appear as tiers complete. This object is the
    only source of truth for a run; event consumers hold projections of it.
    """

    run_id: str
    metadata: RepositoryMetadata | None = None
    tier_results: dict[PriorityTier, TierResult] = field(default_factory=dict)
    awaiting_approval_for: PriorityTier | None = None
    current_tier: PriorityTier | None = None
    skipped_tiers: list[PriorityTier] = field(default_factory=list)
    cumulative_input_tokens: int = 0
    cumulative_output_tokens: int = 0
    cumulative_cost_usd: float = 0.0
    status: RunStatus = RunStatus.IDLE
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def cumulative_tokens(self) -> int:
        return self.cumulative_input_tokens + self.cumulative_output_tokens

    def record_tier(self, result: TierResult) -> None:
        """Store a completed tier and fold its usage into the run totals."""
        if result.tier in self.tier_results:
            raise ValueError(f"Tier {result.tier.value} already recorded")
        self.tier_results[result.tier] = result
        self.cumulative_input_tokens += result.input_tokens
        self.cumulative_output_tokens += result.output_tokens
        self.cumulative_cost_usd += result.cost_usd

    def skip_after(self, tier: PriorityTier) -> None:
        """Mark every tier after ``tier`` as skipped."""
        self.skipped_tiers = [t for t in PriorityTier if t > tier and t not in self.tier_results]

    def to_summary(self) -> RunSummary:
        """Freeze the state into a RunSummary.

        Raises:
            ValueError: If repository metadata was never fetched
        """
        if self.metadata is None:
            raise ValueError("Run has no repository metadata")
        finished = self.finished_at or datetime.now(UTC)
        return RunSummary(
            run_id=self.run_id,
            metadata=self.metadata,
            tier_results=tuple(self.tier_results[t] for t in sorted(self.tier_results)),
            skipped_tiers=tuple(self.skipped_tiers),
            started_at=self.started_at,
            finished_at=finished,
        )
