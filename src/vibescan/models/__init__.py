"""vibescan data models.

This module exports the core entities used throughout the application:
- RepositoryReference / RepositoryMetadata: The repository being analyzed
- FileTreeEntry / FetchedFile: Tree listing entries and fetched bodies
- PriorityTier, Finding, TierResult: Per-tier analysis results
- RunState / RunSummary: Run aggregate while running and once finished
- AnalysisEvent: Typed events streamed to callers
"""

from vibescan.models.analysis import (
    Finding,
    FindingCategory,
    PriorityTier,
    RepositoryEstimate,
    RunState,
    RunStatus,
    RunSummary,
    Severity,
    TierEstimate,
    TierResult,
    calculate_vibe_score,
)
from vibescan.models.events import AnalysisEvent, EventType
from vibescan.models.repository import (
    FetchedFile,
    FileTreeEntry,
    RepositoryMetadata,
    RepositoryReference,
)

__all__ = [
    "AnalysisEvent",
    "EventType",
    "FetchedFile",
    "FileTreeEntry",
    "Finding",
    "FindingCategory",
    "PriorityTier",
    "RepositoryEstimate",
    "RepositoryMetadata",
    "RepositoryReference",
    "RunState",
    "RunStatus",
    "RunSummary",
    "Severity",
    "TierEstimate",
    "TierResult",
    "calculate_vibe_score",
]
