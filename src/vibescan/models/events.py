"""Typed events emitted by the orchestrator.

Each event serializes to ``{"type": ..., "data": {...}}``. Within a tier,
``status``/``file`` events precede ``issue`` events, which precede the tier's
``complete`` event. A run ends with either the last ``complete`` or a single
``error``.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from vibescan.errors import VibescanError
from vibescan.models.analysis import Finding, PriorityTier, TierEstimate, TierResult


class EventType(Enum):
    """Kinds of events on the analysis stream."""

    RUN = "run"  # handshake sent by the HTTP service before orchestration starts
    STATUS = "status"
    FILE = "file"
    ISSUE = "issue"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class AnalysisEvent:
    """One event on the stream.

    Attributes:
        type: Event kind
        data: JSON-serializable payload
        tier: Tier the event belongs to (None for run-level events)
    """

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    tier: PriorityTier | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "data": self.data}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def status_event(
    message: str,
    files_scanned: int = 0,
    total_files: int = 0,
    current_file: str | None = None,
    tier: PriorityTier | None = None,
) -> AnalysisEvent:
    """Build a ``status`` event."""
    data: dict[str, Any] = {
        "message": message,
        "filesScanned": files_scanned,
        "totalFiles": total_files,
    }
    if current_file is not None:
        data["currentFile"] = current_file
    return AnalysisEvent(EventType.STATUS, data, tier)


def file_event(
    path: str,
    tier: PriorityTier,
    status: Literal["scanning", "complete"],
) -> AnalysisEvent:
    """Build a ``file`` event."""
    return AnalysisEvent(
        EventType.FILE,
        {"path": path, "priority": tier.value, "status": status},
        tier,
    )


def issue_event(finding: Finding, tier: PriorityTier) -> AnalysisEvent:
    """Build an ``issue`` event from a finding."""
    return AnalysisEvent(EventType.ISSUE, finding.to_dict(), tier)


def complete_event(
    result: TierResult,
    next_estimate: TierEstimate | None = None,
) -> AnalysisEvent:
    """Build a tier ``complete`` event.

    ``filesRequested`` is reported next to ``filesScanned`` so that files
    dropped by failed fetches are visible to the caller.
    """
    data: dict[str, Any] = {
        "priority": result.tier.value,
        "filesScanned": result.files_scanned,
        "filesRequested": result.files_requested,
        "issuesFound": len(result.findings),
        "tokensUsed": result.total_tokens,
        "cost": result.cost_usd,
    }
    if next_estimate is not None:
        data["nextPriorityEstimate"] = next_estimate.to_dict()
    return AnalysisEvent(EventType.COMPLETE, data, result.tier)


def error_event(error: VibescanError, tier: PriorityTier | None = None) -> AnalysisEvent:
    """Build an ``error`` event from a run-terminating error."""
    return AnalysisEvent(EventType.ERROR, error.to_dict(), tier)
