"""Markdown report renderer.

Renders a finished run's RunSummary to Markdown using Jinja2 templates.
Output is deterministic: the same summary always renders the same report.
"""

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from jinja2 import Environment, PackageLoader, TemplateError, select_autoescape

from vibescan.analyzers.classifier import tier_name
from vibescan.models.analysis import PriorityTier, RunSummary, Severity
from vibescan.utils.tokens import format_cost

logger = logging.getLogger(__name__)

SEVERITY_ORDER = [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW]


def format_datetime(dt: datetime | str | None) -> str:
    """Render a timestamp in UTC. Unparseable strings pass through untouched."""
    if dt is None:
        return "N/A"
    if isinstance(dt, str):
        try:
            dt = datetime.fromisoformat(dt)
        except ValueError:
            return dt
    # Naive values are treated as UTC
    moment = dt.astimezone(UTC) if dt.tzinfo else dt.replace(tzinfo=UTC)
    return f"{moment:%Y-%m-%d %H:%M:%S} UTC"


def vibe_verdict(score: int) -> str:
    """Describe a vibe score in a few words."""
    if score >= 90:
        return "Good vibes"
    if score >= 70:
        return "Mostly fine"
    if score >= 40:
        return "Needs attention"
    return "Bad vibes"


class ReportRenderer:
    """Renders run summaries to Markdown.

    Usage:
        renderer = ReportRenderer()
        markdown = renderer.render(summary)
    """

    def __init__(self) -> None:
        self._env = Environment(
            loader=PackageLoader("vibescan", "templates"),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

        self._env.filters["format_datetime"] = format_datetime
        self._env.filters["format_cost"] = format_cost
        self._env.filters["tier_name"] = tier_name
        self._env.filters["vibe_verdict"] = vibe_verdict

    def render(self, summary: RunSummary, template_name: str = "REPORT.md.j2") -> str:
        """Render a run summary to Markdown.

        Args:
            summary: Summary of a completed run
            template_name: Template file to use

        Returns:
            Rendered markdown string

        Raises:
            ValueError: If the template is missing or fails to render
        """
        try:
            template = self._env.get_template(template_name)
        except TemplateError as e:
            logger.error("Failed to load template %s: %s", template_name, e)
            raise ValueError(f"Template not found: {template_name}") from e

        try:
            rendered = template.render(**self._build_context(summary))
        except TemplateError as e:
            logger.error("Template rendering failed: %s", e)
            raise ValueError(f"Template rendering failed: {e}") from e

        logger.info("Rendered report (%d characters)", len(rendered))
        return rendered

    def _build_context(self, summary: RunSummary) -> dict[str, Any]:
        findings = summary.findings
        findings_by_severity = {
            severity.value: [f.to_dict() for f in findings if f.severity is severity]
            for severity in SEVERITY_ORDER
        }
        return {
            "run_id": summary.run_id,
            "repo": summary.metadata.to_dict(),
            "started_at": summary.started_at,
            "finished_at": summary.finished_at,
            "duration_seconds": summary.duration_ms / 1000,
            "vibe_score": summary.vibe_score,
            "severity_counts": summary.severity_counts,
            "severities": [s.value for s in SEVERITY_ORDER],
            "findings_by_severity": findings_by_severity,
            "issue_count": len(findings),
            "files_scanned": summary.files_scanned,
            "total_tokens": summary.total_tokens,
            "cost": summary.cost_usd,
            "tiers": [
                {
                    "priority": r.tier,
                    "files_scanned": r.files_scanned,
                    "files_requested": r.files_requested,
                    "issues": len(r.findings),
                    "tokens": r.total_tokens,
                    "cost": r.cost_usd,
                }
                for r in summary.tier_results
            ],
            "skipped": [PriorityTier(t) for t in summary.skipped_tiers],
        }

    def render_to_file(
        self,
        summary: RunSummary,
        output_path: Path,
        template_name: str = "REPORT.md.j2",
    ) -> Path:
        """Render a run summary and write it to a file.

        Returns:
            Path to written file
        """
        content = self.render(summary, template_name)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content, encoding="utf-8")
        logger.info("Wrote report to %s", output_path)

        return output_path
