"""vibescan CLI interface.

Commands:
- validate: Check that a repository exists and is reachable
- estimate: Estimate tokens and cost per priority tier
- analyze: Run a tiered AI code review
- serve: Run the HTTP service
- init: Write a default configuration file

Global options:
- --config: Path to configuration file
- --verbose: Enable verbose output with timestamps
- --quiet: Suppress info messages
- --ci: JSON log output
- --version: Show version and exit
"""

import asyncio
import json
from pathlib import Path
from typing import Annotated

import typer

from vibescan import __version__
from vibescan.analyzers.classifier import tier_name
from vibescan.config import VibescanConfig, create_default_config, load_config
from vibescan.errors import VibescanError
from vibescan.models.analysis import PriorityTier, RunSummary
from vibescan.models.events import AnalysisEvent, EventType
from vibescan.orchestrator import AnalysisOrchestrator, create_orchestrator
from vibescan.utils.logging import configure_from_cli, get_logger
from vibescan.utils.tokens import format_cost

app = typer.Typer(
    name="vibescan",
    help="Tiered AI code review for GitHub repositories",
    add_completion=False,
    no_args_is_help=True,
)

# Global state
_config: VibescanConfig | None = None
_logger = get_logger()

SEVERITY_MARKERS = {
    "CRITICAL": "🔴",
    "HIGH": "🟠",
    "MEDIUM": "🟡",
    "LOW": "🔵",
}

GithubTokenOption = Annotated[
    str | None,
    typer.Option(
        "--github-token",
        envvar="GITHUB_TOKEN",
        help="GitHub token (raises rate limits, required for private repositories)",
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"vibescan {__version__}")
        raise typer.Exit()


def _get_config() -> VibescanConfig:
    return _config if _config is not None else VibescanConfig()


def _orchestrator(github_token: str | None) -> AnalysisOrchestrator:
    return create_orchestrator(_get_config(), github_token=github_token)


@app.callback()
def main(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output with timestamps",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress info messages (warnings and errors only)",
        ),
    ] = False,
    ci: Annotated[
        bool,
        typer.Option(
            "--ci",
            help="Enable CI mode with JSON log output",
        ),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """vibescan - tiered AI code review.

    Reviews a GitHub repository one priority tier at a time (security, core
    logic, supporting code), asking before each further tier is spent.
    """
    global _config

    configure_from_cli(verbose=verbose, quiet=quiet, ci=ci)

    try:
        _config = load_config(config_path=config)
        if _config.config_path:
            _logger.debug(f"Loaded config from: {_config.config_path}")
    except FileNotFoundError as e:
        _logger.error(str(e))
        raise typer.Exit(1)
    except ValueError as e:
        _logger.error(f"Failed to load config: {e}")
        raise typer.Exit(1)


# =============================================================================
# validate command
# =============================================================================


@app.command()
def validate(
    repo_url: Annotated[str, typer.Argument(help="Repository URL or owner/name")],
    github_token: GithubTokenOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output metadata as JSON"),
    ] = False,
) -> None:
    """Check that a repository exists and is reachable."""

    async def _validate():
        orchestrator = _orchestrator(github_token)
        try:
            return await orchestrator.validate_repository(repo_url)
        finally:
            await orchestrator.aclose()

    try:
        metadata = asyncio.run(_validate())
    except VibescanError as e:
        _logger.error(e.message)
        typer.echo(f"❌ {e.message}")
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps({"valid": True, **metadata.to_dict()}, indent=2))
        return

    visibility = "private" if metadata.is_private else "public"
    typer.echo(f"✅ {metadata.full_name} ({visibility})")
    if metadata.description:
        typer.echo(f"   {metadata.description}")
    typer.echo(f"   Language: {metadata.primary_language or 'unknown'}")
    typer.echo(f"   Stars: {metadata.star_count}")
    typer.echo(f"   Default branch: {metadata.default_branch}")


# =============================================================================
# estimate command
# =============================================================================


@app.command()
def estimate(
    repo_url: Annotated[str, typer.Argument(help="Repository URL or owner/name")],
    github_token: GithubTokenOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the estimate as JSON"),
    ] = False,
) -> None:
    """Estimate tokens and cost for each priority tier."""

    async def _estimate():
        orchestrator = _orchestrator(github_token)
        try:
            return await orchestrator.estimate(repo_url)
        finally:
            await orchestrator.aclose()

    try:
        result = asyncio.run(_estimate())
    except VibescanError as e:
        _logger.error(e.message)
        typer.echo(f"❌ {e.message}")
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    typer.echo(f"\n📊 Estimate for {result.metadata.full_name}\n")
    for tier, tier_estimate in sorted(result.tiers.items()):
        typer.echo(
            f"  Priority {tier.value} ({tier_name(tier)}): "
            f"{tier_estimate.files} files, ~{tier_estimate.estimated_tokens} tokens, "
            f"{format_cost(tier_estimate.estimated_cost)}"
        )
    typer.echo(
        f"\n  Total: {result.total_files} files, ~{result.total_estimated_tokens} tokens, "
        f"{format_cost(result.total_estimated_cost)}"
    )


# =============================================================================
# analyze command
# =============================================================================


def print_event(event: AnalysisEvent) -> None:
    """Render one analysis event for the terminal."""
    data = event.data
    if event.type is EventType.STATUS:
        if "currentFile" not in data:
            typer.echo(f"… {data['message']}")
    elif event.type is EventType.FILE:
        if data["status"] == "scanning":
            typer.echo(f"  📄 {data['path']}")
    elif event.type is EventType.ISSUE:
        marker = SEVERITY_MARKERS.get(data["severity"], "•")
        location = data["file"] if data.get("line") is None else f"{data['file']}:{data['line']}"
        typer.echo(f"  {marker} [{data['severity']}] {data['title']} ({location})")
    elif event.type is EventType.COMPLETE:
        typer.echo(
            f"\n✅ Priority {data['priority']} complete: {data['filesScanned']} files, "
            f"{data['issuesFound']} issues, {data['tokensUsed']} tokens, "
            f"{format_cost(data['cost'])}"
        )
    elif event.type is EventType.ERROR:
        typer.echo(f"\n❌ {data['message']} [{data['code']}]")


def confirm_next(tier: PriorityTier, event: AnalysisEvent) -> bool:
    """Ask whether to continue with the tier after ``tier``."""
    next_tier = tier.next
    assert next_tier is not None
    estimate_data = event.data.get("nextPriorityEstimate") or {}
    typer.echo(
        f"\nNext: Priority {next_tier.value} ({tier_name(next_tier)}), "
        f"{estimate_data.get('files', 0)} files, "
        f"~{estimate_data.get('estimatedTokens', 0)} tokens, "
        f"{format_cost(estimate_data.get('estimatedCost', 0.0))}"
    )
    return typer.confirm("Continue?", default=True)


async def run_analysis(
    orchestrator: AnalysisOrchestrator,
    repo_url: str,
    api_key: str,
    start_tier: PriorityTier,
    auto_approve: bool,
) -> RunSummary | None:
    """Drive one run to completion, prompting at each approval gate.

    Returns:
        The run summary, or None if the run ended with an error
    """
    summaries: list[RunSummary] = []
    orchestrator.on_complete = summaries.append

    run = orchestrator.start(repo_url, api_key, start_tier)
    async for event in run.events():
        print_event(event)
        tier = run.awaiting_approval_for
        if tier is None:
            continue
        if auto_approve or confirm_next(tier, event):
            run.approve(tier)
        else:
            run.stop(tier)

    return summaries[0] if summaries else None


@app.command()
def analyze(
    repo_url: Annotated[str, typer.Argument(help="Repository URL or owner/name")],
    api_key: Annotated[
        str,
        typer.Option(
            "--api-key",
            envvar="VIBESCAN_API_KEY",
            help="AI service API key",
        ),
    ],
    github_token: GithubTokenOption = None,
    priority: Annotated[
        int,
        typer.Option(
            "--priority",
            "-p",
            min=1,
            max=3,
            help="Priority tier to start from (1 security, 2 core, 3 supporting)",
        ),
    ] = 1,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Approve every tier without prompting"),
    ] = False,
    report: Annotated[
        Path | None,
        typer.Option(
            "--report",
            "-o",
            help="Write a Markdown report to this path",
            dir_okay=False,
        ),
    ] = None,
) -> None:
    """Run a tiered AI code review.

    Exit codes:
        0: Run completed
        1: Run failed
    """

    async def _analyze():
        orchestrator = _orchestrator(github_token)
        try:
            return await run_analysis(
                orchestrator, repo_url, api_key, PriorityTier(priority), yes
            )
        finally:
            await orchestrator.aclose()

    try:
        summary = asyncio.run(_analyze())
    except VibescanError as e:
        _logger.error(e.message)
        typer.echo(f"❌ {e.message}")
        raise typer.Exit(1)

    if summary is None:
        raise typer.Exit(1)

    typer.echo(
        f"\n🎯 Vibe Score: {summary.vibe_score}/100 "
        f"({len(summary.findings)} issues, {summary.total_tokens} tokens, "
        f"{format_cost(summary.cost_usd)})"
    )
    if summary.skipped_tiers:
        skipped = ", ".join(str(tier.value) for tier in summary.skipped_tiers)
        typer.echo(f"   Skipped priorities: {skipped}")

    if report is not None:
        from vibescan.templates.renderer import ReportRenderer

        try:
            written = ReportRenderer().render_to_file(summary, report)
        except (OSError, ValueError) as e:
            _logger.error(f"Failed to write report: {e}")
            raise typer.Exit(1)
        typer.echo(f"\n📄 Report written to: {written}")


# =============================================================================
# serve command
# =============================================================================


@app.command()
def serve(
    host: Annotated[
        str | None,
        typer.Option("--host", help="Bind address (default from config)"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", help="Bind port (default from config)"),
    ] = None,
) -> None:
    """Run the HTTP service."""
    from vibescan.service.app import run_service

    config = _get_config()
    _logger.info(
        f"Starting service on {host or config.service.host}:{port or config.service.port}"
    )
    run_service(config, host=host, port=port)


# =============================================================================
# init command
# =============================================================================


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            help="Overwrite existing config",
        ),
    ] = False,
) -> None:
    """Initialize vibescan configuration.

    Creates .vibescan/config.yaml with the default settings.
    """
    vibescan_dir = Path(".vibescan")
    config_file = vibescan_dir / "config.yaml"

    if config_file.exists() and not force:
        _logger.error(f"Config already exists: {config_file} (use --force to overwrite)")
        raise typer.Exit(1)

    vibescan_dir.mkdir(exist_ok=True)
    config_file.write_text(create_default_config())
    _logger.info(f"Created config: {config_file}")

    typer.echo("\n✅ vibescan configuration initialized")
    typer.echo(f"   Config: {config_file}")


if __name__ == "__main__":
    app()
