"""Tiered analysis orchestration.

An analysis run walks the priority tiers in order:

    IDLE -> VALIDATING -> FETCHING(n) -> ANALYZING(n) -> AWAITING_APPROVAL(n)
         -> FETCHING(n+1) ... -> COMPLETE | FAILED

Every step is reported as an AnalysisEvent on a single async stream. Between
tiers the run pauses until the caller approves or stops. Any run-terminating
error produces exactly one ``error`` event, after which the stream ends.

The RunState held by a run is the single source of truth; events are
projections of it.
"""

import asyncio
import logging
import math
import time
import uuid
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from enum import Enum

import httpx

from vibescan.analyzers.classifier import tier_name
from vibescan.config import AnalysisConfig, VibescanConfig
from vibescan.errors import (
    ApprovalTimeoutError,
    InvalidDecisionError,
    InvalidRequestError,
    PrivateRepositoryError,
    VibescanError,
)
from vibescan.github.cache import FileTreeCache
from vibescan.github.client import GitHubClient
from vibescan.github.gateway import RepositoryGateway
from vibescan.llm.client import LLMClient
from vibescan.llm.engine import AnalysisEngine, EngineResult
from vibescan.models.analysis import (
    PriorityTier,
    RepositoryEstimate,
    RunState,
    RunStatus,
    RunSummary,
    TierEstimate,
    TierResult,
)
from vibescan.models.events import (
    AnalysisEvent,
    complete_event,
    error_event,
    file_event,
    issue_event,
    status_event,
)
from vibescan.models.repository import FetchedFile, RepositoryMetadata, RepositoryReference
from vibescan.utils.logging import get_logger
from vibescan.utils.tokens import (
    AVG_TOKENS_PER_FILE,
    DEFAULT_PRICING,
    OUTPUT_RATIO,
    PricingModel,
    calculate_cost,
)

logger = get_logger(__name__)

CompletionCallback = Callable[[RunSummary], None]


class Decision(Enum):
    """Caller's answer at an approval gate."""

    APPROVE = "approve"
    STOP = "stop"


class AnalysisRun:
    """Handle for one analysis run.

    Iterate ``events()`` to drive the run. While the run is paused after a
    tier, call ``approve(tier)`` or ``stop(tier)`` from any task.

    Attributes:
        state: Mutable run aggregate
        reference: Repository being analyzed
        start_tier: First tier to analyze
    """

    def __init__(
        self,
        orchestrator: "AnalysisOrchestrator",
        reference: RepositoryReference,
        api_key: str,
        run_id: str,
        start_tier: PriorityTier = PriorityTier.SECURITY,
    ) -> None:
        self.reference = reference
        self.start_tier = start_tier
        self.state = RunState(run_id=run_id)
        self._orchestrator = orchestrator
        self._api_key = api_key
        self._decision: asyncio.Future[Decision] | None = None
        self._started = False
        self._started_clock = time.monotonic()

    @property
    def run_id(self) -> str:
        return self.state.run_id

    @property
    def status(self) -> RunStatus:
        return self.state.status

    @property
    def awaiting_approval_for(self) -> PriorityTier | None:
        return self.state.awaiting_approval_for

    # =========================================================================
    # Approval gate
    # =========================================================================

    def approve(self, tier: PriorityTier) -> None:
        """Resume the run with the tier after ``tier``.

        Raises:
            InvalidDecisionError: The run is not paused after ``tier``
        """
        self._decide(tier, Decision.APPROVE)

    def stop(self, tier: PriorityTier) -> None:
        """Complete the run, skipping every tier after ``tier``.

        Raises:
            InvalidDecisionError: The run is not paused after ``tier``
        """
        self._decide(tier, Decision.STOP)

    def _decide(self, tier: PriorityTier, decision: Decision) -> None:
        tier = PriorityTier(tier)
        if (
            self._decision is None
            or self._decision.done()
            or self.state.awaiting_approval_for is not tier
        ):
            raise InvalidDecisionError(
                f"Run {self.run_id} is not awaiting approval for priority {tier.value}"
            )
        logger.info("Run %s: %s after priority %d", self.run_id, decision.value, tier.value)
        self._decision.set_result(decision)

    def _arm_gate(self, tier: PriorityTier) -> None:
        self.state.status = RunStatus.AWAITING_APPROVAL
        self.state.awaiting_approval_for = tier
        self._decision = asyncio.get_running_loop().create_future()

    async def _wait_for_decision(self, tier: PriorityTier) -> Decision:
        assert self._decision is not None
        timeout = self._orchestrator.config.approval_timeout
        try:
            decision = await asyncio.wait_for(self._decision, timeout)
        except TimeoutError as e:
            raise ApprovalTimeoutError(
                f"No decision received after priority {tier.value} within {timeout} seconds"
            ) from e
        finally:
            self.state.awaiting_approval_for = None
            self._decision = None
        return decision

    # =========================================================================
    # Event stream
    # =========================================================================

    async def events(self) -> AsyncIterator[AnalysisEvent]:
        """Drive the run, yielding its events.

        Yields:
            AnalysisEvent in order; the final event is the last tier's
            ``complete`` or a single ``error``

        Raises:
            RuntimeError: If the stream is iterated twice
        """
        if self._started:
            raise RuntimeError(f"Run {self.run_id} has already been started")
        self._started = True

        try:
            async for event in self._drive():
                yield event
        except VibescanError as e:
            self._fail(e)
            yield error_event(e, self.state.current_tier)
        except Exception as e:
            logger.exception("Analysis run %s failed unexpectedly", self.run_id)
            wrapped = VibescanError(f"Analysis failed: {e}")
            self._fail(wrapped)
            yield error_event(wrapped, self.state.current_tier)

    def _fail(self, error: VibescanError) -> None:
        self.state.status = RunStatus.FAILED
        self.state.awaiting_approval_for = None
        self.state.finished_at = self.state.finished_at or datetime.now(UTC)
        logger.structured(
            logging.ERROR,
            "Analysis failed",
            run_id=self.run_id,
            repo=self.reference.full_name,
            code=error.code,
            error=error.message,
        )

    async def _drive(self) -> AsyncIterator[AnalysisEvent]:
        orchestrator = self._orchestrator
        gateway = orchestrator.gateway

        self.state.status = RunStatus.VALIDATING
        yield status_event("Validating repository...")

        metadata = await gateway.get_metadata(self.reference)
        self.state.metadata = metadata
        orchestrator.ensure_accessible(metadata)

        tier: PriorityTier | None = self.start_tier
        while tier is not None:
            async for event in self._run_tier(tier):
                yield event

            if tier.is_last:
                break

            decision = await self._wait_for_decision(tier)
            if decision is Decision.STOP:
                self.state.skip_after(tier)
                break
            tier = tier.next

        self._complete()

    async def _run_tier(self, tier: PriorityTier) -> AsyncIterator[AnalysisEvent]:
        orchestrator = self._orchestrator
        gateway = orchestrator.gateway
        max_files = orchestrator.config.max_files_per_tier

        self.state.current_tier = tier
        self.state.status = RunStatus.FETCHING
        yield status_event(f"Scanning {tier_name(tier)} files...", tier=tier)

        paths = await gateway.get_tier_paths(self.reference, tier)
        logger.info(
            "Priority %d: %d files match, fetching up to %d", tier.value, len(paths), max_files
        )

        files: list[FetchedFile] = []
        async for tick in gateway.iter_file_contents(self.reference, paths, max_files):
            yield status_event(
                f"Fetching files... ({tick.processed}/{tick.total})",
                files_scanned=tick.processed,
                total_files=tick.total,
                current_file=tick.path,
                tier=tier,
            )
            yield file_event(tick.path, tier, "scanning")
            if tick.file is not None:
                files.append(tick.file)

        requested = min(len(paths), max_files)

        if not files:
            yield status_event(f"No files found for Priority {tier.value}", tier=tier)
            result = TierResult(tier=tier, files_scanned=0, files_requested=requested)
        else:
            for fetched in files:
                yield file_event(fetched.path, tier, "complete")

            self.state.status = RunStatus.ANALYZING
            yield status_event(
                f"Analyzing {len(files)} files with AI...",
                files_scanned=len(files),
                total_files=len(files),
                tier=tier,
            )

            engine_result = await self._analyze(files, tier)
            for finding in engine_result.findings:
                yield issue_event(finding, tier)

            result = TierResult(
                tier=tier,
                files_scanned=len(files),
                findings=engine_result.findings,
                input_tokens=engine_result.input_tokens,
                output_tokens=engine_result.output_tokens,
                cost_usd=engine_result.cost_usd,
                files_requested=requested,
            )

        self.state.record_tier(result)

        next_estimate = None
        if not tier.is_last:
            next_estimate = await orchestrator.next_tier_estimate(self.reference, result)
            self._arm_gate(tier)

        logger.structured(
            logging.INFO,
            "Tier complete",
            run_id=self.run_id,
            repo=self.reference.full_name,
            priority=tier.value,
            files=result.files_scanned,
            issues=len(result.findings),
            tokens=result.total_tokens,
            cost=result.cost_usd,
        )
        yield complete_event(result, next_estimate)

    async def _analyze(self, files: list[FetchedFile], tier: PriorityTier) -> EngineResult:
        result: EngineResult | None = None
        async for item in self._orchestrator.engine.stream_analyze(files, self._api_key, tier):
            if isinstance(item, EngineResult):
                result = item
        if result is None:
            raise VibescanError("Analysis engine produced no result")
        return result

    def _complete(self) -> None:
        self.state.status = RunStatus.COMPLETE
        self.state.current_tier = None
        self.state.finished_at = datetime.now(UTC)

        summary = self.state.to_summary()
        logger.structured(
            logging.INFO,
            "Analysis complete",
            run_id=self.run_id,
            repo=self.reference.full_name,
            files=summary.files_scanned,
            issues=len(summary.findings),
            tokens=summary.total_tokens,
            cost=summary.cost_usd,
            duration_ms=int((time.monotonic() - self._started_clock) * 1000),
        )

        callback = self._orchestrator.on_complete
        if callback is not None:
            callback(summary)


class AnalysisOrchestrator:
    """Creates and drives analysis runs for one caller.

    Attributes:
        gateway: Repository content gateway
        caller_token: Hosting credential supplied by the caller. A server-side
            token configured on the client does not count for private access
        engine: AI analysis engine
        config: Orchestration limits
        pricing: Pricing model for estimates
        on_complete: Called with the RunSummary of every completed run
    """

    def __init__(
        self,
        gateway: RepositoryGateway,
        engine: AnalysisEngine,
        config: AnalysisConfig | None = None,
        pricing: PricingModel = DEFAULT_PRICING,
        on_complete: CompletionCallback | None = None,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
        caller_token: str | None = None,
    ) -> None:
        self.gateway = gateway
        self.caller_token = caller_token or None
        self.engine = engine
        self.config = config or AnalysisConfig()
        self.pricing = pricing
        self.on_complete = on_complete
        self._id_factory = id_factory

    def start(
        self,
        repo_url: str,
        api_key: str,
        start_tier: PriorityTier = PriorityTier.SECURITY,
    ) -> AnalysisRun:
        """Create a run. No network call happens until its events are iterated.

        Args:
            repo_url: Repository URL
            api_key: Caller-supplied AI service key
            start_tier: First tier to analyze

        Returns:
            AnalysisRun handle

        Raises:
            InvalidRepositoryUrlError: The URL does not name a repository
            InvalidRequestError: The API key is missing
        """
        reference = RepositoryReference.from_url(repo_url)
        if not api_key or not api_key.strip():
            raise InvalidRequestError("An AI service API key is required")
        return AnalysisRun(
            self,
            reference,
            api_key.strip(),
            run_id=self._id_factory(),
            start_tier=PriorityTier(start_tier),
        )

    async def run(
        self,
        repo_url: str,
        api_key: str,
        start_tier: PriorityTier = PriorityTier.SECURITY,
        approve: Callable[[PriorityTier], bool] = lambda tier: True,
    ) -> AsyncIterator[AnalysisEvent]:
        """Run an analysis, deciding every approval gate with ``approve``.

        Yields:
            The run's events
        """
        handle = self.start(repo_url, api_key, start_tier)
        async for event in handle.events():
            yield event
            tier = handle.awaiting_approval_for
            if tier is not None:
                if approve(tier):
                    handle.approve(tier)
                else:
                    handle.stop(tier)

    def ensure_accessible(self, metadata: RepositoryMetadata) -> None:
        """Reject private repositories unless the caller supplied a credential.

        Raises:
            PrivateRepositoryError: Private repository without a caller credential
        """
        if metadata.is_private and not self.caller_token:
            raise PrivateRepositoryError("Private repositories require login")

    async def validate_repository(self, repo_url: str) -> RepositoryMetadata:
        """Parse a URL and fetch the repository metadata."""
        reference = RepositoryReference.from_url(repo_url)
        return await self.gateway.get_metadata(reference)

    def _tier_estimate(self, files: int, tokens_per_file: float) -> TierEstimate:
        estimated_tokens = math.ceil(files * tokens_per_file)
        return TierEstimate(
            files=files,
            estimated_tokens=estimated_tokens,
            estimated_cost=calculate_cost(
                estimated_tokens, estimated_tokens * OUTPUT_RATIO, self.pricing
            ),
        )

    async def estimate(self, repo_url: str) -> RepositoryEstimate:
        """Estimate tokens and cost for every tier from the tree listing alone.

        Raises:
            InvalidRepositoryUrlError: Bad URL
            PrivateRepositoryError: Private repository without a credential
        """
        reference = RepositoryReference.from_url(repo_url)
        metadata = await self.gateway.get_metadata(reference)
        self.ensure_accessible(metadata)

        counts = await self.gateway.get_tier_counts(reference)
        max_files = self.config.max_files_per_tier
        tiers = {
            tier: self._tier_estimate(
                min(counts[f"priority{tier.value}"], max_files), AVG_TOKENS_PER_FILE
            )
            for tier in PriorityTier
        }
        return RepositoryEstimate(metadata=metadata, tiers=tiers)

    async def next_tier_estimate(
        self,
        reference: RepositoryReference,
        result: TierResult,
    ) -> TierEstimate | None:
        """Extrapolate the next tier's cost from the tier just analyzed.

        Uses the observed input tokens per file of ``result`` (500 if nothing
        was analyzed) and the next tier's listing, without fetching content.
        """
        next_tier = result.tier.next
        if next_tier is None:
            return None
        paths = await self.gateway.get_tier_paths(reference, next_tier)
        files = min(len(paths), self.config.max_files_per_tier)
        per_file = (
            result.input_tokens / result.files_scanned if result.files_scanned else 0
        ) or AVG_TOKENS_PER_FILE
        return self._tier_estimate(files, per_file)

    async def aclose(self) -> None:
        """Release the hosting client's connections."""
        await self.gateway.client.aclose()


def create_orchestrator(
    config: VibescanConfig,
    github_token: str | None = None,
    cache: FileTreeCache | None = None,
    on_complete: CompletionCallback | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AnalysisOrchestrator:
    """Create an orchestrator from configuration.

    Args:
        config: vibescan configuration
        github_token: Caller hosting credential. The configured token is still
            used for requests when this is None, but never unlocks private repos
        cache: Tree cache shared between orchestrators (new one if None)
        on_complete: Completion callback
        transport: httpx transport override for the GitHub client

    Returns:
        Configured AnalysisOrchestrator
    """
    client = GitHubClient.from_config(config.github, token=github_token, transport=transport)
    gateway = RepositoryGateway(
        client,
        cache if cache is not None else FileTreeCache(ttl=config.analysis.tree_cache_ttl),
        batch_size=config.analysis.batch_size,
        batch_delay=config.analysis.batch_delay,
    )
    pricing = PricingModel.from_config(config.pricing)
    engine = AnalysisEngine(LLMClient(config.llm), pricing)
    return AnalysisOrchestrator(
        gateway,
        engine,
        config=config.analysis,
        pricing=pricing,
        on_complete=on_complete,
        caller_token=github_token,
    )
