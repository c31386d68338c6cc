"""Analysis engine: one streaming AI call per tier.

The engine sends a tier's files with the tier's system prompt, relays raw
text chunks as they arrive, and once the stream ends parses the accumulated
text into findings. Decoding is lenient: every field has a fallback, and a
response that is not valid JSON yields zero findings instead of an error.
"""

import json
import logging
import re
import time
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from vibescan.llm.client import LLMClient, TokenUsage
from vibescan.llm.prompts import build_user_message, get_system_prompt
from vibescan.models.analysis import Finding, FindingCategory, PriorityTier, Severity
from vibescan.models.repository import FetchedFile
from vibescan.utils.logging import get_logger
from vibescan.utils.tokens import DEFAULT_PRICING, PricingModel, calculate_cost, estimate_tokens

logger = get_logger(__name__)

# A fence wrapping the whole response, then the first fence anywhere
WRAPPING_FENCE = re.compile(r"\A```(?:json)?\s*([\s\S]*)```\Z")
FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

MAX_TITLE_LENGTH = 100
DEFAULT_TITLE = "Issue found"
DEFAULT_FILE = "unknown"


@dataclass(frozen=True)
class ChunkEvent:
    """Raw text delta from the AI stream."""

    text: str


@dataclass(frozen=True)
class EngineResult:
    """Final outcome of one tier's AI call.

    Attributes:
        findings: Parsed findings in the order the model listed them
        input_tokens: Prompt tokens (provider-reported or estimated)
        output_tokens: Completion tokens (provider-reported or estimated)
        cost_usd: Cost of the call
        summary: Model-provided summary line, if any
    """

    findings: tuple[Finding, ...]
    input_tokens: int
    output_tokens: int
    cost_usd: float
    summary: str | None = None


# =============================================================================
# Response Decoding
# =============================================================================


def strip_fence(text: str) -> str:
    """Return the body of the markdown fence around the response, or the trimmed text.

    Fences nested in string values survive when the outer fence wraps the
    whole response.
    """
    text = text.strip()
    match = WRAPPING_FENCE.match(text) or FENCE_PATTERN.search(text)
    if match:
        return match.group(1).strip()
    return text


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _coerce_severity(value: Any) -> Severity:
    if isinstance(value, str):
        try:
            return Severity(value.strip().upper())
        except ValueError:
            pass
    return Severity.MEDIUM


def _coerce_category(value: Any) -> FindingCategory:
    if isinstance(value, str):
        try:
            return FindingCategory(value.strip().lower())
        except ValueError:
            pass
    return FindingCategory.QUALITY


def _coerce_line(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value > 0 else None


def _coerce_finding(raw: dict[str, Any], index: int, stamp_ms: int) -> Finding:
    title = str(raw.get("title") or DEFAULT_TITLE)[:MAX_TITLE_LENGTH]
    return Finding(
        id=f"issue-{stamp_ms}-{index}",
        severity=_coerce_severity(raw.get("severity")),
        category=_coerce_category(raw.get("category")),
        file=str(raw.get("file") or DEFAULT_FILE),
        line=_coerce_line(raw.get("line")),
        title=title,
        description=str(raw.get("description") or ""),
        impact=_optional_str(raw.get("impact")),
        fix=_optional_str(raw.get("fix") or raw.get("suggestedFix")),
        code_example=_optional_str(raw.get("codeExample") or raw.get("code_example")),
    )


def _load_json(text: str) -> Any:
    # Unfenced JSON may itself contain fences inside codeExample strings
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return json.loads(strip_fence(text))


def parse_findings(
    text: str,
    stamp_ms: int | None = None,
) -> tuple[list[Finding], str | None]:
    """Decode a model response into findings.

    Args:
        text: Full response text, optionally wrapped in a markdown fence
        stamp_ms: Millisecond timestamp used in finding ids (defaults to now)

    Returns:
        Tuple of (findings, summary). Malformed responses give ``([], None)``.
    """
    if stamp_ms is None:
        stamp_ms = int(time.time() * 1000)

    try:
        parsed = _load_json(text)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse AI response as JSON: %s (%r)", e, text[:500])
        return [], None

    if not isinstance(parsed, dict):
        logger.warning("AI response is not a JSON object")
        return [], None

    summary = parsed.get("summary")
    summary = str(summary) if summary else None

    issues = parsed.get("issues")
    if not isinstance(issues, list):
        return [], summary

    findings = [
        _coerce_finding(raw, index, stamp_ms)
        for index, raw in enumerate(issues)
        if isinstance(raw, dict)
    ]
    return findings, summary


# =============================================================================
# Engine
# =============================================================================


class AnalysisEngine:
    """Runs the AI analysis of one tier.

    Attributes:
        client: Streaming LLM client
        pricing: Pricing model used for the cost of the call
    """

    def __init__(
        self,
        client: LLMClient,
        pricing: PricingModel = DEFAULT_PRICING,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.pricing = pricing
        self._clock = clock
        self._last_stamp = 0

    async def stream_analyze(
        self,
        files: Sequence[FetchedFile],
        api_key: str,
        tier: PriorityTier,
    ) -> AsyncIterator[ChunkEvent | EngineResult]:
        """Analyze files, streaming raw text then the parsed result.

        Args:
            files: Fetched files of the tier (non-empty)
            api_key: Caller-supplied AI service key
            tier: Tier being analyzed (selects the system prompt)

        Yields:
            Zero or more ChunkEvent, then exactly one EngineResult

        Raises:
            InvalidCredentialsError: Key rejected
            RateLimitedError: Key rate limited
            ServiceError: Any other AI service failure
        """
        system_prompt = get_system_prompt(tier)
        user_message = build_user_message(files)
        estimated_input = estimate_tokens(system_prompt) + estimate_tokens(user_message)

        logger.structured(
            logging.INFO,
            f"Starting streaming analysis (Priority {tier.value})",
            files=len(files),
            estimated_input_tokens=estimated_input,
        )

        parts: list[str] = []
        usage: TokenUsage | None = None
        async for delta in self.client.stream_complete(system_prompt, user_message, api_key):
            if delta.usage is not None:
                usage = delta.usage
            if delta.text:
                parts.append(delta.text)
                yield ChunkEvent(delta.text)

        full_text = "".join(parts)
        # Stamps strictly increase so ids stay unique across the tiers of a run
        stamp = max(int(self._clock() * 1000), self._last_stamp + 1)
        self._last_stamp = stamp
        findings, summary = parse_findings(full_text, stamp)

        if usage is not None:
            input_tokens = usage.prompt_tokens
            output_tokens = usage.completion_tokens
        else:
            input_tokens = estimated_input
            output_tokens = estimate_tokens(full_text)
        cost = calculate_cost(input_tokens, output_tokens, self.pricing)

        logger.structured(
            logging.INFO,
            "AI analysis complete",
            priority=tier.value,
            issues_found=len(findings),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=cost,
        )

        yield EngineResult(
            findings=tuple(findings),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost,
            summary=summary,
        )
