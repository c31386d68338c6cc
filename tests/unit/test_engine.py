"""Unit tests for the analysis engine and its lenient response decoder."""

import asyncio

import pytest

from tests.fixtures import FakeLLMClient, issues_json
from vibescan.errors import InvalidCredentialsError
from vibescan.llm.client import TokenUsage
from vibescan.llm.engine import (
    AnalysisEngine,
    ChunkEvent,
    EngineResult,
    parse_findings,
    strip_fence,
)
from vibescan.llm.prompts import CORE_LOGIC_PROMPT, SECURITY_PROMPT
from vibescan.models.analysis import FindingCategory, PriorityTier, Severity
from vibescan.models.repository import FetchedFile
from vibescan.utils.tokens import calculate_cost, estimate_tokens

FILES = [
    FetchedFile(path=".env", content="DB_PASSWORD=hunter2\n", size_bytes=20),
    FetchedFile(path="src/auth/login.ts", content="export function login() {}\n", size_bytes=27),
]


def collect(engine: AnalysisEngine, tier: PriorityTier = PriorityTier.SECURITY):
    async def _collect():
        return [item async for item in engine.stream_analyze(FILES, "sk-test", tier)]

    return asyncio.run(_collect())


class TestStripFence:
    def test_json_fence(self) -> None:
        assert strip_fence('```json\n{"issues": []}\n```') == '{"issues": []}'

    def test_bare_fence(self) -> None:
        assert strip_fence('Here you go:\n```\n{"a": 1}\n```\nThanks') == '{"a": 1}'

    def test_no_fence(self) -> None:
        assert strip_fence('  {"a": 1}\n') == '{"a": 1}'

    def test_wrapping_fence_keeps_nested_fence(self) -> None:
        body = '{"code": "```python\\nx = 1\\n```"}'

        assert strip_fence(f"```json\n{body}\n```") == body


class TestParseFindings:
    """Tests for field-by-field defaults."""

    def test_complete_issue(self) -> None:
        text = issues_json(
            {
                "severity": "CRITICAL",
                "category": "security",
                "file": ".env",
                "line": 1,
                "title": "Hardcoded password",
                "description": "DB_PASSWORD is committed",
                "impact": "Database takeover",
                "fix": "Move to a secret store",
                "codeExample": "DB_PASSWORD=${DB_PASSWORD}",
            },
            summary="One critical issue",
        )

        findings, summary = parse_findings(text, stamp_ms=1234)

        assert summary == "One critical issue"
        assert len(findings) == 1
        finding = findings[0]
        assert finding.id == "issue-1234-0"
        assert finding.severity is Severity.CRITICAL
        assert finding.category is FindingCategory.SECURITY
        assert finding.line == 1
        assert finding.code_example == "DB_PASSWORD=${DB_PASSWORD}"

    def test_defaults_for_missing_and_unknown_fields(self) -> None:
        text = issues_json({"severity": "urgent", "category": "style", "line": "12"})

        finding = parse_findings(text, stamp_ms=1)[0][0]

        assert finding.severity is Severity.MEDIUM
        assert finding.category is FindingCategory.QUALITY
        assert finding.file == "unknown"
        assert finding.title == "Issue found"
        assert finding.description == ""
        assert finding.line is None
        assert finding.fix is None

    def test_case_insensitive_vocabularies(self) -> None:
        finding = parse_findings(issues_json({"severity": "high", "category": "BUG"}), 1)[0][0]

        assert finding.severity is Severity.HIGH
        assert finding.category is FindingCategory.BUG

    def test_title_truncated(self) -> None:
        finding = parse_findings(issues_json({"title": "x" * 250}), 1)[0][0]

        assert len(finding.title) == 100

    def test_suggested_fix_alias(self) -> None:
        finding = parse_findings(issues_json({"suggestedFix": "Use a prepared statement"}), 1)[0][0]

        assert finding.fix == "Use a prepared statement"

    def test_ids_are_unique_per_index(self) -> None:
        findings, _ = parse_findings(issues_json({}, {}, {}), stamp_ms=99)

        assert [f.id for f in findings] == ["issue-99-0", "issue-99-1", "issue-99-2"]

    def test_non_object_entries_skipped(self) -> None:
        findings, _ = parse_findings('{"issues": ["oops", {"title": "real"}]}', 1)

        assert [f.title for f in findings] == ["real"]

    @pytest.mark.parametrize(
        "text",
        ['{"issues": [{"title": "cut off', "not json at all", "[1, 2, 3]", ""],
    )
    def test_malformed_gives_no_findings(self, text: str) -> None:
        assert parse_findings(text, 1) == ([], None)

    def test_missing_issues_key(self) -> None:
        assert parse_findings('{"summary": "nothing"}', 1) == ([], "nothing")

    def test_code_example_with_fence_in_unfenced_response(self) -> None:
        snippet = "```python\nquery = db.execute(sql, params)\n```"
        text = issues_json({"title": "SQL injection", "codeExample": snippet})

        findings, _ = parse_findings(text, 1)

        assert [f.title for f in findings] == ["SQL injection"]
        assert findings[0].code_example == snippet

    def test_code_example_with_fence_in_fenced_response(self) -> None:
        snippet = "```js\nconst key = process.env.KEY;\n```"
        body = issues_json({"title": "Hardcoded key", "codeExample": snippet})
        text = f"```json\n{body}\n```"

        findings, _ = parse_findings(text, 1)

        assert findings[0].code_example == snippet


class TestAnalysisEngine:
    """Tests for the streaming analysis call."""

    def test_chunks_then_result(self) -> None:
        text = issues_json({"severity": "HIGH", "file": ".env", "title": "Secret"})
        engine = AnalysisEngine(FakeLLMClient([text], chunk_size=10), clock=lambda: 1.5)

        items = collect(engine)

        chunks = [i for i in items if isinstance(i, ChunkEvent)]
        assert "".join(c.text for c in chunks) == text
        assert isinstance(items[-1], EngineResult)
        assert all(isinstance(i, ChunkEvent) for i in items[:-1])
        result = items[-1]
        assert [f.title for f in result.findings] == ["Secret"]
        assert result.findings[0].id == "issue-1500-0"

    def test_prompt_selection_and_message(self) -> None:
        llm = FakeLLMClient()
        engine = AnalysisEngine(llm)

        collect(engine, PriorityTier.SECURITY)
        collect(engine, PriorityTier.CORE)

        assert llm.calls[0][0] == SECURITY_PROMPT
        assert llm.calls[1][0] == CORE_LOGIC_PROMPT
        user_message = llm.calls[0][1]
        assert user_message.startswith("Analyze the following 2 files:")
        assert "=== FILE: .env ===" in user_message
        assert "=== FILE: src/auth/login.ts ===" in user_message
        assert llm.calls[0][2] == "sk-test"

    def test_provider_usage_preferred(self) -> None:
        engine = AnalysisEngine(FakeLLMClient(usage=TokenUsage(1000, 250)))

        result = collect(engine)[-1]

        assert result.input_tokens == 1000
        assert result.output_tokens == 250
        assert result.cost_usd == pytest.approx(calculate_cost(1000, 250))

    def test_estimated_usage_without_provider_report(self) -> None:
        text = issues_json()
        llm = FakeLLMClient([text])
        engine = AnalysisEngine(llm)

        result = collect(engine)[-1]

        system_prompt, user_message, _ = llm.calls[0]
        assert result.input_tokens == estimate_tokens(system_prompt) + estimate_tokens(user_message)
        assert result.output_tokens == estimate_tokens(text)

    def test_malformed_response_is_not_an_error(self) -> None:
        engine = AnalysisEngine(FakeLLMClient(['{"issues": [{"severity": "HI']))

        result = collect(engine)[-1]

        assert result.findings == ()
        assert result.output_tokens > 0

    def test_client_errors_propagate(self) -> None:
        engine = AnalysisEngine(FakeLLMClient(error=InvalidCredentialsError("Invalid key")))

        with pytest.raises(InvalidCredentialsError):
            collect(engine)
