"""Integration tests for the FastAPI service over in-memory collaborators."""

import json
from typing import Any

import pytest
from fastapi.testclient import TestClient

from tests.fixtures import SAMPLE_PATHS, FakeHostingClient, FakeLLMClient, make_metadata
from vibescan.config import AnalysisConfig, ServiceConfig, VibescanConfig
from vibescan.errors import (
    AccessDeniedError,
    InvalidCredentialsError,
    RepositoryNotFoundError,
    ServiceError,
)
from vibescan.history import InMemoryHistoryStore
from vibescan.service.app import bearer_token, create_app, format_sse, status_for

REPO_URL = "https://github.com/octo/hello"


def parse_frames(body: str) -> list[dict[str, Any]]:
    """Decode the ``data:`` frames of an SSE body, ignoring comments."""
    return [
        json.loads(frame[len("data: ") :])
        for frame in body.split("\n\n")
        if frame.startswith("data: ")
    ]


@pytest.fixture
def tokens_seen() -> list[str | None]:
    return []


@pytest.fixture
def build_client(make_orchestrator, tokens_seen: list[str | None]):
    """Factory for a TestClient whose orchestrators run over fakes."""

    def _build(
        client_kwargs: dict[str, Any] | None = None,
        llm: FakeLLMClient | None = None,
        analysis: AnalysisConfig | None = None,
        heartbeat_interval: float = 15.0,
    ) -> tuple[TestClient, InMemoryHistoryStore]:
        def factory(token: str | None):
            tokens_seen.append(token)
            kwargs = {"paths": SAMPLE_PATHS, "token": token, **(client_kwargs or {})}
            return make_orchestrator(FakeHostingClient(**kwargs), llm, config=analysis)

        history = InMemoryHistoryStore()
        config = VibescanConfig(service=ServiceConfig(heartbeat_interval=heartbeat_interval))
        app = create_app(factory, history_store=history, config=config)
        return TestClient(app), history

    return _build


class TestHelpers:
    def test_bearer_token(self) -> None:
        assert bearer_token("Bearer ghp_abc") == "ghp_abc"
        assert bearer_token("bearer  ghp_abc ") == "ghp_abc"
        assert bearer_token("Basic dXNlcg==") is None
        assert bearer_token("Bearer ") is None
        assert bearer_token(None) is None

    def test_status_for(self) -> None:
        assert status_for(RepositoryNotFoundError("x")) == 404
        assert status_for(AccessDeniedError("x", rate_limited=True)) == 429
        assert status_for(ServiceError("x")) == 502

    def test_format_sse(self) -> None:
        assert format_sse({"type": "run", "data": {}}) == 'data: {"type": "run", "data": {}}\n\n'


class TestHealth:
    def test_health(self, build_client) -> None:
        client, _ = build_client()

        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["version"] == "0.1.0"
        assert "timestamp" in data


class TestValidateRepo:
    """Tests for POST /api/validate-repo."""

    def test_valid(self, build_client, tokens_seen: list[str | None]) -> None:
        client, _ = build_client()

        response = client.post(
            "/api/validate-repo",
            json={"repoUrl": REPO_URL},
            headers={"Authorization": "Bearer ghp_abc"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["fullName"] == "octo/hello"
        assert data["stars"] == 42
        assert tokens_seen == ["ghp_abc"]

    def test_missing_url(self, build_client) -> None:
        client, _ = build_client()

        response = client.post("/api/validate-repo", json={})

        assert response.status_code == 400
        assert response.json()["valid"] is False

    def test_invalid_url(self, build_client) -> None:
        client, _ = build_client()

        response = client.post("/api/validate-repo", json={"repoUrl": "https://example.com/x"})

        assert response.status_code == 400
        assert response.json()["valid"] is False

    def test_not_found(self, build_client) -> None:
        client, _ = build_client(
            {"metadata_error": RepositoryNotFoundError("Repository not found: octo/hello")}
        )

        response = client.post("/api/validate-repo", json={"repoUrl": REPO_URL})

        assert response.status_code == 404
        assert response.json() == {"valid": False, "error": "Repository not found: octo/hello"}


class TestEstimate:
    """Tests for GET /api/estimate."""

    def test_estimate(self, build_client) -> None:
        client, _ = build_client()

        response = client.get("/api/estimate", params={"repoUrl": REPO_URL})

        assert response.status_code == 200
        data = response.json()
        assert data["repoInfo"]["fullName"] == "octo/hello"
        assert data["priority1"]["files"] == 3
        assert data["priority2"]["files"] == 2
        assert data["totalFiles"] == 7

    def test_private_without_token(self, build_client) -> None:
        client, _ = build_client({"metadata": make_metadata(private=True)})

        response = client.get("/api/estimate", params={"repoUrl": REPO_URL})

        assert response.status_code == 403
        assert response.json() == {
            "error": "Private repositories require login",
            "code": "PRIVATE_REPO",
            "retryable": False,
        }

    def test_invalid_url(self, build_client) -> None:
        client, _ = build_client()

        response = client.get("/api/estimate", params={"repoUrl": "nope"})

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_URL"

    def test_missing_url(self, build_client) -> None:
        client, _ = build_client()

        assert client.get("/api/estimate").status_code == 422


class TestAnalyze:
    """Tests for the POST /api/analyze event stream."""

    def test_last_tier_stream(self, build_client) -> None:
        client, history = build_client()

        response = client.post(
            "/api/analyze", json={"repoUrl": REPO_URL, "apiKey": "sk-test", "priority": 3}
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        frames = parse_frames(response.text)
        assert frames[0] == {"type": "run", "data": {"runId": "run-1"}}
        assert frames[1]["type"] == "status"
        assert frames[-1]["type"] == "complete"
        assert frames[-1]["data"]["priority"] == 3
        assert history.get("run-1") is not None

    def test_gate_times_out_with_heartbeats(self, build_client) -> None:
        client, history = build_client(
            analysis=AnalysisConfig(approval_timeout=0.3), heartbeat_interval=0.05
        )

        response = client.post("/api/analyze", json={"repoUrl": REPO_URL, "apiKey": "sk-test"})

        assert ":heartbeat" in response.text
        frames = parse_frames(response.text)
        complete = [f for f in frames if f["type"] == "complete"]
        assert [f["data"]["priority"] for f in complete] == [1]
        assert "nextPriorityEstimate" in complete[0]["data"]
        assert frames[-1]["type"] == "error"
        assert frames[-1]["data"]["code"] == "APPROVAL_TIMEOUT"
        assert len(history) == 0

    def test_ai_error_in_stream(self, build_client) -> None:
        client, _ = build_client(llm=FakeLLMClient(error=InvalidCredentialsError("Invalid API key")))

        response = client.post(
            "/api/analyze", json={"repoUrl": REPO_URL, "apiKey": "sk-bad", "priority": 3}
        )

        assert response.status_code == 200
        errors = [f for f in parse_frames(response.text) if f["type"] == "error"]
        assert errors == [
            {
                "type": "error",
                "data": {"message": "Invalid API key", "code": "INVALID_API_KEY", "retryable": False},
            }
        ]

    def test_invalid_url_rejected_before_streaming(self, build_client) -> None:
        client, _ = build_client()

        response = client.post("/api/analyze", json={"repoUrl": "nope", "apiKey": "sk-test"})

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_URL"

    @pytest.mark.parametrize(
        "payload",
        [
            {"repoUrl": REPO_URL},
            {"repoUrl": REPO_URL, "apiKey": ""},
            {"repoUrl": REPO_URL, "apiKey": "sk-test", "priority": 4},
        ],
    )
    def test_request_validation(self, build_client, payload: dict[str, Any]) -> None:
        client, _ = build_client()

        assert client.post("/api/analyze", json=payload).status_code == 422


class TestDecision:
    """Tests for POST /api/analyze/{run_id}/decision."""

    def test_unknown_run(self, build_client) -> None:
        client, _ = build_client()

        response = client.post(
            "/api/analyze/run-404/decision", json={"tier": 1, "decision": "approve"}
        )

        assert response.status_code == 404

    def test_run_not_paused(self, build_client, make_orchestrator) -> None:
        client, _ = build_client()
        run = make_orchestrator(FakeHostingClient(paths=SAMPLE_PATHS)).start(REPO_URL, "sk-test")
        client.app.state.runs[run.run_id] = run

        response = client.post(
            f"/api/analyze/{run.run_id}/decision", json={"tier": 1, "decision": "stop"}
        )

        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_DECISION"

    def test_invalid_decision_value(self, build_client) -> None:
        client, _ = build_client()

        response = client.post("/api/analyze/run-1/decision", json={"tier": 1, "decision": "maybe"})

        assert response.status_code == 422


class TestHistory:
    def test_history_after_run(self, build_client) -> None:
        client, _ = build_client()
        client.post("/api/analyze", json={"repoUrl": REPO_URL, "apiKey": "sk-test", "priority": 3})

        listing = client.get("/api/history")
        detail = client.get("/api/history/run-1")

        assert listing.status_code == 200
        assert [entry["runId"] for entry in listing.json()] == ["run-1"]
        assert detail.json()["repoInfo"]["fullName"] == "octo/hello"
        assert detail.json()["skippedPriorities"] == []

    def test_unknown_run(self, build_client) -> None:
        client, _ = build_client()

        assert client.get("/api/history/run-404").status_code == 404

    def test_delete(self, build_client) -> None:
        client, history = build_client()
        client.post("/api/analyze", json={"repoUrl": REPO_URL, "apiKey": "sk-test", "priority": 3})

        response = client.delete("/api/history/run-1")

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert history.get("run-1") is None
        assert client.get("/api/history").json() == []
        assert client.delete("/api/history/run-1").status_code == 404


def test_factory_receives_no_token_without_header(
    build_client, tokens_seen: list[str | None]
) -> None:
    client, _ = build_client()

    client.get("/api/estimate", params={"repoUrl": REPO_URL})

    assert tokens_seen == [None]

