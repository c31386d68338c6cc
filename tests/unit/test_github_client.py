"""Unit tests for the GitHub REST client using httpx.MockTransport."""

import asyncio
import base64
from collections.abc import Callable

import httpx
import pytest

from vibescan.config import GitHubConfig
from vibescan.errors import (
    AccessDeniedError,
    FileFetchError,
    RepositoryEmptyError,
    RepositoryNotFoundError,
    VibescanError,
)
from vibescan.github.client import GitHubClient
from vibescan.models.repository import RepositoryReference

REF = RepositoryReference(owner="octo", name="hello")

REPO_JSON = {
    "full_name": "octo/hello",
    "description": "Hello world",
    "stargazers_count": 7,
    "language": "Python",
    "updated_at": "2026-01-01T00:00:00Z",
    "default_branch": "trunk",
    "private": False,
}


def make_client(
    handler: Callable[[httpx.Request], httpx.Response],
    token: str | None = None,
) -> GitHubClient:
    return GitHubClient(token=token, transport=httpx.MockTransport(handler))


def run(coro):
    return asyncio.run(coro)


class TestGetMetadata:
    """Tests for repository metadata."""

    def test_success(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=REPO_JSON)

        metadata = run(make_client(handler).get_metadata(REF))

        assert seen[0].url.path == "/repos/octo/hello"
        assert seen[0].headers["Accept"] == "application/vnd.github+json"
        assert "Authorization" not in seen[0].headers
        assert metadata.full_name == "octo/hello"
        assert metadata.star_count == 7
        assert metadata.primary_language == "Python"
        assert metadata.default_branch == "trunk"
        assert metadata.is_private is False

    def test_token_sent_as_bearer(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=REPO_JSON)

        client = make_client(handler, token="ghp_abc")
        run(client.get_metadata(REF))

        assert seen[0].headers["Authorization"] == "Bearer ghp_abc"

    def test_not_found(self) -> None:
        client = make_client(lambda r: httpx.Response(404, json={"message": "Not Found"}))

        with pytest.raises(RepositoryNotFoundError):
            run(client.get_metadata(REF))

    def test_rate_limited(self) -> None:
        client = make_client(
            lambda r: httpx.Response(
                403,
                headers={"x-ratelimit-remaining": "0"},
                json={"message": "API rate limit exceeded"},
            )
        )

        with pytest.raises(AccessDeniedError) as exc_info:
            run(client.get_metadata(REF))

        assert exc_info.value.code == "GITHUB_RATE_LIMITED"
        assert exc_info.value.retryable is True

    def test_forbidden(self) -> None:
        client = make_client(lambda r: httpx.Response(403, json={"message": "Forbidden"}))

        with pytest.raises(AccessDeniedError) as exc_info:
            run(client.get_metadata(REF))

        assert exc_info.value.code == "ACCESS_DENIED"
        assert exc_info.value.retryable is False

    def test_server_error(self) -> None:
        client = make_client(lambda r: httpx.Response(500))

        with pytest.raises(VibescanError, match="HTTP 500"):
            run(client.get_metadata(REF))

    def test_transport_error_is_wrapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(VibescanError, match="GitHub request failed"):
            run(make_client(handler).get_metadata(REF))


class TestGetTree:
    """Tests for the recursive tree listing."""

    def test_blobs_only(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "tree": [
                        {"path": "src", "type": "tree", "sha": "t1"},
                        {"path": "src/app.py", "type": "blob", "sha": "b1", "size": 120},
                        {"path": "README.md", "type": "blob", "sha": "b2", "size": 10},
                    ],
                    "truncated": False,
                },
            )

        entries = run(make_client(handler).get_tree(REF, "main"))

        assert seen[0].url.path == "/repos/octo/hello/git/trees/main"
        assert seen[0].url.params["recursive"] == "1"
        assert [e.path for e in entries] == ["src/app.py", "README.md"]
        assert entries[0].size_bytes == 120
        assert entries[0].content_hash == "b1"

    def test_empty_repository(self) -> None:
        client = make_client(lambda r: httpx.Response(409, json={"message": "Git Repository is empty."}))

        with pytest.raises(RepositoryEmptyError):
            run(client.get_tree(REF, "main"))

    def test_missing_branch(self) -> None:
        client = make_client(lambda r: httpx.Response(404))

        with pytest.raises(RepositoryNotFoundError):
            run(client.get_tree(REF, "nope"))


class TestGetFileContent:
    """Tests for single file fetches."""

    def test_decodes_base64(self) -> None:
        body = "print('hello')\n"
        encoded = base64.b64encode(body.encode()).decode()

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/octo/hello/contents/src/app.py"
            return httpx.Response(
                200, json={"type": "file", "content": encoded, "size": len(body)}
            )

        fetched = run(make_client(handler).get_file_content(REF, "src/app.py"))

        assert fetched.path == "src/app.py"
        assert fetched.content == body
        assert fetched.size_bytes == len(body)

    def test_directory_rejected(self) -> None:
        client = make_client(lambda r: httpx.Response(200, json=[{"name": "a.py"}]))

        with pytest.raises(FileFetchError, match="directory"):
            run(client.get_file_content(REF, "src"))

    def test_submodule_rejected(self) -> None:
        client = make_client(lambda r: httpx.Response(200, json={"type": "submodule"}))

        with pytest.raises(FileFetchError, match="Not a file"):
            run(client.get_file_content(REF, "vendor/lib"))

    def test_missing_file(self) -> None:
        client = make_client(lambda r: httpx.Response(404))

        with pytest.raises(FileFetchError, match="File not found"):
            run(client.get_file_content(REF, "gone.py"))

    def test_non_json_body(self) -> None:
        client = make_client(lambda r: httpx.Response(200, text="<html>Gateway timeout</html>"))

        with pytest.raises(FileFetchError, match="Unreadable response for src/app.py"):
            run(client.get_file_content(REF, "src/app.py"))

    @pytest.mark.parametrize("body", ["just a string", 42, {"type": "file", "content": None}])
    def test_unexpected_json_shape(self, body: object) -> None:
        client = make_client(lambda r: httpx.Response(200, json=body))

        with pytest.raises(FileFetchError):
            run(client.get_file_content(REF, "src/app.py"))


class TestClientLifecycle:
    def test_from_config_prefers_explicit_token(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        config = GitHubConfig(token="ghp_config", api_url="https://ghe.example.com/api/v3/")

        assert GitHubClient.from_config(config).token == "ghp_config"
        assert GitHubClient.from_config(config, token="ghp_caller").token == "ghp_caller"
        assert GitHubClient.from_config(config).api_url == "https://ghe.example.com/api/v3"

    def test_anonymous_client(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=REPO_JSON)

        client = make_client(handler, token="")
        run(client.get_metadata(REF))

        assert client.token is None
        assert "Authorization" not in seen[0].headers

    def test_aclose_is_idempotent(self) -> None:
        client = make_client(lambda r: httpx.Response(200, json=REPO_JSON))

        async def use_and_close() -> None:
            async with client:
                await client.get_metadata(REF)
            await client.aclose()

        run(use_and_close())
