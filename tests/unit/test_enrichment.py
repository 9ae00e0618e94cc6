import json
from pathlib import Path

import httpx
import pytest

from repofuse.analysis.analyzer import RepoAnalyzer
from repofuse.analysis.generator import generate
from repofuse.analysis.matcher import match
from repofuse.config import get_settings
from repofuse.enrichment import (
    NOTES_ARTIFACT,
    bundle_enricher,
    match_enricher,
    merge_summary,
    with_enrichment,
)
from repofuse.errors import CloneError, EnrichmentError
from repofuse.gateway.completion import CompletionClient
from repofuse.models import ApiCall, RepoSummary


def _reply(payload: object) -> httpx.Response:
    content = f"```json\n{json.dumps(payload)}\n```"
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


@pytest.fixture
def enabled(monkeypatch):
    monkeypatch.setenv("GROQ_API_KEY", "gsk-test")
    get_settings.cache_clear()
    return get_settings()


@pytest.mark.asyncio
async def test_with_enrichment_returns_base_on_failure(caplog) -> None:
    async def _boom(base: str) -> str:
        raise EnrichmentError("model unavailable")

    assert await with_enrichment("static", _boom, stage="analyze") == "static"
    assert "Enrichment failed during analyze" in caplog.text


@pytest.mark.asyncio
async def test_with_enrichment_applies_result_or_skips() -> None:
    async def _upper(base: str) -> str:
        return base.upper()

    assert await with_enrichment("static", _upper, stage="x") == "STATIC"
    assert await with_enrichment("static", None, stage="x") == "static"


def test_merge_summary_is_additive() -> None:
    base = RepoSummary(
        url="https://github.com/acme/api",
        language="javascript",
        framework="express",
        api_routes=["/users"],
    )
    merged = merge_summary(
        base,
        {
            "language": "python",
            "framework": "Flask",
            "apiRoutes": ["/other"],
            "entryPoints": ["server.js"],
            "purpose": "User service",
            "type": "backend",
            "dataModels": ["User", 3],
        },
    )
    assert merged.language == "javascript"
    assert merged.framework == "express"
    assert merged.api_routes == ["/users"]
    assert merged.entry_points == ["server.js"]
    assert merged.purpose == "User service"
    assert merged.data_models == ["User"]
    assert merged.enhanced is True
    assert base.enhanced is False


def test_merge_summary_rejects_non_object() -> None:
    with pytest.raises(EnrichmentError):
        merge_summary(RepoSummary(url="u"), ["not", "an", "object"])


def test_enrichers_disabled_without_key() -> None:
    completion = CompletionClient(get_settings())
    summaries = [RepoSummary(url="u", framework="react")]
    assert match_enricher(completion, summaries) is None
    assert bundle_enricher(completion, summaries, match(summaries)) is None


@pytest.mark.asyncio
async def test_analyzer_falls_back_when_backend_unreachable(
    enabled, sample_repos: dict[str, Path]
) -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    completion = CompletionClient(enabled, transport=httpx.MockTransport(_handler))
    analyzer = RepoAnalyzer(enabled, completion=completion)
    summary = await analyzer.analyze(str(sample_repos["api"]))
    assert summary.language == "javascript"
    assert summary.framework == "express"
    assert summary.entry_points == ["server.js"]
    assert summary.enhanced is False


@pytest.mark.asyncio
async def test_analyzer_merges_enrichment(enabled, sample_repos: dict[str, Path]) -> None:
    prompts: list[str] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        prompts.append(json.loads(request.content)["messages"][-1]["content"])
        return _reply({"purpose": "Users API", "type": "backend", "dataModels": ["User"]})

    completion = CompletionClient(enabled, transport=httpx.MockTransport(_handler))
    analyzer = RepoAnalyzer(enabled, completion=completion)
    summary = await analyzer.analyze(str(sample_repos["api"]))
    assert summary.enhanced is True
    assert summary.purpose == "Users API"
    assert summary.api_routes == ["/users", "/users/:id", "/orders"]
    assert "--- server.js ---" in prompts[0]


@pytest.mark.asyncio
async def test_analyzer_clones_into_scratch_and_cleans_up(copy_clone, tmp_path: Path) -> None:
    analyzer = RepoAnalyzer(get_settings(), clone_fn=copy_clone)
    summary = await analyzer.analyze("https://github.com/acme/web")
    assert summary.framework == "react"
    assert summary.url == "https://github.com/acme/web"
    assert list((tmp_path / "workspace").iterdir()) == []
    with pytest.raises(CloneError):
        await analyzer.analyze("https://github.com/acme/missing")


@pytest.mark.asyncio
async def test_match_enricher_adds_inferred_calls(enabled) -> None:
    summaries = [
        RepoSummary(url="https://github.com/acme/api", framework="express", api_routes=["/users"]),
        RepoSummary(url="https://github.com/acme/web", framework="react"),
    ]
    completion = CompletionClient(
        enabled,
        transport=httpx.MockTransport(
            lambda request: _reply([{"method": "get", "path": "/users", "source": "UserList"}])
        ),
    )
    enrich = match_enricher(completion, summaries)
    assert enrich is not None
    result = await with_enrichment(match(summaries), enrich, stage="match")
    assert len(result.matched) == 1
    assert result.matched[0].call == ApiCall(
        method="GET", path="/users", source="UserList", origin="inferred"
    )


@pytest.mark.asyncio
async def test_bundle_enricher_appends_notes(enabled) -> None:
    summaries = [RepoSummary(url="https://github.com/acme/api", framework="express")]
    result = match(summaries)
    completion = CompletionClient(
        enabled,
        transport=httpx.MockTransport(lambda request: _reply({"notes": "# Notes\nStart api first."})),
    )
    base = generate(summaries, result)
    bundle = await with_enrichment(
        base, bundle_enricher(completion, summaries, result), stage="generate"
    )
    notes = bundle.get(NOTES_ARTIFACT)
    assert notes is not None
    assert notes.origin == "inferred"
    assert notes.content == "# Notes\nStart api first.\n"
    assert base.get(NOTES_ARTIFACT) is None
