"""Completion-backed enrichment with a hard fallback to the static result."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any, TypeVar

from repofuse.analysis.matcher import merge_inferred_calls
from repofuse.errors import EnrichmentError
from repofuse.gateway.completion import CompletionClient
from repofuse.models import ApiCall, Artifact, GeneratedBundle, MatchResult, RepoSummary
from repofuse.prompts import (
    ANALYZE_REPO_PROMPT,
    INFER_CALLS_PROMPT,
    INTEGRATION_NOTES_PROMPT,
    SYSTEM_PROMPT,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

NOTES_ARTIFACT = "integration-notes.md"


async def with_enrichment(
    base: T,
    enrich_fn: Callable[[T], Awaitable[T]] | None,
    *,
    stage: str,
) -> T:
    """Apply ``enrich_fn`` to ``base``; any failure returns ``base`` unchanged."""
    if enrich_fn is None:
        return base
    try:
        return await enrich_fn(base)
    except Exception as exc:
        logger.warning("Enrichment failed during %s; using static result: %s", stage, exc)
        return base


def _str_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _calls(value: object, default_source: str) -> list[ApiCall]:
    if not isinstance(value, list):
        return []
    calls: list[ApiCall] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        path = item.get("path")
        if not isinstance(path, str) or not path.startswith("/"):
            continue
        method = str(item.get("method") or "GET").upper()
        source = str(item.get("source") or default_source)
        calls.append(ApiCall(method=method, path=path, source=source, origin="inferred"))
    return calls


def merge_summary(base: RepoSummary, payload: Any) -> RepoSummary:
    """Additive merge: enrichment only fills fields the static pass left empty.

    ``purpose``, ``type`` and ``data_models`` have no static source and are
    always taken from the payload.
    """
    if not isinstance(payload, dict):
        raise EnrichmentError("analysis enrichment returned a non-object payload")

    def _opt_str(key: str) -> str | None:
        value = payload.get(key)
        return value.strip() if isinstance(value, str) and value.strip() else None

    return replace(
        base,
        language=base.language or _opt_str("language"),
        framework=base.framework or (_opt_str("framework") or "").lower() or None,
        entry_points=base.entry_points or _str_list(payload.get("entryPoints")),
        api_routes=base.api_routes or _str_list(payload.get("apiRoutes")),
        api_calls=base.api_calls or _calls(payload.get("apiCalls"), "enrichment"),
        env_vars=base.env_vars or _str_list(payload.get("envVars")),
        purpose=_opt_str("purpose"),
        type=_opt_str("type"),
        data_models=_str_list(payload.get("dataModels")),
        enhanced=True,
    )


def _format_sample(sample: list[tuple[str, str]]) -> str:
    return "\n\n".join(f"--- {path} ---\n{text}" for path, text in sample) or "(none)"


def summary_enricher(
    completion: CompletionClient, sample: list[tuple[str, str]]
) -> Callable[[RepoSummary], Awaitable[RepoSummary]] | None:
    if not completion.enabled:
        return None

    async def _enrich(base: RepoSummary) -> RepoSummary:
        prompt = ANALYZE_REPO_PROMPT.format(
            url=base.url,
            static_summary=json.dumps(base.to_dict(), indent=2),
            files=_format_sample(sample),
        )
        payload = await completion.complete_json(prompt, system=SYSTEM_PROMPT)
        return merge_summary(base, payload)

    return _enrich


def match_enricher(
    completion: CompletionClient, summaries: list[RepoSummary]
) -> Callable[[MatchResult], Awaitable[MatchResult]] | None:
    if not completion.enabled or not any(s.role != "backend" for s in summaries):
        return None

    async def _enrich(base: MatchResult) -> MatchResult:
        frontends = [
            {"repo": s.name, "calls": [c.to_dict() for c in s.api_calls]}
            for s in summaries
            if s.role != "backend"
        ]
        routes = [pair.route for pair in base.matched] + base.unused_in_backend
        prompt = INFER_CALLS_PROMPT.format(
            frontends=json.dumps(frontends, indent=2),
            routes=json.dumps(sorted(set(routes))),
        )
        payload = await completion.complete_json(prompt, system=SYSTEM_PROMPT)
        if not isinstance(payload, list):
            raise EnrichmentError("call inference returned a non-list payload")
        return merge_inferred_calls(base, _calls(payload, "inferred"))

    return _enrich


def bundle_enricher(
    completion: CompletionClient,
    summaries: list[RepoSummary],
    match_result: MatchResult,
) -> Callable[[GeneratedBundle], Awaitable[GeneratedBundle]] | None:
    if not completion.enabled:
        return None

    async def _enrich(base: GeneratedBundle) -> GeneratedBundle:
        prompt = INTEGRATION_NOTES_PROMPT.format(
            repos=json.dumps(
                [{"name": s.name, "role": s.role, "framework": s.framework} for s in summaries]
            ),
            matched=len(match_result.matched),
            missing=json.dumps(
                [f"{c.method} {c.path}" for c in match_result.missing_in_backend]
            ),
            files=", ".join(base.names()),
        )
        payload = await completion.complete_json(prompt, system=SYSTEM_PROMPT)
        notes = payload.get("notes") if isinstance(payload, dict) else None
        if not isinstance(notes, str) or not notes.strip():
            raise EnrichmentError("integration notes payload is empty")
        if base.get(NOTES_ARTIFACT) is not None:
            return base
        artifact = Artifact(
            name=NOTES_ARTIFACT,
            path=f"repofuse/{NOTES_ARTIFACT}",
            content=notes.strip() + "\n",
            target="all",
            origin="inferred",
        )
        return replace(base, artifacts=[*base.artifacts, artifact])

    return _enrich
