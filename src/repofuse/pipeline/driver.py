"""Pipeline driver: one async generator shared by every execution mode.

The driver yields ``ProgressEvent`` lines and ``StageEvent`` checkpoints as it
advances analyze -> match -> generate -> validate (-> publish), and finishes
with a single ``ResultEvent``. It holds no job state of its own.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from repofuse.analysis.analyzer import RepoAnalyzer
from repofuse.analysis.generator import generate
from repofuse.analysis.matcher import match
from repofuse.analysis.validator import validate
from repofuse.config import Settings, get_settings
from repofuse.enrichment import bundle_enricher, match_enricher, with_enrichment
from repofuse.errors import CloneError, ConfigError, PipelineError
from repofuse.gateway.completion import CompletionClient
from repofuse.models import (
    GeneratedBundle,
    LogKind,
    MatchResult,
    PipelineResult,
    PublishResult,
    RepoSummary,
)
from repofuse.publisher import Publisher

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    message: str
    kind: str = LogKind.INFO


@dataclass(slots=True, frozen=True)
class StageEvent:
    stage: str
    value: Any


@dataclass(slots=True, frozen=True)
class ResultEvent:
    result: PipelineResult


PipelineEvent = ProgressEvent | StageEvent | ResultEvent

_STATUS_KIND = {
    "success": LogKind.SUCCESS,
    "partial": LogKind.WARNING,
    "failed": LogKind.ERROR,
}


def _describe(summary: RepoSummary) -> str:
    stack = summary.framework or summary.language or "unknown stack"
    return (
        f"Analyzed {summary.name}: {stack}, {summary.role}, "
        f"{len(summary.api_routes)} routes, {len(summary.api_calls)} calls"
    )


class PipelineDriver:
    def __init__(
        self,
        analyzer: RepoAnalyzer,
        completion: CompletionClient,
        publisher: Publisher,
        settings: Settings | None = None,
    ) -> None:
        self._analyzer = analyzer
        self._completion = completion
        self._publisher = publisher
        self._settings = settings or get_settings()

    async def match_stage(self, summaries: list[RepoSummary]) -> MatchResult:
        return await with_enrichment(
            match(summaries), match_enricher(self._completion, summaries), stage="match"
        )

    async def generate_stage(
        self, summaries: list[RepoSummary], match_result: MatchResult
    ) -> GeneratedBundle:
        return await with_enrichment(
            generate(summaries, match_result),
            bundle_enricher(self._completion, summaries, match_result),
            stage="generate",
        )

    async def publish_stage(
        self,
        summaries: list[RepoSummary],
        bundle: GeneratedBundle,
        match_result: MatchResult | None = None,
    ) -> list[PublishResult]:
        if not self._settings.publishing_enabled:
            raise ConfigError("Publishing requested but GITHUB_TOKEN is not configured")
        return await self._publisher.publish(summaries, bundle, match_result)

    async def run(self, urls: list[str], *, publish: bool = False) -> AsyncIterator[PipelineEvent]:
        started = time.monotonic()
        if not urls:
            raise PipelineError("No repositories added")
        if publish and not self._settings.publishing_enabled:
            raise ConfigError("Publishing requested but GITHUB_TOKEN is not configured")

        yield ProgressEvent(f"Starting pipeline for {len(urls)} repositories")
        summaries: list[RepoSummary] = []
        failed: dict[str, str] = {}
        for url in urls:
            yield ProgressEvent(f"Analyzing {url}...")
            try:
                summary = await self._analyzer.analyze(url)
            except CloneError as exc:
                failed[url] = str(exc)
                yield ProgressEvent(f"Skipping {url}: {exc}", LogKind.ERROR)
                continue
            summaries.append(summary)
            kind = LogKind.SUCCESS if summary.enhanced or summary.language else LogKind.WARNING
            yield ProgressEvent(_describe(summary), kind)
        if not summaries:
            raise PipelineError("No repositories could be analyzed")
        yield StageEvent("analyze", summaries)

        yield ProgressEvent("Matching frontend calls against backend routes...")
        match_result = await self.match_stage(summaries)
        yield StageEvent("match", match_result)
        yield ProgressEvent(
            f"Matched {len(match_result.matched)} calls; "
            f"{len(match_result.missing_in_backend)} missing in backend, "
            f"{len(match_result.unused_in_backend)} routes unused",
            LogKind.WARNING if match_result.missing_in_backend else LogKind.SUCCESS,
        )

        yield ProgressEvent("Generating integration artifacts...")
        bundle = await self.generate_stage(summaries, match_result)
        yield StageEvent("generated", bundle)
        yield ProgressEvent(
            f"Generated {len(bundle.artifacts)} files ({bundle.strategy})", LogKind.SUCCESS
        )

        yield ProgressEvent("Validating integration...")
        elapsed_ms = int((time.monotonic() - started) * 1000)
        report = validate(summaries, match_result, bundle, duration_ms=elapsed_ms)
        yield StageEvent("validation", report)
        yield ProgressEvent(
            f"Validation {report.status}: {len(report.findings)} findings, "
            f"{len(report.fixes)} generated fixes",
            _STATUS_KIND.get(report.status, LogKind.INFO),
        )

        published = None
        if publish:
            yield ProgressEvent("Publishing artifacts as pull requests...")
            published = await self.publish_stage(summaries, bundle, match_result)
            yield StageEvent("published", published)
            for item in published:
                if item.error is not None:
                    message = f"Publish to {item.repo} failed: {item.error}"
                    yield ProgressEvent(message, LogKind.ERROR)
                else:
                    yield ProgressEvent(f"Opened {item.pr_url} for {item.repo}", LogKind.SUCCESS)

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info("Pipeline finished in %dms for %d repositories", duration_ms, len(summaries))
        yield ProgressEvent(f"Pipeline complete in {duration_ms / 1000:.1f}s", LogKind.SUCCESS)
        yield ResultEvent(
            PipelineResult(
                repos=summaries,
                match=match_result,
                generated=bundle,
                validation=report,
                failed_repos=failed,
                published=published,
                duration_ms=duration_ms,
            )
        )
