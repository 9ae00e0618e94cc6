"""Pipeline routes: full runs (blocking and streaming), single stages, publishing."""

import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from repofuse.analysis.validator import validate
from repofuse.errors import CloneError, PipelineError
from repofuse.models import (
    GeneratedBundle,
    JobStatus,
    LogKind,
    MatchResult,
    RepoSummary,
    now_iso,
)
from repofuse.services import Container, get_container

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api-pipeline"])
_limiter = Limiter(key_func=get_remote_address)

NO_REPOS = "No repositories added"
NOT_ANALYZED = "No repositories analyzed. Run analyze first."


def _sse(payload: dict[str, object]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def _registered_urls(container: Container) -> list[str]:
    urls = [record.url for record in container.repos.list()]
    if not urls:
        raise HTTPException(status_code=400, detail=NO_REPOS)
    return urls


def _analyzed(container: Container) -> list[RepoSummary]:
    summaries = container.repos.summaries()
    if not summaries:
        raise HTTPException(status_code=400, detail=NOT_ANALYZED)
    return summaries


async def _current_match(container: Container, summaries: list[RepoSummary]) -> MatchResult:
    cached = container.repos.get_stage("match")
    if isinstance(cached, MatchResult):
        return cached
    result = await container.driver.match_stage(summaries)
    container.repos.set_stage("match", result)
    return result


async def _current_bundle(
    container: Container, summaries: list[RepoSummary], match_result: MatchResult
) -> GeneratedBundle:
    cached = container.repos.get_stage("generated")
    if isinstance(cached, GeneratedBundle):
        return cached
    bundle = await container.driver.generate_stage(summaries, match_result)
    container.repos.set_stage("generated", bundle)
    return bundle


@router.post("/run-all")
@_limiter.limit("30/minute")
async def run_all(request: Request) -> dict[str, object]:
    del request
    container = get_container()
    urls = _registered_urls(container)
    try:
        job = await container.scheduler.run(urls)
    except PipelineError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    if job.status != JobStatus.COMPLETED or job.result is None:
        raise HTTPException(status_code=500, detail=job.error or "pipeline failed")
    return {"jobId": job.id, **job.result.to_dict()}


@router.get("/run-all/stream")
async def run_all_stream() -> StreamingResponse:
    container = get_container()
    urls = [record.url for record in container.repos.list()]

    async def event_generator() -> AsyncIterator[str]:
        if not urls:
            yield _sse(
                {"type": "log", "message": NO_REPOS, "kind": LogKind.ERROR.value, "timestamp": now_iso()}
            )
            return
        job = container.scheduler.submit(urls)
        async for entry in container.scheduler.follow(job.id):
            yield _sse({"type": "log", **entry.to_dict()})
        final = container.scheduler.get(job.id)
        if final is None:
            yield _sse(
                {
                    "type": "log",
                    "message": "Pipeline run was discarded by a reset",
                    "kind": LogKind.ERROR.value,
                    "timestamp": now_iso(),
                }
            )
        elif final.result is not None:
            yield _sse({"type": "complete", "result": final.result.to_dict()})

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/analyze")
async def analyze_repos() -> dict[str, object]:
    container = get_container()
    urls = _registered_urls(container)
    summaries: list[RepoSummary] = []
    failed: dict[str, str] = {}
    for url in urls:
        try:
            summary = await container.analyzer.analyze(url)
        except CloneError as exc:
            logger.warning("Analysis of %s failed: %s", url, exc)
            failed[url] = str(exc)
            continue
        container.repos.set_summary(url, summary)
        summaries.append(summary)
    if not summaries:
        raise HTTPException(status_code=500, detail="No repositories could be analyzed")
    for stage in ("match", "generated", "validation"):
        container.repos.set_stage(stage, None)
    return {
        "repos": [summary.to_dict() for summary in summaries],
        "failedRepos": failed,
    }


@router.post("/match")
async def match_repos() -> dict[str, object]:
    container = get_container()
    summaries = _analyzed(container)
    result = await container.driver.match_stage(summaries)
    container.repos.set_stage("match", result)
    container.repos.set_stage("generated", None)
    return result.to_dict()


@router.post("/generate")
async def generate_artifacts() -> dict[str, object]:
    container = get_container()
    summaries = _analyzed(container)
    match_result = await _current_match(container, summaries)
    bundle = await container.driver.generate_stage(summaries, match_result)
    container.repos.set_stage("generated", bundle)
    return bundle.to_dict()


@router.post("/validate")
async def validate_integration() -> dict[str, object]:
    container = get_container()
    summaries = _analyzed(container)
    match_result = await _current_match(container, summaries)
    bundle = await _current_bundle(container, summaries, match_result)
    report = validate(summaries, match_result, bundle)
    container.repos.set_stage("validation", report)
    return report.to_dict()


@router.post("/apply")
@_limiter.limit("10/minute")
async def apply_artifacts(request: Request) -> dict[str, object]:
    del request
    container = get_container()
    summaries = _analyzed(container)
    if not container.settings.publishing_enabled:
        raise HTTPException(status_code=500, detail="GITHUB_TOKEN not configured")
    match_result = await _current_match(container, summaries)
    bundle = await _current_bundle(container, summaries, match_result)
    results = await container.driver.publish_stage(summaries, bundle, match_result)
    container.repos.set_stage("published", results)
    return {"results": [item.to_dict() for item in results]}


@router.post("/reset")
async def reset_state() -> dict[str, object]:
    await get_container().reset()
    logger.info("Repository and job state cleared")
    return {"ok": True}
