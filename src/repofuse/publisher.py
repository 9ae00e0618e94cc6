"""Publish generated artifacts as pull requests from forks."""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import UTC, datetime
from uuid import uuid4

import httpx

from repofuse.analysis.generator import ARTIFACT_DIR, render_analysis
from repofuse.config import Settings, get_settings
from repofuse.errors import GitHubApiError, InvalidUrlError, PublishError, RepofuseError
from repofuse.gateway.github import GitHubClient
from repofuse.gateway.retry import SleepFn
from repofuse.models import Artifact, GeneratedBundle, MatchResult, PublishResult, RepoSummary

logger = logging.getLogger(__name__)

_GITHUB_URL_RE = re.compile(r"github\.com[/:](?P<owner>[^/\s]+)/(?P<repo>[^/\s#?]+)")

BASE_BRANCHES = ("main", "master")


def parse_repo_url(url: str) -> tuple[str, str]:
    match = _GITHUB_URL_RE.search(url.strip())
    if match is None:
        raise InvalidUrlError(f"not a GitHub repository URL: {url}")
    repo = match.group("repo").removesuffix(".git")
    if not repo:
        raise InvalidUrlError(f"not a GitHub repository URL: {url}")
    return match.group("owner"), repo


def new_branch_name() -> str:
    stamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    return f"repofuse/integration-{stamp}-{uuid4().hex[:6]}"


def _pr_body(summary: RepoSummary, files: list[str]) -> str:
    lines = [
        "This pull request adds integration glue generated by repofuse.",
        "",
        f"- Role detected: {summary.role}",
        f"- Framework: {summary.framework or 'unknown'}",
        "",
        "### Files",
    ]
    lines.extend(f"- `{path}`" for path in files)
    lines.extend(["", "_Generated files are starting points; review before merging._"])
    return "\n".join(lines)


class Publisher:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport
        self._sleep = sleep

    async def publish(
        self,
        summaries: list[RepoSummary],
        bundle: GeneratedBundle,
        match_result: MatchResult | None = None,
    ) -> list[PublishResult]:
        """Publish to every repository independently; one failure never aborts the rest."""
        branch = new_branch_name()
        results: list[PublishResult] = []
        async with GitHubClient(
            self._settings, transport=self._transport, sleep=self._sleep
        ) as github:
            for summary in summaries:
                result = PublishResult(repo=summary.url)
                try:
                    await self._publish_one(github, summary, bundle, match_result, branch, result)
                except (RepofuseError, httpx.HTTPError) as exc:
                    logger.warning("Publishing to %s failed: %s", summary.url, exc)
                    result.error = str(exc)
                results.append(result)
        return results

    def _artifacts_for(
        self,
        summary: RepoSummary,
        bundle: GeneratedBundle,
        match_result: MatchResult | None,
    ) -> list[Artifact]:
        artifacts = bundle.for_role(summary.role)
        if artifacts:
            return artifacts
        return [
            Artifact(
                name="ANALYSIS.md",
                path=f"{ARTIFACT_DIR}/ANALYSIS.md",
                content=render_analysis(summary, match_result),
            )
        ]

    async def _ensure_fork(
        self, github: GitHubClient, owner: str, repo: str
    ) -> tuple[str, str, str, str | None]:
        """Return ``(fork_owner, fork_repo, fork_url, default_branch)``."""
        org = self._settings.github_org
        fork_name = f"{owner}-{repo}"
        existing = await github.get_repo(org, fork_name)
        if existing is not None:
            logger.info("Reusing existing fork %s/%s", org, fork_name)
            payload = existing
        else:
            payload = await github.create_fork(owner, repo, organization=org, name=fork_name)
            settle = float(self._settings.fork_settle_seconds)
            if settle > 0:
                await self._sleep(settle)
        full_name = str(payload.get("full_name") or f"{org}/{fork_name}")
        fork_owner, _, fork_repo = full_name.partition("/")
        fork_url = str(payload.get("html_url") or f"https://github.com/{full_name}")
        default_branch = payload.get("default_branch")
        if not isinstance(default_branch, str):
            default_branch = None
        return fork_owner, fork_repo, fork_url, default_branch

    async def _open_pull(
        self,
        github: GitHubClient,
        owner: str,
        repo: str,
        *,
        head: str,
        title: str,
        body: str,
    ) -> str:
        last_error: GitHubApiError | None = None
        for base in BASE_BRANCHES:
            try:
                pr = await github.create_pull(
                    owner, repo, title=title, head=head, base=base, body=body
                )
            except GitHubApiError as exc:
                if "base" not in exc.detail.lower():
                    raise
                logger.info("Base %s rejected for %s/%s; trying next base", base, owner, repo)
                last_error = exc
                continue
            return str(pr.get("html_url") or "")
        raise last_error or GitHubApiError(f"no base branch accepted for {owner}/{repo}")

    async def _publish_one(
        self,
        github: GitHubClient,
        summary: RepoSummary,
        bundle: GeneratedBundle,
        match_result: MatchResult | None,
        branch: str,
        result: PublishResult,
    ) -> None:
        """Fill ``result`` in place so a later failure keeps the fork and commits."""
        owner, repo = parse_repo_url(summary.url)
        fork_owner, fork_repo, result.fork_url, default_branch = await self._ensure_fork(
            github, owner, repo
        )

        if not default_branch:
            info = await github.get_repo(fork_owner, fork_repo) or {}
            default_branch = str(info.get("default_branch") or "main")
        sha = await github.get_branch_sha(fork_owner, fork_repo, default_branch)
        await github.create_branch(fork_owner, fork_repo, branch, sha)

        for artifact in self._artifacts_for(summary, bundle, match_result):
            try:
                existing_sha = await github.get_file_sha(
                    fork_owner, fork_repo, artifact.path, ref=branch
                )
                await github.put_file(
                    fork_owner,
                    fork_repo,
                    artifact.path,
                    content=artifact.content,
                    message=f"Add {artifact.path} (repofuse)",
                    branch=branch,
                    sha=existing_sha,
                )
            except (RepofuseError, httpx.HTTPError) as exc:
                logger.warning("Commit of %s to %s failed: %s", artifact.path, fork_repo, exc)
                result.failed_files.append(artifact.path)
                continue
            result.committed_files.append(artifact.path)

        if not result.committed_files:
            raise PublishError(
                f"no artifacts could be committed to {fork_owner}/{fork_repo}"
            )

        result.pr_url = await self._open_pull(
            github,
            owner,
            repo,
            head=f"{fork_owner}:{branch}",
            title=f"repofuse: integration glue for {repo}",
            body=_pr_body(summary, result.committed_files),
        )
        logger.info("Opened pull request for %s: %s", summary.url, result.pr_url)
