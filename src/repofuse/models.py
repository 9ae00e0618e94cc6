"""Domain records shared by the pipeline stages and the HTTP surface.

Records are plain dataclasses. ``to_dict`` renders the camelCase wire shape
used by the API; nothing here performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

FRONTEND_FRAMEWORKS = frozenset({"react", "nextjs", "vue", "angular", "svelte"})
BACKEND_FRAMEWORKS = frozenset(
    {"express", "fastify", "nestjs", "koa", "fastapi", "flask", "django"}
)


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


class JobStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class LogKind(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class RepoRegistration:
    id: str
    url: str
    added_at: str

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "url": self.url, "addedAt": self.added_at}


@dataclass(slots=True, frozen=True)
class ApiCall:
    """Outbound HTTP request found in source.

    ``origin`` is ``"static"`` for regex findings and ``"inferred"`` for
    calls proposed by enrichment.
    """

    method: str
    path: str
    source: str
    origin: str = "static"

    def to_dict(self) -> dict[str, object]:
        return {
            "method": self.method,
            "path": self.path,
            "sourceLocation": self.source,
            "origin": self.origin,
        }


@dataclass(slots=True)
class RepoSummary:
    url: str
    language: str | None = None
    framework: str | None = None
    entry_points: list[str] = field(default_factory=list)
    api_routes: list[str] = field(default_factory=list)
    api_calls: list[ApiCall] = field(default_factory=list)
    config_files: list[str] = field(default_factory=list)
    env_vars: list[str] = field(default_factory=list)
    dependencies: dict[str, str] = field(default_factory=dict)
    purpose: str | None = None
    type: str | None = None
    data_models: list[str] = field(default_factory=list)
    enhanced: bool = False

    @property
    def name(self) -> str:
        tail = self.url.rstrip("/").rsplit("/", 1)[-1]
        tail = tail.rsplit(":", 1)[-1]
        if tail.endswith(".git"):
            tail = tail[: -len(".git")]
        return tail or "repo"

    @property
    def role(self) -> str:
        if self.framework in FRONTEND_FRAMEWORKS:
            return "frontend"
        if self.framework in BACKEND_FRAMEWORKS:
            return "backend"
        if self.api_routes and not self.api_calls:
            return "backend"
        if self.api_calls and not self.api_routes:
            return "frontend"
        return "unknown"

    def to_dict(self) -> dict[str, object]:
        return {
            "url": self.url,
            "name": self.name,
            "role": self.role,
            "language": self.language,
            "framework": self.framework,
            "entryPoints": list(self.entry_points),
            "apiRoutes": list(self.api_routes),
            "apiCalls": [call.to_dict() for call in self.api_calls],
            "configFiles": list(self.config_files),
            "envVars": list(self.env_vars),
            "dependencies": dict(self.dependencies),
            "purpose": self.purpose,
            "type": self.type,
            "dataModels": list(self.data_models),
            "enhanced": self.enhanced,
        }


@dataclass(slots=True, frozen=True)
class MatchedPair:
    call: ApiCall
    route: str

    def to_dict(self) -> dict[str, object]:
        return {"frontend": self.call.to_dict(), "backend": self.route}


@dataclass(slots=True)
class MatchResult:
    matched: list[MatchedPair] = field(default_factory=list)
    missing_in_backend: list[ApiCall] = field(default_factory=list)
    unused_in_backend: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "matched": [pair.to_dict() for pair in self.matched],
            "missingInBackend": [call.to_dict() for call in self.missing_in_backend],
            "unusedInBackend": list(self.unused_in_backend),
        }


@dataclass(slots=True, frozen=True)
class Artifact:
    """One generated file.

    ``target`` selects which repositories receive it on publish:
    ``frontend``, ``backend`` or ``all``.
    """

    name: str
    path: str
    content: str
    target: str = "all"
    origin: str = "static"

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "path": self.path,
            "target": self.target,
            "origin": self.origin,
            "content": self.content,
        }


@dataclass(slots=True)
class GeneratedBundle:
    strategy: str
    artifacts: list[Artifact] = field(default_factory=list)
    project_structure: list[str] = field(default_factory=list)

    def get(self, name: str) -> Artifact | None:
        for artifact in self.artifacts:
            if artifact.name == name:
                return artifact
        return None

    def names(self) -> list[str]:
        return [artifact.name for artifact in self.artifacts]

    def for_role(self, role: str) -> list[Artifact]:
        return [item for item in self.artifacts if item.target in ("all", role)]

    def to_dict(self) -> dict[str, object]:
        return {
            "strategy": self.strategy,
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
            "projectStructure": list(self.project_structure),
        }


@dataclass(slots=True, frozen=True)
class ValidationFinding:
    """Expected output of a validation check, not an exception."""

    repo: str
    code: str
    message: str
    remediation: str
    fixed_by: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "repo": self.repo,
            "code": self.code,
            "message": self.message,
            "remediation": self.remediation,
            "fixedBy": self.fixed_by,
        }


@dataclass(slots=True)
class ValidationReport:
    status: str
    findings: list[ValidationFinding] = field(default_factory=list)
    fixes: list[str] = field(default_factory=list)
    repos_analyzed: int = 0
    endpoints_matched: int = 0
    endpoints_missing: int = 0
    files_generated: list[str] = field(default_factory=list)
    summary: str = ""
    metrics: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status,
            "success": self.success,
            "errors": [finding.message for finding in self.findings],
            "findings": [finding.to_dict() for finding in self.findings],
            "fixes": list(self.fixes),
            "reposAnalyzed": self.repos_analyzed,
            "endpointsMatched": self.endpoints_matched,
            "endpointsMissing": self.endpoints_missing,
            "filesGenerated": list(self.files_generated),
            "summary": self.summary,
            "metrics": dict(self.metrics),
        }


@dataclass(slots=True)
class PublishResult:
    repo: str
    fork_url: str | None = None
    pr_url: str | None = None
    error: str | None = None
    committed_files: list[str] = field(default_factory=list)
    failed_files: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "repo": self.repo,
            "forkUrl": self.fork_url,
            "committedFiles": list(self.committed_files),
        }
        if self.failed_files:
            payload["failedFiles"] = list(self.failed_files)
        if self.error is not None:
            payload["error"] = self.error
        else:
            payload["prUrl"] = self.pr_url
        return payload


@dataclass(slots=True)
class PipelineResult:
    repos: list[RepoSummary]
    match: MatchResult
    generated: GeneratedBundle
    validation: ValidationReport
    failed_repos: dict[str, str] = field(default_factory=dict)
    published: list[PublishResult] | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "repos": [summary.to_dict() for summary in self.repos],
            "failedRepos": dict(self.failed_repos),
            "match": self.match.to_dict(),
            "generated": self.generated.to_dict(),
            "validation": self.validation.to_dict(),
            "durationMs": self.duration_ms,
        }
        if self.published is not None:
            payload["published"] = [item.to_dict() for item in self.published]
        return payload


@dataclass(slots=True, frozen=True)
class LogEntry:
    message: str
    kind: str
    timestamp: str

    def to_dict(self) -> dict[str, object]:
        return {"message": self.message, "kind": self.kind, "timestamp": self.timestamp}


@dataclass(slots=True)
class Job:
    id: str
    status: JobStatus
    created_at: str
    repo_urls: list[str] = field(default_factory=list)
    publish: bool = False
    started_at: str | None = None
    completed_at: str | None = None
    logs: list[LogEntry] = field(default_factory=list)
    result: PipelineResult | None = None
    error: str | None = None
    # Stage outputs computed so far; promoted to ``result`` only on completion.
    working: dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "status": self.status.value,
            "createdAt": self.created_at,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "repoUrls": list(self.repo_urls),
            "publish": self.publish,
            "logs": [entry.to_dict() for entry in self.logs],
            "result": self.result.to_dict() if self.result is not None else None,
            "error": self.error,
            "stagesCompleted": sorted(self.working),
        }
