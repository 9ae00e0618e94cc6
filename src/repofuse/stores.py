"""Protocol interfaces and in-memory implementations for repository and job state."""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable
from typing import Any, Protocol

from repofuse.ids import new_id, normalize_repo_url, repo_id_for_url
from repofuse.models import (
    GeneratedBundle,
    Job,
    JobStatus,
    LogEntry,
    MatchResult,
    PipelineResult,
    RepoRegistration,
    RepoSummary,
    ValidationReport,
    now_iso,
)


class RepositoryStore(Protocol):
    def add(self, url: str) -> tuple[RepoRegistration, bool]: ...

    def get(self, repo_id: str) -> RepoRegistration | None: ...

    def list(self) -> list[RepoRegistration]: ...

    def remove(self, repo_id: str) -> bool: ...

    def set_summary(self, url: str, summary: RepoSummary) -> None: ...

    def summaries(self) -> list[RepoSummary]: ...

    def set_stage(self, name: str, value: Any) -> None: ...

    def get_stage(self, name: str) -> Any: ...

    def clear(self) -> None: ...


class JobStore(Protocol):
    def create(self, repo_urls: list[str], *, publish: bool = False) -> Job: ...

    def get(self, job_id: str) -> Job | None: ...

    def list(self) -> list[Job]: ...

    def exists(self, job_id: str) -> bool: ...

    def tail(self, job_id: str, cursor: int) -> tuple[list[LogEntry], bool] | None: ...

    def mark_running(self, job_id: str) -> Job: ...

    def append_log(self, job_id: str, message: str, kind: str) -> LogEntry: ...

    def set_working(self, job_id: str, stage: str, value: Any) -> None: ...

    def complete(self, job_id: str, result: PipelineResult) -> Job: ...

    def fail(self, job_id: str, error: str) -> Job: ...

    def clear(self) -> None: ...


class InMemoryRepositoryStore:
    """Registered repositories plus the most recent stage outputs.

    Summaries are keyed by normalized URL so that deleting a registration
    drops its cached analysis too.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._repos: dict[str, RepoRegistration] = {}
        self._summaries: dict[str, RepoSummary] = {}
        self._stages: dict[str, Any] = {}

    def add(self, url: str) -> tuple[RepoRegistration, bool]:
        """Register ``url``; returns the record and whether it was newly created."""
        normalized = normalize_repo_url(url)
        repo_id = repo_id_for_url(normalized)
        with self._lock:
            existing = self._repos.get(repo_id)
            if existing is not None:
                return existing, False
            record = RepoRegistration(id=repo_id, url=normalized, added_at=now_iso())
            self._repos[repo_id] = record
            return record, True

    def get(self, repo_id: str) -> RepoRegistration | None:
        with self._lock:
            return self._repos.get(repo_id)

    def list(self) -> list[RepoRegistration]:
        with self._lock:
            return list(self._repos.values())

    def remove(self, repo_id: str) -> bool:
        with self._lock:
            record = self._repos.pop(repo_id, None)
            if record is None:
                return False
            self._summaries.pop(record.url, None)
            # Downstream outputs were derived from the removed summary.
            self._stages.clear()
            return True

    def set_summary(self, url: str, summary: RepoSummary) -> None:
        with self._lock:
            self._summaries[normalize_repo_url(url)] = summary

    def summaries(self) -> list[RepoSummary]:
        with self._lock:
            return [
                self._summaries[record.url]
                for record in self._repos.values()
                if record.url in self._summaries
            ]

    def set_stage(self, name: str, value: Any) -> None:
        with self._lock:
            self._stages[name] = value

    def get_stage(self, name: str) -> Any:
        with self._lock:
            return self._stages.get(name)

    def latest_match(self) -> MatchResult | None:
        return self.get_stage("match")

    def latest_bundle(self) -> GeneratedBundle | None:
        return self.get_stage("generated")

    def latest_validation(self) -> ValidationReport | None:
        return self.get_stage("validation")

    def clear(self) -> None:
        with self._lock:
            self._repos.clear()
            self._summaries.clear()
            self._stages.clear()


class InMemoryJobStore:
    """Job records guarded by one mutex.

    Reads return deep copies so callers never observe a record mid-update.
    Terminal jobs reject every further mutation.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: dict[str, Job] = {}

    def create(self, repo_urls: list[str], *, publish: bool = False) -> Job:
        job = Job(
            id=new_id("job"),
            status=JobStatus.PENDING,
            created_at=now_iso(),
            repo_urls=list(repo_urls),
            publish=publish,
        )
        with self._lock:
            self._jobs[job.id] = job
            return copy.deepcopy(job)

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job is not None else None

    def list(self) -> list[Job]:
        with self._lock:
            jobs = [copy.deepcopy(job) for job in self._jobs.values()]
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)

    def exists(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def tail(self, job_id: str, cursor: int) -> tuple[list[LogEntry], bool] | None:
        """Return ``(entries after cursor, is_terminal)`` without copying the job."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            # LogEntry is frozen, so sharing the instances is safe.
            return job.logs[cursor:], job.is_terminal

    def mark_running(self, job_id: str) -> Job:
        def _apply(job: Job) -> None:
            job.status = JobStatus.RUNNING
            job.started_at = now_iso()

        return self._mutate(job_id, _apply)

    def append_log(self, job_id: str, message: str, kind: str) -> LogEntry:
        entry_holder: list[LogEntry] = []

        def _apply(job: Job) -> None:
            timestamp = now_iso()
            if job.logs and timestamp < job.logs[-1].timestamp:
                timestamp = job.logs[-1].timestamp
            entry = LogEntry(message=message, kind=kind, timestamp=timestamp)
            job.logs.append(entry)
            entry_holder.append(entry)

        with self._lock:
            self._update(job_id, _apply)
        return entry_holder[0]

    def set_working(self, job_id: str, stage: str, value: Any) -> None:
        def _apply(job: Job) -> None:
            job.working[stage] = value

        with self._lock:
            self._update(job_id, _apply)

    def complete(self, job_id: str, result: PipelineResult) -> Job:
        def _apply(job: Job) -> None:
            job.status = JobStatus.COMPLETED
            job.result = result
            job.completed_at = now_iso()

        return self._mutate(job_id, _apply)

    def fail(self, job_id: str, error: str) -> Job:
        def _apply(job: Job) -> None:
            job.status = JobStatus.FAILED
            job.error = error
            job.completed_at = now_iso()

        return self._mutate(job_id, _apply)

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()

    def _mutate(self, job_id: str, apply: Callable[[Job], None]) -> Job:
        with self._lock:
            return copy.deepcopy(self._update(job_id, apply))

    def _update(self, job_id: str, apply: Callable[[Job], None]) -> Job:
        """Run ``apply`` on the live record. Callers hold the lock."""
        job = self._jobs.get(job_id)
        if job is None:
            raise KeyError(job_id)
        if job.is_terminal:
            raise RuntimeError(f"job {job_id} is already {job.status.value}")
        apply(job)
        return job
