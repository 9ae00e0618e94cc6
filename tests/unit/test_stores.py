import pytest

from repofuse.models import (
    GeneratedBundle,
    JobStatus,
    MatchResult,
    PipelineResult,
    RepoSummary,
    ValidationReport,
)
from repofuse.stores import InMemoryJobStore, InMemoryRepositoryStore


def _result() -> PipelineResult:
    return PipelineResult(
        repos=[],
        match=MatchResult(),
        generated=GeneratedBundle(strategy="monorepo"),
        validation=ValidationReport(status="success"),
    )


def test_duplicate_registration_returns_existing_record() -> None:
    store = InMemoryRepositoryStore()
    first, created = store.add("https://github.com/acme/api")
    second, created_again = store.add("https://github.com/acme/api/")
    assert created is True
    assert created_again is False
    assert first == second
    assert len(store.list()) == 1


def test_remove_drops_summary_and_stage_outputs() -> None:
    store = InMemoryRepositoryStore()
    record, _ = store.add("https://github.com/acme/api")
    store.set_summary(record.url, RepoSummary(url=record.url))
    store.set_stage("match", MatchResult())
    assert len(store.summaries()) == 1
    assert store.remove(record.id) is True
    assert store.summaries() == []
    assert store.latest_match() is None
    assert store.remove(record.id) is False


def test_summaries_follow_registration_order() -> None:
    store = InMemoryRepositoryStore()
    web, _ = store.add("https://github.com/acme/web")
    api, _ = store.add("https://github.com/acme/api")
    store.set_summary(api.url, RepoSummary(url=api.url))
    store.set_summary(web.url, RepoSummary(url=web.url))
    assert [s.url for s in store.summaries()] == [web.url, api.url]


def test_job_lifecycle() -> None:
    store = InMemoryJobStore()
    job = store.create(["https://github.com/acme/api"], publish=True)
    assert job.status == JobStatus.PENDING
    assert job.publish is True
    running = store.mark_running(job.id)
    assert running.status == JobStatus.RUNNING
    assert running.started_at is not None
    store.set_working(job.id, "analyze", [])
    done = store.complete(job.id, _result())
    assert done.status == JobStatus.COMPLETED
    assert done.to_dict()["stagesCompleted"] == ["analyze"]
    assert done.completed_at is not None


def test_terminal_jobs_reject_mutation() -> None:
    store = InMemoryJobStore()
    job = store.create([])
    store.fail(job.id, "boom")
    with pytest.raises(RuntimeError):
        store.append_log(job.id, "late", "info")
    with pytest.raises(RuntimeError):
        store.complete(job.id, _result())
    assert store.get(job.id).error == "boom"


def test_unknown_job_raises_key_error() -> None:
    with pytest.raises(KeyError):
        InMemoryJobStore().mark_running("job_missing")


def test_logs_are_append_only_with_monotonic_timestamps() -> None:
    store = InMemoryJobStore()
    job = store.create([])
    for index in range(20):
        store.append_log(job.id, f"step {index}", "info")
    logs = store.get(job.id).logs
    assert [entry.message for entry in logs] == [f"step {index}" for index in range(20)]
    stamps = [entry.timestamp for entry in logs]
    assert stamps == sorted(stamps)


def test_reads_are_snapshots() -> None:
    store = InMemoryJobStore()
    job = store.create([])
    snapshot = store.get(job.id)
    snapshot.logs.append("tampered")
    assert store.get(job.id).logs == []


def test_list_newest_first() -> None:
    store = InMemoryJobStore()
    first = store.create([])
    second = store.create([])
    ids = [job.id for job in store.list()]
    assert set(ids) == {first.id, second.id}
    created = [job.created_at for job in store.list()]
    assert created == sorted(created, reverse=True)


def test_tail_returns_only_new_entries_and_terminal_flag() -> None:
    store = InMemoryJobStore()
    job = store.create([])
    store.mark_running(job.id)
    store.set_working(job.id, "analyze", [RepoSummary(url="https://github.com/acme/api")])
    for index in range(3):
        store.append_log(job.id, f"step {index}", "info")

    entries, terminal = store.tail(job.id, 1)
    assert [entry.message for entry in entries] == ["step 1", "step 2"]
    assert terminal is False

    entries.append("tampered")
    store.fail(job.id, "boom")
    entries, terminal = store.tail(job.id, 3)
    assert entries == []
    assert terminal is True
    assert len(store.get(job.id).logs) == 3


def test_tail_and_exists_for_missing_job() -> None:
    store = InMemoryJobStore()
    job = store.create([])
    assert store.exists(job.id)
    store.clear()
    assert not store.exists(job.id)
    assert store.tail(job.id, 0) is None
