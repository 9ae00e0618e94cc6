"""Service wiring and the process-wide container accessor."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from repofuse.analysis.analyzer import CloneFn, RepoAnalyzer
from repofuse.config import Settings, get_settings
from repofuse.gateway.completion import CompletionClient
from repofuse.gateway.retry import SleepFn
from repofuse.pipeline.driver import PipelineDriver
from repofuse.pipeline.runner import TaskRunner
from repofuse.pipeline.scheduler import Scheduler
from repofuse.publisher import Publisher
from repofuse.stores import InMemoryJobStore, InMemoryRepositoryStore


@dataclass(slots=True)
class Container:
    settings: Settings
    repos: InMemoryRepositoryStore
    jobs: InMemoryJobStore
    runner: TaskRunner
    completion: CompletionClient
    analyzer: RepoAnalyzer
    publisher: Publisher
    driver: PipelineDriver
    scheduler: Scheduler

    async def reset(self) -> None:
        self.repos.clear()
        await self.scheduler.reset()


def build_container(
    settings: Settings | None = None,
    *,
    clone_fn: CloneFn | None = None,
    completion_transport: httpx.AsyncBaseTransport | None = None,
    github_transport: httpx.AsyncBaseTransport | None = None,
    sleep: SleepFn | None = None,
) -> Container:
    settings = settings or get_settings()
    completion = CompletionClient(settings, transport=completion_transport, sleep=sleep)
    analyzer = RepoAnalyzer(settings, completion=completion, clone_fn=clone_fn)
    if sleep is not None:
        publisher = Publisher(settings, transport=github_transport, sleep=sleep)
    else:
        publisher = Publisher(settings, transport=github_transport)
    driver = PipelineDriver(analyzer, completion, publisher, settings)
    repos = InMemoryRepositoryStore()
    jobs = InMemoryJobStore()
    runner = TaskRunner(settings.job_runner_max_concurrent)
    scheduler = Scheduler(driver, jobs, repos, runner)
    return Container(
        settings=settings,
        repos=repos,
        jobs=jobs,
        runner=runner,
        completion=completion,
        analyzer=analyzer,
        publisher=publisher,
        driver=driver,
        scheduler=scheduler,
    )


_container: Container | None = None


def get_container() -> Container:
    global _container
    if _container is None:
        _container = build_container()
    return _container


def set_container(container: Container | None) -> None:
    global _container
    _container = container


def reset_container() -> None:
    set_container(None)
