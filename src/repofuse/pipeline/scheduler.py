"""Job lifecycle on top of the pipeline driver.

``submit`` records a pending job and hands it to the task runner; the
background task moves it to running and feeds driver events into the job
store. ``follow``, ``wait`` and ``get`` are the streaming, blocking and
polling views over the same record.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from repofuse.errors import PipelineError
from repofuse.logging import bind_context, clear_context
from repofuse.models import Job, LogEntry, LogKind, PipelineResult
from repofuse.pipeline.driver import PipelineDriver, ProgressEvent, ResultEvent, StageEvent
from repofuse.pipeline.runner import TaskRunner
from repofuse.stores import JobStore, RepositoryStore

logger = logging.getLogger(__name__)

RUN_JOB_TASK = "repofuse.pipeline.run_job"


class Scheduler:
    def __init__(
        self,
        driver: PipelineDriver,
        jobs: JobStore,
        repos: RepositoryStore,
        runner: TaskRunner,
    ) -> None:
        self._driver = driver
        self._jobs = jobs
        self._repos = repos
        self._runner = runner
        self._signals: dict[str, asyncio.Condition] = {}
        self._versions: dict[str, int] = {}
        runner.register(RUN_JOB_TASK, self._run_job)

    def submit(self, repo_urls: list[str], *, publish: bool = False) -> Job:
        """Create a pending job and schedule it. Never blocks on pipeline work."""
        job = self._jobs.create(repo_urls, publish=publish)
        self._signals[job.id] = asyncio.Condition()
        self._versions[job.id] = 0
        if not self._runner.send_task(RUN_JOB_TASK, {"job_id": job.id}):
            self._jobs.fail(job.id, "Job could not be scheduled")
            self._signals.pop(job.id, None)
            self._versions.pop(job.id, None)
            return self._jobs.get(job.id) or job
        logger.info("Submitted job %s for %d repositories", job.id, len(repo_urls))
        return job

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def list(self) -> list[Job]:
        return self._jobs.list()

    async def follow(self, job_id: str, cursor: int = 0) -> AsyncIterator[LogEntry]:
        """Yield log entries from ``cursor`` until the job reaches a terminal state.

        Raises ``KeyError`` for unknown jobs. A job discarded by ``reset`` while
        being followed ends the iteration. Abandoning the iterator does not
        affect the job.
        """
        seen = False
        while True:
            condition = self._signals.get(job_id)
            version = self._versions.get(job_id)
            snapshot = self._jobs.tail(job_id, cursor)
            if snapshot is None:
                if seen:
                    return
                raise KeyError(job_id)
            seen = True
            entries, terminal = snapshot
            for entry in entries:
                cursor += 1
                yield entry
            if terminal:
                return
            if condition is None:
                await asyncio.sleep(0.05)
                continue
            async with condition:
                await condition.wait_for(lambda: self._versions.get(job_id) != version)

    async def wait(self, job_id: str) -> Job:
        async for _entry in self.follow(job_id):
            pass
        job = self._jobs.get(job_id)
        if job is None:
            raise PipelineError(f"Job {job_id} was discarded by a reset")
        return job

    async def run(self, repo_urls: list[str], *, publish: bool = False) -> Job:
        """Blocking mode: submit and wait for the terminal record."""
        job = self.submit(repo_urls, publish=publish)
        return await self.wait(job.id)

    async def reset(self) -> None:
        """Drop every job and wake whoever is following one."""
        signals = list(self._signals.values())
        self._jobs.clear()
        self._signals.clear()
        self._versions.clear()
        for condition in signals:
            async with condition:
                condition.notify_all()

    async def _notify(self, job_id: str) -> None:
        condition = self._signals.get(job_id)
        if condition is None:
            return
        self._versions[job_id] = self._versions.get(job_id, 0) + 1
        async with condition:
            condition.notify_all()

    async def _release(self, job_id: str) -> None:
        # Waiters compare against the popped version, so they still wake.
        condition = self._signals.pop(job_id, None)
        self._versions.pop(job_id, None)
        if condition is None:
            return
        async with condition:
            condition.notify_all()

    def _promote(self, result: PipelineResult) -> None:
        for summary in result.repos:
            self._repos.set_summary(summary.url, summary)
        self._repos.set_stage("match", result.match)
        self._repos.set_stage("generated", result.generated)
        self._repos.set_stage("validation", result.validation)
        if result.published is not None:
            self._repos.set_stage("published", result.published)

    async def _run_job(self, job_id: str) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            logger.warning("Job %s vanished before it started", job_id)
            return
        bind_context(job_id=job_id)
        try:
            self._jobs.mark_running(job_id)
            await self._notify(job_id)
            async with aclosing(self._driver.run(job.repo_urls, publish=job.publish)) as events:
                async for event in events:
                    if not self._jobs.exists(job_id):
                        logger.info("Job %s was discarded; stopping", job_id)
                        return
                    if isinstance(event, ProgressEvent):
                        self._jobs.append_log(job_id, event.message, LogKind(event.kind).value)
                    elif isinstance(event, StageEvent):
                        self._jobs.set_working(job_id, event.stage, event.value)
                    elif isinstance(event, ResultEvent):
                        self._promote(event.result)
                        self._jobs.complete(job_id, event.result)
                    await self._notify(job_id)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.warning("Job %s failed: %s", job_id, message)
            current = self._jobs.get(job_id)
            if current is not None and not current.is_terminal:
                self._jobs.append_log(job_id, message, LogKind.ERROR.value)
                self._jobs.fail(job_id, message)
        finally:
            await self._release(job_id)
            clear_context()
