"""Repository analyzer: clone, static extraction, optional enrichment."""

from __future__ import annotations

import asyncio
import logging
import shutil
import subprocess
import tempfile
from collections.abc import Callable
from pathlib import Path

from repofuse.analysis.static import analyze_path, collect_sample
from repofuse.config import Settings, get_settings
from repofuse.enrichment import summary_enricher, with_enrichment
from repofuse.errors import CloneError
from repofuse.gateway.completion import CompletionClient
from repofuse.models import RepoSummary

logger = logging.getLogger(__name__)

CloneFn = Callable[[str, Path], None]


def git_clone(url: str, target: Path, *, timeout_s: int = 120) -> None:
    """Shallow clone ``url`` into ``target``; raises ``CloneError`` on any failure."""
    try:
        proc = subprocess.run(
            ["git", "clone", "--depth", "1", "--", url, str(target)],
            capture_output=True,
            text=True,
            timeout=timeout_s,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise CloneError(f"clone of {url} timed out after {timeout_s}s") from exc
    except OSError as exc:
        raise CloneError(f"git is not available: {exc}") from exc
    if proc.returncode != 0:
        detail = proc.stderr.strip().splitlines()
        reason = detail[-1] if detail else f"git exited with {proc.returncode}"
        raise CloneError(f"failed to clone {url}: {reason}")


class RepoAnalyzer:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        completion: CompletionClient | None = None,
        clone_fn: CloneFn | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._completion = completion or CompletionClient(self._settings)
        self._clone_fn = clone_fn

    def _clone(self, url: str, target: Path) -> None:
        if self._clone_fn is not None:
            self._clone_fn(url, target)
            return
        git_clone(url, target, timeout_s=int(self._settings.clone_timeout_seconds))

    def _scan(self, url: str) -> tuple[RepoSummary, list[tuple[str, str]]]:
        local = Path(url).expanduser()
        if local.is_dir():
            return self._scan_tree(local, url)

        workspace = Path(self._settings.workspace_dir)
        workspace.mkdir(parents=True, exist_ok=True)
        scratch = Path(tempfile.mkdtemp(prefix="repo-", dir=workspace))
        try:
            target = scratch / "checkout"
            self._clone(url, target)
            if not target.is_dir():
                raise CloneError(f"clone of {url} produced no checkout")
            return self._scan_tree(target, url)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

    def _scan_tree(self, root: Path, url: str) -> tuple[RepoSummary, list[tuple[str, str]]]:
        summary = analyze_path(root, url)
        sample: list[tuple[str, str]] = []
        if self._completion.enabled:
            sample = collect_sample(
                root,
                summary,
                max_files=int(self._settings.enrich_max_files),
                max_bytes=int(self._settings.enrich_max_bytes),
            )
        return summary, sample

    async def analyze(self, url: str) -> RepoSummary:
        """Analyze one repository. Raises ``CloneError`` when it cannot be fetched."""
        summary, sample = await asyncio.to_thread(self._scan, url)
        logger.info(
            "Analyzed %s: language=%s framework=%s routes=%d calls=%d",
            url,
            summary.language,
            summary.framework,
            len(summary.api_routes),
            len(summary.api_calls),
        )
        return await with_enrichment(
            summary, summary_enricher(self._completion, sample), stage="analyze"
        )
