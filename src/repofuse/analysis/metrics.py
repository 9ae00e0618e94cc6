"""Effort estimates for the work a pipeline run automates."""

from __future__ import annotations

from repofuse.models import GeneratedBundle, MatchResult, RepoSummary

HOURLY_RATE = 50
CURRENCY = "USD"

HOURS_PER_REPO_ANALYSIS = 1.5
HOURS_PER_REPO_MATCHING = 2.0
HOURS_PER_GENERATED_FILE = 1.0
HOURS_INTEGRATION = 3.0
HOURS_VALIDATION = 2.0


def calculate_metrics(
    summaries: list[RepoSummary],
    match_result: MatchResult,
    bundle: GeneratedBundle,
    findings_count: int,
    duration_ms: int = 0,
) -> dict[str, object]:
    repo_count = len(summaries)
    stages = {
        "repoAnalysis": repo_count * HOURS_PER_REPO_ANALYSIS,
        "interfaceMatching": repo_count * HOURS_PER_REPO_MATCHING,
        "codeGeneration": len(bundle.artifacts) * HOURS_PER_GENERATED_FILE,
        "integration": HOURS_INTEGRATION,
        "validation": HOURS_VALIDATION,
    }
    total = sum(stages.values())
    tasks = [
        f"Analyzed {repo_count} repositories",
        f"Detected {sum(1 for s in summaries if s.framework)} frameworks",
        f"Extracted {sum(len(s.api_routes) for s in summaries)} API routes",
        f"Found {len(match_result.missing_in_backend)} missing endpoints",
        f"Generated {len(bundle.artifacts)} code files",
        f"Created {bundle.strategy} configuration",
        f"Validated integration with {findings_count} issues found",
    ]
    seconds = duration_ms / 1000
    return {
        "timeSaved": {**stages, "total": total, "unit": "hours"},
        "tasksAutomated": tasks,
        "costSavings": {
            "hourlyRate": HOURLY_RATE,
            "totalHours": total,
            "totalSavings": total * HOURLY_RATE,
            "currency": CURRENCY,
        },
        "summary": (
            f"Automated integration of {repo_count} repositories saved approximately "
            f"{total:g} hours of manual work (${total * HOURLY_RATE:g} at ${HOURLY_RATE}/hr). "
            f"Pipeline completed in {seconds:.1f} seconds."
        ),
    }
