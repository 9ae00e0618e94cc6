"""Structural checks over the analyzed repositories and the generated bundle."""

from __future__ import annotations

from repofuse.analysis.metrics import calculate_metrics
from repofuse.analysis.static import FRAMEWORK_TABLE
from repofuse.models import (
    GeneratedBundle,
    MatchResult,
    RepoSummary,
    ValidationFinding,
    ValidationReport,
)

# Backend framework -> package that provides cross-origin support.
CORS_PACKAGES = {
    "express": "cors",
    "fastify": "@fastify/cors",
    "koa": "@koa/cors",
    "flask": "flask-cors",
    "django": "django-cors-headers",
}

_FRAMEWORK_PACKAGES = dict(FRAMEWORK_TABLE)


def _cors_artifact(bundle: GeneratedBundle) -> str | None:
    for name in ("cors.js", "cors.py"):
        if bundle.get(name) is not None:
            return name
    return None


def check_repo(summary: RepoSummary, bundle: GeneratedBundle) -> list[ValidationFinding]:
    findings: list[ValidationFinding] = []
    deps = {name.lower() for name in summary.dependencies}
    repo = summary.url

    packages = _FRAMEWORK_PACKAGES.get(summary.framework or "")
    if packages and not any(package in deps for package in packages):
        findings.append(
            ValidationFinding(
                repo=repo,
                code="missing-dependency",
                message=f"{repo}: Missing {packages[0]} dependency",
                remediation=f"Add '{packages[0]}' to the project's dependency manifest.",
            )
        )

    if not summary.entry_points:
        findings.append(
            ValidationFinding(
                repo=repo,
                code="no-entry-point",
                message=f"{repo}: No entry point found",
                remediation="Add a conventional entry file or set 'main' in the manifest.",
                fixed_by="start.sh" if bundle.get("start.sh") is not None else None,
            )
        )

    if summary.env_vars:
        findings.append(
            ValidationFinding(
                repo=repo,
                code="env-vars-unset",
                message=f"{repo}: Requires env vars: {', '.join(summary.env_vars)}",
                remediation="Fill in the variables listed in the generated .env.example.",
                fixed_by=".env.example" if bundle.get(".env.example") is not None else None,
            )
        )

    cors_package = CORS_PACKAGES.get(summary.framework or "")
    if summary.role == "backend" and cors_package and cors_package not in deps:
        findings.append(
            ValidationFinding(
                repo=repo,
                code="missing-cors",
                message=f"{repo}: Missing {cors_package} package for cross-origin requests",
                remediation=f"Install '{cors_package}' and apply the generated CORS snippet.",
                fixed_by=_cors_artifact(bundle),
            )
        )
    return findings


def _summary_text(summaries: list[RepoSummary], status: str, hours: float) -> str:
    frameworks = " + ".join(s.framework for s in summaries if s.framework)
    count = len(summaries)
    if status == "success":
        return (
            f"Successfully integrated {count} repositories ({frameworks}). "
            f"Estimated {hours:g} hours of manual work automated."
        )
    if status == "partial":
        return (
            f"Partially integrated {count} repositories ({frameworks}). "
            f"Some manual fixes required. Estimated {hours:g} hours saved."
        )
    return (
        f"Integration of {count} repositories requires manual intervention. "
        "Review errors and apply suggested fixes."
    )


def validate(
    summaries: list[RepoSummary],
    match_result: MatchResult,
    bundle: GeneratedBundle,
    *,
    duration_ms: int = 0,
) -> ValidationReport:
    """Read-only report; never mutates its inputs."""
    findings: list[ValidationFinding] = []
    for summary in summaries:
        findings.extend(check_repo(summary, bundle))
    fixes = [f"{f.fixed_by}: {f.remediation}" for f in findings if f.fixed_by]

    if not findings:
        status = "success"
    elif len(fixes) >= len(findings):
        status = "partial"
    else:
        status = "failed"

    metrics = calculate_metrics(summaries, match_result, bundle, len(findings), duration_ms)
    time_saved = metrics["timeSaved"]
    hours = float(time_saved["total"]) if isinstance(time_saved, dict) else 0.0
    return ValidationReport(
        status=status,
        findings=findings,
        fixes=fixes,
        repos_analyzed=len(summaries),
        endpoints_matched=len(match_result.matched),
        endpoints_missing=len(match_result.missing_in_backend),
        files_generated=bundle.names(),
        summary=_summary_text(summaries, status, hours),
        metrics=metrics,
    )
