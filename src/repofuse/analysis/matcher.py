"""Match frontend outbound calls against backend route declarations."""

from __future__ import annotations

import re
from collections.abc import Iterable

from repofuse.models import ApiCall, MatchedPair, MatchResult, RepoSummary

WILDCARD = ":param"

_BRACE_PARAM_RE = re.compile(r"^\{[^}]*\}$")
_ANGLE_PARAM_RE = re.compile(r"^<[^>]*>$")


def _normalize_segment(segment: str) -> str:
    if segment.startswith(":") or _BRACE_PARAM_RE.match(segment) or _ANGLE_PARAM_RE.match(segment):
        return WILDCARD
    return segment.lower()


def normalize_path(path: str) -> str:
    """Canonical form used for matching.

    Drops the query string and fragment, collapses ``{id}``, ``:id`` and
    ``<int:id>`` segments to one wildcard, and case-folds the rest.
    Idempotent.
    """
    bare = path.split("?", 1)[0].split("#", 1)[0]
    segments = [_normalize_segment(part) for part in bare.split("/") if part]
    return "/" + "/".join(segments)


def paths_match(left: str, right: str) -> bool:
    left_parts = [part for part in normalize_path(left).split("/") if part]
    right_parts = [part for part in normalize_path(right).split("/") if part]
    if len(left_parts) != len(right_parts):
        return False
    for a, b in zip(left_parts, right_parts, strict=True):
        if a == b or a == WILDCARD or b == WILDCARD:
            continue
        return False
    return True


def backend_routes(summaries: Iterable[RepoSummary]) -> list[str]:
    """Declared routes of every non-frontend repository, deduplicated by normal form."""
    seen: set[str] = set()
    routes: list[str] = []
    for summary in summaries:
        if summary.role == "frontend":
            continue
        for route in summary.api_routes:
            key = normalize_path(route)
            if key in seen:
                continue
            seen.add(key)
            routes.append(route)
    return routes


def frontend_calls(summaries: Iterable[RepoSummary]) -> list[ApiCall]:
    calls: list[ApiCall] = []
    for summary in summaries:
        if summary.role == "backend":
            continue
        calls.extend(summary.api_calls)
    return calls


def match(summaries: list[RepoSummary]) -> MatchResult:
    routes = backend_routes(summaries)
    result = MatchResult()
    used: set[str] = set()
    for call in frontend_calls(summaries):
        route = next((item for item in routes if paths_match(call.path, item)), None)
        if route is None:
            result.missing_in_backend.append(call)
            continue
        result.matched.append(MatchedPair(call=call, route=route))
        used.add(route)
    result.unused_in_backend = [route for route in routes if route not in used]
    return result


def merge_inferred_calls(result: MatchResult, inferred: Iterable[ApiCall]) -> MatchResult:
    """Fold enrichment-proposed calls that the static pass did not already report.

    Each new call is matched against the routes already known to ``result``.
    """
    routes = [pair.route for pair in result.matched] + list(result.unused_in_backend)
    known = {
        (call.method, normalize_path(call.path))
        for call in [pair.call for pair in result.matched] + result.missing_in_backend
    }
    merged = MatchResult(
        matched=list(result.matched),
        missing_in_backend=list(result.missing_in_backend),
        unused_in_backend=list(result.unused_in_backend),
    )
    for call in inferred:
        key = (call.method, normalize_path(call.path))
        if key in known:
            continue
        known.add(key)
        candidate = ApiCall(method=call.method, path=call.path, source=call.source, origin="inferred")
        route = next((item for item in routes if paths_match(call.path, item)), None)
        if route is None:
            merged.missing_in_backend.append(candidate)
            continue
        merged.matched.append(MatchedPair(call=candidate, route=route))
        if route in merged.unused_in_backend:
            merged.unused_in_backend.remove(route)
    return merged
